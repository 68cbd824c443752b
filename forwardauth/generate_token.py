"""
Helper script for issuing a token without going through the login page.

The token is registered in the Redis token store, so it is accepted by
every gateway process that shares that store and the same secret. Set
``TOKEN_SECRET`` and ``TOKEN_STORE=redis`` in your environment to the same
values that the running gateway uses.

.. code-block:: bash

   $ TOKEN_SECRET=foosecret TOKEN_STORE=redis generate-token --duration 600
   eyJ0eXAiOiJKV1QiLCJhbGciOiJIUzI1NiJ9.eyJqdGkiOiJ...


Use the token in requests through the proxy by setting the header
``X-Forward-Auth: [token]``.
"""

from typing import Optional

import click

from .factory import create_app
from .services.signing import current_signer
from .services.token_store import current_store


@click.command()
@click.option('--duration', type=click.IntRange(min=1), default=None,
              help='Token lifetime in seconds (default: SESSION_DURATION).')
def generate_token(duration: Optional[int]) -> None:
    """Mint a token and register it in the shared token store."""
    overrides = {}
    if duration is not None:
        overrides['SESSION_DURATION'] = str(duration)
    app = create_app(overrides)

    if app.config['TOKEN_STORE'] != 'redis' or app.config['REDIS_FAKE']:
        raise click.ClickException(
            'Tokens can only be generated offline into a shared Redis store;'
            ' set TOKEN_STORE=redis.'
        )
    signer = current_signer(app)
    if signer.generated_secret:
        raise click.ClickException(
            'TOKEN_SECRET is not set; a token signed with a throwaway secret'
            ' would never validate.'
        )
    token = signer.mint()
    current_store(app).insert(token)
    click.echo(token.value)


if __name__ == '__main__':
    generate_token()
