"""
Signing secret bootstrap and token minting.

The signing secret is established exactly once, when the application is
created. If ``TOKEN_SECRET`` is present in the environment it is used
verbatim. Otherwise a random alphanumeric secret is generated; since it is
never persisted, every token issued by a previous process fails signature
verification after a restart. That is expected behavior, not a fault.
"""

import logging
import math
import secrets
import string
from datetime import datetime, timedelta
from typing import Mapping, NamedTuple, Optional

import jwt
from flask import Flask, current_app
from pytz import UTC

from .. import domain
from .exceptions import InvalidToken, ExpiredToken, ConfigurationError

logger = logging.getLogger(__name__)

ALPHANUMERIC = string.ascii_letters + string.digits
SECRET_LENGTH = 32
MIN_SECRET_LENGTH = 30
ALGORITHM = 'HS256'
REQUIRED_CLAIMS = ['jti', 'iat', 'exp']
EXTENSION_KEY = 'forwardauth.signer'


class SigningSecret(NamedTuple):
    """Key material for signing tokens."""

    value: str
    generated: bool = False
    """True if the secret was generated at startup rather than supplied."""


def generate_secret(length: int = SECRET_LENGTH) -> str:
    """Generate a uniformly random alphanumeric secret."""
    if length < MIN_SECRET_LENGTH:
        raise ValueError(f'Secret must be at least {MIN_SECRET_LENGTH} chars')
    return ''.join(secrets.choice(ALPHANUMERIC) for _ in range(length))


def bootstrap_secret(environ: Mapping[str, Optional[str]]) -> SigningSecret:
    """
    Establish the signing secret for this process.

    Parameters
    ----------
    environ : mapping
        Where to look for ``TOKEN_SECRET``; usually the app config.

    Returns
    -------
    :class:`SigningSecret`

    """
    supplied = environ.get('TOKEN_SECRET')
    if supplied:
        logger.debug('Using operator-supplied token secret')
        return SigningSecret(supplied)
    logger.warning('TOKEN_SECRET is not set; generated a random secret. '
                   'Tokens issued by this process will not survive a '
                   'restart.')
    return SigningSecret(generate_secret(), generated=True)


class TokenSigner(object):
    """
    Mints and verifies signed tokens.

    Created once per process by the app factory and shared read-only by
    every request handler.
    """

    def __init__(self, secret: SigningSecret, duration: int = 7200) -> None:
        self._secret = secret
        self._duration = int(duration)

    @property
    def duration(self) -> int:
        """Lifetime of minted tokens, in seconds."""
        return self._duration

    @property
    def generated_secret(self) -> bool:
        """True if this signer uses a secret generated at startup."""
        return self._secret.generated

    def mint(self, now: Optional[datetime] = None) -> domain.Token:
        """Create a new signed token with a fresh random identifier."""
        if now is None:
            now = datetime.now(tz=UTC)
        # 16 bytes -> 128 bits of randomness.
        token_id = secrets.token_urlsafe(16)
        # Round the expiry up to a whole second so that the token lives at
        # least the full duration, and the store and the exp claim agree.
        exp = math.ceil((now + timedelta(seconds=self._duration)).timestamp())
        expires_at = datetime.fromtimestamp(exp, tz=UTC)
        claims = {
            'jti': token_id,
            'iat': int(now.timestamp()),
            'exp': exp
        }
        value: str = jwt.encode(claims, self._secret.value,
                                algorithm=ALGORITHM)
        return domain.Token(value=value, token_id=token_id, issued_at=now,
                            expires_at=expires_at)

    def verify(self, value: str) -> dict:
        """
        Check the signature and lifetime of a token.

        Returns
        -------
        dict
            The token claims.

        Raises
        ------
        :class:`InvalidToken`
            If the token is malformed, or was not signed with our secret.
        :class:`ExpiredToken`
            If the token is past its ``exp`` claim.

        """
        try:
            claims: dict = jwt.decode(
                value, self._secret.value, algorithms=[ALGORITHM],
                options={'require': REQUIRED_CLAIMS}
            )
        except jwt.exceptions.ExpiredSignatureError as e:
            raise ExpiredToken('Token has expired') from e
        except jwt.exceptions.InvalidTokenError as e:
            raise InvalidToken('Token is malformed or forged') from e
        return claims


def init_app(app: Flask) -> None:
    """Bootstrap the signing secret and attach a :class:`TokenSigner`."""
    app.config.setdefault('TOKEN_SECRET', None)
    app.config.setdefault('SESSION_DURATION', '7200')
    try:
        duration = int(app.config['SESSION_DURATION'])
    except ValueError as e:
        raise ConfigurationError('SESSION_DURATION must be an integer') from e
    if duration <= 0:
        raise ConfigurationError('SESSION_DURATION must be positive')
    secret = bootstrap_secret(app.config)
    app.extensions[EXTENSION_KEY] = TokenSigner(secret, duration)


def current_signer(app: Optional[Flask] = None) -> TokenSigner:
    """Get the token signer for ``app``."""
    if app is None:
        app = current_app
    signer: TokenSigner = app.extensions[EXTENSION_KEY]
    return signer
