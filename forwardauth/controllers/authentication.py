"""
Controllers for issuing, validating, and revoking tokens.

When a client logs in, it is issued a signed token that is registered in
the shared token store and returned in the ``X-Forward-Auth`` header. On
each request to a protected upstream, the reverse proxy asks
:func:`forward` whether the token it was handed is still valid.

Each controller returns a ``(body, status, headers)`` tuple, or raises a
:class:`werkzeug.exceptions.HTTPException`. Failure responses never say
why a request was refused.
"""

import logging
from http import HTTPStatus
from typing import Any, Dict, Optional, Tuple

from werkzeug.exceptions import BadRequest, Unauthorized

from ..config import AUTH_HEADER_NAME
from ..domain import Credentials
from ..services.credentials import check_credentials
from ..services.exceptions import InvalidToken, ExpiredToken
from ..services.signing import TokenSigner
from ..services.token_store import TokenStore

logger = logging.getLogger(__name__)

ResponseData = Tuple[str, int, Dict[str, str]]

AUTHORIZED = 'Authorized'
LOGGED_OUT = 'Logged out'


def login(payload: Any, store: TokenStore, signer: TokenSigner,
          accepted: Credentials) -> ResponseData:
    """
    Authenticate a credential pair and issue a token.

    Parameters
    ----------
    payload : object
        The decoded JSON request body; should be an object with ``username``
        and ``password`` strings. ``None`` if the body was not JSON.
    store : :class:`.TokenStore`
        Receives the new token.
    signer : :class:`.TokenSigner`
        Mints the new token.
    accepted : :class:`.Credentials`
        The account that may log in.

    Returns
    -------
    str
        Response body.
    int
        Status code; 200 if all goes well.
    dict
        Headers to add to the response, including the token.

    Raises
    ------
    :class:`BadRequest`
        If the payload is malformed. The store is not touched.
    :class:`Unauthorized`
        If the credentials are wrong.

    """
    credentials = _parse_credentials(payload)
    if not check_credentials(credentials, accepted):
        logger.debug('Authentication failed')
        raise Unauthorized('Invalid username or password')

    token = signer.mint()
    store.insert(token)
    logger.info('Issued token %s, expires %s', token.token_id,
                token.expires_at.isoformat())
    return AUTHORIZED, HTTPStatus.OK, {AUTH_HEADER_NAME: token.value}


def forward(value: Optional[str], store: TokenStore,
            signer: TokenSigner) -> ResponseData:
    """
    Decide whether a proxied request carries a valid token.

    Raises
    ------
    :class:`Unauthorized`
        If the token is missing, forged, expired, or no longer in the store.

    """
    if not value:
        logger.debug('Auth token missing')
        raise Unauthorized('No token')
    try:
        claims = signer.verify(value)
    except ExpiredToken as e:
        logger.debug('Expired token: %s', e)
        raise Unauthorized('Not a valid token') from e
    except InvalidToken as e:
        logger.debug('Invalid token: %s', e)
        raise Unauthorized('Not a valid token') from e

    if not store.contains(value):
        logger.debug('Token %s not in store', claims['jti'])
        raise Unauthorized('Not a valid token')
    return AUTHORIZED, HTTPStatus.OK, {}


def logout(value: Optional[str], store: TokenStore,
           signer: TokenSigner) -> ResponseData:
    """
    Revoke a token, if it is one of ours.

    The response is the same whether or not anything was revoked.
    """
    logger.debug('Request to log out')
    if value:
        try:
            claims = signer.verify(value)
        except InvalidToken as e:
            logger.debug('Logout with unusable token: %s', e)
        else:
            store.remove(value)
            logger.info('Revoked token %s', claims['jti'])
    return LOGGED_OUT, HTTPStatus.OK, {}


def _parse_credentials(payload: Any) -> Credentials:
    if not isinstance(payload, dict):
        logger.debug('Login body is not a JSON object')
        raise BadRequest('Malformed login request')
    username = payload.get('username')
    password = payload.get('password')
    if not isinstance(username, str) or not isinstance(password, str):
        logger.debug('Login body is missing username or password')
        raise BadRequest('Malformed login request')
    return Credentials(username=username, password=password)
