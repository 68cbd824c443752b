"""Flask configuration for the forward-auth gateway."""

import os

AUTH_HEADER_NAME = 'X-Forward-Auth'
"""Header that carries the token, both on login responses and on subrequests."""

TOKEN_SECRET = os.environ.get('TOKEN_SECRET')
"""
Key material used to sign tokens.

If unset, a random secret is generated when the app is created, and tokens
issued by a previous process are no longer valid.
"""

SESSION_DURATION = os.environ.get('SESSION_DURATION', '7200')
"""Lifetime of an issued token, in seconds."""

TOKEN_STORE = os.environ.get('TOKEN_STORE', 'memory')
"""
Backend for the token store; ``memory`` or ``redis``.

``memory`` is shared by every thread of a single process. Use ``redis``
when running more than one worker process.
"""

REDIS_HOST = os.environ.get('REDIS_HOST', 'localhost')
REDIS_PORT = os.environ.get('REDIS_PORT', '6379')
REDIS_DATABASE = os.environ.get('REDIS_DATABASE', '0')
REDIS_KEY_PREFIX = os.environ.get('REDIS_KEY_PREFIX', 'forwardauth:token:')

REDIS_FAKE = bool(int(os.environ.get('REDIS_FAKE', '0')))
"""Use the FakeRedis library instead of a redis service.

Useful for testing and dev."""

LOGIN_USERNAME = os.environ.get('LOGIN_USERNAME', 'test')
LOGIN_PASSWORD = os.environ.get('LOGIN_PASSWORD', 'test')

STATIC_ROOT = os.environ.get(
    'STATIC_ROOT',
    os.path.join(os.path.dirname(os.path.abspath(__file__)), 'static')
)
"""Directory holding ``index.html`` and ``script.js``."""

LOGLEVEL = os.environ.get('LOGLEVEL', 'INFO')

FAIL_CLOSED_EXIT = bool(int(os.environ.get('FAIL_CLOSED_EXIT', '1')))
"""Terminate the process when the token store reports corrupted state."""

SERVER_HOST = os.environ.get('SERVER_HOST', '127.0.0.1')
SERVER_PORT = os.environ.get('SERVER_PORT', '3000')
