"""
The shared store of currently-valid tokens.

Every request handler in the process consults the same store instance,
which is built once by :func:`init_app` and registered on the Flask app.
Two backends are provided:

- :class:`InMemoryTokenStore` holds tokens in a dict guarded by a single
  lock. It is shared by every thread of one process, so it is suitable for
  a threaded server running a single worker process.
- :class:`RedisTokenStore` keeps tokens in Redis. Each operation is one
  atomic Redis command, and the keyspace is shared by every worker process
  that points at the same database.

Either way the store is an allow-list: a token is valid only if the issuer
put it there and it has not since been removed or expired.
"""

import hashlib
import logging
import threading
import time
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Dict, Iterator, Mapping, Optional

import fakeredis
import redis
from flask import Flask, current_app
from pytz import UTC

from .. import domain
from .exceptions import StoreUnavailable, StoreCorrupted, ConfigurationError

logger = logging.getLogger(__name__)

EXTENSION_KEY = 'forwardauth.token_store'
LOCK_TIMEOUT = 5.0
"""Seconds to wait for the in-memory store lock before giving up."""

SWEEP_INTERVAL = 60.0
"""Minimum seconds between sweeps of expired tokens on insert."""

_MISSING = object()


class TokenStore(object):
    """Interface shared by the token store backends."""

    def insert(self, token: domain.Token) -> None:
        """Add a token; inserting a token that is already present is a no-op."""
        raise NotImplementedError('Implement in a subclass')

    def contains(self, value: str) -> bool:
        """Determine whether ``value`` is a currently-valid token."""
        raise NotImplementedError('Implement in a subclass')

    def remove(self, value: str) -> None:
        """Remove a token; removing an absent token is a no-op."""
        raise NotImplementedError('Implement in a subclass')

    def purge_expired(self) -> int:
        """Drop expired tokens, returning the number dropped."""
        raise NotImplementedError('Implement in a subclass')

    def __len__(self) -> int:
        raise NotImplementedError('Implement in a subclass')


class InMemoryTokenStore(TokenStore):
    """
    Process-wide token store backed by a dict and a mutex.

    Critical sections are limited to single dict operations, and no I/O
    ever happens while the lock is held. Expired entries are dropped when
    looked up; a full sweep piggybacks on an insert at most once every
    ``sweep_interval`` seconds.
    """

    def __init__(self, lock_timeout: float = LOCK_TIMEOUT,
                 sweep_interval: float = SWEEP_INTERVAL) -> None:
        self._tokens: Dict[str, Optional[datetime]] = {}
        self._lock = threading.Lock()
        self._lock_timeout = lock_timeout
        self._sweep_interval = sweep_interval
        self._last_sweep = time.monotonic()

    @contextmanager
    def _locked(self) -> Iterator[None]:
        # A lock that can't be had within the timeout means some handler is
        # wedged inside a critical section; nothing read now can be trusted.
        if not self._lock.acquire(timeout=self._lock_timeout):
            raise StoreCorrupted('Could not acquire token store lock')
        try:
            yield
        finally:
            self._lock.release()

    def insert(self, token: domain.Token) -> None:
        now = datetime.now(tz=UTC)
        with self._locked():
            if time.monotonic() - self._last_sweep >= self._sweep_interval:
                self._purge_expired(now)
            self._tokens[token.value] = token.expires_at
        logger.debug('Inserted token %s', token.token_id)

    def contains(self, value: str) -> bool:
        if not value:
            return False
        now = datetime.now(tz=UTC)
        with self._locked():
            expires_at = self._tokens.get(value, _MISSING)
            if expires_at is _MISSING:
                return False
            if expires_at is not None and expires_at <= now:
                del self._tokens[value]
                return False
        return True

    def remove(self, value: str) -> None:
        with self._locked():
            self._tokens.pop(value, None)

    def purge_expired(self) -> int:
        now = datetime.now(tz=UTC)
        with self._locked():
            return self._purge_expired(now)

    def _purge_expired(self, now: datetime) -> int:
        self._last_sweep = time.monotonic()
        expired = [value for value, expires_at in self._tokens.items()
                   if expires_at is not None and expires_at <= now]
        for value in expired:
            del self._tokens[value]
        if expired:
            logger.debug('Purged %i expired tokens', len(expired))
        return len(expired)

    def __len__(self) -> int:
        with self._locked():
            return len(self._tokens)


class RedisTokenStore(TokenStore):
    """
    Token store shared through Redis.

    In fact, the StrictRedis instance is thread safe and connections are
    attached at the time a command is executed. Token values are hashed
    to form keys, and Redis expires each key along with its token.
    """

    def __init__(self, connection: redis.StrictRedis,
                 prefix: str = 'forwardauth:token:') -> None:
        self.r = connection
        self._prefix = prefix

    def _key(self, value: str) -> str:
        digest = hashlib.sha256(value.encode('utf-8')).hexdigest()
        return f'{self._prefix}{digest}'

    def insert(self, token: domain.Token) -> None:
        ttl = token.expires
        if ttl == 0:
            logger.debug('Token %s already expired; not stored',
                         token.token_id)
            return
        try:
            self.r.set(self._key(token.value), token.token_id, ex=ttl)
        except redis.exceptions.RedisError as e:
            raise StoreUnavailable(f'Failed to insert token: {e}') from e
        logger.debug('Inserted token %s', token.token_id)

    def contains(self, value: str) -> bool:
        if not value:
            return False
        try:
            return bool(self.r.exists(self._key(value)))
        except redis.exceptions.RedisError as e:
            raise StoreUnavailable(f'Failed to look up token: {e}') from e

    def remove(self, value: str) -> None:
        try:
            self.r.delete(self._key(value))
        except redis.exceptions.RedisError as e:
            raise StoreUnavailable(f'Failed to remove token: {e}') from e

    def purge_expired(self) -> int:
        return 0    # Redis expires keys on its own.

    def __len__(self) -> int:
        try:
            return sum(1 for _ in self.r.scan_iter(match=f'{self._prefix}*'))
        except redis.exceptions.RedisError as e:
            raise StoreUnavailable(f'Failed to count tokens: {e}') from e


def _get_redis(config: Mapping[str, Any]) -> redis.StrictRedis:
    """Get a new connection to Redis."""
    if config.get('REDIS_FAKE'):
        logger.warning('Using FakeRedis; tokens are not shared with other '
                       'processes')
        return fakeredis.FakeStrictRedis(server=fakeredis.FakeServer())
    try:
        host = config['REDIS_HOST']
        port = int(config['REDIS_PORT'])
        db = int(config['REDIS_DATABASE'])
    except (KeyError, ValueError) as e:
        raise ConfigurationError('Missing required config parameter') from e
    logger.debug('New Redis connection at %s, port %s', host, port)
    return redis.StrictRedis(host=host, port=port, db=db)


def create_store(config: Mapping[str, Any]) -> TokenStore:
    """Build the token store selected by ``TOKEN_STORE``."""
    backend = config.get('TOKEN_STORE', 'memory')
    if backend == 'memory':
        return InMemoryTokenStore()
    if backend == 'redis':
        return RedisTokenStore(_get_redis(config),
                               config.get('REDIS_KEY_PREFIX',
                                          'forwardauth:token:'))
    raise ConfigurationError(f'Unknown token store backend: {backend}')


def init_app(app: Flask) -> None:
    """Set default configuration and attach a token store to ``app``."""
    app.config.setdefault('TOKEN_STORE', 'memory')
    app.config.setdefault('REDIS_HOST', 'localhost')
    app.config.setdefault('REDIS_PORT', '6379')
    app.config.setdefault('REDIS_DATABASE', '0')
    app.config.setdefault('REDIS_KEY_PREFIX', 'forwardauth:token:')
    app.config.setdefault('REDIS_FAKE', False)
    app.extensions[EXTENSION_KEY] = create_store(app.config)
    logger.info('Using %s token store', app.config['TOKEN_STORE'])


def current_store(app: Optional[Flask] = None) -> TokenStore:
    """Get the token store shared by every request handler of ``app``."""
    if app is None:
        app = current_app
    store: TokenStore = app.extensions[EXTENSION_KEY]
    return store
