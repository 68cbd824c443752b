"""Tests for :mod:`forwardauth.services.token_store`."""

from unittest import TestCase, mock
from datetime import datetime, timedelta
import threading

import fakeredis
import redis
from flask import Flask
from pytz import UTC

from ... import domain
from .. import token_store
from ..exceptions import StoreCorrupted, StoreUnavailable, ConfigurationError


def _token(value: str, lifetime: int = 600) -> domain.Token:
    now = datetime.now(tz=UTC)
    return domain.Token(value=value, token_id=f'id-{value}', issued_at=now,
                        expires_at=now + timedelta(seconds=lifetime))


class TestInMemoryTokenStore(TestCase):
    """The in-memory store keeps tokens in a single process-wide dict."""

    def setUp(self):
        self.store = token_store.InMemoryTokenStore()

    def test_insert_and_contains(self):
        """An inserted token is contained; others are not."""
        self.store.insert(_token('footoken'))
        self.assertTrue(self.store.contains('footoken'))
        self.assertFalse(self.store.contains('bartoken'))

    def test_insert_is_idempotent(self):
        """Inserting the same token twice leaves one entry."""
        token = _token('footoken')
        self.store.insert(token)
        self.store.insert(token)
        self.assertEqual(len(self.store), 1)
        self.assertTrue(self.store.contains('footoken'))

    def test_empty_value(self):
        """An empty or missing value is never contained."""
        self.assertFalse(self.store.contains(''))
        self.assertFalse(self.store.contains(None))

    def test_remove(self):
        """A removed token is no longer contained."""
        self.store.insert(_token('footoken'))
        self.store.remove('footoken')
        self.assertFalse(self.store.contains('footoken'))
        self.assertEqual(len(self.store), 0)

    def test_remove_absent(self):
        """Removing a token that is not present is a no-op."""
        self.store.remove('nosuchtoken')
        self.assertEqual(len(self.store), 0)

    def test_expired_on_access(self):
        """An expired token is not contained, and is dropped on access."""
        self.store.insert(_token('oldtoken', lifetime=-1))
        self.assertEqual(len(self.store), 1)
        self.assertFalse(self.store.contains('oldtoken'))
        self.assertEqual(len(self.store), 0)

    def test_no_expiry(self):
        """A token without an expiry stays valid."""
        now = datetime.now(tz=UTC)
        self.store.insert(domain.Token('forever', 'id', now))
        self.assertTrue(self.store.contains('forever'))

    def test_purge_expired(self):
        """Expired tokens are swept; live tokens stay."""
        self.store.insert(_token('live'))
        self.store._tokens['old1'] = datetime.now(tz=UTC) - timedelta(1)
        self.store._tokens['old2'] = datetime.now(tz=UTC) - timedelta(1)
        self.assertEqual(self.store.purge_expired(), 2)
        self.assertEqual(len(self.store), 1)
        self.assertTrue(self.store.contains('live'))

    def test_insert_sweeps_expired(self):
        """Inserting a token sweeps out expired ones once the interval is up."""
        store = token_store.InMemoryTokenStore(sweep_interval=0)
        store._tokens['old'] = datetime.now(tz=UTC) - timedelta(1)
        store.insert(_token('new'))
        self.assertEqual(len(store), 1)

    def test_sweep_is_rate_limited(self):
        """Inserts do not scan the whole store every time."""
        with mock.patch.object(self.store, '_purge_expired',
                               wraps=self.store._purge_expired) as mock_purge:
            for i in range(100):
                self.store.insert(_token(f'token-{i}'))
            self.assertEqual(mock_purge.call_count, 0)

            # Once the interval has passed, the next insert sweeps.
            self.store._last_sweep -= token_store.SWEEP_INTERVAL
            self.store._tokens['old'] = datetime.now(tz=UTC) - timedelta(1)
            self.store.insert(_token('another'))
            self.store.insert(_token('yet-another'))
            self.assertEqual(mock_purge.call_count, 1)
        self.assertEqual(len(self.store), 102)
        self.assertNotIn('old', self.store._tokens)

    def test_wedged_lock(self):
        """A lock that cannot be acquired is treated as corrupted state."""
        store = token_store.InMemoryTokenStore(lock_timeout=0.01)
        store._lock.acquire()
        try:
            with self.assertRaises(StoreCorrupted):
                store.contains('footoken')
            with self.assertRaises(StoreCorrupted):
                store.insert(_token('footoken'))
        finally:
            store._lock.release()

    def test_visible_across_threads(self):
        """A token inserted by one thread is contained for every other."""
        inserted = threading.Event()
        results = []

        def issue():
            self.store.insert(_token('footoken'))
            inserted.set()

        def check():
            inserted.wait(5)
            results.append(self.store.contains('footoken'))

        checkers = [threading.Thread(target=check) for _ in range(8)]
        for thread in checkers:
            thread.start()
        issuer = threading.Thread(target=issue)
        issuer.start()
        issuer.join()
        for thread in checkers:
            thread.join()
        self.assertEqual(results, [True] * 8)

    def test_concurrent_inserts(self):
        """Many concurrent inserts all land, and none is lost."""
        barrier = threading.Barrier(16)

        def issue(n):
            barrier.wait(5)
            for i in range(50):
                self.store.insert(_token(f'token-{n}-{i}'))

        threads = [threading.Thread(target=issue, args=(n,))
                   for n in range(16)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()
        self.assertEqual(len(self.store), 16 * 50)
        self.assertTrue(self.store.contains('token-15-49'))


class TestRedisTokenStore(TestCase):
    """The Redis store keeps tokens in a keyspace shared between processes."""

    def setUp(self):
        self.server = fakeredis.FakeServer()
        self.r = fakeredis.FakeStrictRedis(server=self.server)
        self.store = token_store.RedisTokenStore(self.r, prefix='test:')

    def test_insert_and_contains(self):
        """An inserted token is contained; others are not."""
        self.store.insert(_token('footoken'))
        self.assertTrue(self.store.contains('footoken'))
        self.assertFalse(self.store.contains('bartoken'))
        self.assertFalse(self.store.contains(''))

    def test_key_expires(self):
        """The key lives exactly as long as the token."""
        self.store.insert(_token('footoken', lifetime=600))
        keys = list(self.r.scan_iter(match='test:*'))
        self.assertEqual(len(keys), 1)
        self.assertNotIn(b'footoken', keys[0], 'Token value is hashed')
        self.assertTrue(0 < self.r.ttl(keys[0]) <= 600)

    def test_ttl_rounds_up(self):
        """A token with less than a second left is stored for that second."""
        now = datetime.now(tz=UTC)
        token = domain.Token('footoken', 'id', now,
                             now + timedelta(milliseconds=500))
        self.store.insert(token)
        self.assertTrue(self.store.contains('footoken'))
        key = next(self.r.scan_iter(match='test:*'))
        self.assertEqual(self.r.ttl(key), 1)

    def test_expired_not_stored(self):
        """A token that is already expired is not stored."""
        self.store.insert(_token('oldtoken', lifetime=-1))
        self.assertEqual(len(self.store), 0)
        self.assertFalse(self.store.contains('oldtoken'))

    def test_remove(self):
        """A removed token is no longer contained; absent is a no-op."""
        self.store.insert(_token('footoken'))
        self.store.remove('footoken')
        self.store.remove('footoken')
        self.assertFalse(self.store.contains('footoken'))

    def test_shared_between_workers(self):
        """Stores on the same Redis see each other's tokens."""
        other = token_store.RedisTokenStore(
            fakeredis.FakeStrictRedis(server=self.server), prefix='test:'
        )
        self.store.insert(_token('footoken'))
        self.assertTrue(other.contains('footoken'))
        other.remove('footoken')
        self.assertFalse(self.store.contains('footoken'))

    def test_connection_failed(self):
        """:class:`.StoreUnavailable` is raised when Redis is down."""
        mock_redis = mock.MagicMock()
        mock_redis.set.side_effect = redis.exceptions.ConnectionError
        mock_redis.exists.side_effect = redis.exceptions.ConnectionError
        mock_redis.delete.side_effect = redis.exceptions.ConnectionError
        store = token_store.RedisTokenStore(mock_redis)
        with self.assertRaises(StoreUnavailable):
            store.insert(_token('footoken'))
        with self.assertRaises(StoreUnavailable):
            store.contains('footoken')
        with self.assertRaises(StoreUnavailable):
            store.remove('footoken')


class TestCreateStore(TestCase):
    """Tests for :func:`token_store.create_store` and app integration."""

    def test_memory(self):
        """The memory backend is the default."""
        store = token_store.create_store({})
        self.assertIsInstance(store, token_store.InMemoryTokenStore)

    def test_fake_redis(self):
        """FakeRedis is used when asked."""
        store = token_store.create_store({'TOKEN_STORE': 'redis',
                                          'REDIS_FAKE': True})
        self.assertIsInstance(store, token_store.RedisTokenStore)
        store.insert(_token('footoken'))
        self.assertTrue(store.contains('footoken'))

    @mock.patch(f'{token_store.__name__}.redis')
    def test_redis(self, mock_redis):
        """A Redis connection is made with the configured parameters."""
        store = token_store.create_store({
            'TOKEN_STORE': 'redis',
            'REDIS_HOST': 'redis',
            'REDIS_PORT': '1234',
            'REDIS_DATABASE': '4'
        })
        self.assertIsInstance(store, token_store.RedisTokenStore)
        mock_redis.StrictRedis.assert_called_once_with(host='redis',
                                                       port=1234, db=4)

    def test_unknown_backend(self):
        """An unknown backend is a configuration error."""
        with self.assertRaises(ConfigurationError):
            token_store.create_store({'TOKEN_STORE': 'memcached'})

    def test_one_store_per_app(self):
        """Every lookup on an app returns the same store instance."""
        app = Flask('test')
        token_store.init_app(app)
        self.assertIs(token_store.current_store(app),
                      token_store.current_store(app))
        with app.app_context():
            self.assertIs(token_store.current_store(),
                          token_store.current_store(app))
