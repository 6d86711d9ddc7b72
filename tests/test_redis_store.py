"""Tests for the Redis request id store, using a mocked client."""

import pytest
import threading
import redis
from unittest.mock import MagicMock
from pydedup.environment import COMP_REDIS, Environment, RedisComponent
from pydedup.errors import BackendError, ComponentNotLoaded, RequestIdExists, StoreClosedError
from pydedup.guard import scope_key
from pydedup.redis_store import RedisIDStore


def make_set_client():
    """Mock client whose SADD/SREM act on a real set, atomically."""
    members = {}
    lock = threading.Lock()
    client = MagicMock()

    def sadd(name, value):
        with lock:
            entries = members.setdefault(name, set())
            if value in entries:
                return 0
            entries.add(value)
            return 1

    def srem(name, value):
        with lock:
            entries = members.setdefault(name, set())
            if value not in entries:
                return 0
            entries.discard(value)
            return 1

    client.sadd.side_effect = sadd
    client.srem.side_effect = srem
    client.members = members
    return client


@pytest.fixture
def client():
    return MagicMock()


@pytest.fixture
def env(client):
    env = Environment()
    env.register(COMP_REDIS, RedisComponent(client=client))
    return env


@pytest.fixture
def store(env):
    store = RedisIDStore()
    store.init(env)
    return store


class TestRedisIDStoreInit:
    """Tests for RedisIDStore initialization."""

    def test_default_key(self):
        """Test the default set name."""
        assert RedisIDStore().key == "RequestID"

    def test_custom_key(self):
        """Test a custom set name."""
        assert RedisIDStore(key="MyIDs").key == "MyIDs"

    def test_init_without_redis_component_fails(self):
        """Test that init needs the redis component."""
        store = RedisIDStore()
        with pytest.raises(ComponentNotLoaded, match="component redis isn't loaded"):
            store.init(Environment())

    def test_double_init_rejected(self, store, env):
        """Test that init may only run once."""
        with pytest.raises(RuntimeError):
            store.init(env)

    def test_use_before_init_fails(self):
        """Test that the store can't be used before init."""
        with pytest.raises(StoreClosedError):
            RedisIDStore().save("k")

    def test_use_after_destroy_fails(self, store):
        """Test that the store can't be used after destroy."""
        store.destroy()
        with pytest.raises(StoreClosedError):
            store.save("k")
        with pytest.raises(StoreClosedError):
            store.remove("k")


class TestRedisIDStoreSave:
    """Tests for claiming ids with SADD."""

    def test_save_new_key(self, store, client):
        """Test that a new key is claimed."""
        client.sadd.return_value = 1
        store.save("1.2.3.4|abc")
        client.sadd.assert_called_once_with("RequestID", "1.2.3.4|abc")

    def test_save_existing_key_raises_exists(self, store, client):
        """Test that SADD returning 0 means a duplicate."""
        client.sadd.return_value = 0
        with pytest.raises(RequestIdExists):
            store.save("1.2.3.4|abc")

    def test_connection_failure_is_backend_error(self, store, client):
        """Test that a connection failure is a backend error, not a duplicate."""
        client.sadd.side_effect = redis.exceptions.ConnectionError("refused")
        with pytest.raises(BackendError) as exc_info:
            store.save("1.2.3.4|abc")
        assert not isinstance(exc_info.value, RequestIdExists)
        assert exc_info.value.operation == "save"
        assert exc_info.value.key == "1.2.3.4|abc"
        assert isinstance(exc_info.value.__cause__, redis.exceptions.ConnectionError)

    def test_timeout_is_backend_error(self, store, client):
        """Test that a timeout is a backend error."""
        client.sadd.side_effect = redis.exceptions.TimeoutError("timed out")
        with pytest.raises(BackendError):
            store.save("k")

    def test_unexpected_reply_is_backend_error(self, store, client):
        """Test that an odd SADD reply is a backend error."""
        client.sadd.return_value = "WRONGTYPE"
        with pytest.raises(BackendError, match="unexpected SADD reply"):
            store.save("k")

    def test_uses_configured_set(self, env, client):
        """Test that commands target the configured set."""
        client.sadd.return_value = 1
        store = RedisIDStore(key="OtherSet")
        store.init(env)
        store.save("k")
        client.sadd.assert_called_once_with("OtherSet", "k")


class TestRedisIDStoreRemove:
    """Tests for releasing ids with SREM."""

    def test_remove_present_key(self, store, client):
        """Test that SREM returning 1 reports a release."""
        client.srem.return_value = 1
        assert store.remove("k") is True
        client.srem.assert_called_once_with("RequestID", "k")

    def test_remove_absent_key_is_noop(self, store, client):
        """Test that releasing an absent key is a no-op."""
        client.srem.return_value = 0
        assert store.remove("k") is False

    def test_remove_connection_failure_is_backend_error(self, store, client):
        """Test that a failed SREM is a backend error."""
        client.srem.side_effect = redis.exceptions.ConnectionError("reset")
        with pytest.raises(BackendError) as exc_info:
            store.remove("k")
        assert exc_info.value.operation == "remove"


class TestRedisIDStoreSemantics:
    """Claim/release properties against a set-backed client."""

    @pytest.fixture
    def client(self):
        return make_set_client()

    @pytest.fixture
    def store(self, client):
        env = Environment()
        env.register(COMP_REDIS, RedisComponent(client=client))
        store = RedisIDStore()
        store.init(env)
        return store

    def test_release_enables_reuse(self, store):
        """Test that a released key can be claimed again."""
        store.save("k")
        with pytest.raises(RequestIdExists):
            store.save("k")
        store.remove("k")
        store.save("k")

    def test_scoped_keys_do_not_collide(self, store, client):
        """Test that the same id from two clients does not collide."""
        store.save(scope_key("10.0.0.1", "tok1"))
        store.save(scope_key("10.0.0.2", "tok1"))
        assert client.members["RequestID"] == {"10.0.0.1|tok1", "10.0.0.2|tok1"}

    def test_concurrent_saves_admit_exactly_one(self, store):
        """Test that only one simultaneous claim on a key succeeds."""
        workers = 16
        barrier = threading.Barrier(workers)
        results = []

        def claim():
            barrier.wait()
            try:
                store.save("k")
                results.append("ok")
            except RequestIdExists:
                results.append("exists")

        threads = [threading.Thread(target=claim) for _ in range(workers)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert results.count("ok") == 1
        assert results.count("exists") == workers - 1
