"""Redis-backed request id store shared by every process using the same set."""

from typing import Optional, TYPE_CHECKING

import redis

from .environment import COMP_REDIS
from .errors import BackendError, ComponentNotLoaded, RequestIdExists, StoreClosedError

if TYPE_CHECKING:
    from .environment import Environment, RedisComponent
    from .logger import Logger


DEFAULT_KEY = "RequestID"


class RedisIDStore:
    """Claims ids with SADD on one Redis set, releases them with SREM.

    SADD is atomic on the server, so no local locking is done here. Depends on
    the ``redis`` environment component.
    """

    def __init__(self, key: Optional[str] = None):
        self.key = key or DEFAULT_KEY
        self._redis: Optional["RedisComponent"] = None
        self._logger: Optional["Logger"] = None

    def init(self, env: "Environment") -> None:
        if self._redis is not None:
            raise RuntimeError("RedisIDStore already initialized")
        component = env.component(COMP_REDIS)
        if component is None:
            raise ComponentNotLoaded(COMP_REDIS)
        self._redis = component
        self._logger = env.logger.child("redis_store")

    def destroy(self) -> None:
        self._redis = None

    def _client(self) -> redis.Redis:
        if self._redis is None or self._redis.client is None:
            raise StoreClosedError("RedisIDStore is not initialized or already destroyed")
        return self._redis.client

    def save(self, key: str) -> None:
        client = self._client()
        try:
            added = client.sadd(self.key, key)
        except redis.exceptions.RedisError as e:
            raise BackendError(f"SADD {self.key} failed: {e}", key=key, operation="save") from e

        if added == 0:
            raise RequestIdExists(key)
        if added != 1:
            raise BackendError(f"unexpected SADD reply: {added!r}", key=key, operation="save")

    def remove(self, key: str) -> bool:
        client = self._client()
        try:
            removed = client.srem(self.key, key)
        except redis.exceptions.RedisError as e:
            raise BackendError(f"SREM {self.key} failed: {e}", key=key, operation="remove") from e

        if removed == 0:
            self._logger.debug("Request id already released", key=key, set=self.key)
            return False
        return True
