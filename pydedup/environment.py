"""Runtime environment: configuration, logger and named shared components."""

from typing import Any, Dict, Optional

import redis

from .config import Config
from .errors import BackendError
from .logger import Logger


COMP_REDIS = "redis"


class RedisComponent:
    """Shared Redis connection built from the ``redis`` config section."""

    def __init__(self, client: Optional[redis.Redis] = None):
        self.client = client

    def init(self, env: "Environment"):
        if self.client is None:
            self.client = redis.Redis.from_url(
                env.config.get("redis", "url"),
                socket_timeout=env.config.get("redis", "socket_timeout"),
                decode_responses=True
            )
        try:
            self.client.ping()
        except redis.exceptions.RedisError as e:
            raise BackendError(f"redis unreachable: {e}", operation="ping") from e
        env.logger.info("Redis component ready", url=env.config.get("redis", "url"))

    def destroy(self):
        if self.client is not None:
            self.client.close()
            self.client = None


class Environment:
    """Holds what stores and guards need at init time."""

    def __init__(self, config: Optional[Config] = None, logger: Optional[Logger] = None):
        self.config = config or Config()
        self.logger = logger or Logger("guard")
        self.components: Dict[str, Any] = {}

    def register(self, name: str, component: Any):
        """Initialize component and make it available under name."""
        if name in self.components:
            raise ValueError(f"component {name} already registered")
        component.init(self)
        self.components[name] = component

    def component(self, name: str) -> Optional[Any]:
        return self.components.get(name)

    def close(self):
        for name, component in list(self.components.items()):
            component.destroy()
            del self.components[name]
