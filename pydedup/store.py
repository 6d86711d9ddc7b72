"""Request id stores: the claim/release contract and its in-process backend."""

import threading
from typing import Optional, Protocol, Set, TYPE_CHECKING

from .errors import RequestIdExists, StoreClosedError

if TYPE_CHECKING:
    from .environment import Environment


class IDStore(Protocol):
    """Claims scoped request ids for the lifetime of one request.

    ``save`` must be atomic per key: between a claim and its release at most
    one concurrent caller succeeds. ``remove`` is unconditional and returns
    False for a key that is not present instead of raising.
    """

    def init(self, env: "Environment") -> None: ...

    def destroy(self) -> None: ...

    def save(self, key: str) -> None: ...

    def remove(self, key: str) -> bool: ...


class MemoryIDStore:
    """In-process store; state lives as long as the process does."""

    def __init__(self):
        self._requests: Optional[Set[str]] = None
        self._lock = threading.Lock()
        self._initialized = False

    def init(self, env: "Environment") -> None:
        with self._lock:
            if self._initialized:
                raise RuntimeError("MemoryIDStore already initialized")
            self._requests = set()
            self._initialized = True

    def destroy(self) -> None:
        with self._lock:
            self._requests = None

    def _check_open(self):
        if self._requests is None:
            raise StoreClosedError("MemoryIDStore is not initialized or already destroyed")

    def save(self, key: str) -> None:
        """Claim key; raise RequestIdExists if it is already claimed."""
        with self._lock:
            self._check_open()
            if key in self._requests:
                raise RequestIdExists(key)
            self._requests.add(key)

    def remove(self, key: str) -> bool:
        with self._lock:
            self._check_open()
            if key not in self._requests:
                return False
            self._requests.discard(key)
            return True

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return self._requests is not None and key in self._requests

    def __len__(self) -> int:
        with self._lock:
            return len(self._requests) if self._requests is not None else 0
