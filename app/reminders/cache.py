import logging
import threading
import time
from typing import Callable, Generic, Hashable, TypeVar

logger = logging.getLogger(__name__)

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


class ExpiringCache(Generic[K, V]):
    """
    Small read-through cache with a staleness window.

    - get(key): returns the cached value, loading it when missing or older
      than ttl_seconds
    - refresh(key): reloads unconditionally
    - expire(key=None): drops one entry, or everything when key is None
    """

    def __init__(
        self,
        loader: Callable[[K], V],
        ttl_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._loader = loader
        self._ttl = ttl_seconds
        self._clock = clock
        self._entries: dict[K, tuple[float, V]] = {}
        self._lock = threading.Lock()

    def get(self, key: K) -> V:
        with self._lock:
            entry = self._entries.get(key)
        if entry is not None:
            loaded_at, value = entry
            if self._clock() - loaded_at < self._ttl:
                return value
        return self.refresh(key)

    def refresh(self, key: K) -> V:
        # loader errors propagate; the stale entry (if any) is left untouched
        value = self._loader(key)
        with self._lock:
            self._entries[key] = (self._clock(), value)
        return value

    def expire(self, key: K | None = None) -> None:
        with self._lock:
            if key is None:
                self._entries.clear()
            else:
                self._entries.pop(key, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
