"""In-memory TTL cache for rarely-changing reference data."""

import time
from typing import Any, Awaitable, Callable, Dict, Generic, Optional, Tuple, TypeVar

from .logging import get_logger

V = TypeVar("V")

Loader = Callable[[], Awaitable[V]]


class ReferenceDataCache(Generic[V]):
    """Best-effort cache of loader results with a fixed TTL.

    Concurrent refreshes are allowed; each one simply overwrites the stored
    value (last writer wins). Loader failures keep serving the stale value
    when there is one.
    """

    def __init__(self, ttl_seconds: float = 300, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: Dict[str, Tuple[float, V]] = {}
        self._loaders: Dict[str, Loader] = {}
        self.logger = get_logger("cache.reference")

    def register(self, key: str, loader: Loader) -> None:
        """Register the loader used to (re)populate ``key``."""
        self._loaders[key] = loader

    def _is_valid(self, key: str) -> bool:
        entry = self._entries.get(key)
        if entry is None:
            return False
        return (self._clock() - entry[0]) < self.ttl_seconds

    def peek(self, key: str) -> Optional[V]:
        """Return the cached value if present and fresh, without loading."""
        if self._is_valid(key):
            return self._entries[key][1]
        return None

    async def get(self, key: str, loader: Optional[Loader] = None) -> Optional[V]:
        """Return a fresh value for ``key``, loading it when stale or missing."""
        if self._is_valid(key):
            return self._entries[key][1]
        return await self.refresh(key, loader)

    async def refresh(self, key: str, loader: Optional[Loader] = None) -> Optional[V]:
        """Force a reload of ``key``."""
        loader = loader or self._loaders.get(key)
        if loader is None:
            raise KeyError(f"No loader registered for '{key}'")
        if key not in self._loaders:
            self._loaders[key] = loader

        try:
            value = await loader()
        except Exception as e:
            stale = self._entries.get(key)
            self.logger.warning(f"Reference data refresh failed for '{key}': {e}")
            return stale[1] if stale else None

        self._entries[key] = (self._clock(), value)
        self.logger.debug(f"Refreshed reference data '{key}'")
        return value

    def set(self, key: str, value: V) -> None:
        self._entries[key] = (self._clock(), value)

    def invalidate(self, key: Optional[str] = None) -> None:
        """Drop one key, or everything when ``key`` is None."""
        if key is None:
            self._entries.clear()
        else:
            self._entries.pop(key, None)

    def stats(self) -> Dict[str, Any]:
        return {
            "entries": len(self._entries),
            "fresh": sum(1 for key in self._entries if self._is_valid(key)),
            "ttl_seconds": self.ttl_seconds,
        }

