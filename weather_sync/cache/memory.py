"""In-memory TTL cache with regex invalidation and a background expiry sweep."""

from __future__ import annotations

import re
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from weather_sync.errors import CacheError
from weather_sync.scheduling import CancelToken, schedule
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="cache/memory_cache_store")


@dataclass(frozen=True)
class CacheEntry:
    """A stored value; replaced, never mutated, when the key is set again."""
    key: str
    value: Any
    stored_at: float
    ttl: float

    def is_expired(self, now: float) -> bool:
        return now - self.stored_at >= self.ttl


class CacheStore:
    """Thread-safe, TTL-aware key/value store.

    Expired entries are purged lazily on `get` and proactively by a periodic
    sweep. The sweep runs on the asyncio loop: `start()` arms it and
    `destroy()` stops it and empties the store.
    """

    def __init__(
        self,
        sweep_interval: float = 300.0,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Create an empty store; `sweep_interval` is in seconds."""
        logger.debug("Initializing CacheStore", extra={"sweep_interval": sweep_interval})
        self.sweep_interval = sweep_interval
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}
        self._lock = threading.Lock()
        self._sweep_token: Optional[CancelToken] = None

    def get(self, key: str) -> Any:
        """Return the live value for `key`, or None if missing/expired."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if entry.is_expired(self._clock()):
                self._entries.pop(key, None)
                return None
            return entry.value

    def set(self, key: str, value: Any, ttl: float) -> None:
        """Store `value` under `key` for `ttl` seconds, replacing any prior entry."""
        with self._lock:
            self._entries[key] = CacheEntry(key=key, value=value, stored_at=self._clock(), ttl=ttl)

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def invalidate(self, pattern: str) -> int:
        """Delete every key matched by the regular expression `pattern`.

        Raises CacheError (operation="invalidate") for a malformed pattern;
        the store is left untouched in that case.
        """
        try:
            regex = re.compile(pattern)
        except re.error as exc:
            logger.error("Invalid cache invalidation pattern", extra={"pattern": pattern, "error": str(exc)})
            raise CacheError(f"Failed to invalidate cache with pattern: {pattern}", "invalidate") from exc

        with self._lock:
            doomed = [key for key in self._entries if regex.search(key)]
            for key in doomed:
                del self._entries[key]
        if doomed:
            logger.debug("Invalidated cache entries", extra={"pattern": pattern, "count": len(doomed)})
        return len(doomed)

    def clear(self) -> None:
        """Remove all entries."""
        with self._lock:
            self._entries.clear()

    def keys(self) -> List[str]:
        with self._lock:
            return list(self._entries)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def stats(self) -> Dict[str, int]:
        """Entry counts by key family."""
        keys = self.keys()
        return {
            "size": len(keys),
            "weather_entries": sum(1 for key in keys if key.startswith("weather:")),
            "location_entries": sum(1 for key in keys if key.startswith("location:")),
        }

    def sweep(self) -> int:
        """Purge every expired entry and return how many were removed."""
        now = self._clock()
        with self._lock:
            expired = [key for key, entry in self._entries.items() if entry.is_expired(now)]
            for key in expired:
                del self._entries[key]
        if expired:
            logger.info(f"Cache cleanup: removed {len(expired)} expired entries")
        return len(expired)

    def start(self) -> None:
        """Arm the background sweep. Needs a running event loop; idempotent."""
        if self._sweep_token is not None and self._sweep_token.active:
            return
        self._sweep_token = schedule(self.sweep_interval, self.sweep, name="cache_sweep")

    @property
    def sweeping(self) -> bool:
        return self._sweep_token is not None and self._sweep_token.active

    def destroy(self) -> Optional[CancelToken]:
        """Stop the background sweep and drop all entries.

        Returns the cancelled sweep token, if one was armed.
        """
        token, self._sweep_token = self._sweep_token, None
        if token is not None:
            token.cancel()
        self.clear()
        return token
