"""TTL cache used by the fetch pipeline."""

from .keys import CacheKeys, CacheTTL, InvalidationPatterns, format_coordinate
from .memory import CacheEntry, CacheStore

__all__ = [
    "CacheEntry",
    "CacheStore",
    "CacheKeys",
    "CacheTTL",
    "InvalidationPatterns",
    "format_coordinate",
]
