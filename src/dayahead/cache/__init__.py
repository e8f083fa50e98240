"""Object cache backends and the fetch-or-reuse coordinator."""

from dayahead.cache.coordinator import CacheCoordinator, structural_signature
from dayahead.cache.store import (
    MemoryObjectCache,
    ObjectCache,
    SqliteObjectCache,
    create_cache,
)

__all__ = [
    "CacheCoordinator",
    "MemoryObjectCache",
    "ObjectCache",
    "SqliteObjectCache",
    "create_cache",
    "structural_signature",
]
