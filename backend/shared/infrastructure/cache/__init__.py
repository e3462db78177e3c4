"""
Cache package: process-local TTL cache for public lookups.
"""

from shared.infrastructure.cache.ttl_cache import TTLCache

__all__ = [
    "TTLCache",
]
