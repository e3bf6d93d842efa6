"""
In-process caching primitives.

>>> from src.core.cache import TTLCache
"""

from src.core.cache.ttl_cache import TTLCache, TTLCacheMetrics

__all__ = ["TTLCache", "TTLCacheMetrics"]
