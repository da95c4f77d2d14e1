"""
Caching helpers for report payloads
Uses Redis when configured, falls back to whatever cache backend is active
"""
from django.conf import settings
from django.core.cache import cache
import hashlib
import logging

logger = logging.getLogger(__name__)

DEFAULT_REPORTS_CACHE_TTL = 600  # 10 minutes
REPORTS_CACHE_PREFIX = "report"


def make_cache_key(prefix, *args, **kwargs):
    """Generate a unique cache key from arguments"""
    key_data = f"{prefix}:{args}:{sorted(kwargs.items())}"
    # Hash it to keep key length reasonable
    key_hash = hashlib.md5(key_data.encode()).hexdigest()
    return f"{prefix}:{key_hash}"


def cached_query(cache_key, query_func, ttl=None):
    """
    Return the cached value for cache_key, computing and storing it on a miss.
    ttl defaults to settings.REPORTS_CACHE_TTL (seconds).
    """
    if ttl is None:
        ttl = getattr(settings, "REPORTS_CACHE_TTL", DEFAULT_REPORTS_CACHE_TTL)
    cached_data = cache.get(cache_key)
    if cached_data is not None:
        logger.debug(f"Cache HIT: {cache_key}")
        return cached_data

    logger.debug(f"Cache MISS: {cache_key}")
    data = query_func()
    cache.set(cache_key, data, ttl)
    return data


def report_cache_key(report_type, params):
    return make_cache_key(f"{REPORTS_CACHE_PREFIX}:{report_type}", **params)


def invalidate_cache_pattern(pattern):
    """
    Invalidate all cache keys matching a pattern
    Uses Redis SCAN when django-redis is the backend, clears the whole cache otherwise
    """
    try:
        from django_redis import get_redis_connection
        redis_conn = get_redis_connection("default")

        keys = []
        cursor = 0
        while True:
            cursor, partial_keys = redis_conn.scan(cursor, match=f"*{pattern}*", count=100)
            keys.extend(partial_keys)
            if cursor == 0:
                break

        if keys:
            redis_conn.delete(*keys)
            logger.info(f"Invalidated {len(keys)} cache keys matching pattern: {pattern}")
    except NotImplementedError:
        # Non-redis backend: no key scanning available
        cache.clear()
        logger.info(f"Cleared cache (backend has no pattern support) for pattern: {pattern}")
    except Exception as e:
        logger.warning(f"Could not invalidate cache pattern {pattern}: {str(e)}")


def invalidate_reports_cache():
    """Invalidate all cached report payloads"""
    invalidate_cache_pattern(REPORTS_CACHE_PREFIX)
    logger.info("Invalidated reports cache")
