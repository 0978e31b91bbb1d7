"""
Caching utilities for expensive accounting queries
Uses Redis for caching forecast results and expense listings
"""
from django.conf import settings
from django.core.cache import cache
import hashlib
import logging

logger = logging.getLogger(__name__)

# Cache TTLs (in seconds)
BUDGET_FORECAST_CACHE_TTL = getattr(settings, 'BUDGET_FORECAST_CACHE_TTL', 60 * 60 * 3)  # 3 hours
EXPENSE_CATEGORIES_CACHE_TTL = 60 * 60 * 3  # 3 hours
EXPENSES_LIST_CACHE_TTL = 60 * 60 * 3  # 3 hours

# Cache key prefixes
BUDGET_FORECAST_KEY_PREFIX = 'budget:forecast'
EXPENSE_CATEGORIES_KEY_PREFIX = 'expense-categories'
EXPENSES_LIST_KEY_PREFIX = 'expenses'
CACHE_VERSION_KEY_PREFIX = 'cache-version'


def make_cache_key(prefix, *args, **kwargs):
    """Generate a unique cache key from arguments"""
    # Convert args and kwargs to a stable string representation
    key_data = f"{prefix}:{args}:{sorted(kwargs.items())}"
    # Hash it to keep key length reasonable
    key_hash = hashlib.md5(key_data.encode()).hexdigest()
    return f"{prefix}:{key_hash}"


def invalidate_cache_pattern(pattern):
    """
    Invalidate all cache keys matching a pattern
    Note: This requires Redis with SCAN command support
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
    except Exception as e:
        logger.warning(f"Could not invalidate cache pattern {pattern}: {str(e)}")


# ==================== BUDGET FORECAST ====================

def get_budget_forecast_cache_key(organization_id, months, history_months):
    """Cache key for a forecast run: organization + horizon + history window"""
    return f"{BUDGET_FORECAST_KEY_PREFIX}:{organization_id}:{months}:{history_months}"


def get_cached_budget_forecast(organization_id, months, history_months):
    """
    Get a cached forecast payload
    Returns tuple: (cached_data, cache_key)
    """
    cache_key = get_budget_forecast_cache_key(organization_id, months, history_months)
    return cache.get(cache_key), cache_key


def cache_budget_forecast(cache_key, data, ttl=None):
    """Cache a forecast payload"""
    cache.set(cache_key, data, ttl or BUDGET_FORECAST_CACHE_TTL)
    logger.debug(f"Cached budget forecast: {cache_key}")


def invalidate_budget_forecast_cache(organization_id):
    """Invalidate every cached forecast of an organization"""
    invalidate_cache_pattern(f"{BUDGET_FORECAST_KEY_PREFIX}:{organization_id}:")
    logger.info(f"Invalidated budget forecast cache for organization {organization_id}")


# ==================== EXPENSE CATEGORIES ====================

def get_expense_categories_cache_key(organization_id):
    return f"{EXPENSE_CATEGORIES_KEY_PREFIX}:{organization_id}"


def invalidate_expense_categories_cache(organization_id):
    cache.delete(get_expense_categories_cache_key(organization_id))


# ==================== EXPENSES ====================

def get_expenses_cache_version_key(organization_id):
    # Kept outside the listing prefix so pattern invalidation leaves it alone
    return f"{CACHE_VERSION_KEY_PREFIX}:{EXPENSES_LIST_KEY_PREFIX}:{organization_id}"


def get_expenses_cache_version(organization_id):
    """Current listing version of an organization, starting at 1"""
    return cache.get_or_set(get_expenses_cache_version_key(organization_id), 1, None)


def get_expenses_list_cache_key(organization_id, **filters):
    """
    Cache key for a filtered, paginated expense listing

    The organization's listing version is part of the key, so bumping it
    orphans every cached page on any cache backend.
    """
    version = get_expenses_cache_version(organization_id)
    return make_cache_key(f"{EXPENSES_LIST_KEY_PREFIX}:{organization_id}", version=version, **filters)


def invalidate_expenses_cache(organization_id):
    """Invalidate all cached expense listings of an organization"""
    version_key = get_expenses_cache_version_key(organization_id)
    try:
        cache.incr(version_key)
    except ValueError:
        # No version yet: start past the default one
        cache.set(version_key, 2, None)
    # Drop the orphaned pages right away where the backend supports it
    invalidate_cache_pattern(f"{EXPENSES_LIST_KEY_PREFIX}:{organization_id}:")
    logger.info(f"Invalidated expenses cache for organization {organization_id}")
