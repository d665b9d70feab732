"""Redis locks that keep two runs of the same Celery task from overlapping."""

import logging

import redis

from viandas import settings

logger = logging.getLogger(__name__)


def get_redis_client() -> redis.Redis:
    """Get Redis client for distributed locks."""
    return redis.Redis.from_url(settings.REDIS_URL, decode_responses=False)


def acquire_lock(lock_key: str, ttl_seconds: int = 3600) -> bool:
    """Acquire distributed lock in Redis.

    Returns True if lock acquired, False if already locked or Redis is down.
    """
    redis_client = get_redis_client()
    try:
        # SET key value NX EX ttl - atomic operation
        result = redis_client.set(lock_key, b"1", nx=True, ex=ttl_seconds)
        return result is True
    except Exception as e:
        logger.error(f"acquire_lock: error acquiring lock {lock_key}: {type(e).__name__}: {e}")
        return False


def release_lock(lock_key: str) -> None:
    """Release distributed lock."""
    redis_client = get_redis_client()
    try:
        redis_client.delete(lock_key)
    except Exception as e:
        logger.error(f"release_lock: error releasing lock {lock_key}: {type(e).__name__}: {e}")
