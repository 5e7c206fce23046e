from __future__ import annotations

import logging
import os

import redis

from .config import settings

logger = logging.getLogger(__name__)

_redis_client = None
_redis_available = False
_redis_initialized = False


def get_redis_url() -> str | None:
    redis_url = os.getenv("REDIS_URL") or settings.REDIS_URL
    if not redis_url or redis_url.lower() in ("none", "disabled", ""):
        return None
    return redis_url


def _initialize_redis():
    """Initialize Redis connection if configured."""
    global _redis_client, _redis_available, _redis_initialized

    if _redis_initialized:
        return

    _redis_initialized = True

    redis_url = get_redis_url()
    if redis_url is None:
        logger.info("Redis is not configured. Realtime fan-out and sign-up throttling will be disabled.")
        _redis_available = False
        return

    try:
        _redis_client = redis.Redis.from_url(
            redis_url,
            decode_responses=True,
            socket_connect_timeout=2,  # Fast timeout
            socket_timeout=2,
            retry_on_timeout=False,
        )
        _redis_client.ping()
        _redis_available = True
        logger.info("Redis connection established successfully")
    except redis.RedisError as e:
        logger.info(f"Redis not available: {e}. Realtime fan-out and sign-up throttling will be disabled.")
        _redis_available = False
        _redis_client = None


def get_redis_client():
    """Get Redis client if available, otherwise return None."""
    _initialize_redis()
    if not _redis_available:
        return None
    return _redis_client


def is_redis_available() -> bool:
    """Check if Redis is available."""
    _initialize_redis()
    return _redis_available
