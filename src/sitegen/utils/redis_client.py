"""Redis connection helper for the shared admission-control store."""

import logging
from typing import Optional

import redis

logger = logging.getLogger(__name__)


def get_redis_client(redis_url: Optional[str]) -> Optional[redis.Redis]:
    """Get a connected Redis client.

    Args:
        redis_url: Connection URL, e.g. ``redis://localhost:6379/0``

    Returns:
        redis.Redis: Connected client, or None if no URL is configured or the
        server cannot be reached
    """
    if not redis_url:
        return None
    try:
        client = redis.from_url(
            redis_url,
            socket_timeout=5.0,
            socket_connect_timeout=5.0,
            decode_responses=True
        )
        # Test connection
        client.ping()
        return client
    except redis.RedisError as e:
        logger.warning(f"Could not connect to Redis at {redis_url}: {e}")
        return None
