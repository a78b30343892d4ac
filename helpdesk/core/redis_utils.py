"""
Redis Change Feed Utilities

Row changes are broadcast as JSON on one Redis pub/sub channel per table so
that every open inbox session can invalidate its view.

Channel structure:
    {CHANGE_FEED_CHANNEL_PREFIX}:{table}  ->  {"table", "event", "row", "old"}

Publishing is best effort: a write that succeeded in the database is never
failed because Redis is unavailable. Sessions then fall back to manual
refetches.
"""

import json
import logging
from typing import Any, Dict, Optional

import redis
import redis.asyncio as aioredis

from helpdesk.core.config import settings

logger = logging.getLogger(__name__)

# Redis connection pool (singleton)
_redis_pool = None


def _get_redis_connection() -> redis.Redis:
    """Get or create a Redis connection from the pool."""
    global _redis_pool
    if _redis_pool is None:
        _redis_pool = redis.ConnectionPool(
            host=settings.REDIS_HOST,
            port=settings.REDIS_PORT,
            db=settings.REDIS_DB,
            password=settings.REDIS_PASSWORD if settings.REDIS_PASSWORD else None,
            decode_responses=True,
            socket_connect_timeout=3,
            socket_timeout=3,
        )
    return redis.Redis(connection_pool=_redis_pool)


def get_async_redis() -> aioredis.Redis:
    """Create an asyncio Redis client for subscriptions."""
    return aioredis.Redis(
        host=settings.REDIS_HOST,
        port=settings.REDIS_PORT,
        db=settings.REDIS_DB,
        password=settings.REDIS_PASSWORD if settings.REDIS_PASSWORD else None,
        decode_responses=True,
        socket_connect_timeout=3,
    )


def get_change_channel(table: str) -> str:
    """Build the pub/sub channel name for a table."""
    return f"{settings.CHANGE_FEED_CHANNEL_PREFIX}:{table}"


def publish_change(table: str, event: str, row: Dict[str, Any], old: Optional[Dict[str, Any]] = None) -> bool:
    """
    Broadcast a row change.

    Args:
        table: Table the row belongs to.
        event: INSERT, UPDATE or DELETE.
        row: The new row (empty for deletes).
        old: The previous row, when known.

    Returns:
        True if the event was published, False otherwise.
    """
    try:
        r = _get_redis_connection()
        payload = json.dumps({"table": table, "event": event, "row": row, "old": old or {}}, default=str)
        receivers = r.publish(get_change_channel(table), payload)
        logger.debug(f"Change published: {event} on {table} ({receivers} receiver(s))")
        return True
    except Exception as e:
        logger.error(f"Failed to publish {event} on {table}: {e}")
        return False
