"""
Redis cache for the public event listing.

CACHING STRATEGY
================

Only the paginated event listing is cached, keyed by
"events:list:page={page}&size={size}&upcoming={upcoming}". It is the most
frequent read and changes only when an event is created or edited.

Capacity, registrations, pending payments and the waiting list are never
cached: every admission and promotion decision must see current rows.

Invalidation:
  - Event created or capacity changed: drop every "events:list:*" key
  - TTL as a safety net (REDIS_CACHE_TTL)

Redis is optional. When disabled or unreachable every call degrades to a
cache miss and the listing is served from the database.
"""

import json
from typing import Optional

import redis.asyncio as redis
from redis.exceptions import RedisError

from gameone.core.config import get_settings
from gameone.core.logging import get_logger

logger = get_logger(__name__)
settings = get_settings()

EVENT_LIST_PREFIX = "events:list:"

_redis_client: Optional[redis.Redis] = None


async def get_redis() -> Optional[redis.Redis]:
    """Shared Redis connection, or None when caching is off or Redis is down."""
    global _redis_client

    if not settings.REDIS_ENABLED:
        return None

    if _redis_client is None:
        client = redis.from_url(
            settings.REDIS_URL,
            encoding="utf-8",
            decode_responses=True,
            socket_connect_timeout=5,
            socket_timeout=5,
            retry_on_timeout=True,
        )
        try:
            await client.ping()
        except (RedisError, OSError) as exc:
            logger.error("redis_connection_failed", error=str(exc))
            return None
        _redis_client = client
        logger.info("redis_connected", url=settings.REDIS_URL)

    return _redis_client


async def close_redis() -> None:
    global _redis_client
    if _redis_client:
        await _redis_client.aclose()
        _redis_client = None


def event_list_key(page: int, page_size: int, upcoming_only: bool) -> str:
    return f"{EVENT_LIST_PREFIX}page={page}&size={page_size}&upcoming={upcoming_only}"


async def get_cached_events(page: int, page_size: int, upcoming_only: bool) -> Optional[dict]:
    client = await get_redis()
    if not client:
        return None

    key = event_list_key(page, page_size, upcoming_only)
    try:
        data = await client.get(key)
    except RedisError as exc:
        logger.error("cache_get_error", key=key, error=str(exc))
        return None

    if data:
        logger.debug("cache_hit", key=key)
        return json.loads(data)
    logger.debug("cache_miss", key=key)
    return None


async def set_cached_events(page: int, page_size: int, upcoming_only: bool, data: dict) -> None:
    client = await get_redis()
    if not client:
        return

    key = event_list_key(page, page_size, upcoming_only)
    try:
        await client.setex(key, settings.REDIS_CACHE_TTL, json.dumps(data, default=str))
    except RedisError as exc:
        logger.error("cache_set_error", key=key, error=str(exc))


async def invalidate_event_cache() -> None:
    """Drop every cached listing page."""
    client = await get_redis()
    if not client:
        return

    deleted = 0
    try:
        async for key in client.scan_iter(match=f"{EVENT_LIST_PREFIX}*", count=100):
            await client.delete(key)
            deleted += 1
    except RedisError as exc:
        logger.error("cache_invalidation_error", error=str(exc))
        return
    logger.info("cache_invalidated", keys_deleted=deleted)


async def get_cache_stats() -> dict:
    """Hit/miss counters for the health endpoint."""
    client = await get_redis()
    if not client:
        return {"status": "disabled"}

    try:
        stats = await client.info("stats")
    except RedisError as exc:
        return {"status": "error", "error": str(exc)}

    hits = stats.get("keyspace_hits", 0)
    misses = stats.get("keyspace_misses", 0)
    return {
        "status": "connected",
        "hits": hits,
        "misses": misses,
        "hit_rate": round(hits / max(hits + misses, 1) * 100, 2),
    }
