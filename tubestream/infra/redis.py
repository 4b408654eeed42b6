import json
import logging
from typing import Any, Optional
import redis.asyncio as aioredis
from rich.console import Console
from tubestream.config.settings import config
from tubestream.core.state import state
from tubestream.infra.concurrency import ACTIVE_COUNTER_KEY, SLOT_KEY_PREFIX

logger = logging.getLogger(__name__)
console = Console(stderr=True)

async def count_keys(client: aioredis.Redis, pattern: str) -> int:
    count = 0
    async for _ in client.scan_iter(match=pattern, count=100):
        count += 1
    return count

async def init_redis() -> Optional[aioredis.Redis]:
    """
    Connect to Redis, or return None when it is disabled or unreachable.
    The download counter is rebuilt from the slot keys that survived a restart.
    """
    if not config.redis.enabled:
        console.print("[dim]Redis disabled by configuration[/dim]")
        return None

    try:
        client = aioredis.from_url(
            config.redis.url,
            encoding="utf-8",
            decode_responses=True,
            socket_connect_timeout=config.redis.socket_timeout
        )
        await client.ping()

        active = await count_keys(client, f"{SLOT_KEY_PREFIX}*")
        await client.set(ACTIVE_COUNTER_KEY, active)
    except Exception as e:
        console.print(f"[yellow]⚠ Redis unavailable, running without cache and download limit: {e}[/yellow]")
        return None

    if active:
        console.print(f"[yellow]✓ Redis connected (recovered {active} active downloads)[/yellow]")
    else:
        console.print("[green]✓ Redis connected[/green]")
    return client

def get_redis() -> Optional[aioredis.Redis]:
    """Get Redis client from state"""
    return state.redis

async def cache_get_json(key: str) -> Optional[Any]:
    """Cached JSON value, or None on miss, without Redis, or on any Redis error"""
    redis = get_redis()
    if not redis:
        return None
    try:
        cached = await redis.get(key)
        return json.loads(cached) if cached else None
    except Exception as e:
        logger.debug(f"Cache read failed for {key}: {e!r}")
        return None

async def cache_set_json(key: str, payload: str, ttl: int) -> None:
    """Store an already serialized JSON payload. Errors are logged and dropped."""
    redis = get_redis()
    if not redis or ttl <= 0:
        return
    try:
        await redis.setex(key, ttl, payload)
    except Exception as e:
        logger.debug(f"Cache write failed for {key}: {e!r}")

async def close_redis() -> None:
    """Close Redis connection"""
    if state.redis:
        await state.redis.close()
        state.redis = None
        console.print("[dim]✓ Redis connection closed[/dim]")
