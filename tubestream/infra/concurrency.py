import logging
import uuid
from fastapi import Request
from tubestream.config.settings import config
from tubestream.core.errors import ServerBusyError
from tubestream.core.state import state

logger = logging.getLogger(__name__)

ACTIVE_COUNTER_KEY = "active_downloads_count"
SLOT_KEY_PREFIX = "active_download:"

# KEYS: counter, slot. ARGV: limit, slot ttl, counter ttl
ACQUIRE_SCRIPT = """
local current = tonumber(redis.call('GET', KEYS[1]) or "0")
if current >= tonumber(ARGV[1]) then
    return 0
end
redis.call('INCR', KEYS[1])
redis.call('EXPIRE', KEYS[1], tonumber(ARGV[3]))
redis.call('SETEX', KEYS[2], tonumber(ARGV[2]), "1")
return 1
"""

# Only decrement for a slot that still exists; an expired slot was already
# dropped from the count by the startup recovery scan.
RELEASE_SCRIPT = """
if redis.call('DEL', KEYS[2]) == 1 then
    local current = tonumber(redis.call('GET', KEYS[1]) or "0")
    if current > 0 then
        redis.call('DECR', KEYS[1])
    end
    return 1
end
return 0
"""

class ConcurrencyLimiter:
    """
    Caps running downloads at download.max_concurrent across all workers.

    Each admitted request owns a slot key that lives slightly longer than the
    longest allowed download, so a crashed worker cannot hold a slot forever.
    Without Redis every request is admitted.
    """

    async def __call__(self, request: Request):
        redis = state.redis
        if not redis:
            return True

        slot_key = f"{SLOT_KEY_PREFIX}{uuid.uuid4()}"
        slot_ttl = config.download.timeout_seconds + 60

        try:
            allowed = await redis.eval(
                ACQUIRE_SCRIPT,
                2,
                ACTIVE_COUNTER_KEY,
                slot_key,
                config.download.max_concurrent,
                slot_ttl,
                slot_ttl * 2,
            )
        except Exception as e:
            logger.warning(f"Concurrency limiter unavailable, admitting request: {e!r}")
            return True

        if not allowed:
            raise ServerBusyError(config.download.max_concurrent)

        request.state.download_slot_key = slot_key
        return True

async def release_download_slot(request: Request):
    """Give the request's slot back. Safe to call more than once."""
    slot_key = getattr(request.state, "download_slot_key", None)
    if not slot_key:
        return
    request.state.download_slot_key = None

    redis = state.redis
    if not redis:
        return
    try:
        await redis.eval(RELEASE_SCRIPT, 2, ACTIVE_COUNTER_KEY, slot_key)
    except Exception as e:
        logger.warning(f"Failed to release download slot {slot_key}: {e!r}")

concurrency_limiter = ConcurrencyLimiter()
