"""
Helpers shared by the background loops.
"""
import asyncio
import logging
from datetime import datetime, timezone

logger = logging.getLogger(__name__)

HEARTBEAT_TTL_SECONDS = 120


async def write_heartbeat(name: str) -> None:
    """Store heartbeat timestamp in Redis. Failures are logged, never raised."""
    try:
        from hookrelay.utils.redis_client import get_redis
        redis = await get_redis()
        await redis.set(
            f"hookrelay:worker_health:{name}",
            datetime.now(timezone.utc).isoformat(),
            ex=HEARTBEAT_TTL_SECONDS,
        )
    except Exception as e:
        logger.debug("Heartbeat write failed for %s: %s", name, str(e))


async def wait_or_stop(stop_event: asyncio.Event, seconds: float) -> None:
    """Sleep up to `seconds`, returning early if stop_event is set."""
    try:
        await asyncio.wait_for(stop_event.wait(), timeout=seconds)
    except asyncio.TimeoutError:
        pass
