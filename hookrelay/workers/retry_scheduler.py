"""
Retry scheduler - moves due retries from the delayed set onto the queue.
Promotion is a single Lua script, so several schedulers can run at once.
"""
import asyncio
import logging

from hookrelay.services.job_queue import JobQueue
from hookrelay.workers.common import wait_or_stop, write_heartbeat

logger = logging.getLogger(__name__)

POLL_INTERVAL_SECONDS = 0.5
ERROR_SLEEP_SECONDS = 1.0
HEARTBEAT_EVERY_CYCLES = 60


async def promote_cycle(queue: JobQueue) -> int:
    """Promote all currently due retries. Returns the count moved."""
    moved = await queue.promote_due()
    if moved:
        logger.info("Promoted %d due retries to %s", moved, queue.key)
    return moved


async def run_retry_scheduler(
    stop_event: asyncio.Event,
    queue: JobQueue,
    poll_interval: float = POLL_INTERVAL_SECONDS,
) -> None:
    """Main loop. Returns once stop_event is set."""
    logger.info("Retry scheduler started (poll every %ss)", poll_interval)
    cycles = 0

    while not stop_event.is_set():
        try:
            await promote_cycle(queue)
        except Exception as e:
            logger.error("Retry scheduler error: %s", str(e), exc_info=True)
            await wait_or_stop(stop_event, ERROR_SLEEP_SECONDS)

        cycles += 1
        if cycles % HEARTBEAT_EVERY_CYCLES == 1:
            await write_heartbeat("retry_scheduler")

        await wait_or_stop(stop_event, poll_interval)

    logger.info("Retry scheduler stopped")
