"""
Durable job queue on Redis.

- Ready jobs live in a list: producers LPUSH, workers BRPOP (FIFO). BRPOP
  removes atomically, so any number of workers can compete on one list.
- Retries live in a sorted set scored by due time (Unix seconds). The retry
  scheduler moves due members onto the list with a Lua script, so a retry
  survives a process restart and is never promoted twice.
"""
import logging
import time
from typing import Optional

from hookrelay.schemas.job import Job

logger = logging.getLogger(__name__)

DEFAULT_QUEUE_KEY = "hookrelay:webhook_queue"
PROMOTE_BATCH_SIZE = 100

# KEYS[1] = delayed set, KEYS[2] = ready list, ARGV[1] = now, ARGV[2] = limit
PROMOTE_DUE_SCRIPT = """
local due = redis.call('ZRANGEBYSCORE', KEYS[1], '-inf', ARGV[1], 'LIMIT', 0, tonumber(ARGV[2]))
for _, member in ipairs(due) do
    redis.call('ZREM', KEYS[1], member)
    redis.call('LPUSH', KEYS[2], member)
end
return #due
"""


class JobQueue:
    """FIFO job mailbox plus a time-indexed retry set."""

    def __init__(self, redis, key: str = DEFAULT_QUEUE_KEY):
        self.redis = redis
        self.key = key
        self.delayed_key = f"{key}:delayed"

    async def push(self, job: Job) -> None:
        """Append a job to the back of the queue."""
        await self.redis.lpush(self.key, job.to_wire())
        logger.info(
            "Job enqueued: id=%s event=%s attempt=%d",
            job.id[:8], job.event_id, job.attempt,
            extra=job.log_extra(),
        )

    async def pop(self, timeout: int = 1) -> Optional[Job]:
        """
        Block up to `timeout` seconds for the next job (0 = forever).
        Returns None on timeout. A malformed message is removed from the
        queue and QueueMessageError is raised.
        """
        result = await self.redis.brpop(self.key, timeout=timeout)
        if not result:
            return None
        _, raw = result
        return Job.from_wire(raw)

    async def schedule(self, job: Job, delay_seconds: float, now: Optional[float] = None) -> float:
        """Park a job until now + delay_seconds. Returns the due time."""
        due_at = (now if now is not None else time.time()) + delay_seconds
        await self.redis.zadd(self.delayed_key, {job.to_wire(): due_at})
        logger.info(
            "Job scheduled: id=%s event=%s attempt=%d delay=%ss",
            job.id[:8], job.event_id, job.attempt, delay_seconds,
            extra=job.log_extra(),
        )
        return due_at

    async def promote_due(self, now: Optional[float] = None, limit: int = PROMOTE_BATCH_SIZE) -> int:
        """Move due retries onto the queue. Returns the number moved."""
        current = now if now is not None else time.time()
        moved = await self.redis.eval(
            PROMOTE_DUE_SCRIPT, 2, self.delayed_key, self.key, current, limit,
        )
        return int(moved or 0)

    async def depth(self) -> dict:
        """Ready and delayed job counts."""
        return {
            "ready": int(await self.redis.llen(self.key)),
            "delayed": int(await self.redis.zcard(self.delayed_key)),
        }
