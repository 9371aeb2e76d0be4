"""
Event status state machine and retry policy.

    RECEIVED -> PROCESSING -> TRANSFORMED -> SUCCESS
    PROCESSING/TRANSFORMED -> FAILED -> (retry) PROCESSING -> ... -> PERMANENTLY_FAILED

A failed job with attempt < max_attempts is parked in the queue's delayed
set for 2**attempt seconds (1, 2, 4, 8, 16) as attempt + 1. At
attempt >= max_attempts the event is marked PERMANENTLY_FAILED and the job
is dropped. If the delayed set cannot be written, the event stays FAILED
with no next_retry_at and the reason appended to last_error. Jobs without an event id skip the status writes but follow the
same retry policy.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from hookrelay.models.event import Event, EventStatus
from hookrelay.schemas.job import Job
from hookrelay.services.job_queue import JobQueue

logger = logging.getLogger(__name__)

MAX_ATTEMPTS = 5
MAX_ERROR_LENGTH = 2000


def backoff_seconds(attempt: int) -> int:
    """Delay before retrying a job that failed at this attempt."""
    return 2 ** attempt


@dataclass(frozen=True)
class RetryDecision:
    retry: bool
    next_attempt: Optional[int] = None
    delay_seconds: Optional[int] = None


async def _set_status(db: AsyncSession, event_id: int, status: str, **values) -> None:
    await db.execute(
        update(Event)
        .where(Event.id == event_id)
        .values(status=status, updated_at=datetime.now(timezone.utc), **values)
    )
    await db.commit()


async def mark_processing(db: AsyncSession, job: Job) -> None:
    if job.event_id is not None:
        await _set_status(db, job.event_id, EventStatus.PROCESSING, next_retry_at=None)


async def mark_transformed(db: AsyncSession, job: Job, transformed: dict) -> None:
    if job.event_id is not None:
        await _set_status(db, job.event_id, EventStatus.TRANSFORMED, transformed_body=transformed)


async def mark_success(db: AsyncSession, job: Job) -> None:
    if job.event_id is not None:
        await _set_status(db, job.event_id, EventStatus.SUCCESS, last_error=None)


async def record_failure(
    db: AsyncSession,
    queue: JobQueue,
    job: Job,
    error: Exception,
    max_attempts: int = MAX_ATTEMPTS,
) -> RetryDecision:
    """
    Mark the event FAILED (attempts + 1, last_error) and either schedule
    the next attempt or mark it PERMANENTLY_FAILED.
    """
    message = str(error)[:MAX_ERROR_LENGTH] or type(error).__name__
    log_extra = job.log_extra()

    # The failing step may have left the transaction aborted
    await db.rollback()

    if job.attempt < max_attempts:
        delay = backoff_seconds(job.attempt)
        # next_retry_at is only written once the retry is actually parked
        try:
            await queue.schedule(job.next_attempt(), delay)
        except Exception as e:
            stranded = f"{message} (retry could not be scheduled: {e})"[:MAX_ERROR_LENGTH]
            if job.event_id is not None:
                await _set_status(
                    db, job.event_id, EventStatus.FAILED,
                    attempts=Event.attempts + 1,
                    last_error=stranded,
                    next_retry_at=None,
                )
            logger.error(
                "Job %s failed (attempt %d) and its retry could not be scheduled: %s",
                job.id[:8], job.attempt, str(e),
                extra=log_extra,
            )
            return RetryDecision(retry=False)

        if job.event_id is not None:
            await _set_status(
                db, job.event_id, EventStatus.FAILED,
                attempts=Event.attempts + 1,
                last_error=message,
                next_retry_at=datetime.now(timezone.utc) + timedelta(seconds=delay),
            )
        logger.warning(
            "Job %s failed (attempt %d): %s - retrying in %ds",
            job.id[:8], job.attempt, message, delay,
            extra=log_extra,
        )
        return RetryDecision(retry=True, next_attempt=job.attempt + 1, delay_seconds=delay)

    if job.event_id is not None:
        await _set_status(
            db, job.event_id, EventStatus.PERMANENTLY_FAILED,
            attempts=Event.attempts + 1,
            last_error=message,
            next_retry_at=None,
        )
    logger.error(
        "Job %s permanently failed after %d attempts: %s",
        job.id[:8], job.attempt + 1, message,
        extra=log_extra,
    )
    return RetryDecision(retry=False)
