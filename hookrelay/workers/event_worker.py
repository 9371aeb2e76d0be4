"""
Event worker - drains the webhook queue one job at a time.

For each job: PROCESSING -> transform -> TRANSFORMED -> deliver -> SUCCESS.
Any exception from those steps goes to the retry controller. Errors in the
loop machinery itself (queue read, Redis, database unavailable) are logged
and the loop sleeps briefly before continuing. The loop only exits when the
stop event is set; BRPOP uses a short timeout so shutdown is observed
within about a second.

Run several workers (in-process or across processes) against the same
queue to scale out: BRPOP hands each job to exactly one of them.
"""
import asyncio
import logging
import time
from typing import Callable, Optional

from hookrelay.database import async_session_factory
from hookrelay.exceptions import QueueMessageError
from hookrelay.schemas.job import Job
from hookrelay.services.client_config import ClientConfigService
from hookrelay.services.dispatcher import DeliveryDispatcher
from hookrelay.services.job_queue import JobQueue
from hookrelay.services.retry import (
    MAX_ATTEMPTS,
    mark_processing,
    mark_success,
    mark_transformed,
    record_failure,
)
from hookrelay.services.transformer import transform_event
from hookrelay.utils.logging import correlation_scope
from hookrelay.workers.common import wait_or_stop, write_heartbeat

logger = logging.getLogger(__name__)

ERROR_SLEEP_SECONDS = 1.0
POP_TIMEOUT_SECONDS = 1
HEARTBEAT_INTERVAL_SECONDS = 30


class EventWorker:
    """Pops jobs and drives transform -> deliver -> status."""

    def __init__(
        self,
        queue: JobQueue,
        config_service: ClientConfigService,
        dispatcher: DeliveryDispatcher,
        session_factory: Callable = async_session_factory,
        name: str = "event_worker",
        max_attempts: int = MAX_ATTEMPTS,
        pop_timeout: int = POP_TIMEOUT_SECONDS,
        error_sleep: float = ERROR_SLEEP_SECONDS,
    ):
        self.queue = queue
        self.config_service = config_service
        self.dispatcher = dispatcher
        self.session_factory = session_factory
        self.name = name
        self.max_attempts = max_attempts
        self.pop_timeout = pop_timeout
        self.error_sleep = error_sleep
        self._last_heartbeat: Optional[float] = None

    async def run(self, stop_event: asyncio.Event) -> None:
        """Main loop. Returns once stop_event is set."""
        logger.info("%s started, waiting for jobs on %s", self.name, self.queue.key)

        while not stop_event.is_set():
            try:
                job = await self.queue.pop(timeout=self.pop_timeout)
                if job is not None:
                    await self.process_job(job)
            except QueueMessageError as e:
                logger.error("%s dropped malformed job: %s", self.name, e.message)
            except Exception as e:
                logger.error("%s loop error: %s", self.name, str(e), exc_info=True)
                await wait_or_stop(stop_event, self.error_sleep)

            await self._maybe_heartbeat()

        logger.info("%s stopped", self.name)

    async def process_job(self, job: Job) -> bool:
        """Run one job through the pipeline. Returns True on full delivery."""
        with correlation_scope(job.id):
            return await self._run_pipeline(job)

    async def _run_pipeline(self, job: Job) -> bool:
        log_extra = job.log_extra()
        logger.info("Processing job %s (attempt %d)", job.id[:8], job.attempt, extra=log_extra)

        async with self.session_factory() as db:
            try:
                await mark_processing(db, job)
                client = self.config_service.get(job.client_id)
                transformed = transform_event(job.payload, client, job.source_system)
                await mark_transformed(db, job, transformed)
                await self.dispatcher.deliver(db, job, transformed)
                await mark_success(db, job)
            except Exception as e:
                await record_failure(db, self.queue, job, e, max_attempts=self.max_attempts)
                return False

        logger.info("Job %s delivered successfully", job.id[:8], extra=log_extra)
        return True

    async def _maybe_heartbeat(self) -> None:
        now = time.monotonic()
        if self._last_heartbeat is None or now - self._last_heartbeat >= HEARTBEAT_INTERVAL_SECONDS:
            self._last_heartbeat = now
            await write_heartbeat(self.name)


async def run_event_worker(
    stop_event: asyncio.Event,
    queue: JobQueue,
    config_service: ClientConfigService,
    dispatcher: DeliveryDispatcher,
    name: str = "event_worker",
    settings: Optional[object] = None,
) -> None:
    """Build a worker from settings and run it until stop_event is set."""
    if settings is None:
        from hookrelay.config import get_settings
        settings = get_settings()

    worker = EventWorker(
        queue,
        config_service,
        dispatcher,
        name=name,
        max_attempts=settings.max_attempts,
        pop_timeout=settings.queue_pop_timeout_seconds,
        error_sleep=settings.worker_error_sleep_seconds,
    )
    await worker.run(stop_event)
