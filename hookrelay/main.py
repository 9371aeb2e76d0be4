"""
HookRelay - webhook ingestion and relay service.
Main FastAPI application entry point.

The same process serves the intake API and runs the background workers
(WORKER_COUNT event workers plus one retry scheduler).
"""
import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from hookrelay import __version__
from hookrelay.api.router import api_router
from hookrelay.config import get_settings
from hookrelay.database import dispose_engine
from hookrelay.services.client_config import ClientConfigService
from hookrelay.services.dispatcher import DeliveryDispatcher
from hookrelay.services.job_queue import JobQueue
from hookrelay.utils.logging import (
    configure_structured_logging,
    generate_correlation_id,
    set_correlation_id,
)
from hookrelay.utils.redis_client import close_redis, get_redis
from hookrelay.workers.event_worker import run_event_worker
from hookrelay.workers.retry_scheduler import run_retry_scheduler

logger = logging.getLogger("hookrelay")

SHUTDOWN_TIMEOUT_SECONDS = 10.0


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Injects a correlation ID into every request context and response header."""

    async def dispatch(self, request: Request, call_next) -> Response:
        cid = request.headers.get("X-Correlation-ID") or generate_correlation_id()
        set_correlation_id(cid)
        response = await call_next(request)
        response.headers["X-Correlation-ID"] = cid
        return response


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown events."""
    settings = get_settings()
    logger.info("HookRelay starting up (env=%s)", settings.app_env)

    if settings.webhook_secret == "test-secret" and settings.app_env == "production":
        logger.warning("WEBHOOK_SECRET is the development default - set a real secret.")

    # Initialize Sentry if configured
    if settings.sentry_dsn:
        try:
            import sentry_sdk
            sentry_sdk.init(
                dsn=settings.sentry_dsn,
                traces_sample_rate=0.1,
                environment=settings.app_env,
            )
            logger.info("Sentry initialized")
        except Exception as e:
            logger.warning("Sentry initialization failed: %s", str(e))

    config_service = ClientConfigService.from_yaml(settings.clients_config_path)
    queue = JobQueue(await get_redis(), key=settings.queue_key)
    dispatcher = DeliveryDispatcher(
        config_service,
        skip_completed=settings.delivery_skip_completed,
        http_timeout=settings.delivery_http_timeout_seconds,
    )
    stop_event = asyncio.Event()

    app.state.config_service = config_service
    app.state.queue = queue
    app.state.dispatcher = dispatcher
    app.state.stop_event = stop_event

    worker_tasks: list[asyncio.Task] = []
    for index in range(settings.worker_count):
        worker_tasks.append(asyncio.create_task(run_event_worker(
            stop_event, queue, config_service, dispatcher,
            name=f"event_worker_{index}",
            settings=settings,
        )))
    logger.info("%d event worker(s) started", settings.worker_count)

    worker_tasks.append(asyncio.create_task(run_retry_scheduler(
        stop_event, queue, poll_interval=settings.retry_poll_interval_seconds,
    )))
    logger.info("Retry scheduler started")

    yield

    # Graceful shutdown - let in-flight jobs finish, then cancel stragglers
    logger.info("HookRelay shutting down - stopping %d workers...", len(worker_tasks))
    stop_event.set()
    if worker_tasks:
        done, pending = await asyncio.wait(worker_tasks, timeout=SHUTDOWN_TIMEOUT_SECONDS)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    await close_redis()
    await dispose_engine()
    logger.info("HookRelay shutdown complete - all %d workers stopped", len(worker_tasks))


def create_app() -> FastAPI:
    """Application factory."""
    settings = get_settings()

    # Configure structured JSON logging with correlation IDs
    configure_structured_logging(settings.log_level)

    application = FastAPI(
        title="HookRelay",
        description="Webhook ingestion, transformation and delivery",
        version=__version__,
        lifespan=lifespan,
    )
    application.add_middleware(CorrelationIdMiddleware)
    application.include_router(api_router)

    return application


app = create_app()
