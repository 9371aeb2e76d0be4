"""
Tests for hookrelay/workers/event_worker.py - job pipeline and loop behavior.
"""
import asyncio
import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from sqlalchemy import select

from hookrelay.database import insert_for
from hookrelay.models import DeliveryRecord, DeliveryStatus, Event, EventStatus
from hookrelay.schemas.job import Job
from hookrelay.services.dispatcher import DeliveryDispatcher
from hookrelay.utils.logging import get_correlation_id
from hookrelay.workers.event_worker import EventWorker, run_event_worker

PAYLOAD = {
    "unit_id": "bldg-123-unit-45",
    "tenant_name": "John Smith",
    "lease_start": "2024-01-01",
    "monthly_rent": 2500,
}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _make_response(status_code: int = 200) -> MagicMock:
    response = MagicMock()
    response.status_code = status_code
    return response


def _build_mock_client(status_code: int = 200) -> AsyncMock:
    mock_client = AsyncMock()
    mock_client.post = AsyncMock(return_value=_make_response(status_code))
    mock_client.__aenter__ = AsyncMock(return_value=mock_client)
    mock_client.__aexit__ = AsyncMock(return_value=False)
    return mock_client


async def _make_event(session_factory, client_id="clientA") -> int:
    async with session_factory() as db:
        stmt = insert_for(db, Event.__table__).values(
            client_id=client_id,
            source_system="propertysysA",
            raw_body=PAYLOAD,
            dedup_key="w" * 64,
        ).returning(Event.__table__.c.id)
        event_id = (await db.execute(stmt)).scalar_one()
        await db.commit()
    return event_id


async def _load_event(session_factory, event_id) -> Event:
    async with session_factory() as db:
        return await db.get(Event, event_id)


def _job(event_id, client_id="clientA", attempt=0) -> Job:
    return Job(
        event_id=event_id, client_id=client_id, source_system="propertysysA",
        payload=PAYLOAD, attempt=attempt,
    )


def _worker(queue, config_service, session_factory, **kwargs) -> EventWorker:
    return EventWorker(
        queue,
        config_service,
        DeliveryDispatcher(config_service),
        session_factory=session_factory,
        name="test_worker",
        error_sleep=0.01,
        **kwargs,
    )


# ---------------------------------------------------------------------------
# process_job
# ---------------------------------------------------------------------------


class TestProcessJob:
    async def test_success_marks_event_and_delivers(self, session_factory, queue, config_service):
        event_id = await _make_event(session_factory)
        worker = _worker(queue, config_service, session_factory)
        mock_client = _build_mock_client()

        with patch("httpx.AsyncClient", return_value=mock_client):
            ok = await worker.process_job(_job(event_id))

        assert ok is True
        event = await _load_event(session_factory, event_id)
        assert event.status == EventStatus.SUCCESS
        assert event.transformed_body["unitNumber"] == "45"
        assert event.transformed_body["resident"]["leaseStartDate"] == "2024-01-01T00:00:00.000Z"
        assert mock_client.post.await_args.kwargs["json"] == event.transformed_body

        async with session_factory() as db:
            statuses = (await db.execute(select(DeliveryRecord.status))).scalars().all()
        assert statuses == [DeliveryStatus.SUCCESS, DeliveryStatus.SUCCESS]

    async def test_delivery_failure_schedules_retry(self, session_factory, queue, redis_mock, config_service):
        event_id = await _make_event(session_factory)
        worker = _worker(queue, config_service, session_factory)

        with patch("httpx.AsyncClient", return_value=_build_mock_client(503)):
            ok = await worker.process_job(_job(event_id))

        assert ok is False
        event = await _load_event(session_factory, event_id)
        assert event.status == EventStatus.FAILED
        assert event.attempts == 1
        assert "503" in event.last_error
        # Transformation succeeded before delivery failed
        assert event.transformed_body is not None
        redis_mock.zadd.assert_awaited_once()

    async def test_no_destinations_is_retryable_failure(self, session_factory, queue, redis_mock, config_service):
        event_id = await _make_event(session_factory, client_id="ghost")
        worker = _worker(queue, config_service, session_factory)

        ok = await worker.process_job(_job(event_id, client_id="ghost"))

        assert ok is False
        event = await _load_event(session_factory, event_id)
        assert event.status == EventStatus.FAILED
        assert "No destinations configured" in event.last_error
        redis_mock.zadd.assert_awaited_once()

    async def test_final_attempt_failure_is_permanent(self, session_factory, queue, redis_mock, config_service):
        event_id = await _make_event(session_factory)
        worker = _worker(queue, config_service, session_factory)

        with patch("httpx.AsyncClient", return_value=_build_mock_client(500)):
            await worker.process_job(_job(event_id, attempt=5))

        event = await _load_event(session_factory, event_id)
        assert event.status == EventStatus.PERMANENTLY_FAILED
        redis_mock.zadd.assert_not_awaited()

    async def test_correlation_id_is_job_id_while_processing(self, session_factory, queue, config_service):
        seen = []

        async def deliver(db, job, transformed):
            seen.append(get_correlation_id())
            return []

        worker = _worker(queue, config_service, session_factory)
        worker.dispatcher = MagicMock()
        worker.dispatcher.deliver = AsyncMock(side_effect=deliver)
        job = _job(None)

        await worker.process_job(job)

        assert seen == [job.id]
        assert get_correlation_id() is None


# ---------------------------------------------------------------------------
# run loop
# ---------------------------------------------------------------------------


class TestRunLoop:
    async def test_processes_popped_job_then_stops(self, session_factory, queue, redis_mock, mock_redis, config_service):
        stop_event = asyncio.Event()
        job = _job(None)
        calls = []

        async def brpop(key, timeout):
            calls.append(key)
            if len(calls) == 1:
                return (key, job.to_wire())
            stop_event.set()
            return None

        redis_mock.brpop = AsyncMock(side_effect=brpop)
        worker = _worker(queue, config_service, session_factory)
        worker.process_job = AsyncMock(return_value=True)

        await asyncio.wait_for(worker.run(stop_event), timeout=5)

        worker.process_job.assert_awaited_once()
        assert worker.process_job.await_args.args[0] == job
        assert get_correlation_id() is None

    async def test_queue_error_sleeps_and_continues(self, session_factory, queue, redis_mock, mock_redis, config_service):
        stop_event = asyncio.Event()
        calls = []

        async def brpop(key, timeout):
            calls.append(key)
            if len(calls) < 3:
                raise ConnectionError("redis unavailable")
            stop_event.set()
            return None

        redis_mock.brpop = AsyncMock(side_effect=brpop)
        worker = _worker(queue, config_service, session_factory)

        await asyncio.wait_for(worker.run(stop_event), timeout=5)

        assert len(calls) == 3

    async def test_malformed_message_dropped(self, session_factory, queue, redis_mock, mock_redis, config_service):
        stop_event = asyncio.Event()
        calls = []

        async def brpop(key, timeout):
            calls.append(key)
            if len(calls) == 1:
                return (key, "not-json")
            stop_event.set()
            return None

        redis_mock.brpop = AsyncMock(side_effect=brpop)
        worker = _worker(queue, config_service, session_factory)
        worker.process_job = AsyncMock()

        await asyncio.wait_for(worker.run(stop_event), timeout=5)

        worker.process_job.assert_not_awaited()
        assert len(calls) == 2

    async def test_stop_event_already_set(self, session_factory, queue, redis_mock, config_service):
        stop_event = asyncio.Event()
        stop_event.set()
        await _worker(queue, config_service, session_factory).run(stop_event)
        redis_mock.brpop.assert_not_awaited()

    async def test_heartbeat_written(self, session_factory, queue, redis_mock, mock_redis, config_service):
        stop_event = asyncio.Event()

        async def brpop(key, timeout):
            stop_event.set()
            return None

        redis_mock.brpop = AsyncMock(side_effect=brpop)
        await _worker(queue, config_service, session_factory).run(stop_event)

        mock_redis.set.assert_awaited()
        assert mock_redis.set.await_args.args[0] == "hookrelay:worker_health:test_worker"


class TestRunEventWorker:
    async def test_builds_worker_from_settings(self, queue, config_service):
        settings = MagicMock()
        settings.max_attempts = 3
        settings.queue_pop_timeout_seconds = 2
        settings.worker_error_sleep_seconds = 0.5
        stop_event = asyncio.Event()
        dispatcher = DeliveryDispatcher(config_service)

        with patch("hookrelay.workers.event_worker.EventWorker") as worker_cls:
            worker_cls.return_value.run = AsyncMock()
            await run_event_worker(stop_event, queue, config_service, dispatcher, name="w1", settings=settings)

        worker_cls.assert_called_once_with(
            queue, config_service, dispatcher,
            name="w1", max_attempts=3, pop_timeout=2, error_sleep=0.5,
        )
        worker_cls.return_value.run.assert_awaited_once_with(stop_event)
