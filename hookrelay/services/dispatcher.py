"""
Delivery dispatcher - send a transformed payload to each of the client's
destinations in configured order.

- Destinations run sequentially; the first failure records a FAILED audit
  row and aborts the rest (later destinations are not attempted).
- Each success is committed on its own, so a later failure never undoes an
  earlier destination's table row or audit row.
- With skip_completed on, destinations that already hold a SUCCESS audit
  row for this event are skipped, so a retry only redelivers the unfinished
  subset instead of re-POSTing to endpoints that already accepted it.
"""
import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from hookrelay.database import insert_for
from hookrelay.destinations.base import DestinationAdapter
from hookrelay.destinations.http import HttpDestination
from hookrelay.destinations.postgres_table import PostgresTableDestination
from hookrelay.exceptions import DestinationDeliveryError, NoDestinationsConfigured
from hookrelay.models.delivery_record import DeliveryRecord, DeliveryStatus
from hookrelay.schemas.client_config import Destination
from hookrelay.schemas.job import Job
from hookrelay.services.client_config import ClientConfigService

logger = logging.getLogger(__name__)


async def record_delivery(
    db: AsyncSession,
    event_id: int,
    destination: Destination,
    status: str,
    error: Optional[str] = None,
) -> None:
    """
    Upsert the audit row for (event, destination): the latest outcome wins
    and attempts counts every recorded outcome.
    """
    now = datetime.now(timezone.utc)
    table = DeliveryRecord.__table__
    stmt = insert_for(db, table).values(
        event_id=event_id,
        destination_type=destination.type,
        destination=destination.identifier,
        status=status,
        attempts=1,
        last_error=error,
        created_at=now,
        updated_at=now,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=["event_id", "destination_type", "destination"],
        set_={
            "status": stmt.excluded.status,
            "last_error": stmt.excluded.last_error,
            "updated_at": stmt.excluded.updated_at,
            "attempts": table.c.attempts + 1,
        },
    )
    await db.execute(stmt)


class DeliveryDispatcher:
    """Runs a job's transformed payload through its client's destinations."""

    def __init__(
        self,
        config_service: ClientConfigService,
        adapters: Optional[dict[str, DestinationAdapter]] = None,
        skip_completed: bool = True,
        http_timeout: Optional[float] = None,
    ):
        self.config_service = config_service
        self.adapters = adapters or {
            "http": HttpDestination(timeout=http_timeout),
            "postgres": PostgresTableDestination(),
        }
        self.skip_completed = skip_completed

    async def completed_destinations(self, db: AsyncSession, event_id: int) -> set[tuple[str, str]]:
        result = await db.execute(
            select(DeliveryRecord.destination_type, DeliveryRecord.destination).where(
                DeliveryRecord.event_id == event_id,
                DeliveryRecord.status == DeliveryStatus.SUCCESS,
            )
        )
        return {(row[0], row[1]) for row in result.all()}

    async def deliver(self, db: AsyncSession, job: Job, payload: dict) -> list[str]:
        """
        Deliver to every destination or raise.
        Returns the identifiers delivered in this call (skipped ones excluded).
        Raises NoDestinationsConfigured or DestinationDeliveryError.
        """
        client = self.config_service.get(job.client_id)
        if client is None or not client.destinations:
            raise NoDestinationsConfigured(job.client_id)

        completed: set[tuple[str, str]] = set()
        if self.skip_completed and job.event_id is not None:
            completed = await self.completed_destinations(db, job.event_id)

        delivered: list[str] = []
        for destination in client.destinations:
            name = destination.identifier
            log_extra = {**job.log_extra(), "destination": name}

            if (destination.type, name) in completed:
                logger.info("Skipping %s - already delivered for event %s", name, job.event_id, extra=log_extra)
                continue

            try:
                await self._send(db, destination, job, payload)
            except DestinationDeliveryError as e:
                logger.warning("Delivery to %s failed: %s", name, e.message, extra=log_extra)
                await self._record_failure(db, job, destination, e.message)
                raise

            if job.event_id is not None:
                await record_delivery(db, job.event_id, destination, DeliveryStatus.SUCCESS)
            await db.commit()
            delivered.append(name)

        return delivered

    async def _send(self, db: AsyncSession, destination: Destination, job: Job, payload: dict) -> None:
        adapter = self.adapters.get(destination.type)
        if adapter is None:
            raise DestinationDeliveryError(
                destination.identifier, f"Unsupported destination type: {destination.type}",
            )
        try:
            await adapter.send(db, destination, job, payload)
        except DestinationDeliveryError:
            raise
        except Exception as e:
            raise DestinationDeliveryError(
                destination.identifier, f"{type(e).__name__}: {e}",
            ) from e

    async def _record_failure(self, db: AsyncSession, job: Job, destination: Destination, error: str) -> None:
        """Discard the failed destination's partial work, then write the FAILED row."""
        await db.rollback()
        if job.event_id is None:
            return
        try:
            await record_delivery(db, job.event_id, destination, DeliveryStatus.FAILED, error)
            await db.commit()
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error(
                "Failed to record delivery failure for event %s: %s", job.event_id, str(e),
                extra={**job.log_extra(), "destination": destination.identifier},
            )
