"""
Webhook intake - signature check, JSON parse, idempotent persistence, enqueue.

Side effects are strictly ordered: signature -> parse -> insert (committed) -> enqueue.
An enqueue failure after the insert is logged and does NOT roll the insert
back; the Event stays in RECEIVED with no job (visible via the admin API).
"""
import json
import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from hookrelay.database import insert_for
from hookrelay.exceptions import InvalidPayload, PersistenceFailure, SignatureInvalid
from hookrelay.models.event import Event
from hookrelay.schemas.job import Job
from hookrelay.services.job_queue import JobQueue
from hookrelay.utils.webhook_signatures import compute_payload_hash, validate_hmac_sha256

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IntakeResult:
    event_id: Optional[int]
    duplicate: bool = False
    enqueued: bool = False


async def ingest_event(
    db: AsyncSession,
    queue: JobQueue,
    *,
    client_id: str,
    source_system: str,
    body: bytes,
    signature: Optional[str],
    secret: str,
) -> IntakeResult:
    """
    Accept one webhook call.

    Raises SignatureInvalid or InvalidPayload (nothing persisted) and
    PersistenceFailure (nothing enqueued). A duplicate body for the same
    client and source returns IntakeResult(duplicate=True) and enqueues
    nothing.
    """
    if not validate_hmac_sha256(secret, signature, body):
        logger.warning(
            "Invalid webhook signature: client=%s source=%s",
            client_id, source_system,
            extra={"client_id": client_id, "source_system": source_system},
        )
        raise SignatureInvalid()

    try:
        payload = json.loads(body)
    except ValueError as e:
        logger.warning(
            "Invalid JSON body: client=%s source=%s",
            client_id, source_system,
            extra={"client_id": client_id, "source_system": source_system},
        )
        raise InvalidPayload() from e

    dedup_key = compute_payload_hash(body)

    stmt = (
        insert_for(db, Event.__table__)
        .values(
            client_id=client_id,
            source_system=source_system,
            signature=signature,
            raw_body=payload,
            dedup_key=dedup_key,
        )
        .on_conflict_do_nothing(index_elements=["client_id", "source_system", "dedup_key"])
        .returning(Event.__table__.c.id)
    )

    try:
        result = await db.execute(stmt)
        event_id = result.scalar_one_or_none()
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error(
            "Failed to store event: client=%s source=%s error=%s",
            client_id, source_system, str(e),
            extra={"client_id": client_id, "source_system": source_system},
        )
        raise PersistenceFailure(f"Failed to store event: {e}") from e

    if event_id is None:
        logger.info(
            "Duplicate event ignored: client=%s source=%s dedup=%s",
            client_id, source_system, dedup_key[:12],
            extra={"client_id": client_id, "source_system": source_system},
        )
        return IntakeResult(event_id=None, duplicate=True)

    job = Job(
        event_id=event_id,
        client_id=client_id,
        source_system=source_system,
        payload=payload,
        attempt=0,
    )
    try:
        await queue.push(job)
    except Exception as e:
        logger.error(
            "Failed to enqueue event %s - stored without a job: %s",
            event_id, str(e),
            extra=job.log_extra(),
        )
        return IntakeResult(event_id=event_id, enqueued=False)

    logger.info(
        "Event accepted: id=%s client=%s source=%s",
        event_id, client_id, source_system,
        extra=job.log_extra(),
    )
    return IntakeResult(event_id=event_id, enqueued=True)
