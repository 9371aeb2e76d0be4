"""
Admin audit reads.

- GET /admin/clients/{client_id}/events - 100 newest events for a client
- GET /admin/events/{event_id}          - one event with its delivery records
"""
import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from hookrelay.database import get_db
from hookrelay.models import DeliveryRecord, Event

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/admin", tags=["admin"])

EVENTS_PAGE_SIZE = 100


@router.get("/clients/{client_id}/events")
async def list_client_events(client_id: str, db: AsyncSession = Depends(get_db)):
    """Most recent events for a client, newest first."""
    try:
        result = await db.execute(
            select(Event)
            .where(Event.client_id == client_id)
            .order_by(Event.received_at.desc(), Event.id.desc())
            .limit(EVENTS_PAGE_SIZE)
        )
        events = result.scalars().all()
    except SQLAlchemyError as e:
        logger.error("Failed to list events for client %s: %s", client_id, str(e))
        return JSONResponse(status_code=500, content={"error": "Internal server error"})

    return {"events": [event.to_dict() for event in events]}


@router.get("/events/{event_id}")
async def get_event(event_id: int, db: AsyncSession = Depends(get_db)):
    """Single event plus per-destination delivery outcomes."""
    try:
        event = await db.get(Event, event_id)
        if event is None:
            return JSONResponse(status_code=404, content={"error": "Event not found"})
        result = await db.execute(
            select(DeliveryRecord)
            .where(DeliveryRecord.event_id == event_id)
            .order_by(DeliveryRecord.id)
        )
        deliveries = result.scalars().all()
    except SQLAlchemyError as e:
        logger.error("Failed to load event %s: %s", event_id, str(e))
        return JSONResponse(status_code=500, content={"error": "Internal server error"})

    data = event.to_dict()
    data["deliveries"] = [record.to_dict() for record in deliveries]
    return data
