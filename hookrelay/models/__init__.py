"""
Database models - import all models here so Alembic can discover them.
"""
from hookrelay.models.event import Event, EventStatus
from hookrelay.models.delivery_record import DeliveryRecord, DeliveryStatus

__all__ = [
    "Event",
    "EventStatus",
    "DeliveryRecord",
    "DeliveryStatus",
]
