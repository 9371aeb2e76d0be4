"""
Event model - one row per uniquely-ingested webhook delivery.
(client_id, source_system, dedup_key) is unique so replays of the same body
collapse onto the original row.
"""
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import BigInteger, Integer, String, Text, DateTime, Index, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from hookrelay.database import Base


class EventStatus:
    """Event.status values."""
    RECEIVED = "RECEIVED"
    PROCESSING = "PROCESSING"
    TRANSFORMED = "TRANSFORMED"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    PERMANENTLY_FAILED = "PERMANENTLY_FAILED"


class Event(Base):
    __tablename__ = "events"

    # SQLite only autoincrements INTEGER primary keys
    id: Mapped[int] = mapped_column(
        BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True
    )
    client_id: Mapped[str] = mapped_column(String(100), nullable=False)
    source_system: Mapped[str] = mapped_column(String(100), nullable=False)
    signature: Mapped[Optional[str]] = mapped_column(String(128))
    raw_body: Mapped[Optional[dict]] = mapped_column(JSONB)
    dedup_key: Mapped[str] = mapped_column(String(64), nullable=False)
    transformed_body: Mapped[Optional[dict]] = mapped_column(JSONB)

    status: Mapped[str] = mapped_column(
        String(30), nullable=False, default=EventStatus.RECEIVED,
        server_default=EventStatus.RECEIVED,
    )
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    last_error: Mapped[Optional[str]] = mapped_column(Text)
    next_retry_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    received_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    __table_args__ = (
        UniqueConstraint("client_id", "source_system", "dedup_key", name="uq_events_dedup"),
        Index("ix_events_client_received", "client_id", "received_at"),
        Index("ix_events_status", "status"),
    )

    def to_dict(self) -> dict:
        """Audit API shape."""
        return {
            "id": self.id,
            "receivedAt": self.received_at.isoformat() if self.received_at else None,
            "clientId": self.client_id,
            "sourceSystem": self.source_system,
            "status": self.status,
            "attempts": self.attempts,
            "lastError": self.last_error,
            "rawBody": self.raw_body,
            "transformedBody": self.transformed_body,
        }

    def __repr__(self) -> str:
        return f"<Event {self.id} {self.client_id}/{self.source_system} ({self.status})>"
