"""
Per-destination delivery audit. One row per (event, destination); the row
holds the latest recorded outcome and how many outcomes were recorded.
"""
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import BigInteger, Integer, String, Text, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from hookrelay.database import Base


class DeliveryStatus:
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"


class DeliveryRecord(Base):
    __tablename__ = "event_deliveries"

    id: Mapped[int] = mapped_column(
        BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True
    )
    event_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("events.id", ondelete="CASCADE"), nullable=False, index=True
    )
    destination_type: Mapped[str] = mapped_column(String(20), nullable=False)  # http, postgres
    destination: Mapped[str] = mapped_column(String(500), nullable=False)  # url or schema.table
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=1, server_default="1")
    last_error: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        UniqueConstraint(
            "event_id", "destination_type", "destination", name="uq_event_deliveries_target"
        ),
    )

    def to_dict(self) -> dict:
        return {
            "destinationType": self.destination_type,
            "destination": self.destination,
            "status": self.status,
            "attempts": self.attempts,
            "lastError": self.last_error,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self) -> str:
        return f"<DeliveryRecord event={self.event_id} {self.destination} ({self.status})>"
