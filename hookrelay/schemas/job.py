"""
Job - the transient unit of work pushed through the Redis queue.

Wire format (JSON): {"id", "eventId"?, "clientId", "sourceSystem", "payload", "attempt"}
"""
import json
import uuid
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from hookrelay.exceptions import QueueMessageError


class Job(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    event_id: Optional[int] = Field(default=None, alias="eventId")
    client_id: str = Field(alias="clientId")
    source_system: str = Field(alias="sourceSystem")
    payload: Any = None
    attempt: int = Field(default=0, ge=0)

    def next_attempt(self) -> "Job":
        """Same job, attempt + 1."""
        return self.model_copy(update={"attempt": self.attempt + 1})

    def to_wire(self) -> str:
        data = {
            "id": self.id,
            "clientId": self.client_id,
            "sourceSystem": self.source_system,
            "payload": self.payload,
            "attempt": self.attempt,
        }
        if self.event_id is not None:
            data["eventId"] = self.event_id
        return json.dumps(data, default=str)

    @classmethod
    def from_wire(cls, raw: str | bytes) -> "Job":
        """Decode a queue message. Raises QueueMessageError if malformed."""
        try:
            return cls.model_validate(json.loads(raw))
        except (ValueError, TypeError) as e:
            raise QueueMessageError(f"Undecodable job message: {e}") from e

    def log_extra(self) -> dict:
        return {
            "job_id": self.id,
            "event_id": self.event_id,
            "client_id": self.client_id,
            "source_system": self.source_system,
            "attempt": self.attempt,
        }
