"""
Abstract delivery target - every destination type implements this.
Adapters raise DestinationDeliveryError on failure; they never record audit
rows or touch Event status (the dispatcher does).
"""
from abc import ABC, abstractmethod

from sqlalchemy.ext.asyncio import AsyncSession

from hookrelay.schemas.client_config import Destination
from hookrelay.schemas.job import Job


class DestinationAdapter(ABC):
    """Delivers one transformed payload to one destination."""

    destination_type: str = ""

    @abstractmethod
    async def send(
        self,
        db: AsyncSession,
        destination: Destination,
        job: Job,
        payload: dict,
    ) -> None:
        """
        Deliver payload. Returns on success.
        Raises DestinationDeliveryError on any failure.
        """
        ...
