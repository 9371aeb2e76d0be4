"""
HTTP destination - POST the transformed payload as JSON.
Any 2xx is success; other statuses and transport errors are failures.
"""
import logging
from typing import Optional

import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from hookrelay.destinations.base import DestinationAdapter
from hookrelay.exceptions import DestinationDeliveryError
from hookrelay.schemas.client_config import Destination
from hookrelay.schemas.job import Job

logger = logging.getLogger(__name__)


class HttpDestination(DestinationAdapter):
    destination_type = "http"

    def __init__(self, timeout: Optional[float] = None):
        # None disables the timeout: a hung endpoint blocks this worker
        self.timeout = timeout

    async def send(
        self,
        db: AsyncSession,
        destination: Destination,
        job: Job,
        payload: dict,
    ) -> None:
        url = destination.url or ""
        headers = {"Content-Type": "application/json", "X-Job-Id": job.id}
        if job.event_id is not None:
            headers["X-Event-Id"] = str(job.event_id)

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(url, json=payload, headers=headers)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise DestinationDeliveryError(
                url, f"HTTP delivery to {url} failed: {type(e).__name__}: {e}",
            ) from e

        if not 200 <= response.status_code < 300:
            raise DestinationDeliveryError(
                url,
                f"HTTP delivery failed with {response.status_code}",
                status_code=response.status_code,
            )

        logger.info(
            "Delivered to %s (%d)", url, response.status_code,
            extra={**job.log_extra(), "destination": url},
        )
