"""
Webhook intake endpoint.

POST /webhooks/{client_id}/{source_system}
    201 {"eventId": n}                          accepted and queued
    200 {"message": "Duplicate event ignored"}  same body seen before
    401 {"error": "Invalid signature"}
    413 {"error": "Payload too large"}
    400 {"error": "Invalid JSON body"}
    500 {"error": "Internal server error"}

ingest_event checks the signature against the exact bytes received before
it parses the body.
"""
import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from hookrelay.config import get_settings
from hookrelay.database import get_db
from hookrelay.exceptions import InvalidPayload, PersistenceFailure, SignatureInvalid
from hookrelay.services.intake import ingest_event
from hookrelay.utils.webhook_signatures import SIGNATURE_HEADER

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/webhooks", tags=["webhooks"])


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


def _secret_for(request: Request, client_id: str) -> str:
    """Client-specific secret if configured, otherwise the global one."""
    config_service = getattr(request.app.state, "config_service", None)
    client = config_service.get(client_id) if config_service is not None else None
    if client is not None and client.secret:
        return client.secret
    return get_settings().webhook_secret


@router.post("/{client_id}/{source_system}")
async def receive_webhook(
    client_id: str,
    source_system: str,
    request: Request,
    db: AsyncSession = Depends(get_db),
):
    """Validate, persist once, and queue an inbound webhook."""
    settings = get_settings()
    body = await request.body()
    if len(body) > settings.max_body_bytes:
        logger.warning(
            "Webhook body too large: client=%s source=%s bytes=%d",
            client_id, source_system, len(body),
            extra={"client_id": client_id, "source_system": source_system},
        )
        return _error(413, "Payload too large")

    signature = request.headers.get(SIGNATURE_HEADER)

    try:
        result = await ingest_event(
            db,
            request.app.state.queue,
            client_id=client_id,
            source_system=source_system,
            body=body,
            signature=signature,
            secret=_secret_for(request, client_id),
        )
    except SignatureInvalid as e:
        return _error(401, e.message)
    except InvalidPayload as e:
        return _error(400, e.message)
    except PersistenceFailure:
        return _error(500, "Internal server error")
    except Exception as e:
        logger.error(
            "Webhook intake failed: client=%s source=%s error=%s",
            client_id, source_system, str(e),
            exc_info=True,
            extra={"client_id": client_id, "source_system": source_system},
        )
        return _error(500, "Internal server error")

    if result.duplicate:
        return JSONResponse(status_code=200, content={"message": "Duplicate event ignored"})
    return JSONResponse(status_code=201, content={"eventId": result.event_id})
