import structlog
from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.dependencies import get_strava_service
from src.api.schemas.webhook import WebhookAck
from src.core.config import settings
from src.core.errors import FatalStorageError, WebhookValidationError
from src.db import get_db
from src.services.ingestion_service import IngestionService, parse_strava_event
from src.services.strava_service import StravaService

logger = structlog.get_logger()

router = APIRouter()


@router.get(
    "/strava",
    summary="Strava subscription verification",
)
async def verify_strava_subscription(
    verify_token: str | None = Query(None, alias="hub.verify_token"),
    challenge: str | None = Query(None, alias="hub.challenge"),
) -> dict:
    """Echo the challenge when the verify token matches the configured one."""
    expected = settings.strava_webhook_verify_token
    if verify_token and challenge and expected and verify_token == expected:
        return {"hub.challenge": challenge}
    return {"ok": True}


@router.post(
    "/strava",
    response_model=WebhookAck,
    summary="Receive a Strava webhook event",
)
async def receive_strava_event(
    request: Request,
    db: AsyncSession = Depends(get_db),
    strava: StravaService = Depends(get_strava_service),
) -> WebhookAck:
    """Process one Strava event.

    Always acknowledged so the provider does not start a retry storm, except
    for fatal storage failures, which fail the request and roll back.
    """
    try:
        payload = await request.json()
    except ValueError:
        logger.warning("Webhook body is not valid JSON")
        return WebhookAck()

    service = IngestionService(db, strava)
    await service.log_webhook("strava", payload)

    try:
        event = parse_strava_event(payload)
    except WebhookValidationError as e:
        logger.warning("Webhook payload rejected", error=str(e))
        return WebhookAck()

    try:
        outcome = await service.handle_strava_event(event)
    except FatalStorageError:
        raise
    except SQLAlchemyError as e:
        raise FatalStorageError(f"Storage failed for object {event.object_id}") from e
    except Exception:
        logger.exception("Webhook processing failed", object_id=event.object_id)
        await db.rollback()
        return WebhookAck()

    logger.info("Webhook acknowledged", object_id=event.object_id, outcome=outcome.value)
    return WebhookAck()
