"""Webhook ingestion pipeline.

Public API
----------
IngestionService.handle_strava_event(event)   -> IngestionOutcome
IngestionService.ingest_activity(user_id, raw) -> Activity

One inbound event is one unit of work on the request session. Provider and
credential failures are soft: they are logged and the event is skipped.
FatalStorageError propagates so the request fails and the provider retries.
"""

from collections.abc import Callable
from datetime import datetime
from enum import Enum

import structlog
from pydantic import BaseModel, ConfigDict, ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.errors import (
    CredentialInvalidError,
    DuplicateEventError,
    FatalStorageError,
    TransientProviderError,
    WebhookValidationError,
)
from src.db.models.activity import Activity
from src.db.models.event import WebhookLog
from src.services.activity_service import ActivityService
from src.services.credential_service import CredentialService
from src.services.event_ledger import EventLedger, derive_event_id
from src.services.normalizer import normalize_strava_activity
from src.services.scoring_service import ScoringService
from src.services.strava_service import StravaService

logger = structlog.get_logger()

OverlapDispatcher = Callable[[int, datetime, int | None], None]


class IngestionOutcome(str, Enum):
    PROCESSED = "processed"
    DUPLICATE = "duplicate"
    IGNORED = "ignored"
    INVALID = "invalid"
    UNKNOWN_OWNER = "unknown_owner"
    CREDENTIAL_UNAVAILABLE = "credential_unavailable"
    PROVIDER_ERROR = "provider_error"
    NOT_FOUND = "not_found"


class StravaWebhookEvent(BaseModel):
    model_config = ConfigDict(extra="allow")

    object_type: str
    aspect_type: str
    owner_id: int
    object_id: int
    event_time: int | None = None
    subscription_id: int | None = None
    updates: dict | None = None

    @property
    def event_id(self) -> int:
        return derive_event_id(
            self.subscription_id,
            self.object_type,
            self.object_id,
            self.aspect_type,
            self.event_time,
        )

    @property
    def is_activity_change(self) -> bool:
        return self.object_type == "activity" and self.aspect_type in ("create", "update")


def parse_strava_event(payload: object) -> StravaWebhookEvent:
    if not isinstance(payload, dict):
        raise WebhookValidationError("Webhook payload must be a JSON object")
    try:
        return StravaWebhookEvent.model_validate(payload)
    except ValidationError as e:
        raise WebhookValidationError(f"Malformed webhook payload: {e.error_count()} errors") from e


def dispatch_overlap_scan(user_id: int, start_time: datetime, duration_seconds: int | None) -> None:
    """Queue the overlap scan. Broker trouble is logged, never raised."""
    from src.workers.tasks.anticheat_tasks import scan_activity_overlaps

    try:
        scan_activity_overlaps.delay(user_id, start_time.isoformat(), duration_seconds)
    except Exception as e:
        logger.error(
            "Failed to queue overlap scan",
            user_id=user_id,
            start_time=start_time.isoformat(),
            error=str(e),
        )


class IngestionService:
    """Runs one provider event through dedup, fetch, normalize and scoring."""

    def __init__(
        self,
        db: AsyncSession,
        strava: StravaService | None = None,
        dispatch_overlaps: OverlapDispatcher = dispatch_overlap_scan,
    ) -> None:
        self.db = db
        self.strava = strava or StravaService()
        self.ledger = EventLedger(db)
        self.credentials = CredentialService(db, self.strava)
        self.activities = ActivityService(db)
        self.scoring = ScoringService(db)
        self.dispatch_overlaps = dispatch_overlaps

    async def log_webhook(self, source: str, payload: object) -> None:
        if not isinstance(payload, dict):
            payload = {"body": payload}
        self.db.add(WebhookLog(source=source, payload=payload))
        try:
            await self.db.flush()
        except SQLAlchemyError as e:
            logger.error("Webhook log write failed", source=source, error=str(e))
            raise FatalStorageError(f"Webhook log write failed for {source}") from e

    async def handle_strava_event(self, event: StravaWebhookEvent) -> IngestionOutcome:
        log = logger.bind(
            object_type=event.object_type,
            aspect_type=event.aspect_type,
            owner_id=event.owner_id,
            object_id=event.object_id,
        )

        try:
            await self.ledger.claim(event.event_id)
        except DuplicateEventError:
            return IngestionOutcome.DUPLICATE

        if not event.is_activity_change:
            log.info("Webhook event ignored")
            return IngestionOutcome.IGNORED

        credential = await self.credentials.get_by_provider_user(str(event.owner_id))
        if credential is None:
            log.info("No credential for webhook owner")
            return IngestionOutcome.UNKNOWN_OWNER

        access_token = await self.credentials.get_valid_token(credential)
        if access_token is None:
            return IngestionOutcome.CREDENTIAL_UNAVAILABLE

        try:
            raw = await self.strava.get_activity(access_token, event.object_id)
        except (TransientProviderError, CredentialInvalidError) as e:
            log.warning(
                "Activity fetch failed, skipping event",
                error_type=type(e).__name__,
                status_code=e.status_code,
                error=str(e),
            )
            return IngestionOutcome.PROVIDER_ERROR

        if raw is None:
            log.info("Activity no longer available")
            return IngestionOutcome.NOT_FOUND

        try:
            activity = await self.ingest_activity(credential.user_id, raw)
        except WebhookValidationError as e:
            log.warning("Activity payload rejected", error=str(e))
            return IngestionOutcome.INVALID

        log.info("Webhook event processed", activity_id=activity.id)
        return IngestionOutcome.PROCESSED

    async def ingest_activity(self, user_id: int, raw: dict) -> Activity:
        """Normalize, upsert and score one raw activity, then queue the scan.

        Commits before dispatching so the worker sees the activity.
        """
        try:
            normalized = normalize_strava_activity(user_id, raw)
        except ValidationError as e:
            raise WebhookValidationError(f"Malformed activity payload: {e.error_count()} errors") from e

        try:
            activity = await self.activities.upsert_activity(normalized)
            await self.scoring.award_points(activity)
            await self.db.commit()
        except SQLAlchemyError as e:
            logger.error("Activity persistence failed", user_id=user_id, error=str(e))
            raise FatalStorageError(f"Activity persistence failed for user {user_id}") from e

        self.dispatch_overlaps(activity.user_id, activity.start_time, activity.duration_seconds)
        return activity
