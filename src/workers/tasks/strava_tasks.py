from datetime import datetime, timedelta, timezone

import structlog

from src.core.config import settings
from src.core.errors import FatalStorageError, ProviderError, WebhookValidationError
from src.db.database import worker_session
from src.services.credential_service import CredentialService
from src.services.ingestion_service import IngestionService
from src.services.strava_service import StravaService
from src.workers.celery_app import celery_app
from src.workers.utils import run_async

logger = structlog.get_logger()


@celery_app.task(bind=True, max_retries=3)
def backfill_recent_activities(self, user_id: int) -> dict:
    """
    Import a newly connected user's recent Strava activities.

    Queued after the OAuth callback stores a credential. Activities go
    through the same normalize, upsert and scoring path as webhook events,
    so a later webhook for the same activity is a no-op for points.
    """
    return run_async(_backfill_recent_activities_async(self, user_id))


async def _backfill_recent_activities_async(task, user_id: int) -> dict:
    logger.info("Starting activity backfill", user_id=user_id)

    async with worker_session() as db:
        strava = StravaService()
        credentials = CredentialService(db, strava)

        credential = await credentials.get_for_user(user_id)
        if credential is None:
            logger.warning("Backfill skipped, no credential", user_id=user_id)
            return {"status": "skipped", "user_id": user_id, "reason": "no_credential"}

        access_token = await credentials.get_valid_token(credential)
        await db.commit()
        if access_token is None:
            return {"status": "skipped", "user_id": user_id, "reason": "credential_unavailable"}

        after = datetime.now(timezone.utc) - timedelta(days=settings.backfill_days)
        try:
            summaries = await strava.list_activities(access_token, after)
        except ProviderError as exc:
            logger.warning(
                "Backfill listing failed",
                user_id=user_id,
                status_code=exc.status_code,
                error=str(exc),
            )
            return {"status": "failed", "user_id": user_id, "reason": type(exc).__name__}

        ingestion = IngestionService(db, strava)
        imported = 0
        skipped = 0
        for summary in summaries:
            try:
                await ingestion.ingest_activity(user_id, summary)
                imported += 1
            except WebhookValidationError as exc:
                skipped += 1
                logger.warning(
                    "Backfill activity rejected",
                    user_id=user_id,
                    activity_id=summary.get("id"),
                    error=str(exc),
                )
            except FatalStorageError as exc:
                await db.rollback()
                raise task.retry(exc=exc, countdown=60 * (task.request.retries + 1))

    logger.info("Activity backfill completed", user_id=user_id, imported=imported, skipped=skipped)
    return {"status": "completed", "user_id": user_id, "imported": imported, "skipped": skipped}
