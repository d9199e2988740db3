from datetime import datetime

import structlog
from sqlalchemy.exc import SQLAlchemyError

from src.db.database import worker_session
from src.services.anticheat_service import OverlapDetector
from src.workers.celery_app import celery_app
from src.workers.utils import run_async

logger = structlog.get_logger()


@celery_app.task(bind=True, max_retries=3)
def scan_activity_overlaps(
    self,
    user_id: int,
    start_time: str,
    duration_seconds: int | None,
) -> dict:
    """
    Check a freshly ingested activity for overlapping long activities.

    Runs after the ingestion transaction has committed. Writes a suspect
    flag when an overlap is found; never touches points.
    """
    return run_async(_scan_activity_overlaps_async(self, user_id, start_time, duration_seconds))


async def _scan_activity_overlaps_async(
    task,
    user_id: int,
    start_time: str,
    duration_seconds: int | None,
) -> dict:
    async with worker_session() as db:
        try:
            flagged = await OverlapDetector(db).flag_overlaps(
                user_id,
                datetime.fromisoformat(start_time),
                duration_seconds,
            )
        except SQLAlchemyError as exc:
            logger.error(
                "Overlap scan failed",
                user_id=user_id,
                start_time=start_time,
                error=str(exc),
            )
            await db.rollback()
            raise task.retry(exc=exc, countdown=30 * (task.request.retries + 1))

    return {
        "status": "completed",
        "user_id": user_id,
        "start_time": start_time,
        "flagged": flagged,
    }
