from datetime import date, datetime, time, timezone

import structlog
from sqlalchemy import func, select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.config import settings
from src.core.errors import DuplicateActivityError, ManualEntryError
from src.db.models.activity import Activity, ActivitySource, ActivityType
from src.services.normalizer import NormalizedActivity
from src.services.scoring_service import ScoringService

logger = structlog.get_logger()


class ActivityService:
    """Service for persisting canonical activities."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def upsert_activity(self, normalized: NormalizedActivity) -> Activity:
        """Insert or refresh an activity keyed by (user_id, start_time, type).

        Redelivery of the same provider activity overwrites the metrics in
        place and returns the existing row.
        """
        values = {
            "user_id": normalized.user_id,
            "source": normalized.source.value,
            "type": normalized.type.value,
            "start_time": normalized.start_time,
            "duration_seconds": normalized.duration_seconds,
            "distance_meters": normalized.distance_meters,
            "steps": normalized.steps,
            "raw": normalized.raw,
        }
        stmt = insert(Activity).values(**values)
        stmt = stmt.on_conflict_do_update(
            constraint="uq_activities_user_start_type",
            set_={
                "duration_seconds": stmt.excluded.duration_seconds,
                "distance_meters": stmt.excluded.distance_meters,
                "steps": stmt.excluded.steps,
                "raw": stmt.excluded.raw,
                "updated_at": func.now(),
            },
        ).returning(Activity)

        activity = (
            await self.db.scalars(stmt, execution_options={"populate_existing": True})
        ).one()

        logger.info(
            "Activity upserted",
            activity_id=activity.id,
            user_id=activity.user_id,
            type=activity.type,
            start_time=activity.start_time.isoformat(),
        )
        return activity

    async def add_manual_steps(self, user_id: int, day: date, steps: int) -> Activity:
        """Record a manual daily step count and award its points."""
        if steps <= 0:
            raise ManualEntryError("Steps must be a positive number", {"steps": steps})
        if steps > settings.manual_steps_daily_limit:
            raise ManualEntryError(
                "Too many steps for a manual entry",
                {"steps": steps, "limit": settings.manual_steps_daily_limit},
            )

        start_time = datetime.combine(day, time.min, tzinfo=timezone.utc)
        stmt = (
            insert(Activity)
            .values(
                user_id=user_id,
                source=ActivitySource.MANUAL.value,
                type=ActivityType.STEPS.value,
                start_time=start_time,
                steps=steps,
            )
            .on_conflict_do_nothing(constraint="uq_activities_user_start_type")
            .returning(Activity)
        )
        activity = (await self.db.scalars(stmt)).one_or_none()
        if activity is None:
            raise DuplicateActivityError(
                f"Steps already recorded for {day.isoformat()}",
                {"day": day.isoformat()},
            )

        await ScoringService(self.db).award_points(activity)
        logger.info("Manual steps added", user_id=user_id, day=day.isoformat(), steps=steps)
        return activity

    async def recent_activities(self, user_id: int, limit: int = 3) -> list[Activity]:
        result = await self.db.execute(
            select(Activity)
            .where(Activity.user_id == user_id)
            .order_by(Activity.start_time.desc())
            .limit(limit)
        )
        return list(result.scalars().all())
