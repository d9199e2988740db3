from datetime import datetime, timedelta, timezone

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.config import settings
from src.db.models.activity import Activity
from src.db.models.suspect import SuspectFlag, SuspectKind

logger = structlog.get_logger()


class OverlapDetector:
    """Flags long activities that overlap other activities of the same user.

    Detection only: flags are audit records for operators and never touch
    awarded points. Reads are not isolated from concurrent inserts, so a
    flag can occasionally be missed or written twice.
    """

    def __init__(self, db: AsyncSession) -> None:
        self.db = db
        self.min_duration_seconds = settings.overlap_min_duration_seconds
        self.window = timedelta(hours=settings.overlap_window_hours)

    async def flag_overlaps(
        self,
        user_id: int,
        start_time: datetime,
        duration_seconds: int | None,
    ) -> bool:
        """Return True if a suspect flag was written for this activity."""
        duration = int(duration_seconds or 0)
        if duration < self.min_duration_seconds:
            return False

        if start_time.tzinfo is None:
            start_time = start_time.replace(tzinfo=timezone.utc)
        end_time = start_time + timedelta(seconds=duration)
        window_start = start_time - self.window
        window_end = end_time + self.window

        # The activity under test is excluded by its start time, since it may
        # not have an id yet when the scan runs.
        result = await self.db.execute(
            select(Activity.id, Activity.type, Activity.start_time, Activity.duration_seconds)
            .where(
                Activity.user_id == user_id,
                Activity.start_time >= window_start,
                Activity.start_time <= window_end,
                Activity.start_time != start_time,
            )
            .order_by(Activity.start_time)
        )
        overlaps = [
            {
                "id": row.id,
                "type": row.type,
                "start_time": row.start_time.isoformat(),
                "duration_seconds": row.duration_seconds,
            }
            for row in result.all()
        ]
        if not overlaps:
            return False

        self.db.add(
            SuspectFlag(
                user_id=user_id,
                kind=SuspectKind.OVERLAPPING_LONG_ACTIVITIES.value,
                detail={
                    "user_id": user_id,
                    "start_time": start_time.isoformat(),
                    "duration_seconds": duration,
                    "window": [window_start.isoformat(), window_end.isoformat()],
                    "overlaps": overlaps,
                },
            )
        )
        await self.db.commit()

        logger.warning(
            "Overlapping long activities flagged",
            user_id=user_id,
            start_time=start_time.isoformat(),
            duration_seconds=duration,
            overlap_count=len(overlaps),
        )
        return True
