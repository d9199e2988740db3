from dataclasses import dataclass, field
from datetime import date, datetime, timezone

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.config import settings
from src.core.errors import DomainError
from src.db.models.activity import Activity, PointsEntry
from src.db.models.league import LeagueMember
from src.services.activity_service import ActivityService
from src.services.scoring_service import week_start_date

logger = structlog.get_logger()


@dataclass
class LeaderboardRow:
    rank: int
    user_id: int
    league_id: int
    week_start_date: date
    points_total: int


@dataclass
class WeeklyTotals:
    user_id: int
    week_start_date: date
    total: int
    recent: list[Activity] = field(default_factory=list)


def current_week_start() -> date:
    return week_start_date(datetime.now(timezone.utc))


class LeaderboardService:
    """Service for computing weekly league standings on read."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def get_league_leaderboard(
        self,
        league_id: int,
        week_start: date | None = None,
        limit: int | None = None,
    ) -> list[LeaderboardRow]:
        """Rank league members by points earned in one week.

        Ordered by points total descending. Ties go to the member whose first
        scored activity of the week started earlier, then to the lower user id.
        """
        if limit is None:
            limit = settings.leaderboard_default_limit
        if limit < 0:
            raise DomainError("Leaderboard limit must not be negative", {"limit": limit})
        week = week_start or current_week_start()

        points_total = func.sum(PointsEntry.points).label("points_total")
        first_activity_at = func.min(Activity.start_time).label("first_activity_at")

        result = await self.db.execute(
            select(PointsEntry.user_id, points_total, first_activity_at)
            .join(Activity, Activity.id == PointsEntry.activity_id)
            .join(LeagueMember, LeagueMember.user_id == PointsEntry.user_id)
            .where(
                LeagueMember.league_id == league_id,
                PointsEntry.week_start_date == week,
            )
            .group_by(PointsEntry.user_id)
            .order_by(points_total.desc(), first_activity_at.asc(), PointsEntry.user_id.asc())
            .limit(limit)
        )

        rows = [
            LeaderboardRow(
                rank=position,
                user_id=row.user_id,
                league_id=league_id,
                week_start_date=week,
                points_total=int(row.points_total or 0),
            )
            for position, row in enumerate(result.all(), start=1)
        ]
        logger.debug(
            "Leaderboard computed",
            league_id=league_id,
            week_start_date=week.isoformat(),
            rows=len(rows),
        )
        return rows

    async def get_weekly_totals(self, user_id: int, recent_limit: int = 3) -> WeeklyTotals:
        """Points earned this week plus the user's latest activities."""
        week = current_week_start()

        total_result = await self.db.execute(
            select(func.coalesce(func.sum(PointsEntry.points), 0)).where(
                PointsEntry.user_id == user_id,
                PointsEntry.week_start_date == week,
            )
        )
        total = int(total_result.scalar() or 0)

        recent = await ActivityService(self.db).recent_activities(user_id, recent_limit)

        return WeeklyTotals(user_id=user_id, week_start_date=week, total=total, recent=recent)
