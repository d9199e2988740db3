import math
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Any, Protocol

import structlog
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from src.db.models.activity import Activity, ActivityType, PointsEntry

logger = structlog.get_logger()


# Upper bounds applied before flooring. They cap the effect of GPS drift and
# spoofed uploads on a single activity.
MAX_STEPS = 100_000
MAX_KM = {
    ActivityType.RUN: 100.0,
    ActivityType.RIDE: 300.0,
    ActivityType.SWIM: 20.0,
}

RUN_BONUS_THRESHOLD_KM = 5.0
RUN_BONUS_POINTS = 5
RIDE_POINTS_PER_KM = 0.5
SWIM_POINTS_PER_KM = 3.0
REDUCED_RIDE_FACTOR = 0.5


class ScorableActivity(Protocol):
    type: str
    steps: int | None
    distance_meters: int | None
    raw: dict | None


@dataclass(frozen=True)
class PointsResult:
    points: int
    reason: str


def to_kilometers(distance_meters: float | None) -> float:
    if not distance_meters or distance_meters <= 0:
        return 0.0
    return distance_meters / 1000


def clamp_km(activity_type: ActivityType, km: float) -> float:
    if km <= 0:
        return 0.0
    limit = MAX_KM.get(activity_type)
    return min(km, limit) if limit is not None else km


def clamp_steps(steps: float | None) -> int:
    if not steps or steps <= 0:
        return 0
    return int(min(steps, MAX_STEPS))


def is_reduced_ride(raw: dict[str, Any] | None) -> bool:
    """Trainer and commute rides earn half points."""
    raw = raw or {}
    return bool(raw.get("trainer") or raw.get("from_trainer") or raw.get("commute"))


def calculate_points(activity: ScorableActivity) -> PointsResult:
    """Score a single activity.

    Pure function of the activity's type, metrics and raw provider flags.
    The same input always yields the same points and reason.
    """
    try:
        activity_type = ActivityType(activity.type)
    except ValueError:
        return PointsResult(points=0, reason=f"{activity.type} unscored")

    if activity_type == ActivityType.STEPS:
        steps = clamp_steps(activity.steps)
        return PointsResult(points=steps // 1000, reason=f"steps {steps}")

    km = clamp_km(activity_type, to_kilometers(activity.distance_meters))
    reason = f"{activity_type.value} {km:.2f}km"

    if activity_type == ActivityType.RUN:
        points = math.floor(km)
        if km >= RUN_BONUS_THRESHOLD_KM:
            points += RUN_BONUS_POINTS
            reason += f" +bonus{RUN_BONUS_POINTS}"
    elif activity_type == ActivityType.RIDE:
        points = math.floor(km * RIDE_POINTS_PER_KM)
        if is_reduced_ride(activity.raw):
            points = math.floor(points * REDUCED_RIDE_FACTOR)
            reason += " (reduced)"
    elif activity_type == ActivityType.SWIM:
        points = math.floor(km * SWIM_POINTS_PER_KM)
    else:
        points = 0

    return PointsResult(points=max(0, points), reason=reason)


def week_start_date(moment: datetime) -> date:
    """Monday (UTC) of the ISO week containing `moment`. Naive values are UTC."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    day = moment.astimezone(timezone.utc).date()
    return day - timedelta(days=day.weekday())


class ScoringService:
    """Service for turning scored activities into points entries."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def award_points(self, activity: Activity) -> PointsEntry | None:
        """Insert the points entry for an activity.

        Idempotent on activity id: returns None when the activity was already
        scored, so redelivered events never award points twice.
        """
        result = calculate_points(activity)
        week = week_start_date(activity.start_time)

        stmt = (
            insert(PointsEntry)
            .values(
                activity_id=activity.id,
                user_id=activity.user_id,
                week_start_date=week,
                points=result.points,
                reason=result.reason,
            )
            .on_conflict_do_nothing(index_elements=[PointsEntry.activity_id])
            .returning(PointsEntry)
        )
        entry = (await self.db.scalars(stmt)).one_or_none()

        if entry is None:
            logger.info("Activity already scored", activity_id=activity.id)
            return None

        logger.info(
            "Activity scored",
            activity_id=activity.id,
            user_id=activity.user_id,
            points=result.points,
            reason=result.reason,
            week_start_date=week.isoformat(),
        )
        return entry
