"""Map raw provider activity payloads onto the canonical activity record."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

import structlog
from pydantic import BaseModel, ConfigDict, field_validator

from src.core.config import settings
from src.db.models.activity import ActivitySource, ActivityType

logger = structlog.get_logger()


# Strava sport_type / legacy type -> canonical type. Anything missing from
# this table falls back to `settings.default_activity_type`.
STRAVA_TYPE_MAP: dict[str, ActivityType] = {
    "Run": ActivityType.RUN,
    "TrailRun": ActivityType.RUN,
    "VirtualRun": ActivityType.RUN,
    "Ride": ActivityType.RIDE,
    "VirtualRide": ActivityType.RIDE,
    "MountainBikeRide": ActivityType.RIDE,
    "GravelRide": ActivityType.RIDE,
    "EBikeRide": ActivityType.RIDE,
    "EMountainBikeRide": ActivityType.RIDE,
    "Swim": ActivityType.SWIM,
}


class StravaActivityPayload(BaseModel):
    """Permissive view of a Strava activity detail response.

    Unknown fields are kept; missing, null or negative metrics become 0.
    """

    model_config = ConfigDict(extra="allow")

    id: int | None = None
    type: str | None = None
    sport_type: str | None = None
    distance: float = 0.0
    moving_time: float = 0.0
    elapsed_time: float = 0.0
    start_date: datetime | None = None
    start_date_local: datetime | None = None
    trainer: bool = False
    commute: bool = False

    @field_validator("distance", "moving_time", "elapsed_time", mode="before")
    @classmethod
    def coerce_metric(cls, v: Any) -> float:
        try:
            value = float(v or 0)
        except (TypeError, ValueError):
            return 0.0
        return value if value > 0 else 0.0

    @field_validator("start_date", "start_date_local", mode="before")
    @classmethod
    def drop_blank_dates(cls, v: Any) -> Any:
        return v or None

    @field_validator("trainer", "commute", mode="before")
    @classmethod
    def coerce_flag(cls, v: Any) -> bool:
        return bool(v)


@dataclass
class NormalizedActivity:
    user_id: int
    source: ActivitySource
    type: ActivityType
    start_time: datetime
    duration_seconds: int | None = None
    distance_meters: int | None = None
    steps: int | None = None
    raw: dict[str, Any] = field(default_factory=dict)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def map_strava_type(sport_type: str | None, legacy_type: str | None) -> ActivityType:
    for candidate in (sport_type, legacy_type):
        if candidate and candidate in STRAVA_TYPE_MAP:
            return STRAVA_TYPE_MAP[candidate]

    fallback = ActivityType(settings.default_activity_type)
    logger.info(
        "Unmapped activity type, using default",
        sport_type=sport_type,
        type=legacy_type,
        default=fallback.value,
    )
    return fallback


def normalize_strava_activity(user_id: int, raw: dict[str, Any]) -> NormalizedActivity:
    """Build the canonical activity for a Strava activity detail payload.

    Never raises on absent fields: metrics default to zero and the start time
    falls back to now.
    """
    payload = StravaActivityPayload.model_validate(raw or {})

    start = payload.start_date or payload.start_date_local or datetime.now(timezone.utc)

    return NormalizedActivity(
        user_id=user_id,
        source=ActivitySource.STRAVA,
        type=map_strava_type(payload.sport_type, payload.type),
        start_time=_as_utc(start),
        duration_seconds=round(payload.moving_time or payload.elapsed_time),
        distance_meters=round(payload.distance),
        raw=dict(raw or {}),
    )
