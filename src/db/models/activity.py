from datetime import date, datetime
from enum import Enum

from sqlalchemy import BigInteger, Date, DateTime, ForeignKey, Index, String, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.db.models.base import Base, TimestampMixin


class ActivitySource(str, Enum):
    STRAVA = "strava"
    MANUAL = "manual"


class ActivityType(str, Enum):
    STEPS = "steps"
    RUN = "run"
    RIDE = "ride"
    SWIM = "swim"


class Activity(Base, TimestampMixin):
    __tablename__ = "activities"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    source: Mapped[str] = mapped_column(String(20), nullable=False)
    type: Mapped[str] = mapped_column(String(20), nullable=False)
    start_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    duration_seconds: Mapped[int | None] = mapped_column()
    distance_meters: Mapped[int | None] = mapped_column()
    steps: Mapped[int | None] = mapped_column()
    raw: Mapped[dict | None] = mapped_column(JSONB)

    # Relationships
    user = relationship("User", back_populates="activities")
    points_entry = relationship(
        "PointsEntry",
        back_populates="activity",
        uselist=False,
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        UniqueConstraint("user_id", "start_time", "type", name="uq_activities_user_start_type"),
        Index("idx_activities_user_start", "user_id", "start_time"),
    )

    def __repr__(self) -> str:
        return f"<Activity {self.type} user_id={self.user_id} start={self.start_time}>"


class PointsEntry(Base, TimestampMixin):
    __tablename__ = "points"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    activity_id: Mapped[int] = mapped_column(
        ForeignKey("activities.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
    )
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    week_start_date: Mapped[date] = mapped_column(Date, nullable=False)
    points: Mapped[int] = mapped_column(nullable=False)
    reason: Mapped[str | None] = mapped_column(Text)

    # Relationships
    activity = relationship("Activity", back_populates="points_entry")

    __table_args__ = (
        Index("idx_points_user_week", "user_id", "week_start_date"),
        Index("idx_points_week", "week_start_date"),
    )

    def __repr__(self) -> str:
        return f"<PointsEntry activity_id={self.activity_id} points={self.points}>"
