from datetime import datetime
from enum import Enum

from sqlalchemy import BigInteger, DateTime, ForeignKey, Index, String, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from src.db.models.base import Base


class SuspectKind(str, Enum):
    OVERLAPPING_LONG_ACTIVITIES = "overlapping_long_activities"


class SuspectFlag(Base):
    """Advisory audit record for activity patterns worth a human look."""

    __tablename__ = "suspect_flags"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    kind: Mapped[str] = mapped_column(String(64), nullable=False)
    detail: Mapped[dict | None] = mapped_column(JSONB)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    __table_args__ = (Index("idx_suspect_flags_user_created", "user_id", "created_at"),)

    def __repr__(self) -> str:
        return f"<SuspectFlag {self.kind} user_id={self.user_id}>"
