from enum import Enum

from sqlalchemy import ForeignKey, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.db.models.base import Base, TimestampMixin


class LeagueRole(str, Enum):
    MEMBER = "member"
    ADMIN = "admin"


class League(Base, TimestampMixin):
    __tablename__ = "leagues"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    is_public: Mapped[bool] = mapped_column(default=False)
    created_by: Mapped[int | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
    )

    # Relationships
    members = relationship(
        "LeagueMember",
        back_populates="league",
        cascade="all, delete-orphan",
    )

    __table_args__ = (Index("idx_leagues_public_name", "is_public", "name"),)

    def __repr__(self) -> str:
        return f"<League {self.name}>"


class LeagueMember(Base, TimestampMixin):
    __tablename__ = "league_members"

    id: Mapped[int] = mapped_column(primary_key=True)
    league_id: Mapped[int] = mapped_column(
        ForeignKey("leagues.id", ondelete="CASCADE"),
        nullable=False,
    )
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    role: Mapped[str] = mapped_column(String(20), default=LeagueRole.MEMBER.value, nullable=False)

    # Relationships
    league = relationship("League", back_populates="members")
    user = relationship("User", back_populates="league_memberships")

    __table_args__ = (
        UniqueConstraint("league_id", "user_id", name="uq_league_members_league_user"),
        Index("idx_league_members_user", "user_id"),
    )

    def __repr__(self) -> str:
        return f"<LeagueMember league_id={self.league_id} user_id={self.user_id} {self.role}>"
