import structlog
from sqlalchemy import delete, select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.config import settings
from src.core.errors import NotFoundError, PermissionDeniedError
from src.db.models.league import League, LeagueMember, LeagueRole

logger = structlog.get_logger()


class LeagueService:
    """Service for leagues and their membership."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def get_league(self, league_id: int) -> League:
        league = await self.db.get(League, league_id)
        if league is None:
            raise NotFoundError(f"League {league_id} not found", {"league_id": league_id})
        return league

    async def create_league(
        self,
        creator_id: int,
        name: str,
        description: str | None = None,
        is_public: bool = False,
    ) -> League:
        """Create a league with its creator as the first admin."""
        league = League(
            name=name,
            description=description,
            is_public=is_public,
            created_by=creator_id,
        )
        self.db.add(league)
        await self.db.flush()

        await self.join_league(league.id, creator_id, LeagueRole.ADMIN)
        logger.info("League created", league_id=league.id, name=name, creator_id=creator_id)
        return league

    async def ensure_default_public_league(self) -> League:
        result = await self.db.execute(
            select(League)
            .where(League.is_public.is_(True), League.name.ilike(settings.default_league_name))
            .order_by(League.id)
            .limit(1)
        )
        league = result.scalar_one_or_none()
        if league:
            return league

        league = League(
            name=settings.default_league_name,
            description="Everyone welcome",
            is_public=True,
        )
        self.db.add(league)
        await self.db.flush()
        logger.info("Default public league created", league_id=league.id)
        return league

    async def join_league(
        self,
        league_id: int,
        user_id: int,
        role: LeagueRole = LeagueRole.MEMBER,
    ) -> None:
        """Add a member, or set the role of an existing one."""
        stmt = insert(LeagueMember).values(league_id=league_id, user_id=user_id, role=role.value)
        stmt = stmt.on_conflict_do_update(
            constraint="uq_league_members_league_user",
            set_={"role": stmt.excluded.role},
        )
        await self.db.execute(stmt)
        logger.info("League membership updated", league_id=league_id, user_id=user_id, role=role.value)

    async def leave_league(self, league_id: int, user_id: int) -> bool:
        result = await self.db.execute(
            delete(LeagueMember).where(
                LeagueMember.league_id == league_id,
                LeagueMember.user_id == user_id,
            )
        )
        left = result.rowcount > 0
        if left:
            logger.info("League membership removed", league_id=league_id, user_id=user_id)
        return left

    async def is_league_admin(self, league_id: int, user_id: int) -> bool:
        result = await self.db.execute(
            select(LeagueMember.role).where(
                LeagueMember.league_id == league_id,
                LeagueMember.user_id == user_id,
            )
        )
        return result.scalar_one_or_none() == LeagueRole.ADMIN.value

    async def promote_member(self, league_id: int, requester_id: int, target_user_id: int) -> None:
        if not await self.is_league_admin(league_id, requester_id):
            raise PermissionDeniedError(
                "Not a league admin",
                {"league_id": league_id, "user_id": requester_id},
            )
        await self.join_league(league_id, target_user_id, LeagueRole.ADMIN)
