from datetime import date

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.schemas.leaderboard import LeaderboardEntry, LeaderboardResponse
from src.api.schemas.league import LeagueCreate, LeagueDetail, MembershipCreate, PromotionCreate
from src.core.errors import NotFoundError
from src.db import get_db
from src.services.leaderboard_service import LeaderboardService, current_week_start
from src.services.league_service import LeagueService
from src.services.user_service import UserService

router = APIRouter()


@router.post(
    "",
    response_model=LeagueDetail,
    status_code=status.HTTP_201_CREATED,
    summary="Create a league",
)
async def create_league(
    data: LeagueCreate,
    db: AsyncSession = Depends(get_db),
) -> LeagueDetail:
    """Create a league. The creator becomes its first admin."""
    await UserService(db).get_user(data.creator_id)
    league = await LeagueService(db).create_league(
        data.creator_id, data.name, data.description, data.is_public
    )
    await db.refresh(league)
    return LeagueDetail.model_validate(league)


@router.post(
    "/{league_id}/members",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Join a league",
)
async def join_league(
    league_id: int,
    data: MembershipCreate,
    db: AsyncSession = Depends(get_db),
) -> None:
    service = LeagueService(db)
    await service.get_league(league_id)
    await UserService(db).get_user(data.user_id)
    await service.join_league(league_id, data.user_id, data.role)


@router.delete(
    "/{league_id}/members/{user_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Leave a league",
)
async def leave_league(
    league_id: int,
    user_id: int,
    db: AsyncSession = Depends(get_db),
) -> None:
    if not await LeagueService(db).leave_league(league_id, user_id):
        raise NotFoundError(
            f"User {user_id} is not a member of league {league_id}",
            {"league_id": league_id, "user_id": user_id},
        )


@router.post(
    "/{league_id}/admins",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Promote a member to admin",
)
async def promote_member(
    league_id: int,
    data: PromotionCreate,
    db: AsyncSession = Depends(get_db),
) -> None:
    await LeagueService(db).promote_member(league_id, data.requester_id, data.target_user_id)


@router.get(
    "/{league_id}/leaderboard",
    response_model=LeaderboardResponse,
    summary="Get a league's weekly leaderboard",
)
async def get_league_leaderboard(
    league_id: int,
    week_start: date | None = Query(None, description="Monday of the week; defaults to this week"),
    limit: int = Query(10, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
) -> LeaderboardResponse:
    """Members ranked by points this week, highest first."""
    await LeagueService(db).get_league(league_id)
    week = week_start or current_week_start()
    rows = await LeaderboardService(db).get_league_leaderboard(league_id, week, limit)
    return LeaderboardResponse(
        league_id=league_id,
        week_start_date=week,
        entries=[LeaderboardEntry.model_validate(row) for row in rows],
    )
