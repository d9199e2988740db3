from datetime import datetime, timezone

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.schemas.user import (
    ActivitySummary,
    ManualStepsCreate,
    UserCreate,
    UserDetail,
    WeeklyTotalsResponse,
)
from src.db import get_db
from src.services.activity_service import ActivityService
from src.services.leaderboard_service import LeaderboardService
from src.services.user_service import UserService

router = APIRouter()


@router.post(
    "",
    response_model=UserDetail,
    status_code=status.HTTP_201_CREATED,
    summary="Create a user",
)
async def create_user(
    data: UserCreate,
    db: AsyncSession = Depends(get_db),
) -> UserDetail:
    service = UserService(db)
    user = await service.create_user(data.username, data.display_name)
    await db.refresh(user)
    return UserDetail.model_validate(user)


@router.get(
    "/{user_id}",
    response_model=UserDetail,
    summary="Get a user",
)
async def get_user(
    user_id: int,
    db: AsyncSession = Depends(get_db),
) -> UserDetail:
    user = await UserService(db).get_user(user_id)
    return UserDetail.model_validate(user)


@router.get(
    "/{user_id}/weekly-totals",
    response_model=WeeklyTotalsResponse,
    summary="Get this week's points for a user",
)
async def get_weekly_totals(
    user_id: int,
    db: AsyncSession = Depends(get_db),
) -> WeeklyTotalsResponse:
    """Points earned in the current ISO week plus the latest activities."""
    await UserService(db).get_user(user_id)
    totals = await LeaderboardService(db).get_weekly_totals(user_id)
    return WeeklyTotalsResponse.model_validate(totals)


@router.post(
    "/{user_id}/manual-steps",
    response_model=ActivitySummary,
    status_code=status.HTTP_201_CREATED,
    summary="Record a manual daily step count",
)
async def add_manual_steps(
    user_id: int,
    data: ManualStepsCreate,
    db: AsyncSession = Depends(get_db),
) -> ActivitySummary:
    """Manual entries are capped per day and scored like provider steps."""
    await UserService(db).get_user(user_id)
    day = data.day or datetime.now(timezone.utc).date()
    activity = await ActivityService(db).add_manual_steps(user_id, day, data.steps)
    return ActivitySummary.model_validate(activity)
