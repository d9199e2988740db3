from datetime import datetime

from pydantic import BaseModel, Field

from src.db.models.league import LeagueRole


class LeagueCreate(BaseModel):
    creator_id: int
    name: str = Field(..., min_length=1, max_length=255)
    description: str | None = None
    is_public: bool = False


class LeagueDetail(BaseModel):
    id: int
    name: str
    description: str | None
    is_public: bool
    created_by: int | None
    created_at: datetime

    model_config = {"from_attributes": True}


class MembershipCreate(BaseModel):
    user_id: int
    role: LeagueRole = LeagueRole.MEMBER


class PromotionCreate(BaseModel):
    requester_id: int
    target_user_id: int
