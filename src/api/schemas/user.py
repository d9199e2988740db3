from datetime import date, datetime

from pydantic import BaseModel, Field


class UserCreate(BaseModel):
    username: str | None = Field(None, max_length=255)
    display_name: str | None = Field(None, max_length=255)


class UserDetail(BaseModel):
    id: int
    username: str | None
    display_name: str | None
    created_at: datetime

    model_config = {"from_attributes": True}


class ActivitySummary(BaseModel):
    id: int
    source: str
    type: str
    start_time: datetime
    duration_seconds: int | None
    distance_meters: int | None
    steps: int | None

    model_config = {"from_attributes": True}


class WeeklyTotalsResponse(BaseModel):
    user_id: int
    week_start_date: date
    total: int
    recent: list[ActivitySummary]

    model_config = {"from_attributes": True}


class ManualStepsCreate(BaseModel):
    day: date | None = None
    steps: int = Field(..., gt=0)
