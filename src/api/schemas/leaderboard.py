from datetime import date

from pydantic import BaseModel


class LeaderboardEntry(BaseModel):
    rank: int
    user_id: int
    league_id: int
    week_start_date: date
    points_total: int

    model_config = {"from_attributes": True}


class LeaderboardResponse(BaseModel):
    league_id: int
    week_start_date: date
    entries: list[LeaderboardEntry]
