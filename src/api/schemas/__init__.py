from src.api.schemas.leaderboard import LeaderboardEntry, LeaderboardResponse
from src.api.schemas.league import LeagueCreate, LeagueDetail, MembershipCreate, PromotionCreate
from src.api.schemas.user import (
    ActivitySummary,
    ManualStepsCreate,
    UserCreate,
    UserDetail,
    WeeklyTotalsResponse,
)
from src.api.schemas.webhook import WebhookAck

__all__ = [
    "LeaderboardEntry",
    "LeaderboardResponse",
    "LeagueCreate",
    "LeagueDetail",
    "MembershipCreate",
    "PromotionCreate",
    "UserCreate",
    "UserDetail",
    "ActivitySummary",
    "WeeklyTotalsResponse",
    "ManualStepsCreate",
    "WebhookAck",
]
