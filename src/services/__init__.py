from src.services.activity_service import ActivityService
from src.services.anticheat_service import OverlapDetector
from src.services.credential_service import CredentialService
from src.services.event_ledger import EventLedger
from src.services.ingestion_service import IngestionService
from src.services.leaderboard_service import LeaderboardService
from src.services.league_service import LeagueService
from src.services.scoring_service import ScoringService
from src.services.strava_service import StravaService
from src.services.user_service import UserService

__all__ = [
    "ActivityService",
    "CredentialService",
    "EventLedger",
    "IngestionService",
    "LeaderboardService",
    "LeagueService",
    "OverlapDetector",
    "ScoringService",
    "StravaService",
    "UserService",
]
