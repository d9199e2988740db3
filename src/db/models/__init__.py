from src.db.models.activity import Activity, ActivitySource, ActivityType, PointsEntry
from src.db.models.base import Base
from src.db.models.credential import Provider, ProviderCredential
from src.db.models.event import ProcessedEvent, WebhookLog
from src.db.models.league import League, LeagueMember, LeagueRole
from src.db.models.suspect import SuspectFlag, SuspectKind
from src.db.models.user import User

__all__ = [
    "Base",
    "User",
    "ProviderCredential",
    "Provider",
    "Activity",
    "ActivitySource",
    "ActivityType",
    "PointsEntry",
    "League",
    "LeagueMember",
    "LeagueRole",
    "ProcessedEvent",
    "WebhookLog",
    "SuspectFlag",
    "SuspectKind",
]
