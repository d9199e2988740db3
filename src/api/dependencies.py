from src.services.strava_service import StravaService


def get_strava_service() -> StravaService:
    return StravaService()
