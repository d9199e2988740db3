from urllib.parse import urlencode

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.dependencies import get_strava_service
from src.core.config import settings
from src.core.errors import ProviderError
from src.core.security import sign_state, verify_state
from src.db import get_db
from src.services.credential_service import CredentialService
from src.services.strava_service import StravaService
from src.services.user_service import UserService

logger = structlog.get_logger()

router = APIRouter()


def _redirect_uri(request: Request) -> str:
    base = settings.app_base_url or str(request.base_url).rstrip("/")
    return f"{base}/oauth/strava/callback"


@router.get(
    "/strava/start",
    summary="Start the Strava OAuth flow",
)
async def start_strava_oauth(
    request: Request,
    uid: int = Query(..., description="User id to link"),
) -> RedirectResponse:
    """Redirect to Strava's authorize page with a signed state."""
    params = {
        "client_id": settings.strava_client_id or "",
        "response_type": "code",
        "redirect_uri": _redirect_uri(request),
        "approval_prompt": "auto",
        "scope": settings.strava_oauth_scope,
        "state": sign_state(uid),
    }
    return RedirectResponse(
        url=f"{settings.strava_authorize_url}?{urlencode(params)}",
        status_code=status.HTTP_302_FOUND,
    )


@router.get(
    "/strava/callback",
    summary="Complete the Strava OAuth flow",
)
async def complete_strava_oauth(
    code: str | None = Query(None),
    state: str | None = Query(None),
    db: AsyncSession = Depends(get_db),
    strava: StravaService = Depends(get_strava_service),
) -> dict:
    """Store the user's Strava credential and queue an initial backfill."""
    if not code:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing code")
    user_id = verify_state(state or "")
    if user_id is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid state")

    await UserService(db).get_user(user_id)

    try:
        token_payload = await strava.exchange_code(code)
        credential = await CredentialService(db, strava).save_authorization(user_id, token_payload)
    except ProviderError as e:
        logger.warning("OAuth exchange failed", user_id=user_id, error=str(e))
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="OAuth failed")

    await db.commit()

    from src.workers.tasks.strava_tasks import backfill_recent_activities

    try:
        backfill_recent_activities.delay(user_id)
    except Exception as e:
        logger.error("Failed to queue backfill", user_id=user_id, error=str(e))

    return {
        "ok": True,
        "provider": credential.provider,
        "provider_user_id": credential.provider_user_id,
    }
