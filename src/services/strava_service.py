from datetime import datetime

import httpx
import structlog
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from src.core.config import settings
from src.core.errors import CredentialInvalidError, TransientProviderError

logger = structlog.get_logger()


class StravaService:
    """Service for interacting with the Strava OAuth and activity APIs.

    Every call has a bounded timeout. Failures surface as
    TransientProviderError or CredentialInvalidError; callers decide whether
    to skip the event.
    """

    def __init__(self, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self.oauth_base_url = settings.strava_oauth_base_url
        self.api_base_url = settings.strava_api_base_url
        self.timeout = httpx.Timeout(settings.strava_http_timeout_seconds)
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self._transport)

    async def _token_request(self, payload: dict) -> dict:
        if not settings.strava_client_id or not settings.strava_client_secret:
            raise CredentialInvalidError("Strava client credentials are not configured")

        body = {
            "client_id": settings.strava_client_id,
            "client_secret": settings.strava_client_secret,
            **payload,
        }
        try:
            async with self._client() as client:
                response = await client.post(f"{self.oauth_base_url}/oauth/token", json=body)
        except httpx.HTTPError as e:
            raise TransientProviderError(f"Token endpoint unreachable: {e}") from e

        if response.status_code >= 500:
            raise TransientProviderError(
                "Token endpoint server error", status_code=response.status_code
            )
        if response.status_code >= 400:
            raise CredentialInvalidError(
                "Token endpoint rejected the request", status_code=response.status_code
            )
        if response.status_code != 200:
            raise TransientProviderError(
                "Unexpected token endpoint response", status_code=response.status_code
            )
        try:
            return response.json()
        except ValueError as e:
            raise TransientProviderError("Token endpoint returned invalid JSON") from e

    async def refresh_token(self, refresh_token: str) -> dict:
        """Exchange a refresh token for a new access token.

        Returns the provider payload with access_token, refresh_token and
        expires_in.
        """
        return await self._token_request(
            {"grant_type": "refresh_token", "refresh_token": refresh_token}
        )

    async def exchange_code(self, code: str) -> dict:
        """Exchange an OAuth authorization code for tokens and athlete info."""
        return await self._token_request({"grant_type": "authorization_code", "code": code})

    async def get_activity(self, access_token: str, activity_id: int) -> dict | None:
        """Fetch full activity detail. Returns None if the activity is gone."""
        try:
            async with self._client() as client:
                response = await client.get(
                    f"{self.api_base_url}/activities/{activity_id}",
                    headers={"Authorization": f"Bearer {access_token}"},
                    params={"include_all_efforts": "false"},
                )
        except httpx.HTTPError as e:
            raise TransientProviderError(f"Activity endpoint unreachable: {e}") from e

        if response.status_code == 404:
            return None
        if response.status_code in (401, 403):
            raise CredentialInvalidError(
                "Access token rejected", status_code=response.status_code
            )
        if response.status_code != 200:
            raise TransientProviderError(
                "Activity fetch failed", status_code=response.status_code
            )
        try:
            return response.json()
        except ValueError as e:
            raise TransientProviderError("Activity endpoint returned invalid JSON") from e

    @retry(
        retry=retry_if_exception_type(TransientProviderError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def list_activities(
        self,
        access_token: str,
        after: datetime,
        per_page: int = 100,
        page: int = 1,
    ) -> list[dict]:
        """List the athlete's activities started after `after` (summary shape)."""
        try:
            async with self._client() as client:
                response = await client.get(
                    f"{self.api_base_url}/athlete/activities",
                    headers={"Authorization": f"Bearer {access_token}"},
                    params={"after": int(after.timestamp()), "per_page": per_page, "page": page},
                )
        except httpx.HTTPError as e:
            raise TransientProviderError(f"Activity list unreachable: {e}") from e

        if response.status_code in (401, 403):
            raise CredentialInvalidError(
                "Access token rejected", status_code=response.status_code
            )
        if response.status_code != 200:
            raise TransientProviderError(
                "Activity list failed", status_code=response.status_code
            )
        return response.json()
