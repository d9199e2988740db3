from datetime import datetime, timedelta, timezone

import structlog
from sqlalchemy import func, select, update
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.errors import CredentialInvalidError, FatalStorageError, TransientProviderError
from src.db.models.credential import Provider, ProviderCredential
from src.services.strava_service import StravaService

logger = structlog.get_logger()


def _expiry_from(expires_in: object, now: datetime) -> datetime:
    try:
        seconds = int(expires_in or 0)
    except (TypeError, ValueError):
        seconds = 0
    return now + timedelta(seconds=seconds)


def is_expired(credential: ProviderCredential, now: datetime) -> bool:
    """Credentials without an expiry never need a refresh."""
    if credential.expires_at is None:
        return False
    expires_at = credential.expires_at
    if expires_at.tzinfo is None:
        expires_at = expires_at.replace(tzinfo=timezone.utc)
    return expires_at <= now


class CredentialService:
    """Owns per-user provider OAuth tokens and keeps them fresh."""

    def __init__(self, db: AsyncSession, strava: StravaService | None = None) -> None:
        self.db = db
        self.strava = strava or StravaService()

    async def _execute(self, stmt, action: str, **kwargs):
        try:
            return await self.db.execute(stmt, **kwargs)
        except SQLAlchemyError as e:
            logger.error("Credential storage failed", action=action, error=str(e))
            raise FatalStorageError(f"Credential {action} failed") from e

    async def get_by_provider_user(
        self,
        provider_user_id: str,
        provider: str = Provider.STRAVA.value,
    ) -> ProviderCredential | None:
        """Find the credential linked to a provider-side account id."""
        result = await self._execute(
            select(ProviderCredential)
            .where(
                ProviderCredential.provider == provider,
                ProviderCredential.provider_user_id == str(provider_user_id),
            )
            .order_by(ProviderCredential.updated_at.desc())
            .limit(1),
            "lookup",
        )
        return result.scalar_one_or_none()

    async def get_for_user(
        self,
        user_id: int,
        provider: str = Provider.STRAVA.value,
    ) -> ProviderCredential | None:
        result = await self._execute(
            select(ProviderCredential).where(
                ProviderCredential.user_id == user_id,
                ProviderCredential.provider == provider,
            ),
            "lookup",
        )
        return result.scalar_one_or_none()

    async def get_valid_token(self, credential: ProviderCredential) -> str | None:
        """Return a usable access token, refreshing an expired one.

        Returns None when the refresh fails; the stored credential is left
        untouched and the caller should skip the event. Concurrent refreshes
        of the same credential are allowed, the last successful write wins.
        """
        now = datetime.now(timezone.utc)
        if not is_expired(credential, now):
            return credential.access_token

        log = logger.bind(
            user_id=credential.user_id,
            provider=credential.provider,
            credential_id=credential.id,
        )

        try:
            payload = await self.strava.refresh_token(credential.refresh_token)
        except CredentialInvalidError as e:
            log.warning("Token refresh rejected", status_code=e.status_code, error=str(e))
            return None
        except TransientProviderError as e:
            log.warning("Token refresh unavailable", status_code=e.status_code, error=str(e))
            return None

        access_token = payload.get("access_token")
        if not access_token:
            log.warning("Token refresh response missing access token")
            return None

        refresh_token = payload.get("refresh_token") or credential.refresh_token
        expires_at = _expiry_from(payload.get("expires_in"), now)

        await self._execute(
            update(ProviderCredential)
            .where(ProviderCredential.id == credential.id)
            .values(
                access_token=access_token,
                refresh_token=refresh_token,
                expires_at=expires_at,
            )
            .execution_options(synchronize_session=False),
            "refresh",
        )
        credential.access_token = access_token
        credential.refresh_token = refresh_token
        credential.expires_at = expires_at

        log.info("Access token refreshed", expires_at=expires_at.isoformat())
        return access_token

    async def save_authorization(
        self,
        user_id: int,
        token_payload: dict,
        provider: str = Provider.STRAVA.value,
    ) -> ProviderCredential:
        """Store tokens from a completed OAuth code exchange.

        One row per (user, provider); reconnecting replaces the tokens.
        """
        athlete = token_payload.get("athlete") or {}
        provider_user_id = str(athlete.get("id") or "")
        if not provider_user_id or not token_payload.get("access_token"):
            raise CredentialInvalidError("Token exchange response is incomplete")

        expires_at = _expiry_from(token_payload.get("expires_in"), datetime.now(timezone.utc))
        values = {
            "provider_user_id": provider_user_id,
            "access_token": token_payload["access_token"],
            "refresh_token": token_payload.get("refresh_token") or "",
            "expires_at": expires_at,
        }
        stmt = (
            insert(ProviderCredential)
            .values(user_id=user_id, provider=provider, **values)
            .on_conflict_do_update(
                constraint="uq_provider_credentials_user_provider",
                set_={**values, "updated_at": func.now()},
            )
            .returning(ProviderCredential)
        )
        result = await self._execute(
            stmt, "save", execution_options={"populate_existing": True}
        )
        credential = result.scalars().one()

        logger.info(
            "Provider connected",
            user_id=user_id,
            provider=provider,
            provider_user_id=provider_user_id,
        )
        return credential
