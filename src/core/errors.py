"""Exception hierarchy for the ingestion engine and the public API.

Ingestion errors describe what happened to a single inbound event and decide
whether the webhook is acknowledged. Domain errors carry an HTTP status and a
machine-readable `code` for API clients.
"""

from typing import Any

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette import status


# ---------------------------------------------------------------------------
# Ingestion errors
# ---------------------------------------------------------------------------


class IngestionError(Exception):
    """Base class for failures while processing one inbound event."""


class DuplicateEventError(IngestionError):
    def __init__(self, event_id: int) -> None:
        self.event_id = event_id
        super().__init__(f"Event {event_id} already processed")


class ProviderError(IngestionError):
    """Outbound call to the activity provider failed."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class TransientProviderError(ProviderError):
    """Network failure, timeout or 5xx. The provider will redeliver."""


class CredentialInvalidError(ProviderError):
    """Refresh token expired or revoked, or the provider rejected the token."""


class WebhookValidationError(IngestionError):
    """Webhook payload is malformed or incomplete."""


class FatalStorageError(IngestionError):
    """Storage failed for a reason other than a uniqueness conflict."""


# ---------------------------------------------------------------------------
# Domain errors
# ---------------------------------------------------------------------------


class DomainError(Exception):
    http_status: int = status.HTTP_400_BAD_REQUEST
    code: str = "BAD_REQUEST"

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict:
        payload: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class NotFoundError(DomainError):
    http_status = status.HTTP_404_NOT_FOUND
    code = "NOT_FOUND"


class PermissionDeniedError(DomainError):
    http_status = status.HTTP_403_FORBIDDEN
    code = "PERMISSION_DENIED"


class DuplicateActivityError(DomainError):
    http_status = status.HTTP_409_CONFLICT
    code = "DUPLICATE_ACTIVITY"


class ManualEntryError(DomainError):
    http_status = status.HTTP_422_UNPROCESSABLE_ENTITY
    code = "INVALID_MANUAL_ENTRY"


async def domain_exception_handler(request: Request, exc: DomainError) -> JSONResponse:
    return JSONResponse(status_code=exc.http_status, content=exc.to_dict())


async def fatal_storage_exception_handler(request: Request, exc: FatalStorageError) -> JSONResponse:
    """500 so the provider redelivers the event. The unit of work is already rolled back."""
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"ok": False, "code": "STORAGE_UNAVAILABLE"},
    )
