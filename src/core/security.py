import hashlib
import hmac
import time

from src.core.config import settings


def _signature(base: str) -> str:
    return hmac.new(
        settings.oauth_state_secret.encode("utf-8"),
        base.encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()


def sign_state(user_id: int, issued_at: int | None = None) -> str:
    """Build an OAuth `state` value binding the flow to a user id."""
    issued_at = int(time.time()) if issued_at is None else issued_at
    base = f"{user_id}|{issued_at}"
    return f"{base}|{_signature(base)}"


def verify_state(state: str, now: int | None = None) -> int | None:
    """Return the user id from a valid, unexpired state, else None."""
    parts = state.split("|")
    if len(parts) != 3:
        return None
    user_id, issued_at, signature = parts
    if not hmac.compare_digest(_signature(f"{user_id}|{issued_at}"), signature):
        return None
    try:
        uid = int(user_id)
        age = (int(time.time()) if now is None else now) - int(issued_at)
    except ValueError:
        return None
    if age < 0 or age > settings.oauth_state_max_age_seconds:
        return None
    return uid
