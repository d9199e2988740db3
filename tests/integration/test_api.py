from datetime import datetime, timezone

import pytest
from httpx import AsyncClient

pytestmark = pytest.mark.integration


async def create_user(client: AsyncClient, username: str) -> int:
    response = await client.post("/api/v1/users", json={"username": username})
    assert response.status_code == 201
    return response.json()["id"]


@pytest.mark.asyncio
async def test_health_check(client: AsyncClient) -> None:
    """Test health check endpoint."""
    response = await client.get("/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"


@pytest.mark.asyncio
async def test_webhook_verification_echoes_challenge(client: AsyncClient) -> None:
    response = await client.get(
        "/webhooks/strava",
        params={"hub.verify_token": "test-verify-token", "hub.challenge": "abc123"},
    )
    assert response.status_code == 200
    assert response.json() == {"hub.challenge": "abc123"}


@pytest.mark.asyncio
async def test_webhook_verification_wrong_token(client: AsyncClient) -> None:
    response = await client.get(
        "/webhooks/strava",
        params={"hub.verify_token": "nope", "hub.challenge": "abc123"},
    )
    assert response.status_code == 200
    assert response.json() == {"ok": True}


@pytest.mark.asyncio
async def test_malformed_webhook_is_acknowledged(client: AsyncClient) -> None:
    response = await client.post("/webhooks/strava", json={"object_type": "activity"})
    assert response.status_code == 200
    assert response.json() == {"ok": True}


@pytest.mark.asyncio
async def test_non_json_webhook_is_acknowledged(client: AsyncClient) -> None:
    response = await client.post(
        "/webhooks/strava",
        content=b"not json",
        headers={"Content-Type": "application/json"},
    )
    assert response.status_code == 200
    assert response.json() == {"ok": True}


@pytest.mark.asyncio
async def test_webhook_for_unknown_owner_is_acknowledged(client: AsyncClient, mock_strava) -> None:
    payload = {
        "object_type": "activity",
        "aspect_type": "create",
        "owner_id": 424242,
        "object_id": 1,
        "event_time": 1709632800,
        "subscription_id": 1,
    }
    response = await client.post("/webhooks/strava", json=payload)
    assert response.status_code == 200
    mock_strava.get_activity.assert_not_awaited()


@pytest.mark.asyncio
async def test_get_user_not_found(client: AsyncClient) -> None:
    response = await client.get("/api/v1/users/999999")
    assert response.status_code == 404
    assert response.json()["code"] == "NOT_FOUND"


@pytest.mark.asyncio
async def test_manual_steps_and_weekly_totals(client: AsyncClient) -> None:
    user_id = await create_user(client, "walker")

    response = await client.post(f"/api/v1/users/{user_id}/manual-steps", json={"steps": 12000})
    assert response.status_code == 201
    assert response.json()["type"] == "steps"

    response = await client.get(f"/api/v1/users/{user_id}/weekly-totals")
    assert response.status_code == 200
    data = response.json()
    assert data["total"] == 12
    assert len(data["recent"]) == 1


@pytest.mark.asyncio
async def test_manual_steps_twice_same_day_conflicts(client: AsyncClient) -> None:
    user_id = await create_user(client, "twice")
    body = {"day": "2024-03-05", "steps": 8000}

    assert (await client.post(f"/api/v1/users/{user_id}/manual-steps", json=body)).status_code == 201
    response = await client.post(f"/api/v1/users/{user_id}/manual-steps", json=body)
    assert response.status_code == 409
    assert response.json()["code"] == "DUPLICATE_ACTIVITY"


@pytest.mark.asyncio
async def test_manual_steps_over_daily_limit(client: AsyncClient) -> None:
    user_id = await create_user(client, "overachiever")

    response = await client.post(f"/api/v1/users/{user_id}/manual-steps", json={"steps": 60000})
    assert response.status_code == 422
    assert response.json()["code"] == "INVALID_MANUAL_ENTRY"


@pytest.mark.asyncio
async def test_league_leaderboard_respects_limit_and_order(client: AsyncClient) -> None:
    creator = await create_user(client, "creator")
    response = await client.post(
        "/api/v1/leagues", json={"creator_id": creator, "name": "Office", "is_public": True}
    )
    assert response.status_code == 201
    league_id = response.json()["id"]

    steps_by_user = {creator: 5000}
    for name, steps in (("ana", 20000), ("bo", 12000)):
        user_id = await create_user(client, name)
        response = await client.post(f"/api/v1/leagues/{league_id}/members", json={"user_id": user_id})
        assert response.status_code == 204
        steps_by_user[user_id] = steps

    today = datetime.now(timezone.utc).date().isoformat()
    for user_id, steps in steps_by_user.items():
        response = await client.post(
            f"/api/v1/users/{user_id}/manual-steps", json={"day": today, "steps": steps}
        )
        assert response.status_code == 201

    response = await client.get(f"/api/v1/leagues/{league_id}/leaderboard", params={"limit": 2})
    assert response.status_code == 200
    entries = response.json()["entries"]
    assert [e["points_total"] for e in entries] == [20, 12]
    assert [e["rank"] for e in entries] == [1, 2]


@pytest.mark.asyncio
async def test_leaderboard_unknown_league(client: AsyncClient) -> None:
    response = await client.get("/api/v1/leagues/999999/leaderboard")
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_only_admins_can_promote(client: AsyncClient) -> None:
    creator = await create_user(client, "boss")
    member = await create_user(client, "member")
    league_id = (
        await client.post("/api/v1/leagues", json={"creator_id": creator, "name": "Club"})
    ).json()["id"]
    await client.post(f"/api/v1/leagues/{league_id}/members", json={"user_id": member})

    response = await client.post(
        f"/api/v1/leagues/{league_id}/admins",
        json={"requester_id": member, "target_user_id": member},
    )
    assert response.status_code == 403

    response = await client.post(
        f"/api/v1/leagues/{league_id}/admins",
        json={"requester_id": creator, "target_user_id": member},
    )
    assert response.status_code == 204


@pytest.mark.asyncio
async def test_leave_league(client: AsyncClient) -> None:
    creator = await create_user(client, "leaver")
    league_id = (
        await client.post("/api/v1/leagues", json={"creator_id": creator, "name": "Temp"})
    ).json()["id"]

    assert (await client.delete(f"/api/v1/leagues/{league_id}/members/{creator}")).status_code == 204
    assert (await client.delete(f"/api/v1/leagues/{league_id}/members/{creator}")).status_code == 404


@pytest.mark.asyncio
async def test_oauth_start_redirects_with_state(client: AsyncClient) -> None:
    response = await client.get("/oauth/strava/start", params={"uid": 5})
    assert response.status_code == 302
    location = response.headers["location"]
    assert "client_id=test-client-id" in location
    assert "state=5%7C" in location


@pytest.mark.asyncio
async def test_oauth_callback_rejects_bad_state(client: AsyncClient, mock_strava) -> None:
    response = await client.get("/oauth/strava/callback", params={"code": "c", "state": "1|2|3"})
    assert response.status_code == 400
    mock_strava.exchange_code.assert_not_awaited()


@pytest.mark.asyncio
async def test_webhook_storage_failure_returns_500(client: AsyncClient, monkeypatch) -> None:
    from unittest.mock import AsyncMock

    from src.core.errors import FatalStorageError
    from src.services.event_ledger import EventLedger

    monkeypatch.setattr(
        EventLedger, "mark_if_first_seen", AsyncMock(side_effect=FatalStorageError("down"))
    )
    payload = {
        "object_type": "activity",
        "aspect_type": "create",
        "owner_id": 1,
        "object_id": 2,
    }
    response = await client.post("/webhooks/strava", json=payload)
    assert response.status_code == 500
    assert response.json()["code"] == "STORAGE_UNAVAILABLE"
