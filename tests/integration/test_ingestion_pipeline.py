import asyncio
from datetime import date, datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest
from sqlalchemy import func, select

from src.db.models import Activity, PointsEntry, ProcessedEvent, ProviderCredential, SuspectFlag, User
from src.db.models.activity import ActivitySource, ActivityType
from src.services.activity_service import ActivityService
from src.services.anticheat_service import OverlapDetector
from src.services.event_ledger import EventLedger
from src.services.ingestion_service import IngestionOutcome, IngestionService, parse_strava_event
from src.services.leaderboard_service import LeaderboardService
from src.services.league_service import LeagueService
from src.services.normalizer import NormalizedActivity
from src.services.scoring_service import ScoringService

pytestmark = pytest.mark.integration

RAW_RUN = {
    "id": 555,
    "type": "Run",
    "sport_type": "Run",
    "distance": 5200.0,
    "moving_time": 1800,
    "start_date": "2024-03-05T07:30:00Z",
}


async def count(db, model) -> int:
    return (await db.execute(select(func.count()).select_from(model))).scalar_one()


async def add_user(db, username: str) -> User:
    user = User(username=username)
    db.add(user)
    await db.flush()
    return user


async def add_activity(db, user_id: int, start: datetime, activity_type=ActivityType.RUN, **metrics):
    activity = await ActivityService(db).upsert_activity(
        NormalizedActivity(
            user_id=user_id,
            source=ActivitySource.STRAVA,
            type=activity_type,
            start_time=start,
            **metrics,
        )
    )
    await ScoringService(db).award_points(activity)
    return activity


@pytest.mark.asyncio
async def test_redelivered_event_creates_one_activity_and_one_points_entry(db_session, mock_strava) -> None:
    user = await add_user(db_session, "runner")
    db_session.add(
        ProviderCredential(
            user_id=user.id,
            provider="strava",
            provider_user_id="999",
            access_token="tok",
            refresh_token="ref",
            expires_at=datetime.now(timezone.utc) + timedelta(hours=6),
        )
    )
    await db_session.commit()

    mock_strava.get_activity.return_value = dict(RAW_RUN)
    dispatch = MagicMock()
    service = IngestionService(db_session, mock_strava, dispatch_overlaps=dispatch)
    event = parse_strava_event(
        {
            "object_type": "activity",
            "aspect_type": "create",
            "owner_id": 999,
            "object_id": 555,
            "event_time": 1709623800,
            "subscription_id": 1,
        }
    )

    assert await service.handle_strava_event(event) == IngestionOutcome.PROCESSED
    assert await service.handle_strava_event(event) == IngestionOutcome.DUPLICATE

    assert await count(db_session, Activity) == 1
    assert await count(db_session, PointsEntry) == 1
    points = (await db_session.execute(select(PointsEntry.points))).scalar_one()
    assert points == 10
    dispatch.assert_called_once()


@pytest.mark.asyncio
async def test_second_push_for_same_activity_does_not_rescore(db_session, mock_strava) -> None:
    user = await add_user(db_session, "updater")
    await db_session.commit()
    service = IngestionService(db_session, mock_strava, dispatch_overlaps=MagicMock())

    first = await service.ingest_activity(user.id, dict(RAW_RUN))
    second = await service.ingest_activity(user.id, {**RAW_RUN, "distance": 9000.0})

    assert first.id == second.id
    assert second.distance_meters == 9000
    assert await count(db_session, Activity) == 1
    assert await count(db_session, PointsEntry) == 1


@pytest.mark.asyncio
async def test_ledger_is_first_seen_once_across_sessions(session_maker) -> None:
    async def mark(event_id: int) -> bool:
        async with session_maker() as session:
            first_seen = await EventLedger(session).mark_if_first_seen(event_id)
            await session.commit()
            return first_seen

    results = await asyncio.gather(*(mark(77) for _ in range(5)))

    assert sorted(results) == [False, False, False, False, True]
    async with session_maker() as session:
        assert await count(session, ProcessedEvent) == 1


@pytest.mark.asyncio
async def test_leaderboard_ordering_and_tie_break(db_session) -> None:
    league = await LeagueService(db_session).ensure_default_public_league()
    early = await add_user(db_session, "early")
    late = await add_user(db_session, "late")
    top = await add_user(db_session, "top")
    outsider = await add_user(db_session, "outsider")
    for user in (early, late, top):
        await LeagueService(db_session).join_league(league.id, user.id)

    week = date(2024, 3, 4)
    await add_activity(db_session, late.id, datetime(2024, 3, 6, 7, 0, tzinfo=timezone.utc), distance_meters=6000)
    await add_activity(db_session, early.id, datetime(2024, 3, 5, 7, 0, tzinfo=timezone.utc), distance_meters=6000)
    await add_activity(db_session, top.id, datetime(2024, 3, 7, 7, 0, tzinfo=timezone.utc), distance_meters=20000)
    await add_activity(db_session, outsider.id, datetime(2024, 3, 7, 7, 0, tzinfo=timezone.utc), distance_meters=50000)
    # Previous week, must not count
    await add_activity(db_session, late.id, datetime(2024, 3, 3, 7, 0, tzinfo=timezone.utc), distance_meters=50000)
    await db_session.commit()

    service = LeaderboardService(db_session)
    rows = await service.get_league_leaderboard(league.id, week, limit=10)

    assert [row.user_id for row in rows] == [top.id, early.id, late.id]
    assert [row.points_total for row in rows] == [25, 11, 11]

    limited = await service.get_league_leaderboard(league.id, week, limit=2)
    assert len(limited) == 2


@pytest.mark.asyncio
async def test_overlapping_long_activities_are_flagged(db_session) -> None:
    user = await add_user(db_session, "cheater")
    ride_start = datetime(2024, 3, 5, 8, 0, tzinfo=timezone.utc)
    await add_activity(db_session, user.id, ride_start, ActivityType.RIDE, duration_seconds=10800, distance_meters=90000)
    await add_activity(
        db_session,
        user.id,
        datetime(2024, 3, 5, 9, 0, tzinfo=timezone.utc),
        duration_seconds=3600,
        distance_meters=10000,
    )
    await db_session.commit()

    detector = OverlapDetector(db_session)
    assert await detector.flag_overlaps(user.id, ride_start, 10800) is True

    flags = (await db_session.execute(select(SuspectFlag))).scalars().all()
    assert len(flags) == 1
    assert flags[0].detail["overlaps"][0]["type"] == "run"

    # Points stay untouched by the flag
    assert await count(db_session, PointsEntry) == 2


@pytest.mark.asyncio
async def test_isolated_long_activity_not_flagged(db_session) -> None:
    user = await add_user(db_session, "honest")
    start = datetime(2024, 3, 5, 8, 0, tzinfo=timezone.utc)
    await add_activity(db_session, user.id, start, duration_seconds=7200, distance_meters=20000)
    await add_activity(
        db_session,
        user.id,
        start + timedelta(days=1),
        duration_seconds=7200,
        distance_meters=20000,
    )
    await db_session.commit()

    assert await OverlapDetector(db_session).flag_overlaps(user.id, start, 7200) is False
    assert await count(db_session, SuspectFlag) == 0
