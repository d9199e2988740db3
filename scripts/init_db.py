#!/usr/bin/env python
"""Initialize database with default data."""

import asyncio

from src.core.config import settings
from src.db.database import async_session_maker, init_db
from src.services.league_service import LeagueService


async def init_default_league() -> None:
    """Create the public league every new user can join."""
    async with async_session_maker() as session:
        league = await LeagueService(session).ensure_default_public_league()
        await session.commit()
        print(f"Default public league ready: {league.name} (id={league.id})")


async def main() -> None:
    """Main initialization function."""
    print(f"Initializing database: {settings.database_url}")

    # Create tables
    await init_db()
    print("Database tables created")

    await init_default_league()

    print("Database initialization complete!")


if __name__ == "__main__":
    asyncio.run(main())
