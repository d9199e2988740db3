from contextlib import asynccontextmanager
from collections.abc import AsyncIterator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from src.api.routes import router as api_router
from src.api.routes.oauth import router as oauth_router
from src.api.routes.webhooks import router as webhooks_router
from src.core.config import settings
from src.core.errors import (
    DomainError,
    FatalStorageError,
    domain_exception_handler,
    fatal_storage_exception_handler,
)
from src.db import init_db


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan context manager."""
    # Startup
    await init_db()
    yield
    # Shutdown


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Fitness activity ingestion and weekly league leaderboards",
        lifespan=lifespan,
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(DomainError, domain_exception_handler)
    app.add_exception_handler(FatalStorageError, fatal_storage_exception_handler)

    # Include API routes
    app.include_router(api_router, prefix="/api/v1")

    # Provider-facing endpoints live outside the versioned API
    app.include_router(webhooks_router, prefix="/webhooks", tags=["webhooks"])
    app.include_router(oauth_router, prefix="/oauth", tags=["oauth"])

    @app.get("/health")
    async def health_check() -> dict[str, str]:
        return {"status": "healthy", "version": settings.app_version}

    return app


app = create_app()
