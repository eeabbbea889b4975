"""Daybook API: FastAPI application factory.

The app factory creates a FastAPI instance with:
- CORS middleware (configurable origins)
- Lifespan handler that opens the DB pool, ensures the calendar schema,
  and wires the calendar services around one shared HTTP client
- Health endpoint at GET /api/health
- The calendar router at /api/calendar
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from daybook.api.deps import get_calendar_services
from daybook.api.middleware import register_error_handlers
from daybook.api.models import HealthResponse
from daybook.api.routers.calendar import router as calendar_router
from daybook.calendar.runtime import build_calendar_services, build_http_client
from daybook.calendar.store import ensure_schema
from daybook.config import DaybookConfig
from daybook.db import Database

logger = logging.getLogger(__name__)


def _database_for(config: DaybookConfig) -> Database:
    if config.db.url:
        return Database.from_url(
            config.db.url,
            min_pool_size=config.db.min_pool_size,
            max_pool_size=config.db.max_pool_size,
        )
    return Database.from_env()


def _make_lifespan(config: DaybookConfig):
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Startup/shutdown lifecycle for the DB pool and HTTP client."""
        db = _database_for(config)
        pool = await db.connect()
        await ensure_schema(pool)
        http_client = build_http_client(config.http)
        services = build_calendar_services(config, http_client=http_client, pool=pool)
        app.dependency_overrides[get_calendar_services] = lambda: services
        logger.info("Calendar services ready (calendar_id=%s)", config.sync.calendar_id)

        try:
            yield
        finally:
            app.dependency_overrides.pop(get_calendar_services, None)
            await http_client.aclose()
            await db.close()

    return lifespan


def create_app(
    config: DaybookConfig,
    cors_origins: list[str] | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Parameters
    ----------
    config:
        Parsed daybook configuration.
    cors_origins:
        Allowed CORS origins. Defaults to ["http://localhost:5173"] for
        local Vite dev server.
    """
    if cors_origins is None:
        cors_origins = ["http://localhost:5173"]

    app = FastAPI(
        title="Daybook API",
        version="0.1.0",
        lifespan=_make_lifespan(config),
    )
    app.router.redirect_slashes = False

    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_error_handlers(app)

    app.include_router(calendar_router)

    @app.get("/api/health", response_model=HealthResponse)
    async def health() -> HealthResponse:
        return HealthResponse()

    return app
