"""Tenant Access API: FastAPI application entry point.

Invariants:
    - Routes registered explicitly (no auto-discovery)
    - Global error handlers map TenancyError → structured JSON responses
    - CORS configured from settings (not hardcoded)
    - Database and the membership cache initialized on startup via lifespan

Design Decisions:
    - Lifespan over @app.on_event: FastAPI recommended pattern, cleaner cleanup
    - MembershipCache on app.state: one per process, handed to services via RequestContext
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.error_handlers import register_error_handlers
from app.api.routes import (
    access_requests,
    health,
    invites,
    memberships,
    organizations,
    session_events,
)
from app.config import get_settings
from app.core.membership_cache import MembershipCache
from app.infrastructure import database
from app.infrastructure.observability import setup_logging

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle."""
    settings = get_settings()
    setup_logging(settings.log_level, settings.log_format)
    database.init_db(
        settings.database_url,
        pool_size=settings.database_pool_size,
        max_overflow=settings.database_max_overflow,
    )
    app.state.membership_cache = MembershipCache()
    logger.info("Tenant Access API started")
    yield
    logger.info("Tenant Access API shutting down")
    app.state.membership_cache.clear()
    if database.db_manager:
        await database.db_manager.dispose()


app = FastAPI(
    title="Tenant Access API", version="1.0.0", lifespan=lifespan,
)

settings = get_settings()
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router)
app.include_router(session_events.router)
app.include_router(memberships.router)
app.include_router(organizations.router)
app.include_router(invites.router)
app.include_router(access_requests.router)

register_error_handlers(app)
