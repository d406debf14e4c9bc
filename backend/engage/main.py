"""Engage Social API — FastAPI application entry point.

Invariants:
    - Routes registered explicitly (no auto-discovery)
    - Global error handlers map EngageError → structured JSON responses
    - CORS configured from settings (not hardcoded)
    - Database, event system and handlers initialized on startup via lifespan
    - Dead-letter sweep task stopped before the database engine is disposed

Design Decisions:
    - Lifespan over @app.on_event: FastAPI recommended pattern, cleaner cleanup
    - Event handlers registered in lifespan, after the event system exists, so
      importing this module has no side effects on a shared event system
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from engage.api.error_handlers import register_error_handlers
from engage.api.routes import (
    activity, events_admin, health, social_comments, social_posts,
)
from engage.config import Settings, get_settings
from engage.infrastructure.activity_log import init_activity_log
from engage.infrastructure.database import close_db, init_db
from engage.infrastructure.event_system import EventSystem, init_event_system
from engage.infrastructure.feature_flags import build_event_gate
from engage.infrastructure.memory_store import init_memory_store
from engage.infrastructure.observability import setup_logging
from engage.services.notification_handlers import NotificationHandlers
from engage.services.social_event_handlers import SocialEventHandlers

logger = logging.getLogger(__name__)


def build_event_system(settings: Settings) -> EventSystem:
    """Create the process event system and subscribe cross-cutting handlers."""
    events = init_event_system(
        handler_timeout_ms=settings.event_handler_timeout_ms,
        default_retries=settings.event_handler_retries,
        history_size=settings.event_history_size,
        dead_letter_max_size=settings.dead_letter_max_size,
        retry_base_delay_seconds=settings.dead_letter_base_delay_seconds,
        retry_interval_seconds=settings.dead_letter_retry_interval_seconds,
        gate=build_event_gate(settings),
    )
    activity_log = init_activity_log(settings.storage_backend)
    SocialEventHandlers(activity_log).register(events)
    NotificationHandlers(activity_log).register(events)
    return events


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle."""
    settings = get_settings()
    setup_logging(settings.log_level, settings.log_format)
    init_db(
        settings.database_url,
        pool_size=settings.database_pool_size,
        max_overflow=settings.database_max_overflow,
    )
    if settings.storage_backend == "memory":
        init_memory_store()
    events = build_event_system(settings)
    events.start()
    logger.info(f"Engage API started (storage: {settings.storage_backend})")
    yield
    await events.stop()
    await close_db()
    logger.info("Engage API shutting down")


app = FastAPI(
    title="Engage Social API", version="1.0.0", lifespan=lifespan,
)

# CORS — configured from settings, not hardcoded
settings = get_settings()
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Routes — explicit registration
app.include_router(health.router)
app.include_router(social_posts.router)
app.include_router(social_comments.router)
app.include_router(activity.router)
app.include_router(events_admin.router)

register_error_handlers(app)
