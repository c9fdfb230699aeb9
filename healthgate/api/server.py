"""FastAPI server exposing the aggregate health endpoint."""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI

from healthgate.api.health_routes import create_health_router
from healthgate.config import Settings, settings as default_settings
from healthgate.health.checker import Checker, compose_listeners, init_checker_config
from healthgate.health.probes import GCPauseTracker
from healthgate.health.registry import ProbeRegistry
from healthgate.notifications.webhook import StatusWebhookNotifier

logger = logging.getLogger(__name__)


def build_checker(app: FastAPI, settings: Settings) -> Checker:
    """Assemble the checker from settings; owned resources go on app.state."""
    gc_tracker = None
    if settings.gc_pause_threshold_ms > 0:
        gc_tracker = GCPauseTracker()
        gc_tracker.install()
    app.state.gc_tracker = gc_tracker

    config = init_checker_config(settings, gc_tracker=gc_tracker)

    probes_path = Path(settings.probes_file)
    if not probes_path.is_absolute():
        probes_path = Path.cwd() / probes_path
    for probe in ProbeRegistry(path=probes_path).build_probes():
        config.add_probe(probe)

    if settings.database_path:
        db_connection = sqlite3.connect(settings.database_path, check_same_thread=False)
        app.state.db_connection = db_connection
        config.add_database_probe(
            db_connection,
            timeout=settings.database_probe_timeout,
            ping_timeout=settings.database_ping_timeout,
        )

    if settings.status_webhook_url:
        notifier = StatusWebhookNotifier(settings.status_webhook_url)
        app.state.notifier = notifier
        config.listener = compose_listeners(config.listener, notifier)

    return Checker(config)


async def release_resources(app: FastAPI) -> None:
    """Close whatever build_checker opened and clear it from app.state."""
    notifier = getattr(app.state, "notifier", None)
    if notifier is not None:
        await notifier.close()
    db_connection = getattr(app.state, "db_connection", None)
    if db_connection is not None:
        db_connection.close()
    gc_tracker = getattr(app.state, "gc_tracker", None)
    if gc_tracker is not None:
        gc_tracker.uninstall()
    app.state.notifier = None
    app.state.db_connection = None
    app.state.gc_tracker = None


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build the checker on startup and release its resources on shutdown.

    Each startup builds fresh resources, so the same app can be served more
    than once. An injected checker is used as is and never closed here.
    """
    owns_checker = app.state.checker is None
    try:
        if owns_checker:
            app.state.checker = build_checker(app, app.state.settings)
        logger.info("Health endpoint serving %d probes", len(app.state.checker.probes))
        yield
    finally:
        if owns_checker:
            await release_resources(app)
            app.state.checker = None
        logger.info("Health endpoint stopped")


def create_app(settings: Settings | None = None, checker: Checker | None = None) -> FastAPI:
    settings = settings or default_settings
    app = FastAPI(
        title="healthgate",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.checker = checker

    app.include_router(create_health_router(settings.health_path))

    return app


app = create_app()
