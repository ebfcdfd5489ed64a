"""HTTP surface: reminder submission, cron sweep and health check."""

from __future__ import annotations

from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from loguru import logger
from starlette.concurrency import run_in_threadpool

from ..config.settings import Settings, load_settings
from ..database.operations import initialize_database
from ..handlers.common import HandlerResponse, Mailer
from ..handlers.submission import submit_reminder
from ..handlers.sweep import run_sweep
from ..monitoring.health import HealthMonitor, HealthStatus


def _json(response: HandlerResponse) -> JSONResponse:
    return JSONResponse(content=response.body, status_code=response.status_code)


def create_app(settings: Optional[Settings] = None, mailer: Optional[Mailer] = None) -> FastAPI:
    """Build the application.

    Args:
        settings: Service settings. Loaded from the environment when None.
        mailer: Email dispatcher. Built from ``settings`` when None.

    Returns:
        The FastAPI application, with the database schema in place.
    """
    if settings is None:
        settings = load_settings()
    if mailer is None:
        mailer = settings.create_email_service()

    initialize_database(settings.database_path)

    app = FastAPI(title="Reminder Mailer API")
    app.state.settings = settings
    app.state.mailer = mailer
    app.state.health_monitor = HealthMonitor(settings.database_path)

    @app.post("/reminders")
    async def create_reminder(request: Request) -> JSONResponse:
        """Store a reminder and send the confirmation email."""
        try:
            payload: Any = await request.json()
        except ValueError:
            logger.info("Reminder submission with unparseable JSON body")
            payload = None

        response: HandlerResponse = await run_in_threadpool(
            submit_reminder,
            payload,
            app.state.mailer,
            db_path=settings.database_path,
            default_timezone=settings.default_timezone,
        )
        return _json(response)

    @app.api_route("/cron/run", methods=["GET", "POST"])
    async def cron_run(request: Request) -> JSONResponse:
        """Send every due reminder. Meant to be hit by a scheduler."""
        response: HandlerResponse = await run_in_threadpool(
            run_sweep,
            app.state.mailer,
            db_path=settings.database_path,
            authorization=request.headers.get("authorization"),
            cron_secret=settings.cron_secret,
        )
        return _json(response)

    @app.get("/health")
    async def health() -> JSONResponse:
        status: HealthStatus = await run_in_threadpool(app.state.health_monitor.perform_health_check)
        return JSONResponse(content=status.to_dict(), status_code=200 if status.is_healthy else 503)

    logger.info(f"Reminder Mailer API created (database: {settings.database_path})")
    return app
