"""LockPilot Web Application.

FastAPI server exposing the timer commands as REST endpoints.
"""
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .. import __version__
from ..core.errors import LockUnavailable, TimerError
from ..scheduler import TimerScheduler
from .routes import timers

logger = logging.getLogger(__name__)


def create_app(scheduler: TimerScheduler) -> FastAPI:
    """Build the API app around an existing scheduler."""
    app = FastAPI(
        title="LockPilot",
        description="Schedule a popup, screen lock, shutdown or restart",
        version=__version__,
    )
    app.state.scheduler = scheduler

    app.include_router(timers.router, prefix="/api", tags=["timers"])

    @app.exception_handler(TimerError)
    async def timer_error_handler(request: Request, exc: TimerError):
        if isinstance(exc, LockUnavailable):
            logger.error(f"{request.method} {request.url.path}: {exc.message}")
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.message, "kind": exc.kind},
        )

    return app
