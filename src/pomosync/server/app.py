"""FastAPI application for the pomosync server.

This module creates and configures the FastAPI application with:
- REST API for time entries
- WebSocket relay for timer events

Usage:
    uvicorn pomosync.server.app:app_factory --factory --host 0.0.0.0 --port 8000
"""

from __future__ import annotations

import logging
import os
import sys
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI

from pomosync import __version__
from pomosync.server.api.router import router as api_router
from pomosync.server.database import Database
from pomosync.server.ws import TimerHub
from pomosync.server.ws import router as ws_router

logger = logging.getLogger(__name__)


def get_db_path() -> Path:
    """Database location from POMOSYNC_DB_PATH (default ./pomosync.db)."""
    return Path(os.environ.get("POMOSYNC_DB_PATH", "pomosync.db"))


def get_log_path() -> Path:
    """Log file location from POMOSYNC_LOG_PATH (default ./pomosync-server.log)."""
    return Path(os.environ.get("POMOSYNC_LOG_PATH", "pomosync-server.log"))


def setup_logging(log_path: Path) -> None:
    """Configure logging to output to both file and stdout.

    Args:
        log_path: Path to the log file.
    """
    log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    formatter = logging.Formatter(log_format)

    root_logger = logging.getLogger("pomosync")
    root_logger.setLevel(logging.INFO)

    stdout_handler = logging.StreamHandler(sys.stdout)
    stdout_handler.setFormatter(formatter)
    root_logger.addHandler(stdout_handler)

    file_handler = logging.FileHandler(log_path, encoding="utf-8")
    file_handler.setFormatter(formatter)
    root_logger.addHandler(file_handler)

    # Also capture uvicorn logs to file
    for uvicorn_name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        logging.getLogger(uvicorn_name).addHandler(file_handler)


def create_app(db: Database, hub: TimerHub | None = None) -> FastAPI:
    """Create FastAPI application with a custom database.

    Args:
        db: Database instance.
        hub: WebSocket hub (a new one by default).

    Returns:
        Configured FastAPI application.
    """
    timer_hub = hub or TimerHub()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Application lifespan handler for startup/shutdown."""
        logger.info("=" * 60)
        logger.info("Pomosync Server Starting")
        logger.info("=" * 60)
        logger.info("  Database: %s", db.path)
        logger.info("=" * 60)

        yield

        await timer_hub.close_all()
        logger.info("Pomosync Server shutting down")

    application = FastAPI(
        title="Pomosync Server",
        description="Pomodoro timer sync and time tracking",
        version=__version__,
        lifespan=lifespan,
    )

    application.state.db = db
    application.state.hub = timer_hub

    application.include_router(api_router)
    application.include_router(ws_router)

    return application


def app_factory() -> FastAPI:
    """Factory function for uvicorn --factory mode."""
    log_path = get_log_path()
    setup_logging(log_path)
    logger.info("Logs: %s", log_path.absolute())
    return create_app(db=Database(get_db_path()))
