"""Main API router that includes all sub-routers."""

from __future__ import annotations

from fastapi import APIRouter

from pomosync.server.api import health, time_entries

router = APIRouter()

# Include all API routers
router.include_router(health.router)
router.include_router(time_entries.router)
