"""Time-entry API routes."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status

from pomosync.server.api.deps import get_current_token, get_db
from pomosync.server.database import Database, NewTimeEntry
from pomosync.server.models import ApiToken
from pomosync.server.schemas import (
    TimeEntryCreateRequest,
    TimeEntryResponse,
    time_entry_to_response,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/time-entries", tags=["time-entries"])


@router.post(
    "",
    response_model=TimeEntryResponse,
    status_code=status.HTTP_201_CREATED,
)
def create_time_entry(
    request: TimeEntryCreateRequest,
    response: Response,
    db: Database = Depends(get_db),
    auth: ApiToken = Depends(get_current_token),
) -> TimeEntryResponse:
    """Record a time entry.

    Idempotent on ``entryKey``: posting a key that was already recorded
    returns the stored entry with status 200.
    """
    entry, created = db.create_time_entry(
        auth.user_id,
        NewTimeEntry(
            project=request.project,
            task=request.task,
            start_time=request.start_time,
            end_time=request.end_time,
            duration=request.duration,
            notes=request.notes,
            tags=request.tags,
            is_running=request.is_running,
            entry_key=request.entry_key,
        ),
    )
    if created:
        logger.info(
            "Time entry %d created for user %d (%d ms)",
            entry.id, auth.user_id, entry.duration,
        )
    else:
        logger.info("Duplicate time entry %s for user %d", request.entry_key, auth.user_id)
        response.status_code = status.HTTP_200_OK
    return time_entry_to_response(entry)


@router.get("", response_model=list[TimeEntryResponse])
def list_time_entries(
    limit: int = Query(default=50, ge=1, le=500),
    db: Database = Depends(get_db),
    auth: ApiToken = Depends(get_current_token),
) -> list[TimeEntryResponse]:
    """List the caller's most recent time entries."""
    return [time_entry_to_response(e) for e in db.list_time_entries(auth.user_id, limit)]


@router.get("/{entry_id}", response_model=TimeEntryResponse)
def get_time_entry(
    entry_id: int,
    db: Database = Depends(get_db),
    auth: ApiToken = Depends(get_current_token),
) -> TimeEntryResponse:
    """Get one of the caller's time entries."""
    entry = db.get_time_entry(auth.user_id, entry_id)
    if entry is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Time entry not found",
        )
    return time_entry_to_response(entry)
