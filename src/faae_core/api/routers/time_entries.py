"""Time tracking endpoints."""
import logging
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from faae_core import crud, schemas, models
from faae_core.api.dependencies import get_current_user
from faae_core.database import get_db

logger = logging.getLogger("faae-core.time_entries")

router = APIRouter(tags=["time"])


@router.post("/start", response_model=schemas.TimeEntryResponse, status_code=201)
def start_timer(
    timer: schemas.TimerStart,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    """
    Start tracking time on a task.

    An entry already running for the caller is closed first, so there is
    never more than one active entry per user.
    """
    return crud.start_timer(db, current_user.id, timer.task_id, timer.description)


@router.post("/stop", response_model=schemas.TimeEntryResponse)
def stop_timer(
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    """Stop the caller's active entry. 404 when nothing is running."""
    return crud.stop_timer(db, current_user.id)


@router.get("/active", response_model=Optional[schemas.TimeEntryResponse])
def get_active_timer(
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    """The caller's active entry, or null."""
    return crud.get_active_timer(db, current_user.id)
