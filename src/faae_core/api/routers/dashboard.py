"""Dashboard statistics endpoints."""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from faae_core import crud, schemas, models
from faae_core.api.dependencies import get_current_user
from faae_core.database import get_db

logger = logging.getLogger("faae-core.dashboard")

router = APIRouter(tags=["dashboard"])


@router.get("/stats", response_model=schemas.DashboardStats)
def get_dashboard_stats(
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    """
    Firm-wide counters.

    Total hours are the logged minutes of every time entry divided by 60.
    Efficiency is completed / total tasks x 100, or 0 without tasks.
    """
    return crud.get_dashboard_stats(db)


@router.get("/user-stats", response_model=schemas.UserStats)
def get_user_stats(
    user_id: Optional[str] = Query(None, description="User to report on (defaults to the caller)"),
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    """Counters scoped to the tasks assigned to one user."""
    return crud.get_user_stats(db, user_id or current_user.id)
