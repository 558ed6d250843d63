"""Notification endpoints."""
import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from faae_core import crud, schemas, models
from faae_core.api.dependencies import get_current_user
from faae_core.database import get_db

logger = logging.getLogger("faae-core.notifications")

router = APIRouter(tags=["notifications"])


@router.get("/", response_model=list[schemas.NotificationResponse])
def list_notifications(
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    """The caller's notifications, newest first."""
    return crud.list_notifications(db, current_user.id)


@router.post("/{notification_id}/read", response_model=schemas.NotificationResponse)
def mark_notification_read(
    notification_id: int,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    """Mark one of the caller's notifications as read."""
    return crud.mark_notification_read(db, notification_id, current_user.id)
