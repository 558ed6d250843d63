"""User management endpoints (admin only)."""
import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from faae_core import crud, schemas, models
from faae_core.api.dependencies import get_current_user
from faae_core.database import get_db

logger = logging.getLogger("faae-core.users")

router = APIRouter(tags=["users"])


@router.get("/", response_model=list[schemas.UserWithStats])
def list_users(
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    """All users with task counters. Admin only."""
    return [
        schemas.UserWithStats(**schemas.UserResponse.model_validate(user).model_dump(), stats=stats)
        for user, stats in crud.list_users_with_stats(db, current_user.id)
    ]


@router.patch("/{user_id}/role", response_model=schemas.UserResponse)
def update_user_role(
    user_id: str,
    role_update: schemas.UserRoleUpdate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    """Change a user's role. Admin only."""
    return crud.update_user_role(db, current_user.id, user_id, role_update.role)


@router.patch("/{user_id}/active", response_model=schemas.UserResponse)
def set_user_active(
    user_id: str,
    active_update: schemas.UserActiveUpdate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    """Activate or deactivate a user. Admin only; users are never deleted."""
    return crud.set_user_active(db, current_user.id, user_id, active_update.is_active)
