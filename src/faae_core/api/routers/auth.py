"""Identity endpoints used by the identity provider integration."""
import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from faae_core import crud, schemas, models
from faae_core.api.dependencies import get_current_user
from faae_core.database import get_db

logger = logging.getLogger("faae-core.auth")

router = APIRouter(tags=["auth"])


@router.post("/user", response_model=schemas.UserResponse)
def upsert_user(
    claims: schemas.UserClaims,
    db: Session = Depends(get_db),
):
    """
    Record a login.

    Creates the user as a collaborator on first login and refreshes the
    profile fields afterwards. The role is never changed here.
    """
    return crud.upsert_user(db, claims)


@router.get("/user", response_model=schemas.UserResponse)
def get_current(current_user: models.User = Depends(get_current_user)):
    """The calling user."""
    return current_user
