"""Request dependencies shared by the routers."""
import logging
from typing import Optional

from fastapi import Depends, Header, HTTPException
from sqlalchemy.orm import Session

from faae_core import crud, models
from faae_core.database import get_db
from faae_core.file_storage import FileStorage, get_file_storage
from faae_core.search import SearchAssistant, get_search_assistant

logger = logging.getLogger("faae-core.auth")

USER_HEADER = "X-User-Id"


def get_current_user(
    x_user_id: Optional[str] = Header(default=None, alias=USER_HEADER),
    db: Session = Depends(get_db),
) -> models.User:
    """
    Resolve the calling user from the identity header.

    The identity provider authenticates the caller and forwards its subject
    in ``X-User-Id``; the user must have logged in once (see ``POST
    /api/v1/auth/user``) and still be active.
    """
    if not x_user_id:
        raise HTTPException(status_code=401, detail=f"Authentication required ({USER_HEADER} header missing)")

    user = crud.get_user(db, x_user_id)
    if user is None:
        logger.warning(f"Unknown user id in {USER_HEADER}: {x_user_id}")
        raise HTTPException(status_code=401, detail="Unknown user")
    if not user.is_active:
        logger.warning(f"Inactive user {x_user_id} attempted a request")
        raise HTTPException(status_code=403, detail="User is deactivated")
    return user


def get_storage() -> FileStorage:
    return get_file_storage()


def get_assistant() -> SearchAssistant:
    return get_search_assistant()
