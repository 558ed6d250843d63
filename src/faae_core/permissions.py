"""Role checks for role-gated operations.

Everyone who can sign in may create and edit projects and tasks. Only an
admin may delete a project or manage other users (role and activation).
"""
import logging

from sqlalchemy.orm import Session

from . import models
from .errors import NotFoundError, PermissionDeniedError

logger = logging.getLogger("faae-core.permissions")


# Roles allowed to perform each gated action
ADMIN_ONLY: frozenset[models.UserRole] = frozenset({models.UserRole.ADMIN})


def _load_actor(db: Session, actor_id: str) -> models.User:
    actor = db.get(models.User, actor_id)
    if actor is None:
        raise NotFoundError("User", actor_id, field="user_id")
    return actor


def require_role(actor: models.User, allowed: frozenset[models.UserRole], action: str) -> None:
    """
    Raise PermissionDeniedError unless the actor holds one of the allowed roles.

    Args:
        actor: User attempting the action
        allowed: Roles allowed to perform it
        action: Short description used in the error message
    """
    if actor.role not in allowed:
        logger.warning(f"Permission denied: user {actor.id} ({actor.role.value}) attempted to {action}")
        raise PermissionDeniedError(
            f"Role '{actor.role.value}' is not allowed to {action}",
            field="role",
        )


def can_delete_project(db: Session, actor_id: str) -> None:
    """Only admins may delete a project (and everything it cascades to)."""
    require_role(_load_actor(db, actor_id), ADMIN_ONLY, "delete projects")


def can_manage_users(db: Session, actor_id: str) -> None:
    """Only admins may list users with stats, change roles or (de)activate users."""
    require_role(_load_actor(db, actor_id), ADMIN_ONLY, "manage users")
