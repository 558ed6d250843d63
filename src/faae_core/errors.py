"""Domain errors raised by the service layer.

Every error carries a ``kind`` (validation, not_found, permission, io), a
human-readable message and, where it applies, the offending field. The API
layer renders them as structured responses; nothing here is retried.
"""
from typing import Any, Optional


class FaaeError(Exception):
    """Base class for all domain errors."""

    kind = "error"
    status_code = 500

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.field = field

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind, "message": self.message, "field": self.field}


class ValidationError(FaaeError):
    """Bad input shape, enum value or missing required field."""

    kind = "validation"
    status_code = 422


class NotFoundError(FaaeError):
    """A referenced entity does not exist."""

    kind = "not_found"
    status_code = 404

    def __init__(self, entity: str, entity_id: Any, field: Optional[str] = None):
        super().__init__(f"{entity} not found: {entity_id}", field=field)
        self.entity = entity
        self.entity_id = entity_id


class PermissionDeniedError(FaaeError):
    """A role-gated operation was attempted by an unauthorized role."""

    kind = "permission"
    status_code = 403


class StorageError(FaaeError):
    """File storage or document generation failed on I/O."""

    kind = "io"
    status_code = 500
