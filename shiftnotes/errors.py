"""
Error kinds shared by every repository backend and the HTTP layer.

Each error carries a stable ``code`` and the HTTP status the API answers
with, so callers can tell failures apart without parsing messages.
"""

from typing import Any


class ShiftNotesError(Exception):
    """Base exception for all data-layer errors."""

    status_code = 500

    def __init__(
        self,
        message: str,
        code: str = "INTERNAL_ERROR",
        details: dict[str, Any] | None = None,
    ) -> None:
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details,
        }


class Unauthorized(ShiftNotesError):
    """No valid caller identity."""

    status_code = 401

    def __init__(self, message: str = "Unauthorized") -> None:
        super().__init__(message, code="UNAUTHORIZED")


class ValidationError(ShiftNotesError):
    """A required field is missing or empty after trimming."""

    status_code = 400

    def __init__(self, message: str, field: str | None = None) -> None:
        super().__init__(
            message,
            code="VALIDATION_ERROR",
            details={"field": field} if field else None,
        )


class NotFound(ShiftNotesError):
    """The referenced entity does not exist in the caller's scope."""

    status_code = 404

    def __init__(self, entity: str, entity_id: str | None) -> None:
        super().__init__(
            f"{entity} not found",
            code="NOT_FOUND",
            details={"entity": entity, "id": entity_id},
        )


class PersistenceFailure(ShiftNotesError):
    """The backing store failed for infrastructure reasons."""

    status_code = 500

    def __init__(self, message: str = "Persistence failure") -> None:
        super().__init__(message, code="PERSISTENCE_FAILURE")


class PartialCascadeFailure(ShiftNotesError):
    """
    The primary record of a cascading delete is gone but some descendants
    could not be removed. Calling delete again for the same id retries the
    remaining cascade.
    """

    status_code = 500

    def __init__(
        self, entity: str, entity_id: str, *, removed: int, remaining: int
    ) -> None:
        super().__init__(
            f"{entity} deleted but {remaining} descendant record(s) could not be removed",
            code="PARTIAL_CASCADE_FAILURE",
            details={
                "entity": entity,
                "id": entity_id,
                "removed": removed,
                "remaining": remaining,
            },
        )
        self.entity_id = entity_id
        self.removed = removed
        self.remaining = remaining
