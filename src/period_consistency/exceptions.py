"""Error taxonomy for the period consistency engine."""

from __future__ import annotations

from typing import Any
from uuid import UUID


class EngineError(Exception):
    """Base class for engine errors."""

    code = "ENGINE_ERROR"


class InvalidStateError(EngineError):
    """Raised when a period or session is in the wrong lifecycle state."""

    code = "INVALID_STATE"

    def __init__(
        self,
        entity: str,
        entity_id: UUID | str,
        current: str,
        required: str | None = None,
        reason: str | None = None,
    ):
        self.entity = entity
        self.entity_id = entity_id
        self.current = current
        self.required = required
        self.reason = reason
        msg = f"{entity} {entity_id} is '{current}'"
        if required:
            msg += f", operation requires '{required}'"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class LockHeldError(EngineError):
    """Raised when another editing session already owns the period."""

    code = "LOCK_HELD"

    def __init__(self, period_id: UUID, session_id: UUID | None = None):
        self.period_id = period_id
        self.session_id = session_id
        msg = f"Period {period_id} is already being edited"
        if session_id:
            msg += f" (session {session_id})"
        super().__init__(msg)


class ValidationError(EngineError):
    """Raised when a change set or request violates a business rule."""

    code = "VALIDATION_FAILED"

    def __init__(self, errors: list[str], warnings: list[str] | None = None):
        self.errors = list(errors)
        self.warnings = list(warnings or [])
        super().__init__(f"Validation failed: {'; '.join(self.errors)}")


class PersistenceError(EngineError):
    """Raised when the underlying store fails during a read or write step."""

    code = "PERSISTENCE_ERROR"

    def __init__(self, operation: str, detail: Any = None):
        self.operation = operation
        self.detail = detail
        msg = f"Persistence failure during {operation}"
        if detail:
            msg += f": {detail}"
        super().__init__(msg)


class NotFoundError(EngineError):
    """Raised for an unknown period, version or session id."""

    code = "NOT_FOUND"

    def __init__(self, entity: str, entity_id: UUID | str):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} {entity_id} not found")
