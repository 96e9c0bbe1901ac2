"""Period and editing session state machines with transition validation."""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING

from period_consistency.exceptions import InvalidStateError

if TYPE_CHECKING:
    from period_consistency.models import EditingSession, PayrollPeriod


class PeriodStatus(str, Enum):
    """Payroll period lifecycle values."""

    DRAFT = "draft"
    OPEN = "open"
    CLOSED = "closed"


class SessionStatus(str, Enum):
    """Editing session status values."""

    ACTIVE = "active"
    SAVING = "saving"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


class VersionType(str, Enum):
    """Version history entry types."""

    INITIAL = "initial"
    MANUAL_EDIT = "manual_edit"
    ROLLBACK = "rollback"
    AUTO_RECALCULATION = "auto_recalculation"


class PeriodStateMachine:
    """Status checks for payroll periods.

    Periods are opened and closed by the payroll run itself; closed is the
    only state from which editing, rollback and recovery apply.
    """

    @classmethod
    def is_editable(cls, status: str) -> bool:
        """Check if post-closure editing/rollback/recovery apply."""
        return status == PeriodStatus.CLOSED

    @classmethod
    def require_closed(cls, period: PayrollPeriod) -> None:
        """Raise InvalidStateError unless the period is closed."""
        if not cls.is_editable(period.status):
            raise InvalidStateError(
                "PayrollPeriod",
                period.period_id,
                period.status,
                required=PeriodStatus.CLOSED.value,
            )


class SessionStateMachine:
    """State machine for editing session status.

    Allowed transitions:
    - active → saving
    - active → cancelled (discard)
    - active → expired (abandoned-session cleanup)
    - saving → completed
    - saving → cancelled (failed apply)

    completed, cancelled and expired are terminal.
    """

    VALID_TRANSITIONS: dict[str, list[str]] = {
        SessionStatus.ACTIVE: [
            SessionStatus.SAVING,
            SessionStatus.CANCELLED,
            SessionStatus.EXPIRED,
        ],
        SessionStatus.SAVING: [SessionStatus.COMPLETED, SessionStatus.CANCELLED],
        SessionStatus.COMPLETED: [],
        SessionStatus.CANCELLED: [],
        SessionStatus.EXPIRED: [],
    }

    # Statuses that hold the period lock
    LOCK_HOLDING = {SessionStatus.ACTIVE, SessionStatus.SAVING}

    @classmethod
    def can_transition(cls, from_status: str, to_status: str) -> bool:
        """Check if a transition is valid."""
        return to_status in cls.VALID_TRANSITIONS.get(from_status, [])

    @classmethod
    def transition(cls, editing_session: EditingSession, to_status: str) -> None:
        """Move a session to a new status, raising InvalidStateError if not allowed."""
        if not cls.can_transition(editing_session.status, to_status):
            raise InvalidStateError(
                "EditingSession",
                editing_session.session_id,
                editing_session.status,
                reason=f"cannot transition to '{to_status}'",
            )
        editing_session.status = SessionStatus(to_status).value
