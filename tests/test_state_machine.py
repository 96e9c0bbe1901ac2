"""Tests for period and editing session state machines."""

from uuid import uuid4

import pytest

from period_consistency.exceptions import InvalidStateError
from period_consistency.models import EditingSession, PayrollPeriod
from period_consistency.services.state_machine import (
    PeriodStateMachine,
    SessionStateMachine,
    SessionStatus,
)


class TestPeriodStateMachine:
    """Test period status checks."""

    def test_only_closed_is_editable(self):
        assert PeriodStateMachine.is_editable("closed") is True
        assert PeriodStateMachine.is_editable("open") is False
        assert PeriodStateMachine.is_editable("draft") is False

    def test_require_closed(self):
        period = PayrollPeriod(period_id=uuid4(), status="open")
        with pytest.raises(InvalidStateError) as exc_info:
            PeriodStateMachine.require_closed(period)
        assert exc_info.value.required == "closed"


class TestSessionStateMachine:
    """Test editing session transitions."""

    @pytest.mark.parametrize(
        "from_status,to_status",
        [
            ("active", "saving"),
            ("active", "cancelled"),
            ("active", "expired"),
            ("saving", "completed"),
            ("saving", "cancelled"),
        ],
    )
    def test_valid_transitions(self, from_status, to_status):
        assert SessionStateMachine.can_transition(from_status, to_status) is True

    @pytest.mark.parametrize(
        "from_status,to_status",
        [
            ("active", "completed"),
            ("saving", "active"),
            ("saving", "expired"),
            ("completed", "active"),
            ("cancelled", "active"),
            ("expired", "active"),
        ],
    )
    def test_invalid_transitions(self, from_status, to_status):
        assert SessionStateMachine.can_transition(from_status, to_status) is False

    def test_lock_holding_statuses(self):
        assert {s.value for s in SessionStateMachine.LOCK_HOLDING} == {"active", "saving"}

    def test_transition_raises_on_terminal(self):
        editing_session = EditingSession(session_id=uuid4(), status="completed")
        with pytest.raises(InvalidStateError):
            SessionStateMachine.transition(editing_session, SessionStatus.CANCELLED)
        assert editing_session.status == "completed"

    def test_transition_stores_value(self):
        editing_session = EditingSession(session_id=uuid4(), status="active")
        SessionStateMachine.transition(editing_session, SessionStatus.SAVING)
        assert editing_session.status == "saving"
        assert type(editing_session.status) is str
