"""Period consistency services."""

from period_consistency.services.changes import Change, ChangeSet
from period_consistency.services.conflict_detector import ConflictDetector, DateRange
from period_consistency.services.editing_service import EditingSessionService
from period_consistency.services.recovery_service import RecoveryService
from period_consistency.services.repository import PeriodRepository
from period_consistency.services.state_machine import (
    PeriodStateMachine,
    PeriodStatus,
    SessionStateMachine,
    SessionStatus,
    VersionType,
)
from period_consistency.services.version_service import VersionService

__all__ = [
    "Change",
    "ChangeSet",
    "ConflictDetector",
    "DateRange",
    "EditingSessionService",
    "RecoveryService",
    "PeriodRepository",
    "PeriodStateMachine",
    "PeriodStatus",
    "SessionStateMachine",
    "SessionStatus",
    "VersionType",
    "VersionService",
]
