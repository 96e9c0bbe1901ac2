"""ORM models."""

from period_consistency.models.base import Base, TimestampMixin
from period_consistency.models.company import Company
from period_consistency.models.editing import EditingSession, PeriodSnapshot
from period_consistency.models.employee import AbsenceRecord, Employee
from period_consistency.models.history import AuditLogEntry, VersionHistoryEntry
from period_consistency.models.payroll import AdjustmentEntry, PayrollDetailRow, PayrollPeriod

__all__ = [
    "Base",
    "TimestampMixin",
    "Company",
    "Employee",
    "AbsenceRecord",
    "PayrollPeriod",
    "PayrollDetailRow",
    "AdjustmentEntry",
    "EditingSession",
    "PeriodSnapshot",
    "VersionHistoryEntry",
    "AuditLogEntry",
]
