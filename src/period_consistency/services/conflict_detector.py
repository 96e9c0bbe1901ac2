"""Detection of double-counted leave between the absence and payroll modules.

Absence records (source A) and absence-type adjustment entries (source B) are
recorded independently for the same employee; a pair of them covering the same
days is a potential double count.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from period_consistency.exceptions import PersistenceError, ValidationError
from period_consistency.services.repository import PeriodRepository

logger = logging.getLogger(__name__)

SOURCE_ABSENCE = "absence_module"
SOURCE_ADJUSTMENT = "adjustment_module"

ABSENCE_STATUSES = ("pending", "settled")

# Adjustment type -> absence type it corresponds to
TYPE_EQUIVALENCE = {
    "vacation": "vacation",
    "paid_leave": "paid_leave",
    "unpaid_leave": "absence",
    "sick_leave": "sick_leave",
    "absence": "absence",
}

ABSENCE_ADJUSTMENT_TYPES = tuple(TYPE_EQUIVALENCE)


class ConflictType:
    DUPLICATE = "duplicate"
    OVERLAP = "overlap"
    TYPE_MISMATCH = "type_mismatch"


SEVERITY = {
    ConflictType.DUPLICATE: "high",
    ConflictType.OVERLAP: "medium",
    ConflictType.TYPE_MISMATCH: "low",
}


@dataclass(frozen=True)
class DateRange:
    start: date
    end: date

    def __post_init__(self):
        if self.start > self.end:
            raise ValidationError([f"Invalid date range: {self.start} is after {self.end}"])


@dataclass(frozen=True)
class ConflictRecord:
    """One leave record from either module."""

    record_id: UUID
    employee_id: UUID
    employee_name: str
    type: str
    start_date: date
    end_date: date
    source: str
    status: str | None = None
    notes: str | None = None

    def intersects(self, other: ConflictRecord) -> bool:
        return self.start_date <= other.end_date and other.start_date <= self.end_date

    def same_dates(self, other: ConflictRecord) -> bool:
        return self.start_date == other.start_date and self.end_date == other.end_date

    def sort_key(self) -> tuple:
        return (self.start_date, self.end_date, self.type, str(self.record_id))


@dataclass
class ConflictGroup:
    """Conflicting (absence, adjustment) pairs of one class for one employee."""

    employee_id: UUID
    employee_name: str
    conflict_type: str
    severity: str
    pairs: list[tuple[ConflictRecord, ConflictRecord]] = field(default_factory=list)

    @property
    def records(self) -> list[ConflictRecord]:
        """Flattened pair members, absence record first."""
        return [record for pair in self.pairs for record in pair]


@dataclass
class ConflictReport:
    groups: list[ConflictGroup] = field(default_factory=list)

    @property
    def total_conflicts(self) -> int:
        return sum(len(group.pairs) for group in self.groups)

    @property
    def has_conflicts(self) -> bool:
        return self.total_conflicts > 0

    @property
    def summary(self) -> dict[str, int]:
        counts = {"duplicates": 0, "overlaps": 0, "type_mismatches": 0}
        keys = {
            ConflictType.DUPLICATE: "duplicates",
            ConflictType.OVERLAP: "overlaps",
            ConflictType.TYPE_MISMATCH: "type_mismatches",
        }
        for group in self.groups:
            counts[keys[group.conflict_type]] += len(group.pairs)
        return counts


def is_equivalent_type(absence_type: str, adjustment_type: str) -> bool:
    """Check if an adjustment type maps onto the absence record's type."""
    mapped = TYPE_EQUIVALENCE.get(adjustment_type)
    if mapped is None:
        return False
    return TYPE_EQUIVALENCE.get(absence_type, absence_type) == mapped


def classify_pair(a: ConflictRecord, b: ConflictRecord) -> str | None:
    """Classify one (absence, adjustment) pair; None when they don't conflict."""
    equivalent = is_equivalent_type(a.type, b.type)
    if equivalent and a.same_dates(b):
        return ConflictType.DUPLICATE
    if not a.intersects(b):
        return None
    return ConflictType.OVERLAP if equivalent else ConflictType.TYPE_MISMATCH


def analyze_conflicts(
    source_a: list[ConflictRecord], source_b: list[ConflictRecord]
) -> ConflictReport:
    """Pure classification of every A x B pair per employee.

    Output ordering is fully determined by the input records, so the same
    inputs always produce the same report.
    """
    by_employee_a: dict[UUID, list[ConflictRecord]] = defaultdict(list)
    by_employee_b: dict[UUID, list[ConflictRecord]] = defaultdict(list)
    for record in source_a:
        by_employee_a[record.employee_id].append(record)
    for record in source_b:
        by_employee_b[record.employee_id].append(record)

    groups: list[ConflictGroup] = []
    for employee_id in by_employee_a.keys() & by_employee_b.keys():
        records_a = sorted(by_employee_a[employee_id], key=ConflictRecord.sort_key)
        records_b = sorted(by_employee_b[employee_id], key=ConflictRecord.sort_key)
        employee_name = records_a[0].employee_name

        by_type: dict[str, ConflictGroup] = {}
        for a in records_a:
            for b in records_b:
                conflict_type = classify_pair(a, b)
                if conflict_type is None:
                    continue
                group = by_type.get(conflict_type)
                if group is None:
                    group = by_type[conflict_type] = ConflictGroup(
                        employee_id=employee_id,
                        employee_name=employee_name,
                        conflict_type=conflict_type,
                        severity=SEVERITY[conflict_type],
                    )
                group.pairs.append((a, b))

        for conflict_type in (
            ConflictType.DUPLICATE,
            ConflictType.OVERLAP,
            ConflictType.TYPE_MISMATCH,
        ):
            if conflict_type in by_type:
                groups.append(by_type[conflict_type])

    severity_rank = {"high": 0, "medium": 1, "low": 2}
    groups.sort(
        key=lambda g: (severity_rank[g.severity], g.employee_name, str(g.employee_id))
    )
    return ConflictReport(groups=groups)


class ConflictDetector:
    """Read-only detector bound to one tenant."""

    def __init__(self, session: AsyncSession, company_id: UUID):
        self.company_id = company_id
        self.repository = PeriodRepository(session, company_id)

    async def detect_conflicts(
        self, date_range: DateRange, period_id: UUID | None = None
    ) -> ConflictReport:
        try:
            source_a = await self._load_absences(date_range)
            source_b = await self._load_adjustments(date_range, period_id)
        except SQLAlchemyError as exc:
            raise PersistenceError("detect_conflicts", str(exc)) from exc

        report = analyze_conflicts(source_a, source_b)
        logger.info(
            "Conflict scan %s..%s for company %s: %d conflict(s)",
            date_range.start,
            date_range.end,
            self.company_id,
            report.total_conflicts,
        )
        return report

    async def _load_absences(self, date_range: DateRange) -> list[ConflictRecord]:
        rows = await self.repository.list_absence_records(
            date_range.start, date_range.end, ABSENCE_STATUSES
        )
        return [
            ConflictRecord(
                record_id=absence.absence_id,
                employee_id=employee.employee_id,
                employee_name=employee.full_name,
                type=absence.absence_type,
                start_date=absence.start_date,
                end_date=absence.end_date,
                source=SOURCE_ABSENCE,
                status=absence.status,
                notes=absence.notes,
            )
            for absence, employee in rows
        ]

    async def _load_adjustments(
        self, date_range: DateRange, period_id: UUID | None
    ) -> list[ConflictRecord]:
        rows = await self.repository.list_absence_adjustments(
            ABSENCE_ADJUSTMENT_TYPES, date_range.start, date_range.end, period_id
        )
        return [
            ConflictRecord(
                record_id=adjustment.adjustment_id,
                employee_id=employee.employee_id,
                employee_name=employee.full_name,
                type=adjustment.adjustment_type,
                start_date=adjustment.start_date or date_range.start,
                end_date=adjustment.end_date or date_range.end,
                source=SOURCE_ADJUSTMENT,
                notes=adjustment.notes,
            )
            for adjustment, employee in rows
        ]
