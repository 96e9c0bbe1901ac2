"""Business-rule validation of staged change sets."""

from __future__ import annotations

from collections import Counter
from datetime import date
from decimal import Decimal
from typing import Iterable
from uuid import UUID

from period_consistency.services.changes import ChangeSet
from period_consistency.services.repository import PeriodRepository
from period_consistency.services.types import ValidationResult

ZERO = Decimal("0")


def repeated(ids: Iterable[UUID]) -> list[UUID]:
    """Ids occurring more than once, in first-seen order."""
    counts = Counter(ids)
    return [item for item, count in counts.items() if count > 1]


class ChangeValidator:
    """Checks a ChangeSet against the period's live data without mutating it.

    Errors block apply; warnings are informational. Anything apply would
    trip over (duplicates, ids that vanish with a removed employee, foreign
    employees) is reported here as an error.
    """

    def __init__(self, repository: PeriodRepository):
        self.repository = repository

    async def validate(self, period_id: UUID, change_set: ChangeSet) -> ValidationResult:
        errors: list[str] = []
        warnings: list[str] = []

        if change_set.is_empty:
            return ValidationResult(is_valid=False, errors=["No changes staged"])

        rows = await self.repository.list_detail_rows(period_id)
        adjustments = {
            adj.adjustment_id: adj for adj in await self.repository.list_adjustments(period_id)
        }
        on_roster = {row.employee_id for row in rows}
        removed = set(change_set.employees_removed)
        added = {addition.employee_id for addition in change_set.employees_added}
        final_roster = (on_roster - removed) | added

        # Duplicates within a bucket
        for employee_id in repeated(a.employee_id for a in change_set.employees_added):
            errors.append(f"Employee {employee_id} is added more than once")
        for employee_id in repeated(change_set.employees_removed):
            errors.append(f"Employee {employee_id} is removed more than once")
        for employee_id in repeated(o.employee_id for o in change_set.detail_overrides):
            errors.append(f"Detail for employee {employee_id} is overridden more than once")
        for adjustment_id in repeated(m.adjustment_id for m in change_set.adjustments_modified):
            errors.append(f"Adjustment {adjustment_id} is modified more than once")
        for adjustment_id in repeated(change_set.adjustments_deleted):
            errors.append(f"Adjustment {adjustment_id} is deleted more than once")

        # Removals
        for employee_id in dict.fromkeys(change_set.employees_removed):
            if await self.repository.employee_has_processed_rows(employee_id, period_id):
                errors.append(
                    f"Cannot remove employee with processed payments: {employee_id}"
                )
            elif employee_id not in on_roster:
                warnings.append(f"Employee {employee_id} is not on the period roster")

        # Additions
        drafted = {draft.employee_id for draft in change_set.adjustments_added}
        known = await self.repository.get_employees(added | drafted)
        for addition in change_set.employees_added:
            if addition.employee_id not in known:
                errors.append(f"Employee {addition.employee_id} does not exist")
            elif addition.employee_id in on_roster and addition.employee_id not in removed:
                errors.append(f"Employee {addition.employee_id} already has a detail row")
            if addition.net < ZERO:
                warnings.append(f"Negative net for added employee {addition.employee_id}")

        # Overrides
        for override in change_set.detail_overrides:
            if override.employee_id not in final_roster:
                errors.append(
                    f"Cannot override detail for employee {override.employee_id} not on the roster"
                )
            if override.net is not None and override.net < ZERO:
                warnings.append(f"Negative net override for employee {override.employee_id}")

        # Adjustments
        for draft in change_set.adjustments_added:
            if draft.value is None:
                errors.append("Adjustment must have a defined value")
            self._check_dates(draft.start_date, draft.end_date, errors)
            if draft.employee_id not in known:
                errors.append(f"Employee {draft.employee_id} does not exist")
            elif draft.employee_id not in final_roster:
                warnings.append(f"Adjustment for employee {draft.employee_id} not on the roster")

        deleted = set(change_set.adjustments_deleted)
        for modification in change_set.adjustments_modified:
            existing = adjustments.get(modification.adjustment_id)
            if existing is None:
                errors.append(f"Adjustment {modification.adjustment_id} not found in period")
                continue
            if modification.adjustment_id in deleted:
                errors.append(
                    f"Adjustment {modification.adjustment_id} is both modified and deleted"
                )
            if existing.employee_id in removed:
                errors.append(
                    f"Adjustment {modification.adjustment_id} belongs to removed "
                    f"employee {existing.employee_id}"
                )
            fields = modification.updated_fields()
            if "adjustment_type" in fields and fields["adjustment_type"] is None:
                errors.append("Adjustment type cannot be cleared")
            if fields.get("value", existing.value) is None:
                errors.append("Adjustment must have a defined value")
            self._check_dates(
                fields.get("start_date", existing.start_date),
                fields.get("end_date", existing.end_date),
                errors,
            )

        for adjustment_id in dict.fromkeys(change_set.adjustments_deleted):
            if adjustment_id not in adjustments:
                errors.append(f"Adjustment {adjustment_id} not found in period")

        return ValidationResult(is_valid=not errors, errors=errors, warnings=warnings)

    @staticmethod
    def _check_dates(start: date | None, end: date | None, errors: list[str]) -> None:
        if start is not None and end is not None and start > end:
            errors.append("Adjustment start date cannot be after end date")
