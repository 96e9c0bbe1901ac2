"""Version history, rollback and version comparison."""

from __future__ import annotations

import logging
from collections import Counter, defaultdict
from decimal import Decimal
from uuid import UUID

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from period_consistency.exceptions import (
    LockHeldError,
    PersistenceError,
    ValidationError,
)
from period_consistency.models import VersionHistoryEntry
from period_consistency.services.audit_service import AuditAction, AuditService
from period_consistency.services.repository import PeriodRepository
from period_consistency.services.snapshot_service import SnapshotService
from period_consistency.services.state_machine import PeriodStateMachine, VersionType
from period_consistency.services.types import (
    EmployeeImpact,
    EmployeeVersionChange,
    FieldChange,
    RollbackImpact,
    RollbackResult,
    SnapshotAdjustment,
    SnapshotPayload,
    VersionComparison,
)

logger = logging.getLogger(__name__)

ZERO = Decimal("0")

COMPARED_FIELDS = ("base_salary", "worked_days", "gross", "deductions", "net")


class VersionService:
    """Service for a period's version history.

    Operations:
    - record_version: Append a numbered, immutable snapshot
    - rollback_to_version: Restore a past snapshot as a new version
    - preview_rollback: Read-only impact of a rollback
    - compare_versions: Per-employee differences between two versions
    """

    def __init__(self, session: AsyncSession, company_id: UUID):
        self.session = session
        self.company_id = company_id
        self.repository = PeriodRepository(session, company_id)
        self.snapshots = SnapshotService(self.repository)
        self.audit = AuditService(session, company_id)

    async def record_version(
        self,
        period_id: UUID,
        version_type: str,
        summary: str,
        actor_id: UUID | None = None,
        previous_version_id: UUID | None = None,
        snapshot: SnapshotPayload | None = None,
    ) -> VersionHistoryEntry:
        """Append a version inside the caller's transaction.

        The number is MAX()+1 read in the same transaction; a concurrent
        writer that picked the same number fails on the unique constraint.
        When no snapshot is given the period's current state is captured, and
        previous_version_id defaults to the latest version.
        """
        if snapshot is None:
            period = await self.repository.require_period(period_id)
            snapshot = await self.snapshots.capture(period)

        if previous_version_id is None:
            versions = await self.repository.list_versions(period_id)
            if versions:
                previous_version_id = versions[-1].version_id

        number = await self.repository.next_version_number(period_id)
        entry = VersionHistoryEntry(
            company_id=self.company_id,
            period_id=period_id,
            version_number=number,
            version_type=VersionType(version_type).value,
            snapshot=snapshot.to_json(),
            changes_summary=summary,
            previous_version_id=previous_version_id,
            actor_id=actor_id,
        )
        self.repository.add(entry)
        try:
            await self.repository.flush()
        except IntegrityError as exc:
            raise PersistenceError("record_version", f"version {number} already exists") from exc

        logger.info(
            "Recorded %s version %d for period %s", entry.version_type, number, period_id
        )
        return entry

    async def record_auto_recalculation(
        self,
        period_id: UUID,
        summary: str,
        actor_id: UUID | None = None,
    ) -> VersionHistoryEntry:
        """Record the current state after an external recalculation job."""
        try:
            entry = await self.record_version(
                period_id, VersionType.AUTO_RECALCULATION, summary, actor_id
            )
            await self.session.commit()
        except SQLAlchemyError as exc:
            await self.session.rollback()
            raise PersistenceError("record_auto_recalculation", str(exc)) from exc
        except Exception:
            await self.session.rollback()
            raise
        return entry

    async def list_versions(self, period_id: UUID) -> list[VersionHistoryEntry]:
        await self.repository.require_period(period_id)
        return await self.repository.list_versions(period_id)

    async def get_version(self, period_id: UUID, version_id: UUID) -> VersionHistoryEntry:
        return await self.repository.require_version(period_id, version_id)

    # ----- Rollback -----

    async def rollback_to_version(
        self,
        period_id: UUID,
        version_id: UUID,
        justification: str,
        actor_id: UUID | None = None,
    ) -> RollbackResult:
        """Restore a version's snapshot as the period's live state.

        ROLLBACK_INITIATED is committed first. The restore, the totals
        overwrite, the new rollback version and ROLLBACK_SUCCESS share one
        transaction; on failure it is rolled back and ROLLBACK_FAILED is
        committed before the error propagates.
        """
        period = await self.repository.require_period(period_id)
        version = await self.repository.require_version(period_id, version_id)
        PeriodStateMachine.require_closed(period)
        if not justification or not justification.strip():
            raise ValidationError(["Rollback requires a justification"])

        open_session = await self.repository.find_open_session(period_id)
        if open_session is not None:
            raise LockHeldError(period_id, open_session.session_id)

        payload = SnapshotPayload.from_json(version.snapshot)
        source_number = version.version_number

        await self.audit.record_rollback(
            AuditAction.ROLLBACK_INITIATED, period_id, version_id, justification, actor_id
        )
        await self.session.commit()
        logger.info(
            "Rollback of period %s to version %d initiated", period_id, source_number
        )

        try:
            period = await self.repository.require_period(period_id, for_update=True)
            totals = await self.snapshots.restore(period, payload)
            new_version = await self.record_version(
                period_id,
                VersionType.ROLLBACK,
                f"Rollback to version {source_number}: {justification}",
                actor_id=actor_id,
                previous_version_id=version_id,
            )
            await self.audit.record_rollback(
                AuditAction.ROLLBACK_SUCCESS,
                period_id,
                version_id,
                justification,
                actor_id,
                new_version_number=new_version.version_number,
            )
            await self.session.commit()
        except Exception as exc:
            await self.session.rollback()
            logger.error("Rollback of period %s failed: %s", period_id, exc)
            await self._record_rollback_failure(
                period_id, version_id, justification, actor_id, str(exc)
            )
            if isinstance(exc, SQLAlchemyError):
                raise PersistenceError("rollback_to_version", str(exc)) from exc
            raise

        logger.info(
            "Period %s rolled back to version %d as version %d",
            period_id,
            source_number,
            new_version.version_number,
        )
        return RollbackResult(
            period_id=period_id,
            restored_version_id=version_id,
            new_version_id=new_version.version_id,
            new_version_number=new_version.version_number,
            rows_restored=len(payload.detail_rows),
            adjustments_restored=len(payload.adjustments),
            totals=totals,
        )

    async def _record_rollback_failure(
        self,
        period_id: UUID,
        version_id: UUID,
        justification: str,
        actor_id: UUID | None,
        error: str,
    ) -> None:
        try:
            await self.audit.record_rollback(
                AuditAction.ROLLBACK_FAILED,
                period_id,
                version_id,
                justification,
                actor_id,
                error=error,
            )
            await self.session.commit()
        except SQLAlchemyError:
            await self.session.rollback()
            logger.exception("Could not record ROLLBACK_FAILED for period %s", period_id)

    async def preview_rollback(self, period_id: UUID, version_id: UUID) -> RollbackImpact:
        """Per-employee net impact of rolling back, without writing anything."""
        period = await self.repository.require_period(period_id)
        version = await self.repository.require_version(period_id, version_id)

        if not PeriodStateMachine.is_editable(period.status):
            return RollbackImpact(
                can_rollback=False,
                reason=f"Period is '{period.status}', rollback requires 'closed'",
            )
        open_session = await self.repository.find_open_session(period_id)
        if open_session is not None:
            return RollbackImpact(
                can_rollback=False,
                reason=f"Period is being edited (session {open_session.session_id})",
            )

        target = SnapshotPayload.from_json(version.snapshot)
        current = await self.snapshots.capture(period)
        names = _employee_names(current, target)
        current_rows = current.rows_by_employee()
        target_rows = target.rows_by_employee()

        changes = []
        for employee_id in _ordered_ids(current_rows.keys() | target_rows.keys(), names):
            current_net = current_rows[employee_id].net if employee_id in current_rows else ZERO
            target_net = target_rows[employee_id].net if employee_id in target_rows else ZERO
            if current_net != target_net:
                changes.append(
                    EmployeeImpact(
                        employee_id=employee_id,
                        employee_name=names.get(employee_id, str(employee_id)),
                        current_net=current_net,
                        target_net=target_net,
                    )
                )

        current_totals = current.computed_totals()
        target_totals = target.computed_totals() if target.detail_rows else target.totals
        return RollbackImpact(
            can_rollback=True,
            employee_changes=changes,
            gross_difference=target_totals.gross - current_totals.gross,
            net_difference=target_totals.net - current_totals.net,
        )

    # ----- Comparison -----

    async def compare_versions(
        self, period_id: UUID, from_version_id: UUID, to_version_id: UUID
    ) -> VersionComparison:
        from_version = await self.repository.require_version(period_id, from_version_id)
        to_version = await self.repository.require_version(period_id, to_version_id)
        before = SnapshotPayload.from_json(from_version.snapshot)
        after = SnapshotPayload.from_json(to_version.snapshot)
        return VersionComparison(
            period_id=period_id,
            from_version_number=from_version.version_number,
            to_version_number=to_version.version_number,
            employee_changes=diff_snapshots(before, after),
        )


def diff_snapshots(before: SnapshotPayload, after: SnapshotPayload) -> list[EmployeeVersionChange]:
    """Per-employee differences between two snapshots, ordered by name.

    Adjustments are matched by (type, subtype, dates) rather than id, since
    rollback re-inserts them under fresh ids.
    """
    names = _employee_names(before, after)
    before_rows = before.rows_by_employee()
    after_rows = after.rows_by_employee()
    before_adjustments = _adjustments_by_employee(before.adjustments)
    after_adjustments = _adjustments_by_employee(after.adjustments)

    employee_ids = (
        before_rows.keys()
        | after_rows.keys()
        | before_adjustments.keys()
        | after_adjustments.keys()
    )

    changes = []
    for employee_id in _ordered_ids(employee_ids, names):
        old_row = before_rows.get(employee_id)
        new_row = after_rows.get(employee_id)
        field_changes = []
        for name in COMPARED_FIELDS:
            old_value = Decimal(getattr(old_row, name)) if old_row else ZERO
            new_value = Decimal(getattr(new_row, name)) if new_row else ZERO
            if old_value != new_value:
                field_changes.append(FieldChange(name, old_value, new_value))

        added, removed, modified = _diff_adjustments(
            before_adjustments.get(employee_id, []),
            after_adjustments.get(employee_id, []),
        )

        if old_row is None and new_row is not None:
            change_type = "employee_added"
        elif old_row is not None and new_row is None:
            change_type = "employee_removed"
        elif field_changes or added or removed or modified:
            change_type = "values_modified"
        else:
            change_type = "no_change"

        changes.append(
            EmployeeVersionChange(
                employee_id=employee_id,
                employee_name=names.get(employee_id, str(employee_id)),
                change_type=change_type,
                field_changes=field_changes,
                adjustments_added=added,
                adjustments_removed=removed,
                adjustments_modified=modified,
            )
        )
    return changes


def _employee_names(*payloads: SnapshotPayload) -> dict[UUID, str]:
    names: dict[UUID, str] = {}
    for payload in payloads:
        for employee in payload.employees:
            names[employee.employee_id] = employee.full_name
    return names


def _ordered_ids(employee_ids, names: dict[UUID, str]) -> list[UUID]:
    return sorted(employee_ids, key=lambda eid: (names.get(eid, ""), str(eid)))


def _adjustments_by_employee(
    adjustments: list[SnapshotAdjustment],
) -> dict[UUID, list[SnapshotAdjustment]]:
    grouped: dict[UUID, list[SnapshotAdjustment]] = defaultdict(list)
    for adjustment in adjustments:
        grouped[adjustment.employee_id].append(adjustment)
    return grouped


def _adjustment_key(adjustment: SnapshotAdjustment) -> tuple:
    return (
        adjustment.adjustment_type,
        adjustment.subtype,
        adjustment.start_date,
        adjustment.end_date,
    )


def _adjustment_content(adjustment: SnapshotAdjustment) -> tuple:
    return (adjustment.value, adjustment.days, adjustment.notes)


def _diff_adjustments(
    before: list[SnapshotAdjustment], after: list[SnapshotAdjustment]
) -> tuple[int, int, int]:
    """Count (added, removed, modified) adjustments between two lists."""
    before_by_key: dict[tuple, list[tuple]] = defaultdict(list)
    after_by_key: dict[tuple, list[tuple]] = defaultdict(list)
    for adjustment in before:
        before_by_key[_adjustment_key(adjustment)].append(_adjustment_content(adjustment))
    for adjustment in after:
        after_by_key[_adjustment_key(adjustment)].append(_adjustment_content(adjustment))

    added = removed = modified = 0
    for key in before_by_key.keys() | after_by_key.keys():
        old = Counter(before_by_key.get(key, []))
        new = Counter(after_by_key.get(key, []))
        only_old = sum((old - new).values())
        only_new = sum((new - old).values())
        paired = min(only_old, only_new)
        modified += paired
        removed += only_old - paired
        added += only_new - paired
    return added, removed, modified
