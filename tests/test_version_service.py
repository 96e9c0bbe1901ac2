"""Tests for version history, rollback and comparison."""

from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import select

from conftest import count_rows, period_state
from period_consistency.exceptions import (
    InvalidStateError,
    LockHeldError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from period_consistency.models import AuditLogEntry, PayrollPeriod, VersionHistoryEntry
from period_consistency.services.changes import (
    DeleteAdjustment,
    DetailOverride,
    OverrideDetail,
    RemoveEmployee,
)
from period_consistency.services.editing_service import EditingSessionService
from period_consistency.services.types import SnapshotPayload
from period_consistency.services.version_service import VersionService


@pytest.fixture
def editing(session, payroll) -> EditingSessionService:
    return EditingSessionService(session, payroll.company_id)


@pytest.fixture
def versions(session, payroll) -> VersionService:
    return VersionService(session, payroll.company_id)


async def edit(editing: EditingSessionService, period_id, *changes):
    editing_session = await editing.start_editing_session(period_id)
    for change in changes:
        await editing.stage_change(editing_session.session_id, change)
    await editing.apply_changes(editing_session.session_id)


async def audit_actions(session, period_id) -> list[str]:
    result = await session.execute(
        select(AuditLogEntry.action)
        .where(AuditLogEntry.entity_id == period_id)
        .order_by(AuditLogEntry.created_at)
    )
    return list(result.scalars().all())


class TestRecordVersion:
    async def test_numbers_are_sequential(self, session, payroll, versions):
        first = await versions.record_version(payroll.period_id, "auto_recalculation", "first")
        second = await versions.record_version(payroll.period_id, "auto_recalculation", "second")
        await session.commit()

        assert (first.version_number, second.version_number) == (1, 2)
        assert second.previous_version_id == first.version_id

    async def test_snapshot_is_current_state(self, payroll, versions):
        entry = await versions.record_auto_recalculation(payroll.period_id, "nightly job")

        assert entry.version_type == "auto_recalculation"
        payload = SnapshotPayload.from_json(entry.snapshot)
        assert payload.totals.gross == Decimal("5000")
        assert {row.employee_id for row in payload.detail_rows} == {
            payroll.ana.employee_id,
            payroll.bruno.employee_id,
        }

    async def test_duplicate_number_is_rejected(self, session, payroll, versions, monkeypatch):
        await versions.record_auto_recalculation(payroll.period_id, "first")

        async def stale_number(period_id):
            return 1

        monkeypatch.setattr(versions.repository, "next_version_number", stale_number)

        with pytest.raises(PersistenceError):
            await versions.record_auto_recalculation(payroll.period_id, "racing")

        assert await count_rows(session, VersionHistoryEntry, period_id=payroll.period_id) == 1

    async def test_list_and_get(self, payroll, editing, versions):
        await edit(
            editing,
            payroll.period_id,
            OverrideDetail(override=DetailOverride(employee_id=payroll.ana.employee_id, net=Decimal("2600"))),
        )

        listed = await versions.list_versions(payroll.period_id)
        assert [v.version_type for v in listed] == ["initial", "manual_edit"]

        fetched = await versions.get_version(payroll.period_id, listed[1].version_id)
        assert fetched.version_id == listed[1].version_id

        with pytest.raises(NotFoundError):
            await versions.get_version(payroll.period_id, uuid4())


class TestRollback:
    async def test_round_trip_restores_version_snapshot(self, session, payroll, editing, versions):
        original = await period_state(session, payroll.period_id)
        await edit(
            editing,
            payroll.period_id,
            RemoveEmployee(employee_id=payroll.ana.employee_id),
        )
        assert len((await period_state(session, payroll.period_id))["rows"]) == 1

        initial = (await versions.list_versions(payroll.period_id))[0]
        result = await versions.rollback_to_version(
            payroll.period_id, initial.version_id, "Ana was removed by mistake"
        )

        assert result.new_version_number == 3
        assert result.rows_restored == 2
        assert result.adjustments_restored == 1
        assert await period_state(session, payroll.period_id) == original

        rollback_entry = (await versions.list_versions(payroll.period_id))[-1]
        assert rollback_entry.version_type == "rollback"
        assert rollback_entry.previous_version_id == initial.version_id
        assert await audit_actions(session, payroll.period_id) == [
            "ROLLBACK_INITIATED",
            "ROLLBACK_SUCCESS",
        ]

    async def test_restored_rows_get_fresh_ids(self, session, payroll, editing, versions):
        await edit(
            editing,
            payroll.period_id,
            DeleteAdjustment(adjustment_id=payroll.ana_vacation_id),
        )
        initial = (await versions.list_versions(payroll.period_id))[0]

        await versions.rollback_to_version(payroll.period_id, initial.version_id, "restore")

        snapshot = SnapshotPayload.from_json(initial.snapshot)
        live = SnapshotPayload.from_json(
            (await versions.list_versions(payroll.period_id))[-1].snapshot
        )
        assert {a.adjustment_id for a in live.adjustments}.isdisjoint(
            {a.adjustment_id for a in snapshot.adjustments}
        )

    async def test_failure_rolls_back_and_records_failure(
        self, session, payroll, editing, versions, monkeypatch
    ):
        await edit(
            editing,
            payroll.period_id,
            RemoveEmployee(employee_id=payroll.ana.employee_id),
        )
        before = await period_state(session, payroll.period_id)
        initial = (await versions.list_versions(payroll.period_id))[0]
        initial_id = initial.version_id

        async def failing_update(period, totals):
            raise RuntimeError("disk full")

        monkeypatch.setattr(versions.repository, "update_period_totals", failing_update)

        with pytest.raises(RuntimeError):
            await versions.rollback_to_version(payroll.period_id, initial_id, "retry")

        assert await period_state(session, payroll.period_id) == before
        assert await count_rows(session, VersionHistoryEntry, period_id=payroll.period_id) == 2
        assert await audit_actions(session, payroll.period_id) == [
            "ROLLBACK_INITIATED",
            "ROLLBACK_FAILED",
        ]

    async def test_requires_justification(self, payroll, editing, versions):
        entry = await versions.record_auto_recalculation(payroll.period_id, "baseline")

        with pytest.raises(ValidationError):
            await versions.rollback_to_version(payroll.period_id, entry.version_id, "   ")

    async def test_requires_closed_period(self, session, payroll, versions):
        entry = await versions.record_auto_recalculation(payroll.period_id, "baseline")
        period = await session.get(PayrollPeriod, payroll.period_id)
        period.status = "open"
        await session.commit()

        with pytest.raises(InvalidStateError):
            await versions.rollback_to_version(payroll.period_id, entry.version_id, "why")

    async def test_unknown_version(self, payroll, versions):
        with pytest.raises(NotFoundError):
            await versions.rollback_to_version(payroll.period_id, uuid4(), "why")

    async def test_blocked_while_period_is_being_edited(self, payroll, editing, versions):
        entry = await versions.record_auto_recalculation(payroll.period_id, "baseline")
        await editing.start_editing_session(payroll.period_id)

        with pytest.raises(LockHeldError):
            await versions.rollback_to_version(payroll.period_id, entry.version_id, "why")


class TestPreviewAndCompare:
    async def test_preview_reports_net_impact(self, session, payroll, editing, versions):
        await edit(
            editing,
            payroll.period_id,
            OverrideDetail(override=DetailOverride(employee_id=payroll.ana.employee_id, net=Decimal("2600"))),
        )
        before = await period_state(session, payroll.period_id)
        initial = (await versions.list_versions(payroll.period_id))[0]

        impact = await versions.preview_rollback(payroll.period_id, initial.version_id)

        assert impact.can_rollback is True
        assert impact.affected_count == 1
        change = impact.employee_changes[0]
        assert change.employee_id == payroll.ana.employee_id
        assert change.difference == Decimal("100")
        assert impact.net_difference == Decimal("100")
        assert impact.gross_difference == Decimal("0")
        assert await period_state(session, payroll.period_id) == before

    async def test_preview_reports_blocking_session(self, payroll, editing, versions):
        entry = await versions.record_auto_recalculation(payroll.period_id, "baseline")
        await editing.start_editing_session(payroll.period_id)

        impact = await versions.preview_rollback(payroll.period_id, entry.version_id)

        assert impact.can_rollback is False
        assert "being edited" in impact.reason

    async def test_compare_versions(self, payroll, editing, versions):
        await edit(
            editing,
            payroll.period_id,
            RemoveEmployee(employee_id=payroll.ana.employee_id),
            OverrideDetail(override=DetailOverride(employee_id=payroll.bruno.employee_id, gross=Decimal("2100"))),
        )
        initial, edited = await versions.list_versions(payroll.period_id)

        comparison = await versions.compare_versions(
            payroll.period_id, initial.version_id, edited.version_id
        )

        assert (comparison.from_version_number, comparison.to_version_number) == (1, 2)
        by_employee = {c.employee_id: c for c in comparison.employee_changes}
        ana = by_employee[payroll.ana.employee_id]
        bruno = by_employee[payroll.bruno.employee_id]
        assert ana.change_type == "employee_removed"
        assert ana.adjustments_removed == 1
        assert ana.impact_amount == Decimal("-2700")
        assert bruno.change_type == "values_modified"
        assert [(f.field_name, f.difference) for f in bruno.field_changes] == [
            ("gross", Decimal("100"))
        ]
        assert comparison.employees_with_changes == 2

    async def test_compare_after_rollback_matches_adjustments_by_content(
        self, payroll, editing, versions
    ):
        await edit(
            editing,
            payroll.period_id,
            OverrideDetail(override=DetailOverride(employee_id=payroll.bruno.employee_id, net=Decimal("1700"))),
        )
        initial = (await versions.list_versions(payroll.period_id))[0]
        result = await versions.rollback_to_version(payroll.period_id, initial.version_id, "undo")

        comparison = await versions.compare_versions(
            payroll.period_id, initial.version_id, result.new_version_id
        )

        assert comparison.employees_with_changes == 0
        assert comparison.total_impact == Decimal("0")
