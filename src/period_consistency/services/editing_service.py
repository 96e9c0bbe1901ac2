"""Editing session manager for closed payroll periods."""

from __future__ import annotations

import logging
from datetime import timedelta
from uuid import UUID

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from period_consistency.config import get_settings
from period_consistency.exceptions import (
    InvalidStateError,
    LockHeldError,
    PersistenceError,
    ValidationError,
)
from period_consistency.models import (
    AdjustmentEntry,
    EditingSession,
    PayrollDetailRow,
)
from period_consistency.models.base import utcnow
from period_consistency.services.change_validator import ChangeValidator
from period_consistency.services.changes import Change, ChangeSet
from period_consistency.services.repository import PeriodRepository
from period_consistency.services.snapshot_service import SnapshotService
from period_consistency.services.state_machine import (
    PeriodStateMachine,
    SessionStateMachine,
    SessionStatus,
    VersionType,
)
from period_consistency.services.types import ValidationResult
from period_consistency.services.version_service import VersionService

logger = logging.getLogger(__name__)


class EditingSessionService:
    """Service for post-closure edits of a payroll period.

    Operations:
    - start_editing_session: Take the period lock and snapshot the period
    - stage_change: Accumulate a change without touching live tables
    - validate_changes: Check the change set against business rules
    - apply_changes: Apply the whole change set atomically as a new version
    - discard_changes: Release the lock with no data change
    - cleanup_abandoned_sessions: Expire sessions past the timeout
    """

    def __init__(self, session: AsyncSession, company_id: UUID):
        self.session = session
        self.company_id = company_id
        self.repository = PeriodRepository(session, company_id)
        self.snapshots = SnapshotService(self.repository)
        self.validator = ChangeValidator(self.repository)
        self.versions = VersionService(session, company_id)

    async def get_session(self, session_id: UUID) -> EditingSession:
        return await self.repository.require_session(session_id)

    async def get_active_session(self, period_id: UUID) -> EditingSession | None:
        """The session currently holding the period lock, if any."""
        await self.repository.require_period(period_id)
        return await self.repository.find_open_session(period_id)

    async def start_editing_session(
        self, period_id: UUID, actor_id: UUID | None = None
    ) -> EditingSession:
        """Open an editing session on a closed period.

        The open-session lookup is only a fast path; the partial unique index
        on open sessions is what makes check-and-create atomic.
        """
        period = await self.repository.require_period(period_id)
        PeriodStateMachine.require_closed(period)

        existing = await self.repository.find_open_session(period_id)
        if existing is not None:
            raise LockHeldError(period_id, existing.session_id)

        editing_session = EditingSession(
            company_id=self.company_id,
            period_id=period_id,
            actor_id=actor_id,
            status=SessionStatus.ACTIVE.value,
            changes=ChangeSet().to_json(),
        )
        try:
            self.repository.add(editing_session)
            await self.repository.flush()
            await self.snapshots.persist_for_session(period, editing_session.session_id)
            await self.session.commit()
        except IntegrityError as exc:
            await self.session.rollback()
            logger.warning("Lost lock race on period %s", period_id)
            raise LockHeldError(period_id) from exc
        except SQLAlchemyError as exc:
            await self.session.rollback()
            raise PersistenceError("start_editing_session", str(exc)) from exc

        logger.info(
            "Editing session %s started on period %s", editing_session.session_id, period_id
        )
        return editing_session

    async def stage_change(self, session_id: UUID, change: Change) -> ChangeSet:
        """Append a change to the session's persisted change set."""
        editing_session = await self._require_status(session_id, SessionStatus.ACTIVE)
        change_set = ChangeSet.from_json(editing_session.changes)
        change_set.stage(change)
        editing_session.changes = change_set.to_json()
        await self._commit("stage_change")
        logger.debug("Staged %s on session %s", change.kind, session_id)
        return change_set

    async def validate_changes(self, session_id: UUID) -> ValidationResult:
        editing_session = await self.repository.require_session(session_id)
        change_set = ChangeSet.from_json(editing_session.changes)
        return await self.validator.validate(editing_session.period_id, change_set)

    async def apply_changes(self, session_id: UUID) -> EditingSession:
        """Apply the session's change set in one transaction.

        The session is committed as saving first. A failed re-validation
        cancels the session without touching data. Any failure while writing
        rolls back every write, cancels the session with the error message and
        re-raises.
        """
        editing_session = await self._require_status(session_id, SessionStatus.ACTIVE)
        period_id = editing_session.period_id
        actor_id = editing_session.actor_id
        SessionStateMachine.transition(editing_session, SessionStatus.SAVING)
        await self._commit("apply_changes")

        change_set = ChangeSet.from_json(editing_session.changes)
        validation = await self.validator.validate(period_id, change_set)
        if not validation.is_valid:
            message = "Validation failed: " + "; ".join(validation.errors)
            await self._cancel(session_id, message)
            logger.warning("Session %s rejected: %s", session_id, message)
            raise ValidationError(validation.errors, validation.warnings)

        try:
            await self._apply(editing_session, change_set, actor_id)
            await self.session.commit()
        except Exception as exc:
            await self.session.rollback()
            logger.error("Applying session %s failed: %s", session_id, exc)
            await self._cancel(session_id, str(exc) or type(exc).__name__)
            if isinstance(exc, SQLAlchemyError):
                raise PersistenceError("apply_changes", str(exc)) from exc
            raise

        logger.info("Session %s applied to period %s", session_id, period_id)
        return editing_session

    async def _apply(
        self,
        editing_session: EditingSession,
        change_set: ChangeSet,
        actor_id: UUID | None,
    ) -> None:
        period = await self.repository.require_period(editing_session.period_id, for_update=True)
        period_id = period.period_id
        pre_edit = await self.snapshots.load_for_session(editing_session.session_id)

        if change_set.employees_removed:
            await self.repository.delete_detail_rows(period_id, change_set.employees_removed)
            await self.repository.delete_adjustments(
                period_id, employee_ids=change_set.employees_removed
            )

        self.repository.add_all(
            PayrollDetailRow(
                company_id=self.company_id,
                period_id=period_id,
                employee_id=addition.employee_id,
                base_salary=addition.base_salary,
                worked_days=addition.worked_days,
                gross=addition.gross,
                deductions=addition.deductions,
                net=addition.net,
            )
            for addition in change_set.employees_added
        )
        await self.repository.flush()

        if change_set.detail_overrides:
            rows = {row.employee_id: row for row in await self.repository.list_detail_rows(period_id)}
            for override in change_set.detail_overrides:
                row = rows.get(override.employee_id)
                if row is None:
                    raise ValidationError(
                        [f"No detail row for employee {override.employee_id}"]
                    )
                for name, value in override.updated_fields().items():
                    setattr(row, name, value)

        self.repository.add_all(
            AdjustmentEntry(
                company_id=self.company_id,
                period_id=period_id,
                **draft.model_dump(),
            )
            for draft in change_set.adjustments_added
        )

        if change_set.adjustments_modified:
            adjustments = {
                adj.adjustment_id: adj for adj in await self.repository.list_adjustments(period_id)
            }
            for modification in change_set.adjustments_modified:
                adjustment = adjustments.get(modification.adjustment_id)
                if adjustment is None:
                    raise ValidationError(
                        [f"Adjustment {modification.adjustment_id} not found in period"]
                    )
                for name, value in modification.updated_fields().items():
                    setattr(adjustment, name, value)

        if change_set.adjustments_deleted:
            await self.repository.delete_adjustments(
                period_id, adjustment_ids=change_set.adjustments_deleted
            )
        await self.repository.flush()

        if pre_edit is not None and await self.repository.count_versions(period_id) == 0:
            await self.versions.record_version(
                period_id,
                VersionType.INITIAL,
                "Initial state before first edit",
                actor_id=actor_id,
                snapshot=pre_edit,
            )

        totals = await self.repository.compute_totals(period_id)
        await self.repository.update_period_totals(period, totals)

        await self.versions.record_version(
            period_id, VersionType.MANUAL_EDIT, change_set.summary(), actor_id=actor_id
        )

        await self.repository.delete_snapshots([editing_session.session_id])
        SessionStateMachine.transition(editing_session, SessionStatus.COMPLETED)
        editing_session.completed_at = utcnow()
        await self.repository.flush()

    async def discard_changes(self, session_id: UUID) -> EditingSession:
        """Cancel an active session; live data is untouched."""
        editing_session = await self._require_status(session_id, SessionStatus.ACTIVE)
        SessionStateMachine.transition(editing_session, SessionStatus.CANCELLED)
        editing_session.completed_at = utcnow()
        await self.repository.delete_snapshots([session_id])
        await self._commit("discard_changes")
        logger.info("Session %s discarded", session_id)
        return editing_session

    async def cleanup_abandoned_sessions(self, timeout: timedelta | None = None) -> int:
        """Expire active sessions older than the timeout; returns how many."""
        if timeout is None:
            timeout = timedelta(minutes=get_settings().edit_session_timeout_minutes)
        cutoff = utcnow() - timeout

        stale = await self.repository.list_sessions_started_before(
            SessionStatus.ACTIVE.value, cutoff
        )
        for editing_session in stale:
            SessionStateMachine.transition(editing_session, SessionStatus.EXPIRED)
            editing_session.completed_at = utcnow()
        await self.repository.delete_snapshots(s.session_id for s in stale)
        await self._commit("cleanup_abandoned_sessions")

        if stale:
            logger.info("Expired %d abandoned editing session(s)", len(stale))
        return len(stale)

    async def _require_status(self, session_id: UUID, status: SessionStatus) -> EditingSession:
        editing_session = await self.repository.require_session(session_id)
        if editing_session.status != status.value:
            raise InvalidStateError(
                "EditingSession",
                session_id,
                editing_session.status,
                required=status.value,
            )
        return editing_session

    async def _cancel(self, session_id: UUID, message: str) -> None:
        """Record a failed apply on a fresh transaction."""
        editing_session = await self.repository.require_session(session_id)
        SessionStateMachine.transition(editing_session, SessionStatus.CANCELLED)
        editing_session.error_message = message
        editing_session.completed_at = utcnow()
        await self.repository.delete_snapshots([session_id])
        await self._commit("cancel_session")

    async def _commit(self, operation: str) -> None:
        try:
            await self.session.commit()
        except SQLAlchemyError as exc:
            await self.session.rollback()
            raise PersistenceError(operation, str(exc)) from exc

