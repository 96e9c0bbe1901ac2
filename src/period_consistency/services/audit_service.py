"""Audit trail writer for rollback and recovery actions."""

from __future__ import annotations

import logging
from typing import Any
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from period_consistency.models import AuditLogEntry
from period_consistency.models.base import utcnow

logger = logging.getLogger(__name__)


class AuditAction:
    """Audit action names."""

    ROLLBACK_INITIATED = "ROLLBACK_INITIATED"
    ROLLBACK_SUCCESS = "ROLLBACK_SUCCESS"
    ROLLBACK_FAILED = "ROLLBACK_FAILED"
    RECOVERY_APPLIED = "RECOVERY_APPLIED"


class AuditService:
    """Adds audit entries to the caller's transaction.

    The caller decides when to commit; ROLLBACK_INITIATED and ROLLBACK_FAILED
    are committed on their own so they survive a rolled-back restore.
    """

    def __init__(self, session: AsyncSession, company_id: UUID):
        self.session = session
        self.company_id = company_id

    async def record(
        self,
        action: str,
        entity_id: UUID,
        actor_id: UUID | None = None,
        entity_type: str = "payroll_period",
        details: dict[str, Any] | None = None,
    ) -> AuditLogEntry:
        """Add an audit entry for an action on a period."""
        payload = dict(details or {})
        payload.setdefault("timestamp", utcnow().isoformat())
        entry = AuditLogEntry(
            company_id=self.company_id,
            actor_id=actor_id,
            entity_type=entity_type,
            entity_id=entity_id,
            action=action,
            details=payload,
        )
        self.session.add(entry)
        await self.session.flush()
        logger.info("Audit %s on %s %s", action, entity_type, entity_id)
        return entry

    async def record_rollback(
        self,
        action: str,
        period_id: UUID,
        version_id: UUID,
        justification: str,
        actor_id: UUID | None = None,
        error: str | None = None,
        new_version_number: int | None = None,
    ) -> AuditLogEntry:
        details: dict[str, Any] = {
            "period_id": str(period_id),
            "version_id": str(version_id),
            "justification": justification,
            "actor_id": str(actor_id) if actor_id else None,
        }
        if error is not None:
            details["error"] = error
        if new_version_number is not None:
            details["new_version_number"] = new_version_number
        return await self.record(action, period_id, actor_id=actor_id, details=details)
