"""Period consistency command line interface.

Provides operational tools for:
- Abandoned editing session cleanup
- Historical recovery of badly closed periods
- Absence/adjustment conflict scans
- Schema bootstrap

Usage:
    python -m period_consistency.cli cleanup-sessions [--company-id X] [--timeout-minutes N]
    python -m period_consistency.cli recover-period --company-id X --period-id Y
    python -m period_consistency.cli detect-conflicts --company-id X --start D --end D
    python -m period_consistency.cli init-db
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from datetime import date, timedelta
from typing import Awaitable, Callable, TypeVar
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from period_consistency.config import configure_logging
from period_consistency.database import create_schema, dispose_db, get_session
from period_consistency.exceptions import EngineError
from period_consistency.models import Company
from period_consistency.services.conflict_detector import ConflictDetector, DateRange
from period_consistency.services.editing_service import EditingSessionService
from period_consistency.services.recovery_service import RecoveryService

T = TypeVar("T")


def parse_date(s: str) -> date:
    """Parse ISO date string."""
    return date.fromisoformat(s)


def parse_uuid(s: str) -> UUID:
    """Parse UUID string."""
    return UUID(s)


def run_with_session(work: Callable[[AsyncSession], Awaitable[T]]) -> T:
    """Run one unit of work on a fresh session and engine."""

    async def runner() -> T:
        try:
            async with get_session() as session:
                return await work(session)
        finally:
            await dispose_db()

    return asyncio.run(runner())


class ConsistencyCli:
    """Period consistency command line interface."""

    def __init__(self) -> None:
        self.parser = self._build_parser()

    def _build_parser(self) -> argparse.ArgumentParser:
        """Build argument parser."""
        parser = argparse.ArgumentParser(
            prog="python -m period_consistency.cli",
            description="Payroll period consistency operational tools",
        )
        parser.add_argument("--log-level", default=None, help="Override LOG_LEVEL")
        subparsers = parser.add_subparsers(dest="command", help="Commands")

        # cleanup-sessions command
        cleanup = subparsers.add_parser(
            "cleanup-sessions",
            help="Expire abandoned editing sessions",
        )
        cleanup.add_argument(
            "--company-id",
            type=parse_uuid,
            help="Only clean this company (default: all companies)",
        )
        cleanup.add_argument(
            "--timeout-minutes",
            type=int,
            help="Override EDIT_SESSION_TIMEOUT_MINUTES",
        )

        # recover-period command
        recover = subparsers.add_parser(
            "recover-period",
            help="Rebuild detail rows of a badly closed period",
        )
        recover.add_argument("--company-id", type=parse_uuid, required=True)
        recover.add_argument("--period-id", type=parse_uuid, required=True)
        recover.add_argument("--actor-id", type=parse_uuid)

        # detect-conflicts command
        conflicts = subparsers.add_parser(
            "detect-conflicts",
            help="Report leave recorded in both absence and payroll modules",
        )
        conflicts.add_argument("--company-id", type=parse_uuid, required=True)
        conflicts.add_argument("--start", type=parse_date, required=True)
        conflicts.add_argument("--end", type=parse_date, required=True)
        conflicts.add_argument("--period-id", type=parse_uuid)
        conflicts.add_argument(
            "--json",
            action="store_true",
            help="Print the report as JSON",
        )

        # init-db command
        subparsers.add_parser(
            "init-db",
            help="Create all tables",
        )

        return parser

    def run(self, args: list[str] | None = None) -> int:
        """Run the CLI with given arguments."""
        parsed = self.parser.parse_args(args)

        if not parsed.command:
            self.parser.print_help()
            return 1

        configure_logging(parsed.log_level)

        # Dispatch to command handler
        handlers: dict[str, Callable[..., int]] = {
            "cleanup-sessions": self._cmd_cleanup_sessions,
            "recover-period": self._cmd_recover_period,
            "detect-conflicts": self._cmd_detect_conflicts,
            "init-db": self._cmd_init_db,
        }

        handler = handlers.get(parsed.command)
        if handler is None:
            print(f"Unknown command: {parsed.command}", file=sys.stderr)
            return 1

        try:
            return handler(parsed)
        except EngineError as e:
            print(f"ERROR: {e}", file=sys.stderr)
            return 1

    def _cmd_cleanup_sessions(self, args: argparse.Namespace) -> int:
        """Expire abandoned sessions."""
        timeout = timedelta(minutes=args.timeout_minutes) if args.timeout_minutes else None

        async def cleanup(session: AsyncSession) -> int:
            if args.company_id:
                company_ids = [args.company_id]
            else:
                result = await session.execute(select(Company.company_id))
                company_ids = list(result.scalars().all())
            total = 0
            for company_id in company_ids:
                service = EditingSessionService(session, company_id)
                total += await service.cleanup_abandoned_sessions(timeout)
            return total

        expired = run_with_session(cleanup)
        print(f"Expired {expired} abandoned editing session(s)")
        return 0

    def _cmd_recover_period(self, args: argparse.Namespace) -> int:
        """Recover one period."""

        async def recover(session: AsyncSession):
            service = RecoveryService(session, args.company_id)
            return await service.recover_badly_closed_period(args.period_id, args.actor_id)

        result = run_with_session(recover)
        print(result.message)
        for name in result.employees_processed:
            print(f"  - {name}")
        for warning in result.warnings:
            print(f"  WARNING: {warning}")
        return 0 if result.success else 2

    def _cmd_detect_conflicts(self, args: argparse.Namespace) -> int:
        """Scan for absence/adjustment conflicts."""
        date_range = DateRange(args.start, args.end)

        async def detect(session: AsyncSession):
            detector = ConflictDetector(session, args.company_id)
            return await detector.detect_conflicts(date_range, args.period_id)

        report = run_with_session(detect)

        if args.json:
            print(json.dumps(
                {
                    "has_conflicts": report.has_conflicts,
                    "total_conflicts": report.total_conflicts,
                    "summary": report.summary,
                    "groups": [
                        {
                            "employee_id": str(group.employee_id),
                            "employee_name": group.employee_name,
                            "type": group.conflict_type,
                            "severity": group.severity,
                            "pairs": [
                                [str(a.record_id), str(b.record_id)] for a, b in group.pairs
                            ],
                        }
                        for group in report.groups
                    ],
                },
                indent=2,
            ))
            return 0

        print(f"Conflict scan {date_range.start} .. {date_range.end}")
        print("=" * 60)
        if not report.has_conflicts:
            print("No conflicts found.")
            return 0
        for group in report.groups:
            print(
                f"[{group.severity.upper():6}] {group.employee_name}: "
                f"{len(group.pairs)} {group.conflict_type}"
            )
            for a, b in group.pairs:
                print(
                    f"    {a.type} {a.start_date}..{a.end_date}  <->  "
                    f"{b.type} {b.start_date}..{b.end_date}"
                )
        summary = report.summary
        print(
            f"\nTotal: {report.total_conflicts} "
            f"(duplicates={summary['duplicates']}, overlaps={summary['overlaps']}, "
            f"type_mismatches={summary['type_mismatches']})"
        )
        return 0

    def _cmd_init_db(self, args: argparse.Namespace) -> int:
        """Create the schema."""

        async def init() -> None:
            try:
                await create_schema()
            finally:
                await dispose_db()

        asyncio.run(init())
        print("Schema created.")
        return 0


def main() -> int:
    """CLI entry point."""
    cli = ConsistencyCli()
    return cli.run()


if __name__ == "__main__":
    sys.exit(main())
