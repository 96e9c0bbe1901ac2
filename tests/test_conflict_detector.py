"""Tests for absence/adjustment conflict detection."""

from datetime import date
from decimal import Decimal
from uuid import UUID, uuid4

import pytest

from period_consistency.exceptions import ValidationError
from period_consistency.models import AbsenceRecord, AdjustmentEntry
from period_consistency.services.conflict_detector import (
    SOURCE_ABSENCE,
    SOURCE_ADJUSTMENT,
    ConflictDetector,
    ConflictRecord,
    DateRange,
    analyze_conflicts,
    classify_pair,
    is_equivalent_type,
)

EMPLOYEE = uuid4()


def absence(type_: str, start: date, end: date, employee_id: UUID = EMPLOYEE) -> ConflictRecord:
    return ConflictRecord(
        record_id=uuid4(),
        employee_id=employee_id,
        employee_name="Ana Gómez",
        type=type_,
        start_date=start,
        end_date=end,
        source=SOURCE_ABSENCE,
        status="pending",
    )


def adjustment(type_: str, start: date, end: date, employee_id: UUID = EMPLOYEE) -> ConflictRecord:
    return ConflictRecord(
        record_id=uuid4(),
        employee_id=employee_id,
        employee_name="Ana Gómez",
        type=type_,
        start_date=start,
        end_date=end,
        source=SOURCE_ADJUSTMENT,
    )


class TestTypeEquivalence:
    @pytest.mark.parametrize(
        "absence_type,adjustment_type",
        [
            ("vacation", "vacation"),
            ("paid_leave", "paid_leave"),
            ("absence", "unpaid_leave"),
            ("sick_leave", "sick_leave"),
            ("absence", "absence"),
        ],
    )
    def test_equivalent(self, absence_type, adjustment_type):
        assert is_equivalent_type(absence_type, adjustment_type) is True

    def test_not_equivalent(self):
        assert is_equivalent_type("vacation", "sick_leave") is False
        assert is_equivalent_type("vacation", "bonus") is False


class TestClassification:
    def test_identical_dates_and_type_is_duplicate(self):
        a = absence("vacation", date(2024, 3, 4), date(2024, 3, 8))
        b = adjustment("vacation", date(2024, 3, 4), date(2024, 3, 8))

        report = analyze_conflicts([a], [b])

        assert report.summary == {"duplicates": 1, "overlaps": 0, "type_mismatches": 0}
        group = report.groups[0]
        assert group.conflict_type == "duplicate"
        assert group.severity == "high"
        assert group.records == [a, b]

    def test_intersecting_same_type_is_overlap(self):
        a = absence("vacation", date(2024, 3, 4), date(2024, 3, 8))
        b = adjustment("vacation", date(2024, 3, 6), date(2024, 3, 12))

        report = analyze_conflicts([a], [b])

        assert report.summary == {"duplicates": 0, "overlaps": 1, "type_mismatches": 0}
        assert report.groups[0].severity == "medium"

    def test_intersecting_different_type_is_mismatch(self):
        a = absence("vacation", date(2024, 3, 4), date(2024, 3, 8))
        b = adjustment("sick_leave", date(2024, 3, 8), date(2024, 3, 9))

        report = analyze_conflicts([a], [b])

        assert report.summary == {"duplicates": 0, "overlaps": 0, "type_mismatches": 1}
        assert report.groups[0].severity == "low"

    def test_disjoint_ranges_do_not_conflict(self):
        a = absence("vacation", date(2024, 3, 4), date(2024, 3, 8))
        b = adjustment("vacation", date(2024, 3, 9), date(2024, 3, 12))

        assert classify_pair(a, b) is None
        assert analyze_conflicts([a], [b]).has_conflicts is False

    def test_each_pair_classified_once(self):
        a = absence("vacation", date(2024, 3, 4), date(2024, 3, 8))
        b = adjustment("vacation", date(2024, 3, 4), date(2024, 3, 8))

        report = analyze_conflicts([a], [b])

        assert report.total_conflicts == 1
        assert [g.conflict_type for g in report.groups] == ["duplicate"]

    def test_single_source_employees_ignored(self):
        other = uuid4()
        a = absence("vacation", date(2024, 3, 4), date(2024, 3, 8))
        b = adjustment("vacation", date(2024, 3, 4), date(2024, 3, 8), employee_id=other)

        assert analyze_conflicts([a], [b]).has_conflicts is False

    def test_output_is_deterministic(self):
        records_a = [
            absence("vacation", date(2024, 3, 4), date(2024, 3, 8)),
            absence("absence", date(2024, 3, 20), date(2024, 3, 21)),
        ]
        records_b = [
            adjustment("unpaid_leave", date(2024, 3, 21), date(2024, 3, 22)),
            adjustment("vacation", date(2024, 3, 4), date(2024, 3, 8)),
            adjustment("sick_leave", date(2024, 3, 5), date(2024, 3, 5)),
        ]

        first = analyze_conflicts(records_a, records_b)
        second = analyze_conflicts(list(reversed(records_a)), list(reversed(records_b)))

        assert first == second
        assert [g.conflict_type for g in first.groups] == ["duplicate", "overlap", "type_mismatch"]


class TestDateRange:
    def test_rejects_inverted_range(self):
        with pytest.raises(ValidationError):
            DateRange(date(2024, 3, 31), date(2024, 3, 1))


class TestConflictDetector:
    async def test_detects_vacation_recorded_twice(self, session, payroll):
        session.add_all(
            [
                AbsenceRecord(
                    company_id=payroll.company_id,
                    employee_id=payroll.ana.employee_id,
                    absence_type="vacation",
                    start_date=date(2024, 3, 4),
                    end_date=date(2024, 3, 8),
                    status="settled",
                ),
                AbsenceRecord(
                    company_id=payroll.company_id,
                    employee_id=payroll.bruno.employee_id,
                    absence_type="sick_leave",
                    start_date=date(2024, 3, 12),
                    end_date=date(2024, 3, 13),
                    status="cancelled",
                ),
                AdjustmentEntry(
                    company_id=payroll.company_id,
                    period_id=payroll.period_id,
                    employee_id=payroll.bruno.employee_id,
                    adjustment_type="sick_leave",
                    value=Decimal("0"),
                    start_date=date(2024, 3, 12),
                    end_date=date(2024, 3, 13),
                ),
            ]
        )
        await session.commit()
        detector = ConflictDetector(session, payroll.company_id)
        date_range = DateRange(date(2024, 3, 1), date(2024, 3, 31))

        report = await detector.detect_conflicts(date_range)

        # Bruno's absence is cancelled, so only Ana's vacation conflicts
        assert report.total_conflicts == 1
        group = report.groups[0]
        assert group.employee_id == payroll.ana.employee_id
        assert group.conflict_type == "duplicate"
        assert group.pairs[0][1].record_id == payroll.ana_vacation_id

        again = await detector.detect_conflicts(date_range)
        assert again == report

    async def test_period_filter_and_default_dates(self, session, payroll):
        session.add_all(
            [
                AbsenceRecord(
                    company_id=payroll.company_id,
                    employee_id=payroll.bruno.employee_id,
                    absence_type="absence",
                    start_date=date(2024, 2, 10),
                    end_date=date(2024, 2, 10),
                ),
                AdjustmentEntry(
                    company_id=payroll.company_id,
                    period_id=payroll.previous_period_id,
                    employee_id=payroll.bruno.employee_id,
                    adjustment_type="unpaid_leave",
                    value=Decimal("-60"),
                ),
            ]
        )
        await session.commit()
        detector = ConflictDetector(session, payroll.company_id)

        report = await detector.detect_conflicts(
            DateRange(date(2024, 2, 1), date(2024, 2, 29)),
            period_id=payroll.previous_period_id,
        )

        assert report.summary["overlaps"] == 1
        undated = report.groups[0].pairs[0][1]
        assert (undated.start_date, undated.end_date) == (date(2024, 2, 1), date(2024, 2, 29))

    async def test_other_company_sees_nothing(self, session, payroll):
        detector = ConflictDetector(session, uuid4())

        report = await detector.detect_conflicts(DateRange(date(2024, 3, 1), date(2024, 3, 31)))

        assert report.has_conflicts is False
