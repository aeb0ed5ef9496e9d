"""
End-to-end: rollover, record a payment, check status, reject a duplicate,
then report.  Runs once through the services in a single session and once
through the facade with a commit per call.
"""

from datetime import date
from decimal import Decimal

import pytest

from dues_kernel.domain.dtos import PaymentRequest, RolloverRequest, StudentRef
from dues_kernel.exceptions import AlreadyPaidError
from dues_kernel.selectors.dues_selector import DuesResolver
from dues_kernel.selectors.report_selector import FinancialReportEngine
from dues_kernel.selectors.semester_selector import SemesterSelector
from dues_kernel.services.payment_recorder import PaymentRecorder
from dues_kernel.services.semester_registry import SemesterRegistry
from dues_services.ledger_api import DuesLedgerAPI


class TestServicesFlow:
    def test_collect_dues_for_a_semester(self, session, roster, deterministic_clock):
        semester = SemesterRegistry(session, deterministic_clock).rollover(
            RolloverRequest(
                academic_year="2025/2026",
                semester_number=1,
                start_date=date(2025, 9, 1),
                end_date=date(2025, 12, 19),
                dues_amount=Decimal("20"),
            )
        )
        assert SemesterSelector(session).get_active().id == semester.id

        kofi = StudentRef.index_number("NTCW/23/001")
        recorder = PaymentRecorder(session, deterministic_clock)
        request = PaymentRequest(
            student_ref=kofi,
            hall_id="h1",
            semester_id=semester.id,
            amount=Decimal("20"),
            receipt_number="R-0001",
            recorded_by="bursar",
        )
        recorder.record_payment(request)

        resolver = DuesResolver(session)
        assert resolver.is_paid(kofi, semester.id) is True
        assert resolver.is_paid(StudentRef.profile_key("kofi@ntc.edu.gh"), semester.id) is True

        with pytest.raises(AlreadyPaidError):
            recorder.record_payment(request)

        report = FinancialReportEngine(session).compute_report("ALL", semester)
        assert report.actual_revenue == Decimal("20")
        assert report.expected_revenue == Decimal("100")
        assert len(report.defaulters) == 4


class TestFacadeFlow:
    def test_collect_dues_for_a_semester(self, session_factory, roster, test_config, deterministic_clock):
        api = DuesLedgerAPI(session_factory, test_config, deterministic_clock)

        semester = api.rollover(
            {
                "academicYear": "2025/2026",
                "semesterNumber": 1,
                "startDate": "2025-09-01",
                "endDate": "2025-12-19",
                "duesAmount": "20",
            },
            actor="bursar@ntc.edu.gh",
        )
        payment = {
            "studentRef": "NTCW/23/001",
            "hallId": "h1",
            "semesterId": semester["id"],
            "amount": "20",
            "receiptNumber": "R-0001",
            "recordedBy": "bursar@ntc.edu.gh",
        }
        api.record_payment(payment)

        assert api.dues_status("NTCW/23/001") == {"paid": True}
        with pytest.raises(AlreadyPaidError):
            api.record_payment(dict(payment, receiptNumber="R-0002"))

        # next semester starts every student unpaid again
        deterministic_clock.advance(3600)
        second = api.rollover(
            {
                "academicYear": "2025/2026",
                "semesterNumber": 2,
                "startDate": "2026-01-12",
                "endDate": "2026-05-08",
                "duesAmount": "20",
            }
        )
        assert api.get_active_semester()["id"] == second["id"]
        assert api.dues_status("NTCW/23/001") == {"paid": False}
        assert api.dues_status("NTCW/23/001", semester["id"]) == {"paid": True}

        report = api.report("ALL", "2025/2026", 1)
        assert report["actualRevenue"] == "20"
        assert report["paidCount"] == 1
