"""
Tests for PaymentRecorder.

Covers:
- a recorded payment binds to the semester by id and label
- the stored student_id prefers the index number
- a second payment for a settled (student, semester) is AlreadyPaidError,
  whichever identifier either payment used
- validation and lookup failures write nothing
- late payment against a closed semester is accepted
"""

from datetime import date, datetime, timezone
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from dues_kernel.db.base import new_id
from dues_kernel.domain.dtos import PaymentRequest, StudentRef
from dues_kernel.exceptions import (
    AlreadyPaidError,
    HallNotFoundError,
    SemesterNotFoundError,
    StudentNotFoundError,
    ValidationError,
)
from dues_kernel.models.payment import Payment
from dues_kernel.models.semester import Semester, SystemSettings
from dues_kernel.selectors.dues_selector import DuesResolver
from dues_kernel.services.payment_recorder import PaymentRecorder


@pytest.fixture
def recorder(session, deterministic_clock):
    return PaymentRecorder(session, deterministic_clock)


def _payment_count(session) -> int:
    return session.execute(select(func.count()).select_from(Payment)).scalar_one()


def _request(semester_id, ref=None, **overrides):
    values = {
        "student_ref": ref or StudentRef.index_number("NTCW/23/001"),
        "hall_id": "h1",
        "semester_id": semester_id,
        "amount": Decimal("20"),
        "receipt_number": "R-0001",
        "recorded_by": "bursar@ntc.edu.gh",
    }
    values.update(overrides)
    return PaymentRequest(**values)


class TestRecordPayment:
    def test_records_payment(self, recorder, active_semester, deterministic_clock):
        payment = recorder.record_payment(_request(active_semester.id))

        assert payment.student_id == "NTCW/23/001"
        assert payment.student_name == "Kofi Mensah"
        assert payment.semester_id == active_semester.id
        assert payment.semester_label == "2025/2026 - Sem 1"
        assert payment.amount == Decimal("20")
        assert payment.date_paid == deterministic_clock.now()
        assert payment.recorded_by == "bursar@ntc.edu.gh"

    def test_profile_key_ref_stores_index_number(self, recorder, active_semester):
        payment = recorder.record_payment(
            _request(active_semester.id, ref=StudentRef.profile_key("kofi@ntc.edu.gh"))
        )
        assert payment.student_id == "NTCW/23/001"

    def test_student_without_index_number_stores_profile_key(self, recorder, active_semester):
        payment = recorder.record_payment(
            _request(active_semester.id, ref=StudentRef.profile_key("kwame@ntc.edu.gh"), hall_id="h3")
        )
        assert payment.student_id == "kwame@ntc.edu.gh"

    def test_payment_makes_student_paid(self, session, recorder, active_semester):
        recorder.record_payment(_request(active_semester.id))
        assert DuesResolver(session).is_paid(StudentRef.index_number("NTCW/23/001"), active_semester.id)

    def test_does_not_touch_semester_or_settings(self, session, recorder, active_semester):
        settings_before = session.get(SystemSettings, "global_config").updated_at

        recorder.record_payment(_request(active_semester.id))

        assert session.get(Semester, active_semester.id).is_active is True
        assert session.get(SystemSettings, "global_config").updated_at == settings_before

    def test_late_payment_for_closed_semester(self, session, recorder, active_semester):
        closed = Semester(
            id=new_id(),
            academic_year="2024/2025",
            semester_number=2,
            start_date=date(2025, 1, 13),
            end_date=date(2025, 5, 9),
            dues_amount=Decimal("15"),
            is_active=False,
            created_at=datetime(2025, 1, 1, tzinfo=timezone.utc),
        )
        session.add(closed)
        session.flush()

        payment = recorder.record_payment(_request(closed.id, amount=Decimal("15")))

        assert payment.semester_label == "2024/2025 - Sem 2"

    def test_logs_payment(self, recorder, active_semester, captured_logs):
        payment = recorder.record_payment(_request(active_semester.id))

        recorded = [r for r in captured_logs() if r["message"] == "payment_recorded"]
        assert recorded[0]["payment_id"] == payment.id
        assert recorded[0]["receipt_number"] == "R-0001"


class TestDuplicatePayment:
    def test_second_payment_rejected(self, session, recorder, active_semester):
        first = recorder.record_payment(_request(active_semester.id))

        with pytest.raises(AlreadyPaidError) as exc_info:
            recorder.record_payment(_request(active_semester.id, receipt_number="R-0002"))

        assert exc_info.value.payment_id == first.id
        assert exc_info.value.semester_id == active_semester.id
        assert _payment_count(session) == 1

    def test_rejected_under_other_identifier(self, session, recorder, active_semester):
        recorder.record_payment(_request(active_semester.id))

        with pytest.raises(AlreadyPaidError):
            recorder.record_payment(
                _request(active_semester.id, ref=StudentRef.profile_key("kofi@ntc.edu.gh"))
            )

    def test_rejected_against_legacy_label_payment(self, session, recorder, active_semester):
        session.add(
            Payment(
                id=new_id(),
                student_id="kofi@ntc.edu.gh",
                student_name="Kofi Mensah",
                hall_id="h1",
                semester_id=None,
                semester_label="2025/2026 - Sem 1",
                amount=Decimal("20"),
                receipt_number="OLD-1",
                date_paid=datetime(2025, 9, 2, tzinfo=timezone.utc),
                recorded_by="bursar",
            )
        )
        session.flush()

        with pytest.raises(AlreadyPaidError):
            recorder.record_payment(_request(active_semester.id))

    def test_rejection_logged(self, recorder, active_semester, captured_logs):
        recorder.record_payment(_request(active_semester.id))
        with pytest.raises(AlreadyPaidError):
            recorder.record_payment(_request(active_semester.id))

        rejected = [r for r in captured_logs() if r["message"] == "duplicate_payment_rejected"]
        assert len(rejected) == 1
        assert rejected[0]["level"] == "WARNING"

    def test_same_student_other_semester_allowed(
        self, session, recorder, active_semester, make_rollover_request, deterministic_clock
    ):
        from dues_kernel.services.semester_registry import SemesterRegistry

        recorder.record_payment(_request(active_semester.id))
        deterministic_clock.advance(3600)
        second = SemesterRegistry(session, deterministic_clock).rollover(
            make_rollover_request(semester_number=2)
        )

        recorder.record_payment(_request(second.id, receipt_number="R-0002"))

        assert _payment_count(session) == 2


class TestPaymentValidation:
    @pytest.mark.parametrize(
        "overrides, field",
        [
            ({"amount": Decimal("0")}, "amount"),
            ({"amount": Decimal("-5")}, "amount"),
            ({"amount": Decimal("Infinity")}, "amount"),
            ({"receipt_number": "  "}, "receipt_number"),
            ({"recorded_by": ""}, "recorded_by"),
            ({"hall_id": ""}, "hall_id"),
            ({"semester_id": ""}, "semester_id"),
        ],
    )
    def test_invalid_request(self, session, recorder, active_semester, overrides, field):
        with pytest.raises(ValidationError) as exc_info:
            recorder.record_payment(_request(**{"semester_id": active_semester.id, **overrides}))

        assert exc_info.value.field == field
        assert _payment_count(session) == 0

    def test_unknown_semester(self, session, recorder, roster):
        with pytest.raises(SemesterNotFoundError):
            recorder.record_payment(_request("no-such-semester"))
        assert _payment_count(session) == 0

    def test_unknown_student(self, session, recorder, active_semester):
        with pytest.raises(StudentNotFoundError) as exc_info:
            recorder.record_payment(_request(active_semester.id, ref=StudentRef.index_number("NTCW/99/000")))
        assert exc_info.value.key == "NTCW/99/000"
        assert _payment_count(session) == 0

    def test_unknown_hall(self, session, recorder, active_semester):
        with pytest.raises(HallNotFoundError):
            recorder.record_payment(_request(active_semester.id, hall_id="h9"))
        assert _payment_count(session) == 0
