"""
PaymentRecorder -- append-only recording of dues payments.

Responsibility:
    Validates a PaymentRequest, resolves the student and hall against the
    roster, rejects a second payment for an already-settled semester, and
    appends one Payment row bound to the semester by id and label.

Architecture position:
    Kernel > Services -- imperative shell.
    Uses RosterSelector for lookups and DuesResolver for the duplicate
    check.  Called by the facade inside run_in_transaction().

Invariants enforced:
    - Validation happens before any read or write.
    - The target semester must exist; it need not be active (late
      payments for a past semester are allowed).
    - The semester row is locked FOR UPDATE for the duration of the
      transaction (on SQLite, run_in_transaction begins IMMEDIATE and holds
      the database write lock instead), so two recorders for the same
      semester serialize and the duplicate check cannot race.
    - Payment.student_id prefers the student's index number and falls back
      to the profile key.
    - Payment.semester_label is always populated, so the row stays
      readable by label-only consumers.
    - Never mutates Semester or SystemSettings.
    - Flush-only: never commits or rolls back the session.

Failure modes:
    - ValidationError: malformed request.
    - SemesterNotFoundError / StudentNotFoundError / HallNotFoundError.
    - AlreadyPaidError: any identifier of the student already has a payment
      bound to the semester.
    - StoreError: the store rejected a statement.

Audit relevance:
    Every accepted payment is logged with receipt number and operator;
    rejected duplicates are logged at WARNING with the existing payment id.
"""

from sqlalchemy import select
from sqlalchemy.orm import Session

from dues_kernel.db.base import new_id
from dues_kernel.db.engine import translate_store_errors
from dues_kernel.domain.clock import Clock
from dues_kernel.domain.dtos import PaymentInfo, PaymentRequest, SemesterInfo
from dues_kernel.exceptions import AlreadyPaidError, SemesterNotFoundError
from dues_kernel.logging_config import get_logger
from dues_kernel.models.payment import Payment
from dues_kernel.models.semester import Semester
from dues_kernel.selectors.dues_selector import DuesResolver
from dues_kernel.selectors.roster_selector import RosterSelector
from dues_kernel.services.base import BaseService

logger = get_logger("services.payment_recorder")


class PaymentRecorder(BaseService[Payment]):
    """
    Records dues payments.

    Non-goals:
        - Does NOT support partial payments, refunds or edits.
        - Does NOT check the amount against the semester's dues amount.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        super().__init__(session, clock)
        self._roster = RosterSelector(session)
        self._resolver = DuesResolver(session)

    def record_payment(self, request: PaymentRequest) -> PaymentInfo:
        """
        Append one payment for a student and semester.

        Args:
            request: Fully-populated payment request.

        Returns:
            Snapshot of the stored payment.

        Raises:
            ValidationError: Malformed request (nothing read or written).
            SemesterNotFoundError: Unknown semester id.
            StudentNotFoundError: Reference resolves to no profile.
            HallNotFoundError: Unknown hall id.
            AlreadyPaidError: Student already settled this semester.
        """
        request.validate()

        semester = self._lock_semester(request.semester_id.strip())
        student = self._roster.require_student(request.student_ref)
        hall_id = request.hall_id.strip()
        self._roster.require_hall(hall_id)

        existing = self._resolver.find_settled_payment(request.student_ref, semester)
        if existing is not None:
            logger.warning(
                "duplicate_payment_rejected",
                extra={
                    "student_id": existing.student_id,
                    "semester_id": semester.id,
                    "existing_payment_id": existing.id,
                    "receipt_number": request.receipt_number,
                },
            )
            raise AlreadyPaidError(request.student_ref.value, semester.id, existing.id)

        payment = Payment(
            id=new_id(),
            student_id=student.index_number or student.profile_key,
            student_name=student.full_name,
            hall_id=hall_id,
            semester_id=semester.id,
            semester_label=semester.label,
            amount=request.amount,
            receipt_number=request.receipt_number.strip(),
            date_paid=self._now(),
            recorded_by=request.recorded_by.strip(),
        )
        self._persist("record_payment", payment)

        logger.info(
            "payment_recorded",
            extra={
                "payment_id": payment.id,
                "student_id": payment.student_id,
                "semester_id": semester.id,
                "hall_id": hall_id,
                "amount": payment.amount,
                "receipt_number": payment.receipt_number,
                "recorded_by": payment.recorded_by,
            },
        )
        return PaymentInfo.from_model(payment)

    def _lock_semester(self, semester_id: str) -> SemesterInfo:
        with translate_store_errors("lock_semester"):
            semester = self.session.execute(
                select(Semester).where(Semester.id == semester_id).with_for_update()
            ).scalar_one_or_none()
        if semester is None:
            raise SemesterNotFoundError(semester_id)
        return SemesterInfo.from_model(semester)
