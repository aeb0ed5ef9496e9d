"""
Module: dues_kernel.selectors.dues_selector
Responsibility: Paid/unpaid resolution for one student or a population
    against one semester.
Architecture position: Kernel > Selectors.  Used by the PaymentRecorder
    (duplicate check) and the FinancialReportEngine (defaulters).

Invariants enforced:
    - Identifier-aware matching: a student is paid if ANY identifier they
      are known by (index number, profile key) appears as Payment.student_id
      on a payment bound to the semester.
    - Binding: a payment binds to semester S if payment.semester_id == S.id,
      or, for legacy rows with no semester_id, if its free-text label equals
      S.label.  A payment carrying a semester_id binds to that semester
      only; a legacy row binds to every semester whose label it carries, so
      it settles each of them when a period was rolled over into more than
      once (e.g. with corrected dues).
    - No billing period means nobody has paid: is_paid() is False and
      partition() puts everyone in unpaid when semester_id is None.
    - Dismissal is ignored here; including or excluding dismissed students
      is the caller's decision.

Failure modes:
    - SemesterNotFoundError for an unknown semester id.
    - StoreError on any store failure.
"""

from collections.abc import Iterable
from dataclasses import dataclass

from sqlalchemy import and_, or_, select
from sqlalchemy.orm import Session

from dues_kernel.db.engine import translate_store_errors
from dues_kernel.domain.dtos import (
    ALL_HALLS,
    PaymentInfo,
    SemesterInfo,
    StudentEntry,
    StudentRef,
)
from dues_kernel.exceptions import ValidationError
from dues_kernel.models.payment import Payment
from dues_kernel.models.roster import Student
from dues_kernel.selectors.base import BaseSelector
from dues_kernel.selectors.roster_selector import RosterSelector
from dues_kernel.selectors.semester_selector import SemesterSelector

STATUS_ALL = "ALL"
STATUS_PAID = "PAID"
STATUS_UNPAID = "UNPAID"


@dataclass(frozen=True)
class DuesPartition:
    """Population split by payment status, each side in input order."""

    paid: tuple[StudentRef, ...]
    unpaid: tuple[StudentRef, ...]


@dataclass(frozen=True)
class RosterStatusRow:
    """One line of the dues collection roster."""

    student: StudentEntry
    hall_name: str | None
    paid: bool


def bound_to(semester: SemesterInfo):
    """SQL criterion selecting payments that settle ``semester``."""
    return or_(
        Payment.semester_id == semester.id,
        and_(Payment.semester_id.is_(None), Payment.semester_label == semester.label),
    )


class DuesResolver(BaseSelector[Payment]):
    """
    Answers "has this student paid for this semester?".

    Non-goals:
        - Does NOT filter by dismissal or by role.
        - Does NOT consider amounts; any bound payment settles the semester.
    """

    def __init__(self, session: Session):
        super().__init__(session)
        self._roster = RosterSelector(session)
        self._semesters = SemesterSelector(session)

    # ------------------------------------------------------------------
    # Identifier expansion
    # ------------------------------------------------------------------

    def identifiers_for(self, ref: StudentRef) -> frozenset[str]:
        """Every identifier the referenced student may appear under."""
        student = self._roster.find_student(ref)
        if student is None:
            return frozenset({ref.value})
        return student.identifiers | {ref.value}

    def _identifier_index(self) -> dict[str, frozenset[str]]:
        """Map each known identifier to the full identifier set of its student."""
        with translate_store_errors("load_identifier_index"):
            rows = self.session.execute(select(Student.id, Student.index_number)).all()
        index: dict[str, frozenset[str]] = {}
        for profile_key, index_number in rows:
            ids = frozenset(filter(None, (profile_key, index_number)))
            for identifier in ids:
                index[identifier] = index.get(identifier, frozenset()) | ids
        return index

    # ------------------------------------------------------------------
    # Payments
    # ------------------------------------------------------------------

    def payments_for(
        self,
        semester: SemesterInfo,
        hall_filter: str = ALL_HALLS,
    ) -> list[PaymentInfo]:
        """Payments bound to ``semester``, optionally restricted to one hall."""
        query = select(Payment).where(bound_to(semester))
        if hall_filter != ALL_HALLS:
            query = query.where(Payment.hall_id == hall_filter)
        query = query.order_by(Payment.date_paid, Payment.id)
        with translate_store_errors("list_semester_payments"):
            return [PaymentInfo.from_model(p) for p in self.session.execute(query).scalars()]

    def paid_identifiers(self, semester: SemesterInfo) -> frozenset[str]:
        """Distinct Payment.student_id values settled for ``semester`` (all halls)."""
        with translate_store_errors("list_paid_identifiers"):
            rows = self.session.execute(
                select(Payment.student_id).where(bound_to(semester)).distinct()
            ).scalars()
            return frozenset(rows)

    def find_settled_payment(
        self, ref: StudentRef, semester: SemesterInfo
    ) -> PaymentInfo | None:
        """Earliest payment settling ``semester`` for any identifier of ``ref``."""
        identifiers = self.identifiers_for(ref)
        with translate_store_errors("find_settled_payment"):
            payment = self.session.execute(
                select(Payment)
                .where(bound_to(semester), Payment.student_id.in_(sorted(identifiers)))
                .order_by(Payment.date_paid, Payment.id)
                .limit(1)
            ).scalar_one_or_none()
        return PaymentInfo.from_model(payment) if payment is not None else None

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def is_paid(self, ref: StudentRef, semester_id: str | None) -> bool:
        """
        Args:
            ref: Student reference.
            semester_id: Semester to check; None means no billing period.

        Raises:
            SemesterNotFoundError: If semester_id names no semester.
        """
        if semester_id is None:
            return False
        semester = self._semesters.get(semester_id)
        return self.find_settled_payment(ref, semester) is not None

    def partition(
        self,
        population: Iterable[StudentRef],
        semester_id: str | None,
    ) -> DuesPartition:
        """
        Split ``population`` into paid and unpaid, preserving input order.

        Raises:
            SemesterNotFoundError: If semester_id names no semester.
        """
        refs = list(population)
        if semester_id is None:
            return DuesPartition(paid=(), unpaid=tuple(refs))

        semester = self._semesters.get(semester_id)
        paid_ids = self.paid_identifiers(semester)
        index = self._identifier_index()

        paid: list[StudentRef] = []
        unpaid: list[StudentRef] = []
        for ref in refs:
            identifiers = index.get(ref.value, frozenset()) | {ref.value}
            (paid if identifiers & paid_ids else unpaid).append(ref)
        return DuesPartition(paid=tuple(paid), unpaid=tuple(unpaid))

    def split_entries(
        self,
        entries: Iterable[StudentEntry],
        semester: SemesterInfo | None,
    ) -> tuple[list[StudentEntry], list[StudentEntry]]:
        """
        Same rule as partition() for roster entries already loaded.

        Returns:
            (paid, unpaid), each in input order.
        """
        entries = list(entries)
        if semester is None:
            return [], entries
        paid_ids = self.paid_identifiers(semester)
        paid = [e for e in entries if e.identifiers & paid_ids]
        unpaid = [e for e in entries if not e.identifiers & paid_ids]
        return paid, unpaid

    def roster_status(
        self,
        semester_id: str | None,
        hall_filter: str = ALL_HALLS,
        status_filter: str = STATUS_ALL,
        search: str = "",
    ) -> list[RosterStatusRow]:
        """
        Dues collection roster: every eligible student with paid status.

        Args:
            semester_id: Semester to check; None marks everyone unpaid.
            hall_filter: A hall id, or ALL_HALLS.
            status_filter: STATUS_ALL, STATUS_PAID or STATUS_UNPAID.
            search: Case-insensitive match on first name, last name or
                index number.
        """
        if status_filter not in (STATUS_ALL, STATUS_PAID, STATUS_UNPAID):
            raise ValidationError(
                "status_filter", f"must be ALL, PAID or UNPAID, got {status_filter!r}"
            )
        semester = self._semesters.get(semester_id) if semester_id is not None else None
        entries = self._roster.population(hall_filter)
        hall_names = self._roster.hall_names()
        paid, _ = self.split_entries(entries, semester)
        paid_keys = {e.profile_key for e in paid}

        needle = search.strip().lower()
        rows = []
        for entry in entries:
            if needle and not any(
                needle in (value or "").lower()
                for value in (entry.first_name, entry.last_name, entry.index_number)
            ):
                continue
            is_paid = entry.profile_key in paid_keys
            if status_filter == STATUS_PAID and not is_paid:
                continue
            if status_filter == STATUS_UNPAID and is_paid:
                continue
            rows.append(
                RosterStatusRow(
                    student=entry,
                    hall_name=hall_names.get(entry.hall_id) if entry.hall_id else None,
                    paid=is_paid,
                )
            )
        return rows
