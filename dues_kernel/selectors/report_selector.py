"""
Module: dues_kernel.selectors.report_selector
Responsibility: Financial summary and defaulter list for a scope
    (hall filter x semester).
Architecture position: Kernel > Selectors.  Composes RosterSelector,
    SemesterSelector and DuesResolver over one session.

Invariants enforced:
    - Eligible population: roles STUDENT and HALL_EXECUTIVE, hall matching
      the filter (or every hall), not dismissed.
    - expected_revenue = eligible count x semester dues; 0 with no semester.
    - actual_revenue sums payments bound to the semester (id or legacy
      label) whose hall matches the filter; no payments with no semester.
    - total_expenses sums expenses in the filter; ALL includes GENERAL.
    - net_balance = actual_revenue - total_expenses.
    - Under ALL, the hall breakdown rows sum to the report totals.
    - Defaulters are resolved identifier-aware through DuesResolver, never
      by comparing raw Payment.student_id strings.
    - Read-only.  A store failure raises StoreError; there is no partial
      report.
"""

from collections import defaultdict
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from dues_kernel.db.engine import translate_store_errors
from dues_kernel.domain.dtos import ALL_HALLS, VALID_SEMESTER_NUMBERS, SemesterInfo, StudentEntry
from dues_kernel.exceptions import HallNotFoundError, ValidationError
from dues_kernel.logging_config import get_logger
from dues_kernel.models.payment import GENERAL_HALL, Expense
from dues_kernel.selectors.base import BaseSelector
from dues_kernel.selectors.dues_selector import DuesResolver
from dues_kernel.selectors.roster_selector import RosterSelector
from dues_kernel.selectors.semester_selector import SemesterSelector

logger = get_logger("selectors.report")

ZERO = Decimal("0")
_PERCENT_QUANTUM = Decimal("0.01")

# Breakdown row for eligible students with no hall
UNASSIGNED = "UNASSIGNED"


@dataclass(frozen=True)
class DefaulterRow:
    """One eligible student with no payment bound to the target semester."""

    profile_key: str
    index_number: str | None
    first_name: str
    last_name: str
    program: str | None
    hall_id: str | None
    hall_name: str | None
    amount_due: Decimal


@dataclass(frozen=True)
class HallBreakdown:
    """
    Per-hall slice of a report.

    Under ALL the rows partition the report: one per hall, then GENERAL
    (expenses with no hall), UNASSIGNED (eligible students with no hall)
    and any hall id a payment or expense carries that no longer names a
    hall, each only when it has something to show.  Summing any column
    over the rows gives the report total.
    """

    hall_id: str
    hall_name: str
    student_count: int
    defaulter_count: int
    expected_revenue: Decimal
    actual_revenue: Decimal
    total_expenses: Decimal

    @property
    def net_balance(self) -> Decimal:
        return self.actual_revenue - self.total_expenses


@dataclass(frozen=True)
class FinancialReport:
    hall_filter: str
    semester: SemesterInfo | None
    expected_revenue: Decimal
    actual_revenue: Decimal
    total_expenses: Decimal
    net_balance: Decimal
    defaulters: tuple[DefaulterRow, ...]
    student_count: int
    paid_count: int
    paid_percentage: Decimal
    hall_breakdown: tuple[HallBreakdown, ...]


def paid_percentage(paid_count: int, student_count: int) -> Decimal:
    """Share of the population that paid, in percent to two places."""
    if student_count == 0:
        return ZERO.quantize(_PERCENT_QUANTUM)
    ratio = Decimal(paid_count) * 100 / Decimal(student_count)
    return ratio.quantize(_PERCENT_QUANTUM, rounding=ROUND_HALF_UP)


class FinancialReportEngine(BaseSelector):
    """
    Reconciles payments and expenses against expected revenue.

    Non-goals:
        - Does NOT cache results; every call reads the store.
        - Does NOT format output (see dues_services.csv_export).
    """

    def __init__(self, session: Session):
        super().__init__(session)
        self._roster = RosterSelector(session)
        self._semesters = SemesterSelector(session)
        self._resolver = DuesResolver(session)

    def resolve_target_semester(
        self,
        academic_year: str | None = None,
        semester_number: int | None = None,
    ) -> SemesterInfo | None:
        """
        Pick the semester a report is computed for.

        Both filters unset selects the active semester.  Both set selects
        that exact period, or None if it was never rolled over into.

        Raises:
            ValidationError: Only one of the two filters is set, or
                semester_number is not 1 or 2.
        """
        if academic_year is not None and not academic_year.strip():
            academic_year = None
        if academic_year is None and semester_number is None:
            return self._semesters.get_active()
        if academic_year is None or semester_number is None:
            missing = "academic_year" if academic_year is None else "semester_number"
            raise ValidationError(missing, "academic_year and semester_number must be given together")
        if semester_number not in VALID_SEMESTER_NUMBERS:
            raise ValidationError(
                "semester_number", f"must be 1 or 2, got {semester_number!r}"
            )
        return self._semesters.find(academic_year.strip(), semester_number)

    def compute_report(
        self,
        hall_filter: str = ALL_HALLS,
        target_semester: SemesterInfo | None = None,
    ) -> FinancialReport:
        """
        Args:
            hall_filter: A hall id, or ALL_HALLS.
            target_semester: From resolve_target_semester(); None zeroes
                every revenue figure and lists everyone as a defaulter.

        Raises:
            HallNotFoundError: hall_filter names no hall.
            StoreError: Any store failure.
        """
        hall_names = self._roster.hall_names()
        if hall_filter != ALL_HALLS and hall_filter not in hall_names:
            raise HallNotFoundError(hall_filter)

        population = self._roster.population(hall_filter)
        _, unpaid = self._resolver.split_entries(population, target_semester)
        payments = (
            self._resolver.payments_for(target_semester, hall_filter)
            if target_semester is not None
            else []
        )
        expenses = self._expense_totals(hall_filter)
        dues = target_semester.dues_amount if target_semester is not None else ZERO

        revenue_by_hall: dict[str, Decimal] = defaultdict(lambda: ZERO)
        for payment in payments:
            revenue_by_hall[payment.hall_id] += payment.amount

        expected_revenue = dues * len(population)
        actual_revenue = sum(revenue_by_hall.values(), ZERO)
        total_expenses = sum(expenses.values(), ZERO)
        paid_count = len(population) - len(unpaid)

        report = FinancialReport(
            hall_filter=hall_filter,
            semester=target_semester,
            expected_revenue=expected_revenue,
            actual_revenue=actual_revenue,
            total_expenses=total_expenses,
            net_balance=actual_revenue - total_expenses,
            defaulters=tuple(self._defaulter(e, hall_names, dues) for e in unpaid),
            student_count=len(population),
            paid_count=paid_count,
            paid_percentage=paid_percentage(paid_count, len(population)),
            hall_breakdown=self._breakdown(
                hall_filter, hall_names, population, unpaid, revenue_by_hall, expenses, dues
            ),
        )

        logger.info(
            "report_computed",
            extra={
                "hall_filter": hall_filter,
                "semester_id": target_semester.id if target_semester else None,
                "student_count": report.student_count,
                "defaulter_count": len(report.defaulters),
                "expected_revenue": report.expected_revenue,
                "actual_revenue": report.actual_revenue,
                "total_expenses": report.total_expenses,
            },
        )
        return report

    def _expense_totals(self, hall_filter: str) -> dict[str, Decimal]:
        """Expense sums keyed by hall id (GENERAL included under ALL)."""
        query = select(Expense.hall_id, Expense.amount)
        if hall_filter != ALL_HALLS:
            query = query.where(Expense.hall_id == hall_filter)
        totals: dict[str, Decimal] = defaultdict(lambda: ZERO)
        with translate_store_errors("list_expenses"):
            for hall_id, amount in self.session.execute(query):
                totals[hall_id] += amount
        return dict(totals)

    @staticmethod
    def _defaulter(entry: StudentEntry, hall_names: dict[str, str], dues: Decimal) -> DefaulterRow:
        return DefaulterRow(
            profile_key=entry.profile_key,
            index_number=entry.index_number,
            first_name=entry.first_name,
            last_name=entry.last_name,
            program=entry.program,
            hall_id=entry.hall_id,
            hall_name=hall_names.get(entry.hall_id) if entry.hall_id else None,
            amount_due=dues,
        )

    @staticmethod
    def _breakdown(
        hall_filter: str,
        hall_names: dict[str, str],
        population: list[StudentEntry],
        unpaid: list[StudentEntry],
        revenue_by_hall: dict[str, Decimal],
        expenses: dict[str, Decimal],
        dues: Decimal,
    ) -> tuple[HallBreakdown, ...]:
        eligible = defaultdict(int)
        defaulting = defaultdict(int)
        for entry in population:
            eligible[entry.hall_id or UNASSIGNED] += 1
        for entry in unpaid:
            defaulting[entry.hall_id or UNASSIGNED] += 1

        if hall_filter == ALL_HALLS:
            # Real halls first, then GENERAL, unassigned and any unknown hall ids
            extra = {k for k in (*eligible, *revenue_by_hall, *expenses) if k not in hall_names}
            hall_ids = list(hall_names) + sorted(
                extra, key=lambda k: (k != GENERAL_HALL, k != UNASSIGNED, k)
            )
        else:
            hall_ids = [hall_filter]

        return tuple(
            HallBreakdown(
                hall_id=hall_id,
                hall_name=_row_name(hall_id, hall_names),
                student_count=eligible[hall_id],
                defaulter_count=defaulting[hall_id],
                expected_revenue=dues * eligible[hall_id],
                actual_revenue=revenue_by_hall.get(hall_id, ZERO),
                total_expenses=expenses.get(hall_id, ZERO),
            )
            for hall_id in hall_ids
        )


def _row_name(hall_id: str, hall_names: dict[str, str]) -> str:
    if hall_id in hall_names:
        return hall_names[hall_id]
    if hall_id == GENERAL_HALL:
        return "General"
    if hall_id == UNASSIGNED:
        return "Unassigned"
    return hall_id
