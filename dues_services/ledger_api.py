"""
DuesLedgerAPI -- the boundary the UI/API layer talks to.

Responsibility:
    Parses loosely-typed payload dicts into validated request structs once,
    runs every write inside run_in_transaction(), runs reads in their own
    session, and renders results as JSON-safe dicts with camelCase keys.

Architecture position:
    Services -- facade over dues_kernel.  dues_kernel never imports from
    this package.

Invariants enforced:
    - Writes commit exactly once per call or not at all.
    - A read after a successful write (new session) observes it.
    - Errors propagate as DuesKernelError subclasses; error_payload()
      renders them for transports.  No error is turned into an empty result.
    - Money leaves the facade as a decimal string, never a float.

Failure modes:
    - ValidationError for malformed payloads (before any store access).
    - Everything the kernel services and selectors raise.
"""

from collections.abc import Callable
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any, TypeVar

from sqlalchemy.orm import Session

from dues_kernel.config import DuesConfig, load_config
from dues_kernel.db.engine import run_in_transaction, session_scope
from dues_kernel.domain.clock import Clock, SystemClock
from dues_kernel.domain.dtos import (
    ALL_HALLS,
    ExpenseInfo,
    ExpenseRequest,
    IdentifierKind,
    PaymentInfo,
    PaymentRequest,
    RolloverRequest,
    SemesterInfo,
    SettingsInfo,
    StudentRef,
)
from dues_kernel.exceptions import (
    AlreadyPaidError,
    DuesKernelError,
    NotFoundError,
    StoreError,
    ValidationError,
)
from dues_kernel.logging_config import LogContext, get_logger
from dues_kernel.selectors.dues_selector import STATUS_ALL, DuesResolver, RosterStatusRow
from dues_kernel.selectors.report_selector import (
    DefaulterRow,
    FinancialReport,
    FinancialReportEngine,
    HallBreakdown,
)
from dues_kernel.services.bootstrap import BootstrapResult, BootstrapService
from dues_kernel.services.expense_recorder import ExpenseRecorder
from dues_kernel.services.payment_recorder import PaymentRecorder
from dues_kernel.services.semester_registry import SemesterRegistry
from dues_services.csv_export import defaulters_csv

logger = get_logger("services.ledger_api")

T = TypeVar("T")


# ---------------------------------------------------------------------------
# Payload parsing
# ---------------------------------------------------------------------------


def _require(payload: dict[str, Any], key: str) -> Any:
    value = payload.get(key)
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ValidationError(key, "is required")
    return value


def parse_amount(value: Any, field: str) -> Decimal:
    """Decimal from an int, a numeric string or a Decimal; floats go through str()."""
    if isinstance(value, bool):
        raise ValidationError(field, "must be a number")
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value).strip())
    except InvalidOperation:
        raise ValidationError(field, f"not a valid amount: {value!r}") from None
    if not amount.is_finite():
        raise ValidationError(field, "must be finite")
    return amount


def parse_int(value: Any, field: str) -> int:
    if isinstance(value, bool):
        raise ValidationError(field, "must be an integer")
    if isinstance(value, int):
        return value
    try:
        return int(str(value).strip())
    except ValueError:
        raise ValidationError(field, f"not an integer: {value!r}") from None


def parse_date(value: Any, field: str) -> date:
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip())
    except ValueError:
        raise ValidationError(field, f"not an ISO date: {value!r}") from None


def parse_student_ref(value: Any) -> StudentRef:
    """
    Accept a bare identifier or ``{"kind": ..., "value": ...}``.

    A bare string is treated as an index number; resolution still falls
    back to the profile key.
    """
    if isinstance(value, StudentRef):
        return value
    if isinstance(value, dict):
        raw_kind = str(value.get("kind") or IdentifierKind.INDEX_NUMBER.value).upper()
        try:
            kind = IdentifierKind(raw_kind)
        except ValueError:
            raise ValidationError("studentRef.kind", f"unknown identifier kind {raw_kind!r}") from None
        return StudentRef(kind, str(value.get("value") or ""))
    if value is None:
        raise ValidationError("studentRef", "is required")
    return StudentRef.index_number(str(value))


def parse_rollover(payload: dict[str, Any]) -> RolloverRequest:
    return RolloverRequest(
        academic_year=str(_require(payload, "academicYear")),
        semester_number=parse_int(_require(payload, "semesterNumber"), "semesterNumber"),
        start_date=parse_date(_require(payload, "startDate"), "startDate"),
        end_date=parse_date(_require(payload, "endDate"), "endDate"),
        dues_amount=parse_amount(_require(payload, "duesAmount"), "duesAmount"),
    )


def parse_payment(payload: dict[str, Any]) -> PaymentRequest:
    return PaymentRequest(
        student_ref=parse_student_ref(payload.get("studentRef")),
        hall_id=str(_require(payload, "hallId")),
        semester_id=str(_require(payload, "semesterId")),
        amount=parse_amount(_require(payload, "amount"), "amount"),
        receipt_number=str(_require(payload, "receiptNumber")),
        recorded_by=str(_require(payload, "recordedBy")),
    )


def parse_expense(payload: dict[str, Any]) -> ExpenseRequest:
    return ExpenseRequest(
        hall_id=str(_require(payload, "hallId")),
        title=str(_require(payload, "title")),
        amount=parse_amount(_require(payload, "amount"), "amount"),
        recorded_by=str(_require(payload, "recordedBy")),
        category=str(payload.get("category") or ""),
        description=str(payload.get("description") or ""),
    )


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------


def money(amount: Decimal) -> str:
    """Plain decimal string without exponent or trailing zeros."""
    return format(amount.normalize(), "f")


def semester_dict(info: SemesterInfo) -> dict[str, Any]:
    return {
        "id": info.id,
        "academicYear": info.academic_year,
        "semesterNumber": info.semester_number,
        "label": info.label,
        "startDate": info.start_date.isoformat(),
        "endDate": info.end_date.isoformat(),
        "duesAmount": money(info.dues_amount),
        "isActive": info.is_active,
        "createdAt": info.created_at.isoformat(),
        "createdBy": info.created_by,
    }


def settings_dict(info: SettingsInfo) -> dict[str, Any]:
    return {
        "currentSemesterId": info.current_semester_id,
        "currentAcademicYear": info.current_academic_year,
        "currentSemesterNumber": info.current_semester_number,
        "defaultDuesAmount": money(info.default_dues_amount),
        "isSemesterOpen": info.is_semester_open,
    }


def payment_dict(info: PaymentInfo) -> dict[str, Any]:
    return {
        "id": info.id,
        "studentId": info.student_id,
        "studentName": info.student_name,
        "hallId": info.hall_id,
        "semesterId": info.semester_id,
        "semester": info.semester_label,
        "amount": money(info.amount),
        "receiptNumber": info.receipt_number,
        "datePaid": info.date_paid.isoformat(),
        "recordedBy": info.recorded_by,
    }


def expense_dict(info: ExpenseInfo) -> dict[str, Any]:
    return {
        "id": info.id,
        "hallId": info.hall_id,
        "title": info.title,
        "amount": money(info.amount),
        "category": info.category,
        "description": info.description,
        "date": info.date.isoformat(),
        "recordedBy": info.recorded_by,
    }


def defaulter_dict(row: DefaulterRow) -> dict[str, Any]:
    return {
        "studentId": row.profile_key,
        "indexNumber": row.index_number,
        "firstName": row.first_name,
        "lastName": row.last_name,
        "program": row.program,
        "hallId": row.hall_id,
        "hallName": row.hall_name,
        "amountDue": money(row.amount_due),
    }


def breakdown_dict(row: HallBreakdown) -> dict[str, Any]:
    return {
        "hallId": row.hall_id,
        "hallName": row.hall_name,
        "studentCount": row.student_count,
        "defaulterCount": row.defaulter_count,
        "expectedRevenue": money(row.expected_revenue),
        "actualRevenue": money(row.actual_revenue),
        "totalExpenses": money(row.total_expenses),
        "netBalance": money(row.net_balance),
    }


def report_dict(report: FinancialReport) -> dict[str, Any]:
    return {
        "hallId": report.hall_filter,
        "semester": semester_dict(report.semester) if report.semester else None,
        "expectedRevenue": money(report.expected_revenue),
        "actualRevenue": money(report.actual_revenue),
        "totalExpenses": money(report.total_expenses),
        "netBalance": money(report.net_balance),
        "defaulters": [defaulter_dict(d) for d in report.defaulters],
        "studentCount": report.student_count,
        "paidCount": report.paid_count,
        "paidPercentage": str(report.paid_percentage),
        "hallBreakdown": [breakdown_dict(b) for b in report.hall_breakdown],
    }


def roster_row_dict(row: RosterStatusRow) -> dict[str, Any]:
    return {
        "studentId": row.student.profile_key,
        "indexNumber": row.student.index_number,
        "name": row.student.full_name,
        "hallId": row.student.hall_id,
        "hallName": row.hall_name,
        "program": row.student.program,
        "paid": row.paid,
    }


def error_payload(exc: DuesKernelError) -> dict[str, Any]:
    """Render a kernel error as ``{"error": code, "message": ..., **fields}``."""
    payload: dict[str, Any] = {"error": exc.code, "message": str(exc)}
    if isinstance(exc, ValidationError):
        payload.update(field=exc.field, reason=exc.reason)
    elif isinstance(exc, AlreadyPaidError):
        payload.update(
            studentId=exc.student_id, semesterId=exc.semester_id, paymentId=exc.payment_id
        )
    elif isinstance(exc, NotFoundError):
        payload.update(entity=exc.entity, key=exc.key)
    elif isinstance(exc, StoreError):
        payload.update(operation=exc.operation, retryable=exc.retryable)
    return payload


# ---------------------------------------------------------------------------
# Facade
# ---------------------------------------------------------------------------


class DuesLedgerAPI:
    """
    Entry point for every dues-ledger operation.

    Args:
        session_factory: Opens a new Session per call.
        config: Retry budget and bootstrap seed; load_config() when omitted.
        clock: Time source handed to every service.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        config: DuesConfig | None = None,
        clock: Clock | None = None,
    ):
        self._session_factory = session_factory
        self._config = config or load_config()
        self._clock = clock or SystemClock()

    def _write(self, operation: str, work: Callable[[Session], T]) -> T:
        return run_in_transaction(
            work,
            operation=operation,
            session_factory=self._session_factory,
            max_retries=self._config.transaction.max_retries,
            retry_backoff_seconds=self._config.transaction.retry_backoff_seconds,
        )

    def _read(self, work: Callable[[Session], T]) -> T:
        with session_scope(self._session_factory) as session:
            return work(session)

    # -- setup -------------------------------------------------------------

    def bootstrap(self) -> BootstrapResult:
        return self._write(
            "bootstrap",
            lambda s: BootstrapService(s, self._config, self._clock).seed(),
        )

    # -- semesters ---------------------------------------------------------

    def get_active_semester(self) -> dict[str, Any] | None:
        info = self._read(lambda s: SemesterRegistry(s, self._clock).get_active_semester())
        return semester_dict(info) if info is not None else None

    def get_settings(self) -> dict[str, Any] | None:
        info = self._read(lambda s: SemesterRegistry(s, self._clock).get_settings())
        return settings_dict(info) if info is not None else None

    def list_semesters(self) -> list[dict[str, Any]]:
        rows = self._read(lambda s: SemesterRegistry(s, self._clock).list_semesters())
        return [semester_dict(r) for r in rows]

    def rollover(self, payload: dict[str, Any], actor: str | None = None) -> dict[str, Any]:
        request = parse_rollover(payload)
        with LogContext.bind(actor_id=actor):
            info = self._write(
                "rollover",
                lambda s: SemesterRegistry(s, self._clock).rollover(request, actor=actor),
            )
        return semester_dict(info)

    # -- payments and expenses ---------------------------------------------

    def record_payment(self, payload: dict[str, Any]) -> dict[str, Any]:
        request = parse_payment(payload)
        with LogContext.bind(actor_id=request.recorded_by, semester_id=request.semester_id):
            info = self._write(
                "record_payment",
                lambda s: PaymentRecorder(s, self._clock).record_payment(request),
            )
        return payment_dict(info)

    def record_expense(self, payload: dict[str, Any]) -> dict[str, Any]:
        request = parse_expense(payload)
        with LogContext.bind(actor_id=request.recorded_by):
            info = self._write(
                "record_expense",
                lambda s: ExpenseRecorder(s, self._clock).record_expense(request),
            )
        return expense_dict(info)

    # -- dues status -------------------------------------------------------

    def dues_status(self, student_ref: Any, semester_id: str | None = None) -> dict[str, bool]:
        """
        ``{"paid": bool}`` for one student.

        Without a semester id the active semester is used; with no active
        semester the answer is unpaid.
        """
        ref = parse_student_ref(student_ref)

        def work(session: Session) -> bool:
            target = semester_id or None
            if target is None:
                active = SemesterRegistry(session, self._clock).get_active_semester()
                target = active.id if active is not None else None
            return DuesResolver(session).is_paid(ref, target)

        return {"paid": self._read(work)}

    def roster_status(
        self,
        semester_id: str | None = None,
        hall_id: str = ALL_HALLS,
        status: str = STATUS_ALL,
        search: str = "",
    ) -> list[dict[str, Any]]:
        """Dues collection roster; defaults to the active semester."""

        def work(session: Session) -> list[RosterStatusRow]:
            target = semester_id or None
            if target is None:
                active = SemesterRegistry(session, self._clock).get_active_semester()
                target = active.id if active is not None else None
            return DuesResolver(session).roster_status(
                target, hall_filter=hall_id, status_filter=status.upper(), search=search
            )

        return [roster_row_dict(r) for r in self._read(work)]

    # -- reports -----------------------------------------------------------

    def _compute(
        self,
        hall_id: str,
        academic_year: str | None,
        semester_number: Any,
    ) -> FinancialReport:
        number = parse_int(semester_number, "semesterNumber") if semester_number not in (None, "") else None

        def work(session: Session) -> FinancialReport:
            engine = FinancialReportEngine(session)
            target = engine.resolve_target_semester(academic_year, number)
            return engine.compute_report(hall_id or ALL_HALLS, target)

        return self._read(work)

    def report(
        self,
        hall_id: str = ALL_HALLS,
        academic_year: str | None = None,
        semester_number: Any = None,
    ) -> dict[str, Any]:
        return report_dict(self._compute(hall_id, academic_year, semester_number))

    def export_defaulters_csv(
        self,
        hall_id: str = ALL_HALLS,
        academic_year: str | None = None,
        semester_number: Any = None,
    ) -> str:
        report = self._compute(hall_id, academic_year, semester_number)
        logger.info(
            "defaulters_exported",
            extra={"hall_filter": hall_id, "row_count": len(report.defaulters)},
        )
        return defaulters_csv(report.defaulters)
