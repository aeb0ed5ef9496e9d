"""
DTOs -- Pure domain data transfer objects.

Responsibility:
    Defines the immutable structures that flow between the facade, the
    services and the selectors: the tagged StudentRef, fully-populated
    request structs for every write (RolloverRequest, PaymentRequest,
    ExpenseRequest), and read-side snapshots (SemesterInfo, SettingsInfo,
    PaymentInfo, ExpenseInfo, StudentEntry).

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    from_model() class methods exist as boundary converters and are only
    invoked from services and selectors.

Invariants enforced:
    - Services and selectors return DTOs, never ORM entities.
    - Request structs are validated exactly once, by the service that owns
      the write, via ``validate()``.  Violations raise ValidationError
      before any write is attempted.
    - Money is always Decimal, never float.

Failure modes:
    - ValidationError from ``validate()`` and from StudentRef construction.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING

from dues_kernel.exceptions import ValidationError

if TYPE_CHECKING:
    from dues_kernel.models.payment import Expense as ExpenseModel
    from dues_kernel.models.payment import Payment as PaymentModel
    from dues_kernel.models.roster import Student as StudentModel
    from dues_kernel.models.semester import Semester as SemesterModel
    from dues_kernel.models.semester import SystemSettings as SettingsModel

# Hall filter meaning "every hall" (reports include GENERAL expenses)
ALL_HALLS = "ALL"

VALID_SEMESTER_NUMBERS = (1, 2)


class IdentifierKind(str, Enum):
    """Which student identifier a StudentRef carries."""

    INDEX_NUMBER = "INDEX_NUMBER"
    PROFILE_KEY = "PROFILE_KEY"


@dataclass(frozen=True)
class StudentRef:
    """
    Tagged reference to a student.

    Older payment records key students by profile key, newer ones by
    index number.  The DuesResolver expands a ref into every identifier
    the student is known by before matching payments.
    """

    kind: IdentifierKind
    value: str

    def __post_init__(self) -> None:
        if not self.value or not self.value.strip():
            raise ValidationError("student_ref", "identifier must not be empty")
        object.__setattr__(self, "value", self.value.strip())

    @classmethod
    def index_number(cls, value: str) -> StudentRef:
        return cls(IdentifierKind.INDEX_NUMBER, value)

    @classmethod
    def profile_key(cls, value: str) -> StudentRef:
        return cls(IdentifierKind.PROFILE_KEY, value)

    def __str__(self) -> str:
        return self.value


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RolloverRequest:
    """Descriptor of the billing period a rollover activates."""

    academic_year: str
    semester_number: int
    start_date: date
    end_date: date
    dues_amount: Decimal

    def validate(self) -> None:
        """
        Raises:
            ValidationError: On the first violated constraint.
        """
        if not self.academic_year or not self.academic_year.strip():
            raise ValidationError("academic_year", "must not be empty")
        if self.semester_number not in VALID_SEMESTER_NUMBERS:
            raise ValidationError(
                "semester_number", f"must be 1 or 2, got {self.semester_number!r}"
            )
        if self.start_date > self.end_date:
            raise ValidationError(
                "start_date",
                f"start_date ({self.start_date}) cannot be after end_date ({self.end_date})",
            )
        if not isinstance(self.dues_amount, Decimal) or not self.dues_amount.is_finite():
            raise ValidationError("dues_amount", "must be a finite decimal amount")
        if self.dues_amount < 0:
            raise ValidationError("dues_amount", "must not be negative")


@dataclass(frozen=True)
class PaymentRequest:
    """One dues payment to record."""

    student_ref: StudentRef
    hall_id: str
    semester_id: str
    amount: Decimal
    receipt_number: str
    recorded_by: str

    def validate(self) -> None:
        """
        Raises:
            ValidationError: On the first violated constraint.
        """
        if not self.semester_id or not self.semester_id.strip():
            raise ValidationError("semester_id", "must not be empty")
        if not self.hall_id or not self.hall_id.strip():
            raise ValidationError("hall_id", "must not be empty")
        if not isinstance(self.amount, Decimal) or not self.amount.is_finite():
            raise ValidationError("amount", "must be a finite decimal amount")
        if self.amount <= 0:
            raise ValidationError("amount", "must be greater than zero")
        if not self.receipt_number or not self.receipt_number.strip():
            raise ValidationError("receipt_number", "must not be empty")
        if not self.recorded_by or not self.recorded_by.strip():
            raise ValidationError("recorded_by", "must not be empty")


@dataclass(frozen=True)
class ExpenseRequest:
    """One operational cost entry to record."""

    hall_id: str
    title: str
    amount: Decimal
    recorded_by: str
    category: str = ""
    description: str = ""

    def validate(self) -> None:
        if not self.hall_id or not self.hall_id.strip():
            raise ValidationError("hall_id", "must not be empty")
        if not self.title or not self.title.strip():
            raise ValidationError("title", "must not be empty")
        if not isinstance(self.amount, Decimal) or not self.amount.is_finite():
            raise ValidationError("amount", "must be a finite decimal amount")
        if self.amount <= 0:
            raise ValidationError("amount", "must be greater than zero")
        if not self.recorded_by or not self.recorded_by.strip():
            raise ValidationError("recorded_by", "must not be empty")


# ---------------------------------------------------------------------------
# Snapshots
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SemesterInfo:
    """Immutable snapshot of a Semester row."""

    id: str
    academic_year: str
    semester_number: int
    start_date: date
    end_date: date
    dues_amount: Decimal
    is_active: bool
    created_at: datetime
    created_by: str | None = None

    @property
    def label(self) -> str:
        return f"{self.academic_year} - Sem {self.semester_number}"

    def matches(self, request: RolloverRequest) -> bool:
        """True if this semester already carries exactly the requested period."""
        return (
            self.academic_year == request.academic_year.strip()
            and self.semester_number == request.semester_number
            and self.start_date == request.start_date
            and self.end_date == request.end_date
            and self.dues_amount == request.dues_amount
        )

    @classmethod
    def from_model(cls, model: SemesterModel) -> SemesterInfo:
        return cls(
            id=model.id,
            academic_year=model.academic_year,
            semester_number=model.semester_number,
            start_date=model.start_date,
            end_date=model.end_date,
            dues_amount=model.dues_amount,
            is_active=model.is_active,
            created_at=model.created_at,
            created_by=model.created_by,
        )


@dataclass(frozen=True)
class SettingsInfo:
    """
    Snapshot of SystemSettings.

    The fallback fields are for display when no semester is active; they
    must never be used to bind a payment.
    """

    current_semester_id: str | None
    current_academic_year: str
    current_semester_number: int
    default_dues_amount: Decimal
    is_semester_open: bool

    @property
    def label(self) -> str:
        return f"{self.current_academic_year} - Sem {self.current_semester_number}"

    @classmethod
    def from_model(cls, model: SettingsModel) -> SettingsInfo:
        return cls(
            current_semester_id=model.current_semester_id,
            current_academic_year=model.current_academic_year,
            current_semester_number=model.current_semester_number,
            default_dues_amount=model.default_dues_amount,
            is_semester_open=model.is_semester_open,
        )


@dataclass(frozen=True)
class PaymentInfo:
    id: str
    student_id: str
    student_name: str
    hall_id: str
    semester_id: str | None
    semester_label: str
    amount: Decimal
    receipt_number: str
    date_paid: datetime
    recorded_by: str

    @classmethod
    def from_model(cls, model: PaymentModel) -> PaymentInfo:
        return cls(
            id=model.id,
            student_id=model.student_id,
            student_name=model.student_name,
            hall_id=model.hall_id,
            semester_id=model.semester_id,
            semester_label=model.semester_label,
            amount=model.amount,
            receipt_number=model.receipt_number,
            date_paid=model.date_paid,
            recorded_by=model.recorded_by,
        )


@dataclass(frozen=True)
class ExpenseInfo:
    id: str
    hall_id: str
    title: str
    amount: Decimal
    category: str
    description: str
    date: datetime
    recorded_by: str

    @classmethod
    def from_model(cls, model: ExpenseModel) -> ExpenseInfo:
        return cls(
            id=model.id,
            hall_id=model.hall_id,
            title=model.title,
            amount=model.amount,
            category=model.category,
            description=model.description,
            date=model.date,
            recorded_by=model.recorded_by,
        )


@dataclass(frozen=True)
class StudentEntry:
    """A member of the dues population, as read from the roster."""

    profile_key: str
    index_number: str | None
    first_name: str
    last_name: str
    hall_id: str | None
    program: str | None
    role: str
    is_dismissed: bool

    @property
    def identifiers(self) -> frozenset[str]:
        """Every identifier a payment may carry for this student."""
        ids = {self.profile_key}
        if self.index_number:
            ids.add(self.index_number)
        return frozenset(ids)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    @classmethod
    def from_model(cls, model: StudentModel) -> StudentEntry:
        return cls(
            profile_key=model.id,
            index_number=model.index_number,
            first_name=model.first_name,
            last_name=model.last_name,
            hall_id=model.hall_id,
            program=model.program,
            role=model.role,
            is_dismissed=model.is_dismissed,
        )
