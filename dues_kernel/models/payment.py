"""
Module: dues_kernel.models.payment
Responsibility: ORM persistence for dues payments and operational expenses.
    Both are append-only facts: created once, never updated or deleted.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Payments are never keyed by student; many payments per student across
      semesters coexist.
    - No store-level uniqueness on (student_id, semester_id).  Legacy data
      may hold duplicates, so readers count defensively and the
      PaymentRecorder rejects new duplicates.
    - semester_id is NULL only on legacy records, which bind to a semester
      through semester_label instead.
"""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from dues_kernel.db.base import LedgerBase

# Expense hall id for institution-wide costs
GENERAL_HALL = "GENERAL"


class Payment(LedgerBase):
    """One dues settlement event."""

    __tablename__ = "payments"

    __table_args__ = (
        Index("idx_payment_semester", "semester_id"),
        Index("idx_payment_student", "student_id"),
        Index("idx_payment_label", "semester_label"),
    )

    # Institutional index number, or the profile key when none is recorded
    student_id: Mapped[str] = mapped_column(String(255), nullable=False)

    # Snapshot at recording time
    student_name: Mapped[str] = mapped_column(String(255), nullable=False)

    hall_id: Mapped[str] = mapped_column(String(50), nullable=False)

    semester_id: Mapped[str | None] = mapped_column(String(36), nullable=True)

    # e.g. "2025/2026 - Sem 1"
    semester_label: Mapped[str] = mapped_column(String(50), nullable=False)

    amount: Mapped[Decimal] = mapped_column(nullable=False)

    # Audit only; not unique
    receipt_number: Mapped[str] = mapped_column(String(100), nullable=False)

    date_paid: Mapped[datetime] = mapped_column(nullable=False)

    recorded_by: Mapped[str] = mapped_column(String(255), nullable=False)

    def __repr__(self) -> str:
        return f"<Payment {self.student_id} {self.semester_label}: {self.amount}>"


class Expense(LedgerBase):
    """One operational cost entry, hall-scoped or GENERAL."""

    __tablename__ = "expenses"

    __table_args__ = (Index("idx_expense_hall", "hall_id"),)

    hall_id: Mapped[str] = mapped_column(String(50), nullable=False)

    title: Mapped[str] = mapped_column(String(255), nullable=False)

    amount: Mapped[Decimal] = mapped_column(nullable=False)

    # Free-form tag
    category: Mapped[str] = mapped_column(String(100), nullable=False, default="")

    description: Mapped[str] = mapped_column(Text, nullable=False, default="")

    date: Mapped[datetime] = mapped_column(nullable=False)

    recorded_by: Mapped[str] = mapped_column(String(255), nullable=False)

    def __repr__(self) -> str:
        return f"<Expense {self.hall_id} {self.title}: {self.amount}>"
