"""
Module: dues_kernel.models.semester
Responsibility: ORM persistence for billing periods (semesters) and the
    singleton SystemSettings row that caches a pointer to the active one.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - At most one Semester row has is_active = True.  Enforced by
      SemesterRegistry.rollover(), which deactivates and activates inside
      one transaction while holding the settings row lock.
      A partial unique index on is_active rejects a second active row.
    - Semesters are created only by rollover, mutated only to flip
      is_active to False, and never deleted.
    - SystemSettings.current_semester_id, when set, references the active
      Semester.  It is rewritten only in the rollover transaction.

Failure modes:
    - SemesterNotFoundError when a referenced id does not exist.
"""

from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import Boolean, Index, Integer, String, text
from sqlalchemy.orm import Mapped, mapped_column

from dues_kernel.db.base import SINGLE_ACTIVE_SEMESTER_INDEX, Base, LedgerBase

# Primary key of the singleton settings row
SETTINGS_KEY = "global_config"


def semester_label(academic_year: str, semester_number: int) -> str:
    """Free-text key older payment records used instead of a semester id."""
    return f"{academic_year} - Sem {semester_number}"


class Semester(LedgerBase):
    """
    One billing period with its own dues amount and collection window.

    Guarantees:
        - semester_number is 1 or 2 (validated by the registry).
        - start_date <= end_date (validated by the registry).
        - dues_amount >= 0 (validated by the registry).
    """

    __tablename__ = "semesters"

    __table_args__ = (
        Index("idx_semester_active", "is_active"),
        Index("idx_semester_year_number", "academic_year", "semester_number"),
        # Store-level backstop for the single-active invariant
        Index(
            SINGLE_ACTIVE_SEMESTER_INDEX,
            "is_active",
            unique=True,
            sqlite_where=text("is_active = 1"),
            postgresql_where=text("is_active"),
        ),
    )

    # e.g. "2025/2026"
    academic_year: Mapped[str] = mapped_column(String(20), nullable=False)

    semester_number: Mapped[int] = mapped_column(Integer, nullable=False)

    # Dues-collection window (inclusive)
    start_date: Mapped[date] = mapped_column(nullable=False)
    end_date: Mapped[date] = mapped_column(nullable=False)

    dues_amount: Mapped[Decimal] = mapped_column(nullable=False)

    is_active: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    created_at: Mapped[datetime] = mapped_column(nullable=False)

    # Operator who performed the rollover
    created_by: Mapped[str | None] = mapped_column(String(255), nullable=True)

    def __repr__(self) -> str:
        state = "active" if self.is_active else "closed"
        return f"<Semester {self.label}: {state}>"

    @property
    def label(self) -> str:
        return semester_label(self.academic_year, self.semester_number)


class SystemSettings(Base):
    """
    Singleton denormalized cache of the active semester.

    The fallback fields (year, number, dues) are for display only when no
    semester is active; payments never bind to them.
    """

    __tablename__ = "system_settings"

    key: Mapped[str] = mapped_column(String(50), primary_key=True, default=SETTINGS_KEY)

    current_semester_id: Mapped[str | None] = mapped_column(String(36), nullable=True)

    current_academic_year: Mapped[str] = mapped_column(String(20), nullable=False)

    current_semester_number: Mapped[int] = mapped_column(Integer, nullable=False)

    default_dues_amount: Mapped[Decimal] = mapped_column(nullable=False)

    is_semester_open: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    updated_at: Mapped[datetime | None] = mapped_column(nullable=True)

    def __repr__(self) -> str:
        return f"<SystemSettings current={self.current_semester_id}>"
