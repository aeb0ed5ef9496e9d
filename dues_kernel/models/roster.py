"""
Module: dues_kernel.models.roster
Responsibility: Read model of the profile/catalog collaborator's users and
    halls.  The ledger reads these rows to build the dues-liable population
    and to resolve student references; it never edits them.
Architecture position: Kernel > Models.  May import from db/base.py only.

Keys are assigned by the collaborator (profile key is the user's document
key, e.g. an email address; hall ids are short codes like "h1").
"""

from enum import Enum

from sqlalchemy import Boolean, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from dues_kernel.db.base import Base


class UserRole(str, Enum):
    SUPER_ADMIN = "SUPER_ADMIN"
    HALL_MASTER = "HALL_MASTER"
    HALL_EXECUTIVE = "HALL_EXECUTIVE"
    STUDENT = "STUDENT"


# Roles that owe dues
DUES_LIABLE_ROLES = (UserRole.STUDENT, UserRole.HALL_EXECUTIVE)


class Hall(Base):
    """Residence hall; used here only as a grouping key."""

    __tablename__ = "halls"

    id: Mapped[str] = mapped_column(String(50), primary_key=True)

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    description: Mapped[str] = mapped_column(Text, nullable=False, default="")

    def __repr__(self) -> str:
        return f"<Hall {self.id}: {self.name}>"


class Student(Base):
    """A user profile as seen by the dues ledger."""

    __tablename__ = "students"

    __table_args__ = (
        Index("idx_student_index_number", "index_number"),
        Index("idx_student_hall", "hall_id"),
    )

    # Internal profile key
    id: Mapped[str] = mapped_column(String(255), primary_key=True)

    first_name: Mapped[str] = mapped_column(String(100), nullable=False)

    last_name: Mapped[str] = mapped_column(String(100), nullable=False)

    email: Mapped[str | None] = mapped_column(String(255), nullable=True)

    role: Mapped[str] = mapped_column(String(30), nullable=False, default=UserRole.STUDENT.value)

    # Institutional index number, e.g. "NTCW/23/001"; absent on older profiles
    index_number: Mapped[str | None] = mapped_column(String(50), nullable=True)

    hall_id: Mapped[str | None] = mapped_column(String(50), nullable=True)

    program: Mapped[str | None] = mapped_column(String(50), nullable=True)

    batch_id: Mapped[str | None] = mapped_column(String(50), nullable=True)

    is_dismissed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    def __repr__(self) -> str:
        return f"<Student {self.id} ({self.index_number or '-'})>"

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"
