"""
Module: dues_kernel.db.base
Responsibility: Declarative base classes for all SQLAlchemy ORM models.  Provides
    the generated-identifier primary key convention and the type annotation map
    for consistent column types.
Architecture position: Kernel > DB.  This is the lowest-level import target
    within the kernel.  ALL model files import from here.  This module MUST NOT
    import from models/, services/, selectors/, domain/, or outer layers.

Invariants enforced:
    - Opaque identifiers: ledger records (semesters, payments, expenses) get a
      uuid4-derived string key.  Catalog records (students, halls) keep the
      key assigned by the profile/catalog collaborator.
    - Decimal precision: type_annotation_map maps Python Decimal to
      Numeric(38, 9).  NEVER use float for monetary amounts.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import ClassVar
from uuid import uuid4

from sqlalchemy import Date, DateTime, Numeric, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


# Partial unique index allowing at most one active semester row
SINGLE_ACTIVE_SEMESTER_INDEX = "uq_semester_single_active"


def new_id() -> str:
    """Generate a fresh opaque record identifier."""
    return str(uuid4())


class Base(DeclarativeBase):
    """
    Declarative base for all SQLAlchemy models.

    Guarantees:
        - Decimal maps to Numeric(38, 9).
        - datetime maps to DateTime(timezone=True).
        - date maps to Date.
    """

    type_annotation_map: ClassVar[dict] = {
        Decimal: Numeric(38, 9),
        datetime: DateTime(timezone=True),
        date: Date,
    }


class LedgerBase(Base):
    """
    Abstract base for records the ledger itself creates.

    Guarantees:
        - id is a generated 36-character string, assigned at flush when
          not supplied by the caller.
    """

    __abstract__ = True

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=new_id,
    )
