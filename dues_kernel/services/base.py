"""
BaseService -- common ground for the ledger's write-side services.

Every service is handed a ``Session`` it does not own.  Services add rows and
flush so that constraint violations and lock waits surface inside the
operation that caused them, but they never commit or roll back: the caller
(``run_in_transaction``, the facade, or a test) decides, which is what keeps
a rollover or a payment all-or-nothing.

Time comes from an injected ``Clock`` so ``created_at``, ``date_paid`` and
expense dates are reproducible under test.
"""

from abc import ABC
from datetime import datetime
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from dues_kernel.db.base import Base
from dues_kernel.db.engine import translate_store_errors
from dues_kernel.domain.clock import Clock, SystemClock

ModelType = TypeVar("ModelType", bound=Base)


class BaseService(ABC, Generic[ModelType]):
    """Write-side service bound to one caller-owned session."""

    def __init__(self, session: Session, clock: Clock | None = None):
        self.session = session
        self._clock = clock or SystemClock()

    def _now(self) -> datetime:
        return self._clock.now()

    def _persist(self, operation: str, row: ModelType) -> ModelType:
        """Add and flush one new row; store failures become StoreError."""
        with translate_store_errors(operation):
            self.session.add(row)
            self.session.flush()
        return row
