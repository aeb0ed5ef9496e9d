"""
ExpenseRecorder -- append-only recording of operational costs.

Expenses are either scoped to one hall or to GENERAL (institution-wide).
The financial report subtracts them from collected dues.

Invariants enforced:
    - hall_id is GENERAL or an existing hall.
    - amount > 0; title and recorded_by non-empty.
    - Flush-only: never commits or rolls back the session.
"""

from sqlalchemy.orm import Session

from dues_kernel.db.base import new_id
from dues_kernel.domain.clock import Clock
from dues_kernel.domain.dtos import ExpenseInfo, ExpenseRequest
from dues_kernel.logging_config import get_logger
from dues_kernel.models.payment import GENERAL_HALL, Expense
from dues_kernel.selectors.roster_selector import RosterSelector
from dues_kernel.services.base import BaseService

logger = get_logger("services.expense_recorder")


class ExpenseRecorder(BaseService[Expense]):
    """Records hall and GENERAL expenses."""

    def __init__(self, session: Session, clock: Clock | None = None):
        super().__init__(session, clock)
        self._roster = RosterSelector(session)

    def record_expense(self, request: ExpenseRequest) -> ExpenseInfo:
        """
        Raises:
            ValidationError: Malformed request.
            HallNotFoundError: hall_id is neither GENERAL nor a known hall.
        """
        request.validate()
        hall_id = request.hall_id.strip()
        if hall_id != GENERAL_HALL:
            self._roster.require_hall(hall_id)

        expense = Expense(
            id=new_id(),
            hall_id=hall_id,
            title=request.title.strip(),
            amount=request.amount,
            category=request.category.strip(),
            description=request.description.strip(),
            date=self._now(),
            recorded_by=request.recorded_by.strip(),
        )
        self._persist("record_expense", expense)

        logger.info(
            "expense_recorded",
            extra={
                "expense_id": expense.id,
                "hall_id": hall_id,
                "amount": expense.amount,
                "category": expense.category,
                "recorded_by": expense.recorded_by,
            },
        )
        return ExpenseInfo.from_model(expense)
