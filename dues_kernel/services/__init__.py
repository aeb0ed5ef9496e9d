"""Services for the dues kernel (write side)."""

from dues_kernel.services.bootstrap import BootstrapResult, BootstrapService
from dues_kernel.services.expense_recorder import ExpenseRecorder
from dues_kernel.services.payment_recorder import PaymentRecorder
from dues_kernel.services.semester_registry import SemesterRegistry

__all__ = [
    "BootstrapResult",
    "BootstrapService",
    "ExpenseRecorder",
    "PaymentRecorder",
    "SemesterRegistry",
]
