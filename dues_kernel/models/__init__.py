"""Domain models for the dues kernel."""

from dues_kernel.models.payment import GENERAL_HALL, Expense, Payment
from dues_kernel.models.roster import DUES_LIABLE_ROLES, Hall, Student, UserRole
from dues_kernel.models.semester import (
    SETTINGS_KEY,
    Semester,
    SystemSettings,
    semester_label,
)

__all__ = [
    "Semester",
    "SystemSettings",
    "SETTINGS_KEY",
    "semester_label",
    "Payment",
    "Expense",
    "GENERAL_HALL",
    "Hall",
    "Student",
    "UserRole",
    "DUES_LIABLE_ROLES",
]
