"""Selectors for the dues kernel (read side)."""

from dues_kernel.selectors.dues_selector import (
    STATUS_ALL,
    STATUS_PAID,
    STATUS_UNPAID,
    DuesPartition,
    DuesResolver,
    RosterStatusRow,
)
from dues_kernel.selectors.report_selector import (
    DefaulterRow,
    FinancialReport,
    FinancialReportEngine,
    HallBreakdown,
)
from dues_kernel.selectors.roster_selector import RosterSelector
from dues_kernel.selectors.semester_selector import SemesterSelector

__all__ = [
    "DefaulterRow",
    "DuesPartition",
    "DuesResolver",
    "FinancialReport",
    "FinancialReportEngine",
    "HallBreakdown",
    "RosterSelector",
    "RosterStatusRow",
    "STATUS_ALL",
    "STATUS_PAID",
    "STATUS_UNPAID",
    "SemesterSelector",
]
