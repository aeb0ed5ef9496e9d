"""
Module: dues_kernel.selectors.semester_selector
Responsibility: Read-only semester and settings queries.  The live lookup of
    the active semester lives here so that both the SemesterRegistry (write
    side) and the report/dues selectors share one definition of "active".
Architecture position: Kernel > Selectors.

Invariants enforced:
    - get_active() trusts the settings pointer only when the referenced row
      still has is_active = True.  A dangling or stale pointer yields None,
      never a closed semester.
    - Fallback settings values are returned as display data only.
"""

from sqlalchemy import select
from sqlalchemy.orm import Session

from dues_kernel.db.engine import translate_store_errors
from dues_kernel.domain.dtos import SemesterInfo, SettingsInfo
from dues_kernel.exceptions import SemesterNotFoundError
from dues_kernel.models.semester import SETTINGS_KEY, Semester, SystemSettings
from dues_kernel.selectors.base import BaseSelector


class SemesterSelector(BaseSelector[Semester]):
    """Selector for semester history, the active semester and settings."""

    def __init__(self, session: Session):
        super().__init__(session)

    def get_settings(self) -> SettingsInfo | None:
        """Settings snapshot, or None before bootstrap."""
        with translate_store_errors("get_settings"):
            row = self.session.get(SystemSettings, SETTINGS_KEY)
            return SettingsInfo.from_model(row) if row is not None else None

    def get_active(self) -> SemesterInfo | None:
        """
        The semester referenced by the settings pointer, if it is active.

        Returns:
            SemesterInfo, or None when no settings row exists, the pointer is
            unset, or the referenced semester is missing or inactive.
        """
        with translate_store_errors("get_active_semester"):
            settings = self.session.get(SystemSettings, SETTINGS_KEY)
            if settings is None or settings.current_semester_id is None:
                return None
            semester = self.session.get(Semester, settings.current_semester_id)
            if semester is None or not semester.is_active:
                return None
            return SemesterInfo.from_model(semester)

    def get(self, semester_id: str) -> SemesterInfo:
        """
        Raises:
            SemesterNotFoundError: If no semester has this id.
        """
        with translate_store_errors("get_semester"):
            semester = self.session.get(Semester, semester_id)
        if semester is None:
            raise SemesterNotFoundError(semester_id)
        return SemesterInfo.from_model(semester)

    def find(self, academic_year: str, semester_number: int) -> SemesterInfo | None:
        """
        Exact lookup by academic year and semester number.

        Several rows can share a period if it was rolled over into more than
        once; the active one wins, then the most recently created.
        """
        with translate_store_errors("find_semester"):
            semester = self.session.execute(
                select(Semester)
                .where(
                    Semester.academic_year == academic_year,
                    Semester.semester_number == semester_number,
                )
                .order_by(Semester.is_active.desc(), Semester.created_at.desc())
                .limit(1)
            ).scalar_one_or_none()
        return SemesterInfo.from_model(semester) if semester is not None else None

    def list_all(self) -> list[SemesterInfo]:
        """Every semester, newest first."""
        with translate_store_errors("list_semesters"):
            rows = self.session.execute(
                select(Semester).order_by(Semester.created_at.desc(), Semester.id)
            ).scalars()
            return [SemesterInfo.from_model(s) for s in rows]

    def count_active(self) -> int:
        """Number of rows flagged active; 0 or 1 when the invariant holds."""
        with translate_store_errors("count_active_semesters"):
            return len(
                self.session.execute(
                    select(Semester.id).where(Semester.is_active.is_(True))
                ).all()
            )
