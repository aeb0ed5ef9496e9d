"""
Module: dues_kernel.selectors.roster_selector
Responsibility: Read interface over the profile/catalog collaborator:
    resolving student references and building the dues-liable population.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - A StudentRef is looked up by the field its kind names first and by
      the other identifier second, so a ref carrying a profile key still
      finds a student whose payments were keyed by index number (and the
      reverse).
    - population() returns only dues-liable roles (STUDENT, HALL_EXECUTIVE)
      in a stable order: hall, last name, first name, profile key.
"""

from sqlalchemy import select
from sqlalchemy.orm import Session

from dues_kernel.db.engine import translate_store_errors
from dues_kernel.domain.dtos import ALL_HALLS, IdentifierKind, StudentEntry, StudentRef
from dues_kernel.exceptions import HallNotFoundError, StudentNotFoundError
from dues_kernel.models.roster import DUES_LIABLE_ROLES, Hall, Student
from dues_kernel.selectors.base import BaseSelector


class RosterSelector(BaseSelector[Student]):
    """Selector for students and halls."""

    def __init__(self, session: Session):
        super().__init__(session)

    def find_student(self, ref: StudentRef) -> StudentEntry | None:
        with translate_store_errors("find_student"):
            by_index = select(Student).where(Student.index_number == ref.value).order_by(Student.id)
            by_key = select(Student).where(Student.id == ref.value)
            if ref.kind == IdentifierKind.INDEX_NUMBER:
                queries = (by_index, by_key)
            else:
                queries = (by_key, by_index)
            for query in queries:
                student = self.session.execute(query.limit(1)).scalar_one_or_none()
                if student is not None:
                    return StudentEntry.from_model(student)
        return None

    def require_student(self, ref: StudentRef) -> StudentEntry:
        """
        Raises:
            StudentNotFoundError: If the ref resolves to no profile.
        """
        student = self.find_student(ref)
        if student is None:
            raise StudentNotFoundError(ref.value)
        return student

    def require_hall(self, hall_id: str) -> str:
        """
        Returns:
            The hall's display name.

        Raises:
            HallNotFoundError: If no hall has this id.
        """
        with translate_store_errors("get_hall"):
            hall = self.session.get(Hall, hall_id)
        if hall is None:
            raise HallNotFoundError(hall_id)
        return hall.name

    def hall_names(self) -> dict[str, str]:
        """Map of hall id to display name, ordered by id."""
        with translate_store_errors("list_halls"):
            rows = self.session.execute(select(Hall).order_by(Hall.id)).scalars()
            return {h.id: h.name for h in rows}

    def population(
        self,
        hall_filter: str = ALL_HALLS,
        include_dismissed: bool = False,
    ) -> list[StudentEntry]:
        """
        Dues-liable students, optionally restricted to one hall.

        Args:
            hall_filter: A hall id, or ALL_HALLS.
            include_dismissed: Keep dismissed students (excluded by default).
        """
        query = select(Student).where(
            Student.role.in_([role.value for role in DUES_LIABLE_ROLES])
        )
        if hall_filter != ALL_HALLS:
            query = query.where(Student.hall_id == hall_filter)
        if not include_dismissed:
            query = query.where(Student.is_dismissed.is_(False))
        query = query.order_by(
            Student.hall_id, Student.last_name, Student.first_name, Student.id
        )
        with translate_store_errors("list_population"):
            return [StudentEntry.from_model(s) for s in self.session.execute(query).scalars()]
