"""
SemesterRegistry -- the single-active-semester invariant and rollover.

Responsibility:
    Exposes the currently active billing period and performs the rollover
    from one semester to the next.

Architecture position:
    Kernel > Services -- imperative shell.  Reads go through
    SemesterSelector; writes flush within the caller's transaction.

Invariants enforced:
    - At most one Semester has is_active = True.  rollover() deactivates
      every active row, then inserts the new active row, inside a
      transaction that holds the settings row lock (PostgreSQL) or the
      database write lock (SQLite, BEGIN IMMEDIATE from run_in_transaction),
      so two rollovers cannot interleave.  The partial unique index on
      is_active turns any remaining race into a retryable conflict.
    - SystemSettings is rewritten in the same transaction as the semester
      it points to; it is never updated anywhere else (bootstrap aside).
    - All-or-nothing: the caller commits once.  A failure before commit
      leaves every semester flag and every settings field untouched.
    - Idempotence of effect: re-running a rollover whose descriptor equals
      the active semester reasserts the settings pointer and returns the
      existing semester instead of creating a duplicate.
    - Flush-only: never commits or rolls back the session.

Failure modes:
    - ValidationError: descriptor violates a constraint (no write attempted).
    - StoreError: the store rejected a statement.

Audit relevance:
    Rollover is logged with the new semester id, period label, dues amount,
    the ids deactivated, and the operator.
"""

from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from dues_kernel.db.base import new_id
from dues_kernel.db.engine import translate_store_errors
from dues_kernel.domain.clock import Clock
from dues_kernel.domain.dtos import RolloverRequest, SemesterInfo, SettingsInfo
from dues_kernel.logging_config import get_logger
from dues_kernel.models.semester import SETTINGS_KEY, Semester, SystemSettings
from dues_kernel.selectors.semester_selector import SemesterSelector
from dues_kernel.services.base import BaseService

logger = get_logger("services.semester_registry")


class SemesterRegistry(BaseService[Semester]):
    """
    Owner of the semester lifecycle.

    Non-goals:
        - Does NOT reopen, edit or delete past semesters.
        - Does NOT call ``session.commit()`` -- caller controls boundaries.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        super().__init__(session, clock)
        self._selector = SemesterSelector(session)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_active_semester(self) -> SemesterInfo | None:
        """
        The active semester, via the live settings pointer.

        Returns None when no semester is active.  Callers may show the
        settings fallback values, but must never bind a payment to them.
        """
        return self._selector.get_active()

    def get_semester(self, semester_id: str) -> SemesterInfo:
        return self._selector.get(semester_id)

    def find_semester(self, academic_year: str, semester_number: int) -> SemesterInfo | None:
        return self._selector.find(academic_year, semester_number)

    def list_semesters(self) -> list[SemesterInfo]:
        return self._selector.list_all()

    def get_settings(self) -> SettingsInfo | None:
        return self._selector.get_settings()

    # ------------------------------------------------------------------
    # Rollover
    # ------------------------------------------------------------------

    def rollover(self, request: RolloverRequest, actor: str | None = None) -> SemesterInfo:
        """
        Make ``request`` the single active semester.

        Preconditions:
            - ``request`` passes ``RolloverRequest.validate()``.

        Postconditions (after the caller commits):
            - Exactly one semester is active and it carries the requested
              fields.
            - Settings point at it, mirror its year/number/dues and have
              ``is_semester_open = True``.

        Args:
            request: Period descriptor.
            actor: Operator performing the rollover.

        Returns:
            The active semester.

        Raises:
            ValidationError: Before any write, if the descriptor is invalid.
            StoreError: If the store rejects a statement.
        """
        request.validate()
        academic_year = request.academic_year.strip()
        now = self._now()

        with translate_store_errors("rollover"):
            settings = self._lock_settings()

            active_rows = list(
                self.session.execute(
                    select(Semester).where(Semester.is_active.is_(True))
                ).scalars()
            )

            current = next(
                (s for s in active_rows if SemesterInfo.from_model(s).matches(request)),
                None,
            )
            if current is not None and len(active_rows) == 1:
                self._point_settings_at(settings, current, now)
                self.session.flush()
                logger.info(
                    "semester_rollover_reasserted",
                    extra={
                        "semester_id": current.id,
                        "semester_label": current.label,
                        "actor": actor,
                    },
                )
                return SemesterInfo.from_model(current)

            deactivated = [s.id for s in active_rows]
            for row in active_rows:
                row.is_active = False
            # Deactivations reach the store before the insert the unique index checks
            self.session.flush()

            semester = Semester(
                id=new_id(),
                academic_year=academic_year,
                semester_number=request.semester_number,
                start_date=request.start_date,
                end_date=request.end_date,
                dues_amount=request.dues_amount,
                is_active=True,
                created_at=now,
                created_by=actor,
            )
            self.session.add(semester)
            self._point_settings_at(settings, semester, now)
            self.session.flush()

        logger.info(
            "semester_rollover_completed",
            extra={
                "semester_id": semester.id,
                "semester_label": semester.label,
                "dues_amount": semester.dues_amount,
                "deactivated_ids": deactivated,
                "actor": actor,
            },
        )
        return SemesterInfo.from_model(semester)

    def _lock_settings(self) -> SystemSettings:
        """
        Fetch the settings singleton FOR UPDATE, creating it if absent.

        The row lock serializes concurrent rollovers on PostgreSQL.
        """
        settings = self.session.execute(
            select(SystemSettings)
            .where(SystemSettings.key == SETTINGS_KEY)
            .with_for_update()
        ).scalar_one_or_none()
        if settings is None:
            settings = SystemSettings(
                key=SETTINGS_KEY,
                current_academic_year="",
                current_semester_number=1,
                default_dues_amount=Decimal("0"),
                is_semester_open=False,
            )
            self.session.add(settings)
        return settings

    def _point_settings_at(self, settings: SystemSettings, semester: Semester, now) -> None:
        settings.current_semester_id = semester.id
        settings.current_academic_year = semester.academic_year
        settings.current_semester_number = semester.semester_number
        settings.default_dues_amount = semester.dues_amount
        settings.is_semester_open = True
        settings.updated_at = now
