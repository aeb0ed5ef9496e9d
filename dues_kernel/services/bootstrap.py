"""
BootstrapService -- first-run seeding of settings and halls.

Creates the SystemSettings singleton with the configured fallback values
(no semester pointer, collection closed) and inserts any configured hall
that does not exist yet.  Existing rows are never overwritten, so running
bootstrap again is a no-op.

Flush-only: the caller commits.
"""

from dataclasses import dataclass

from sqlalchemy.orm import Session

from dues_kernel.config import DuesConfig
from dues_kernel.db.engine import translate_store_errors
from dues_kernel.domain.clock import Clock
from dues_kernel.logging_config import get_logger
from dues_kernel.models.roster import Hall
from dues_kernel.models.semester import SETTINGS_KEY, SystemSettings
from dues_kernel.services.base import BaseService

logger = get_logger("services.bootstrap")


@dataclass(frozen=True)
class BootstrapResult:
    settings_created: bool
    halls_created: tuple[str, ...]


class BootstrapService(BaseService[SystemSettings]):
    def __init__(self, session: Session, config: DuesConfig, clock: Clock | None = None):
        super().__init__(session, clock)
        self._config = config

    def seed(self) -> BootstrapResult:
        defaults = self._config.defaults
        with translate_store_errors("bootstrap"):
            settings_created = False
            if self.session.get(SystemSettings, SETTINGS_KEY) is None:
                self.session.add(
                    SystemSettings(
                        key=SETTINGS_KEY,
                        current_semester_id=None,
                        current_academic_year=defaults.academic_year,
                        current_semester_number=defaults.semester_number,
                        default_dues_amount=defaults.dues_amount,
                        is_semester_open=False,
                        updated_at=self._now(),
                    )
                )
                settings_created = True

            created = []
            for seed in self._config.halls:
                if self.session.get(Hall, seed.id) is None:
                    self.session.add(Hall(id=seed.id, name=seed.name, description=seed.description))
                    created.append(seed.id)
            self.session.flush()

        logger.info(
            "bootstrap_completed",
            extra={"settings_created": settings_created, "halls_created": created},
        )
        return BootstrapResult(settings_created=settings_created, halls_created=tuple(created))
