"""
Pytest fixtures for the dues ledger test suite.

Provides:
- A fresh in-memory SQLite database per test (one shared connection), and
  a file-backed one for tests that need real connection concurrency
- Sessions, a session factory and a deterministic clock
- A seeded roster of halls and students
- Structured log capture

The engine module keeps one process-wide engine, so every test initializes
its own and resets it at teardown.
"""

import json
import logging
from collections.abc import Generator
from datetime import date
from decimal import Decimal
from io import StringIO

import pytest
from sqlalchemy.orm import Session

from dues_kernel.config import DuesConfig, HallSeed, SettingsDefaults, TransactionConfig
from dues_kernel.db.engine import (
    create_tables,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
)
from dues_kernel.domain.clock import DeterministicClock
from dues_kernel.domain.dtos import RolloverRequest
from dues_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from dues_kernel.models.roster import Hall, Student, UserRole

TEST_DATABASE_URL = "sqlite://"

HALLS = (
    ("h1", "Agongo"),
    ("h2", "Segnitome"),
    ("h3", "Putiaha"),
    ("h4", "Jong"),
)

# profile key, index number, first, last, hall, program, role, dismissed
STUDENTS = (
    ("kofi@ntc.edu.gh", "NTCW/23/001", "Kofi", "Mensah", "h1", "Nursing", UserRole.STUDENT, False),
    ("ama@ntc.edu.gh", "NTCW/23/002", "Ama", "Owusu", "h1", "Midwifery", UserRole.STUDENT, False),
    ("yaw@ntc.edu.gh", "NTCW/23/003", "Yaw", "Boateng", "h2", "Nursing", UserRole.HALL_EXECUTIVE, False),
    ("esi@ntc.edu.gh", "NTCW/23/004", "Esi", "Asante", "h2", "Public Health", UserRole.STUDENT, False),
    # Older profile without an index number; payments key it by profile key
    ("kwame@ntc.edu.gh", None, "Kwame", "Darko", "h3", "Nursing", UserRole.STUDENT, False),
    ("abena@ntc.edu.gh", "NTCW/22/099", "Abena", "Sarpong", "h1", "Midwifery", UserRole.STUDENT, True),
    ("master@ntc.edu.gh", None, "Akua", "Addo", "h1", None, UserRole.HALL_MASTER, False),
    ("admin@ntc.edu.gh", None, "Kojo", "Admin", None, None, UserRole.SUPER_ADMIN, False),
)

ELIGIBLE_COUNT = 5


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture dues_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, recorder):
            recorder.record_payment(...)
            logs = captured_logs()
            assert any(r["message"] == "payment_recorded" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("dues_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Database fixtures
# =============================================================================


@pytest.fixture
def engine():
    """Fresh in-memory database with every table created."""
    eng = init_engine_from_url(TEST_DATABASE_URL)
    create_tables(eng)
    yield eng
    reset_engine()


@pytest.fixture
def session_factory(engine):
    return get_session_factory()


@pytest.fixture
def session(session_factory) -> Generator[Session, None, None]:
    sess = session_factory()
    yield sess
    sess.close()


@pytest.fixture
def deterministic_clock():
    """Provide a deterministic clock for testing."""
    return DeterministicClock()


@pytest.fixture
def test_config() -> DuesConfig:
    return DuesConfig(
        database_url=TEST_DATABASE_URL,
        echo=False,
        transaction=TransactionConfig(max_retries=2, retry_backoff_seconds=0.0),
        defaults=SettingsDefaults(
            academic_year="2025/2026", semester_number=1, dues_amount=Decimal("20")
        ),
        halls=tuple(HallSeed(id=hall_id, name=name) for hall_id, name in HALLS),
    )


# =============================================================================
# Data fixtures
# =============================================================================


def seed_roster(session: Session) -> dict[str, Student]:
    """Add and commit the halls and students in HALLS and STUDENTS."""
    for hall_id, name in HALLS:
        session.add(Hall(id=hall_id, name=name, description=""))
    students = {}
    for key, index_number, first, last, hall_id, program, role, dismissed in STUDENTS:
        student = Student(
            id=key,
            first_name=first,
            last_name=last,
            email=key,
            role=role.value,
            index_number=index_number,
            hall_id=hall_id,
            program=program,
            is_dismissed=dismissed,
        )
        session.add(student)
        students[key] = student
    session.commit()
    return students


@pytest.fixture
def roster(session) -> dict[str, Student]:
    """
    Committed halls and students.

    Five students are dues-liable: four STUDENT rows and one HALL_EXECUTIVE,
    spread over h1, h2 and h3.  The dismissed student, the hall master and
    the admin are not.
    """
    return seed_roster(session)


@pytest.fixture
def file_session_factory(tmp_path):
    """
    Session factory over a SQLite file with the roster seeded.

    Unlike the in-memory engine, every session gets its own connection, so
    threads contend for the database lock as separate processes would.
    """
    eng = init_engine_from_url(f"sqlite:///{tmp_path / 'dues.db'}")
    create_tables(eng)
    factory = get_session_factory()
    sess = factory()
    try:
        seed_roster(sess)
    finally:
        sess.close()
    yield factory
    reset_engine()


def rollover_request(
    academic_year: str = "2025/2026",
    semester_number: int = 1,
    dues_amount: str = "20",
    start_date: date | None = None,
    end_date: date | None = None,
) -> RolloverRequest:
    if start_date is None:
        start_date = date(2025, 9, 1) if semester_number == 1 else date(2026, 1, 12)
    if end_date is None:
        end_date = date(2025, 12, 19) if semester_number == 1 else date(2026, 5, 8)
    return RolloverRequest(
        academic_year=academic_year,
        semester_number=semester_number,
        start_date=start_date,
        end_date=end_date,
        dues_amount=Decimal(dues_amount),
    )


@pytest.fixture
def make_rollover_request():
    return rollover_request


@pytest.fixture
def active_semester(session, roster, deterministic_clock):
    """Committed 2025/2026 semester 1 with dues 20."""
    from dues_kernel.services.semester_registry import SemesterRegistry

    semester = SemesterRegistry(session, deterministic_clock).rollover(
        rollover_request(), actor="bursar@ntc.edu.gh"
    )
    session.commit()
    return semester
