import os
import tempfile
import uuid

import pytest

# app.py builds its database at import time, so point it somewhere disposable first
_APP_DB_DIR = tempfile.mkdtemp(prefix="seating-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_APP_DB_DIR, 'app.db')}"
os.environ["SEED_DEMO_SESSION"] = "0"

from assignment_logger import AssignmentLogger
from database_manager import DatabaseManager
from registration_gateway import RegistrationGateway

TWO_ROWS = [("A", 20), ("B", 20)]


def make_attendees(count, **overrides):
    return [
        {"phone": f"0105555{n:04d}", "name": f"Attendee {n}", **overrides}
        for n in range(1, count + 1)
    ]


def registration(n, session_id, attendee_count=1):
    return {
        "phone": f"0105555{n:04d}",
        "name": f"Attendee {n}",
        "attendee_count": attendee_count,
        "session_id": session_id,
    }


@pytest.fixture
def db(tmp_path):
    manager = DatabaseManager(f"sqlite:///{tmp_path / 'seating.db'}")
    yield manager
    manager.session_factory.remove()
    manager.engine.dispose()


@pytest.fixture
def assignment_log(db):
    return AssignmentLogger(db)


@pytest.fixture
def gateway(db, assignment_log):
    return RegistrationGateway(db, assignment_log)


@pytest.fixture
def session_id():
    return f"session-{uuid.uuid4().hex[:12]}"


@pytest.fixture
def seeded(db, session_id):
    """Two rows of 20 seats and ten unseated attendees."""
    db.seed_session(session_id, "Test session", TWO_ROWS, make_attendees(10))
    return session_id
