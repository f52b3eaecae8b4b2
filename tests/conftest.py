from datetime import timedelta
from pathlib import Path
import sys
import os

import pytest

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

# Safety default for any app created during test imports.
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

from civictally import create_app
from civictally.extensions import db
from civictally.services.eligibility import Voter
from civictally.services.lifecycle import (
    create_vote_event,
    open_vote_event,
    publish_vote_event,
)
from civictally.timeutil import utcnow


@pytest.fixture()
def app(tmp_path: Path):
    db_file = tmp_path / "test.sqlite3"
    app = create_app(
        {
            "TESTING": True,
            "SQLALCHEMY_DATABASE_URI": f"sqlite:///{db_file}",
            "SQLALCHEMY_ENGINE_OPTIONS": {},
        }
    )

    with app.app_context():
        driver = db.engine.url.drivername
        if driver != "sqlite":
            raise RuntimeError(
                f"Test database must be SQLite, got '{driver}'. Refusing to run destructive test setup."
            )
        db.drop_all()
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def db_session(app):
    with app.app_context():
        yield db.session


@pytest.fixture()
def make_event(db_session):
    def _make(
        method="simple_majority",
        options=("A", "B"),
        parameters=None,
        eligibility=None,
        open_now=True,
        starts_in=timedelta(hours=-1),
        **extra,
    ):
        now = utcnow()
        event = create_vote_event(
            {
                "title": f"{method} vote",
                "method": method,
                "start_at": now + starts_in,
                "end_at": now + starts_in + timedelta(hours=2),
                "options": list(options),
                "parameters": parameters or {},
                "eligibility": eligibility or {"verification_level": 0},
                **extra,
            },
            created_by="admin",
        )
        publish_vote_event(event.id, actor="admin")
        if open_now:
            open_vote_event(event.id, actor="admin")
        return event

    return _make


def make_voter(voter_id, level=1, groups=()):
    return Voter(voter_id=voter_id, verification_level=level, groups=frozenset(groups))


@pytest.fixture()
def voter():
    return make_voter
