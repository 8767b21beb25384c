import os
import sys
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Ensure backend/ is importable as the top-level "legcast" package even when pytest runs from repo root
BACKEND_DIR = Path(__file__).resolve().parents[1]
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))
TESTS_DIR = Path(__file__).resolve().parent
if str(TESTS_DIR) not in sys.path:
    sys.path.insert(0, str(TESTS_DIR))

# Ensure the application runs in test/sqlite mode *before* importing any legcast modules
os.environ.setdefault("ENV", "test")
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SCHEDULER_ENABLED", "false")

# Import the DB session module first so we can patch it before the app is imported
import legcast.db.session as legcast_db_session  # type: ignore

# --- Use a single in-memory SQLite DB for the whole test session ---
ENGINE = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
    future=True,
)
SessionTesting = sessionmaker(bind=ENGINE, autocommit=False, autoflush=False, future=True)

# --- Ensure tests and app code share the SAME in-memory engine/sessionmaker ---
setattr(legcast_db_session, "ENGINE", ENGINE)
setattr(legcast_db_session, "engine", ENGINE)
legcast_db_session.SessionLocal = SessionTesting
legcast_db_session.get_engine = lambda: ENGINE            # type: ignore
legcast_db_session.get_sessionmaker = lambda: SessionTesting  # type: ignore

import legcast.db as legcast_db_pkg  # type: ignore

setattr(legcast_db_pkg, "engine", ENGINE)
legcast_db_pkg.SessionLocal = SessionTesting

from legcast.db.base import Base
from legcast.db.session import get_db
from legcast.main import app

Base.metadata.create_all(bind=ENGINE)


@pytest.fixture(scope="function")
def reset_db():
    Base.metadata.drop_all(bind=ENGINE)
    Base.metadata.create_all(bind=ENGINE)
    yield
    Base.metadata.drop_all(bind=ENGINE)
    Base.metadata.create_all(bind=ENGINE)


@pytest.fixture(scope="function")
def db(reset_db):
    session = SessionTesting()

    def _override_get_db():
        try:
            yield session
        finally:
            pass

    app.dependency_overrides[get_db] = _override_get_db
    try:
        yield session
    finally:
        session.rollback()
        session.close()
        app.dependency_overrides.pop(get_db, None)


@pytest.fixture(scope="function")
def client(db):
    with TestClient(app) as c:
        yield c


@pytest.fixture(scope="function")
def seeded_trips(db):
    """Two weeks of one vessel shuttling BBI <-> P52: 150 legs per direction."""
    from _helpers import seed_trips

    return seed_trips(db, n_legs=300)
