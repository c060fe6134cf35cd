from datetime import timedelta
import os
import tempfile

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

# Keep the app's own engine, logs and signing key away from local state.
os.environ.setdefault("JURYNOW_DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("JURYNOW_LOG_DIR", tempfile.mkdtemp(prefix="jurynow-logs-"))
os.environ.setdefault(
    "JURYNOW_JWT_SECRET_KEY", "test-secret-key-that-is-long-enough-for-hs256"
)

from jurynow.auth.auth import Role, create_access_token
from jurynow.data.juror_manager import JurorManager
from jurynow.database import Base, get_db
from jurynow.main import app
import jurynow.models  # noqa: F401
from jurynow.services.panel_selector import PanelSelector
from jurynow.services.verdict_session import (
    VerdictSessionCoordinator,
    get_verdict_coordinator,
)

TEST_DATABASE_URL = "sqlite:///:memory:"
engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

REGIONS = ("North America", "Europe", "Asia")
AGE_GROUPS = ("18-24", "25-34", "35-44", "45+")


@pytest.fixture(scope="session")
def create_test_tables():
    """Create all database tables once per session before tests run."""
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture(scope="function")
def db_session(create_test_tables):
    """
    Provides a transactional database session for a test.
    Rolls back changes after the test.
    Overrides the main app's get_db dependency.
    """
    connection = engine.connect()
    transaction = connection.begin()
    db = TestingSessionLocal(bind=connection)

    app.dependency_overrides[get_db] = lambda: db
    try:
        yield db
    finally:
        db.close()
        transaction.rollback()
        connection.close()
        app.dependency_overrides.pop(get_db, None)


@pytest.fixture(scope="function")
def coordinator():
    """A fresh in-memory coordinator per test, wired into the app."""
    instance = VerdictSessionCoordinator(
        selector=PanelSelector(dimensions=("region", "age_group"), seed="test-seed"),
        voting_window=timedelta(minutes=60),
    )
    app.dependency_overrides[get_verdict_coordinator] = lambda: instance
    try:
        yield instance
    finally:
        app.dependency_overrides.pop(get_verdict_coordinator, None)


@pytest.fixture(scope="function")
def client(db_session: Session, coordinator):
    """Provides a TestClient instance for making requests to the FastAPI app."""
    with TestClient(app) as c:
        yield c


@pytest.fixture
def auth_headers():
    def _headers(subject: str, role: Role = Role.JUROR) -> dict:
        return {"Authorization": f"Bearer {create_access_token(subject, role)}"}

    return _headers


@pytest.fixture
def admin_headers(auth_headers):
    return auth_headers("admin-1", Role.ADMIN)


@pytest.fixture
def seeded_jurors(db_session: Session):
    """Fifteen active jurors: five per region, ages spread across groups."""
    manager = JurorManager(db_session)
    jurors = []
    for index in range(15):
        jurors.append(
            manager.register(
                demographics={
                    "region": REGIONS[index % len(REGIONS)],
                    "age_group": AGE_GROUPS[index % len(AGE_GROUPS)],
                },
                handle=f"juror{index:02d}",
            )
        )
    return jurors
