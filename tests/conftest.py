"""Pytest configuration and shared fixtures."""
import os

# Keep the app module from creating a database file on import
os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from siteflow.database import Base, get_db
from siteflow.models.domain import Site, DailyReport
from siteflow.models.enums import ReportStatus
from siteflow.services.workflow import WorkflowService


@pytest.fixture
def engine():
    """In-memory SQLite shared by every connection of one test."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(engine):
    """Create a fresh in-memory database for each test."""
    TestingSessionLocal = sessionmaker(autoflush=False, bind=engine)
    session = TestingSessionLocal()

    yield session

    session.close()


@pytest.fixture
def service(db_session):
    return WorkflowService(db_session)


@pytest.fixture
def sample_site(db_session):
    site = Site(name="Gangnam Tower Block B", address="Seoul")
    db_session.add(site)
    db_session.commit()
    db_session.refresh(site)
    return site


@pytest.fixture
def sample_report(db_session, sample_site):
    """A draft report at version 1."""
    report = DailyReport(
        site_id=sample_site.id,
        created_by="worker-1",
        status=ReportStatus.DRAFT,
        version=1,
        member_name="Rebar crew",
        process_type="Slab",
        content="Original content"
    )
    db_session.add(report)
    db_session.commit()
    db_session.refresh(report)
    return report


@pytest.fixture
def client(engine):
    """API client bound to the test database."""
    from siteflow.main import app

    TestingSessionLocal = sessionmaker(autoflush=False, bind=engine)

    def override_get_db():
        db = TestingSessionLocal()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
