"""Shared fixtures: an in-memory SQLite database and a TestClient wired to it.

Background extraction runs are never executed by API tests; the run executor
dependency is replaced with a recorder.
"""
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from tracelayer_core import crud, models, schemas
from tracelayer_core.api.main import app
from tracelayer_core.database import get_db, get_session_factory
from tracelayer_core.extraction.runner import get_run_executor
from tracelayer_core.models import Base

engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def session_factory():
    Base.metadata.create_all(bind=engine)
    yield TestingSessionLocal
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def scheduled_runs():
    """Calls the pipeline router made to the run executor."""
    return []


@pytest.fixture
def client(session_factory, scheduled_runs):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    def recording_executor(factory, run_id, provider, api_key):
        scheduled_runs.append({"run_id": run_id, "provider": provider, "api_key": api_key})

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_run_executor] = lambda: recording_executor
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def project(db):
    return crud.create_project(db, "Checkout Revamp", "Rebuild the checkout flow", color="#6B7AE8")


@pytest.fixture
def add_source(db):
    """Factory adding a text source to a project."""

    def _add(project_id, name, content, source_type=models.SourceType.EMAIL):
        return crud.add_source(db, project_id, schemas.SourceCreate(name=name, type=source_type, content=content))

    return _add
