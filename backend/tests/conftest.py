"""
Pytest configuration and shared fixtures for Appeal Engine tests.

This module provides shared fixtures including:
- In-memory SQLite database shared across sessions (StaticPool)
- Training case factory
- Stub generative and predictive clients
- FastAPI TestClient wired to the test database
"""

import os

import pytest

# Set up test environment before any app imports
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["INTERNAL_API_KEY"] = "test-internal-key"
os.environ.pop("GENERATIVE_SERVICE_API_KEY", None)

from unittest.mock import MagicMock

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from appeal_engine.database import Base
from appeal_engine.models import db_models  # noqa: F401
from appeal_engine.models.learning import Outcome, TrainingCase
from appeal_engine.models.prediction import Err, Ok


INTERNAL_HEADERS = {"X-Internal-Key": "test-internal-key"}


@pytest.fixture
def engine():
    """Fresh in-memory database per test."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


def make_case(
    ticket_type: str = "pcn",
    outcome: Outcome = Outcome.SUCCESSFUL,
    circumstances: str = "the sign was obscured by overgrown trees near the bay",
    evidence=("photo",),
    key_arguments=("signage",),
    **kwargs,
) -> TrainingCase:
    """Build a TrainingCase with sensible defaults."""
    return TrainingCase(
        ticket_type=ticket_type,
        circumstances=circumstances,
        appeal_letter=kwargs.pop("appeal_letter", "Dear Sir/Madam, I appeal this notice."),
        outcome=outcome,
        evidence_provided=list(evidence),
        key_arguments=list(key_arguments),
        **kwargs,
    )


@pytest.fixture
def case_factory():
    return make_case


@pytest.fixture
def generative_ok():
    """Generative client that always returns the same text."""
    client = MagicMock()
    client.configured = True
    client.complete.return_value = Ok("Dear Sir/Madam, [GROUNDS] ... Yours faithfully, [NAME]")
    return client


@pytest.fixture
def generative_down():
    """Generative client that always fails."""
    client = MagicMock()
    client.configured = True
    client.complete.return_value = Err("status 503")
    return client


@pytest.fixture
def prediction_down():
    """Predictive service client that always fails."""
    client = MagicMock()
    client.predict.return_value = Err("network error: ConnectionError")
    return client


@pytest.fixture
def services(session_factory, prediction_down, generative_ok):
    from appeal_engine.dependencies import build_services

    services = build_services(
        session_factory=session_factory,
        prediction_client=prediction_down,
        generative=generative_ok,
        prediction_timeout=1.0,
    )
    yield services
    services.shutdown()


@pytest.fixture
def client(services, session_factory):
    """TestClient against the app, bypassing the lifespan's Postgres setup."""
    from fastapi.testclient import TestClient

    from appeal_engine.database import get_db
    from appeal_engine.main import app

    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.state.services = services
    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()
