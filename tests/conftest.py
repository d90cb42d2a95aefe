"""Pytest configuration and shared fixtures."""

import pytest
from fastapi.testclient import TestClient

from proposals.api.deps import get_engine
from proposals.api.main import create_app
from proposals.core.config import Settings
from proposals.core.workflow import WorkflowEngine
from proposals.db.session import create_session_factory
from proposals.store import InMemoryProposalStore, SqlProposalStore

from tests.factories import build_directory


@pytest.fixture
def directory():
    """Directory with an admin, a registrar, a superior, a creator and three approvers."""
    return build_directory()


@pytest.fixture
def store():
    return InMemoryProposalStore()


@pytest.fixture
def engine(store, directory):
    return WorkflowEngine(store, directory)


@pytest.fixture
def session_factory():
    """Session factory on a private in-memory SQLite database."""
    return create_session_factory("sqlite://")


@pytest.fixture
def sql_store(session_factory):
    return SqlProposalStore(session_factory)


@pytest.fixture
def sql_engine(sql_store, directory):
    return WorkflowEngine(sql_store, directory)


@pytest.fixture
def test_settings(tmp_path):
    return Settings(
        store_backend="memory",
        log_dir=str(tmp_path / "logs"),
        file_logging=False,
        _env_file=None,
    )


@pytest.fixture
def app(test_settings, engine):
    application = create_app(test_settings)
    application.dependency_overrides[get_engine] = lambda: engine
    yield application
    application.dependency_overrides.clear()


@pytest.fixture
def client(app) -> TestClient:
    return TestClient(app)
