"""Common test fixtures for cardnote."""

import tempfile
from pathlib import Path

import pytest

from cardnote.config import config
from cardnote.models.db_models import get_session_factory, init_db
from cardnote.models.schema import Card, Project
from cardnote.storage.card_repository import CardRepository, ProjectRepository
from cardnote.storage.sql_store import SqlCardStore
from cardnote.storage.tag_repository import TagRepository
from tests.fakes import FakeCardStore, sequential_ids


@pytest.fixture(params=["asyncio"])
def anyio_backend(request):
    """Restrict anyio tests to asyncio only (trio is not installed)."""
    return request.param


@pytest.fixture
def temp_db_dir():
    """Create a temporary directory for the database."""
    with tempfile.TemporaryDirectory() as db_dir:
        yield Path(db_dir)


@pytest.fixture
def test_config(temp_db_dir, monkeypatch):
    """Configure with test paths (auto-restored even on crash)."""
    monkeypatch.setattr(config, "database_path", temp_db_dir / "test_cardnote.db")
    monkeypatch.setattr(config, "inline_tags_enabled", True)
    yield config


@pytest.fixture
def engine(test_config):
    """A fresh SQLite database with all tables created."""
    engine = init_db(test_config.get_db_url())
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return get_session_factory(engine)


@pytest.fixture
def project_repository(session_factory):
    return ProjectRepository(session_factory)


@pytest.fixture
def card_repository(session_factory):
    return CardRepository(session_factory)


@pytest.fixture
def tag_repository(session_factory):
    return TagRepository(session_factory)


@pytest.fixture
def project(project_repository):
    """A stored project."""
    return project_repository.create(Project(name="Test Project"))


@pytest.fixture
def make_card(card_repository, project):
    """Factory storing a card in the test project."""
    def _make(title=None, content="", project_id=None):
        return card_repository.create(
            Card(
                project_id=project_id or project.id,
                title=title,
                content=content,
            )
        )
    return _make


@pytest.fixture
def sql_store(card_repository, tag_repository):
    """SqlCardStore over the test database."""
    return SqlCardStore(cards=card_repository, tags=tag_repository)


@pytest.fixture
def fake_store():
    """In-memory CardStore with one project (ID 1)."""
    return FakeCardStore()


@pytest.fixture
def id_factory():
    """Deterministic reference ID factory: r1, r2, ..."""
    return sequential_ids()
