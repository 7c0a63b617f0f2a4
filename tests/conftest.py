"""Common test fixtures for the Notetree MCP server."""

import tempfile
from pathlib import Path

import pytest

from notetree_mcp.config import config
from notetree_mcp.models.db_models import init_db
from notetree_mcp.storage.folder_repository import FolderRepository
from notetree_mcp.storage.note_repository import NoteRepository
from notetree_mcp.storage.tag_repository import TagRepository


@pytest.fixture(params=["asyncio"])
def anyio_backend(request):
    """Restrict anyio tests to asyncio only (trio is not installed)."""
    return request.param


@pytest.fixture
def temp_dirs():
    """Create temporary directories for the database and logs."""
    with tempfile.TemporaryDirectory() as db_dir:
        with tempfile.TemporaryDirectory() as log_dir:
            yield Path(db_dir), Path(log_dir)


@pytest.fixture
def test_config(temp_dirs, monkeypatch):
    """Configure with test paths (auto-restored even on crash)."""
    db_dir, log_dir = temp_dirs
    monkeypatch.setattr(config, "database_path", db_dir / "test_notetree.db")
    monkeypatch.setattr(config, "log_dir", log_dir)
    monkeypatch.setattr(config, "expand_on_move", True)
    monkeypatch.setattr(config, "max_name_length", 255)
    yield config


@pytest.fixture
def engine(test_config):
    """Engine on a fresh SQLite file with every table created."""
    engine = init_db(test_config.get_db_url())
    yield engine
    engine.dispose()


@pytest.fixture
def folder_repository(engine):
    return FolderRepository(engine=engine)


@pytest.fixture
def note_repository(engine):
    return NoteRepository(engine=engine)


@pytest.fixture
def tag_repository(engine):
    return TagRepository(engine=engine)
