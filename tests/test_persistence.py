"""Tests for the SQL-backed persistence service."""
import pytest
from sqlalchemy.exc import OperationalError

from notetree_mcp.exceptions import ErrorCode, PersistenceError
from notetree_mcp.models.schema import DeletePolicy, Folder, Note
from notetree_mcp.services.persistence import SqlPersistenceService


@pytest.fixture
def persistence(folder_repository, note_repository):
    return SqlPersistenceService(folder_repository, note_repository)


class TestSqlPersistenceService:
    """Tests for SqlPersistenceService."""

    @pytest.mark.anyio
    async def test_create_and_load(self, persistence):
        folder = await persistence.create_folder(Folder(id=-1, name="Inbox"))
        note = await persistence.create_note(Note(id=-2, title="Plan", folder_id=folder.id))

        folders, notes = await persistence.load_workspace()

        assert folder.id > 0
        assert note.id > 0
        assert [f.name for f in folders] == ["Inbox"]
        assert [(n.title, n.folder_id) for n in notes] == [("Plan", folder.id)]

    @pytest.mark.anyio
    async def test_move_reorder_and_delete(self, persistence):
        a = await persistence.create_folder(Folder(name="A"))
        b = await persistence.create_folder(Folder(name="B"))

        moved = await persistence.move_folder(b.id, a.id, 0)
        assert moved.parent_id == a.id

        await persistence.create_note(Note(title="One", folder_id=b.id))
        await persistence.delete_folder(b.id, DeletePolicy.PROMOTE)
        folders, notes = await persistence.load_workspace()

        assert [f.name for f in folders] == ["A"]
        assert notes[0].folder_id == a.id

    @pytest.mark.anyio
    async def test_domain_errors_become_persistence_errors(self, persistence):
        """A cycle rejected by storage surfaces as PersistenceError with the same code."""
        a = await persistence.create_folder(Folder(name="A"))
        b = await persistence.create_folder(Folder(name="B", parent_id=a.id))

        with pytest.raises(PersistenceError) as exc_info:
            await persistence.move_folder(a.id, b.id, 0)

        error = exc_info.value
        assert error.code == ErrorCode.CYCLE_DETECTED
        assert error.operation == "move_folder"

    @pytest.mark.anyio
    async def test_missing_note(self, persistence):
        with pytest.raises(PersistenceError) as exc_info:
            await persistence.duplicate_note(999)
        assert exc_info.value.code == ErrorCode.NOTE_NOT_FOUND

    @pytest.mark.anyio
    async def test_database_errors_become_persistence_errors(self, persistence, monkeypatch):
        def broken(*args):
            raise OperationalError("SELECT", {}, Exception("disk I/O error"))

        monkeypatch.setattr(persistence.notes, "get_all", broken)
        with pytest.raises(PersistenceError) as exc_info:
            await persistence.load_workspace()
        assert exc_info.value.code == ErrorCode.STORAGE_READ_FAILED
