"""Tests for the NoteRepository class."""
import pytest

from notetree_mcp.exceptions import (ConsistencyError, NoteNotFoundError,
                                     ValidationError)
from notetree_mcp.models.schema import Folder, Note
from notetree_mcp.storage.note_repository import escape_like_pattern


@pytest.fixture
def inbox(folder_repository):
    return folder_repository.create(Folder(name="Inbox"))


@pytest.fixture
def archive(folder_repository):
    return folder_repository.create(Folder(name="Archive"))


def titles(notes):
    return [(n.title, n.position) for n in notes]


class TestNoteRepository:
    """Tests for the NoteRepository class."""

    def test_create_appends_to_folder(self, note_repository, inbox):
        first = note_repository.create(Note(title="First", folder_id=inbox.id))
        second = note_repository.create(Note(title="Second", content="Body", folder_id=inbox.id))

        assert first.id > 0
        assert (first.position, second.position) == (0, 1)
        assert note_repository.get(second.id).content == "Body"

    def test_unfiled_notes_are_their_own_group(self, note_repository, inbox):
        note_repository.create(Note(title="Filed", folder_id=inbox.id))
        loose = note_repository.create(Note(title="Loose"))
        assert loose.folder_id is None
        assert loose.position == 0
        assert titles(note_repository.get_by_folder(None)) == [("Loose", 0)]

    def test_create_in_missing_folder(self, note_repository):
        with pytest.raises(ConsistencyError):
            note_repository.create(Note(title="Lost", folder_id=999))

    def test_update(self, note_repository, inbox):
        note = note_repository.create(Note(title="Draft", folder_id=inbox.id))
        saved = note_repository.update(note.model_copy(update={"title": "Final", "content": "Done"}))
        assert (saved.title, saved.content) == ("Final", "Done")
        assert saved.folder_id == inbox.id

    def test_update_missing(self, note_repository):
        with pytest.raises(NoteNotFoundError):
            note_repository.update(Note(id=999, title="Ghost"))

    def test_delete_closes_gap(self, note_repository, inbox):
        notes = [note_repository.create(Note(title=t, folder_id=inbox.id)) for t in "ABC"]
        note_repository.delete(notes[0].id)

        assert note_repository.get(notes[0].id) is None
        assert titles(note_repository.get_by_folder(inbox.id)) == [("B", 0), ("C", 1)]

    def test_delete_missing(self, note_repository):
        with pytest.raises(NoteNotFoundError):
            note_repository.delete(999)


class TestNoteMoves:
    """Tests for move and reorder."""

    def test_move_between_folders(self, note_repository, inbox, archive):
        a = note_repository.create(Note(title="A", folder_id=inbox.id))
        note_repository.create(Note(title="B", folder_id=inbox.id))
        note_repository.create(Note(title="Z", folder_id=archive.id))

        moved = note_repository.move(a.id, archive.id, 0)

        assert (moved.folder_id, moved.position) == (archive.id, 0)
        assert titles(note_repository.get_by_folder(inbox.id)) == [("B", 0)]
        assert titles(note_repository.get_by_folder(archive.id)) == [("A", 0), ("Z", 1)]

    def test_move_to_missing_folder(self, note_repository, inbox):
        note = note_repository.create(Note(title="A", folder_id=inbox.id))
        with pytest.raises(ConsistencyError):
            note_repository.move(note.id, 999, 0)

    def test_move_out_of_range(self, note_repository, inbox, archive):
        note = note_repository.create(Note(title="A", folder_id=inbox.id))
        with pytest.raises(ValidationError):
            note_repository.move(note.id, archive.id, 1)

    def test_reorder(self, note_repository, inbox):
        a, b, c = (note_repository.create(Note(title=t, folder_id=inbox.id)) for t in "ABC")
        result = note_repository.reorder(inbox.id, [c.id, a.id, b.id])
        assert titles(result) == [("C", 0), ("A", 1), ("B", 2)]


class TestNoteQueries:
    """Tests for search, duplicate and favorites."""

    def test_search_title_and_content(self, note_repository, inbox):
        note_repository.create(Note(title="Meeting notes", folder_id=inbox.id))
        note_repository.create(Note(title="Other", content="About the MEETING", folder_id=inbox.id))
        note_repository.create(Note(title="Unrelated"))

        assert len(note_repository.search("meeting")) == 2
        assert len(note_repository.search("meeting", folder_id=inbox.id, limit=1)) == 1

    def test_search_wildcards_are_literal(self, note_repository):
        note_repository.create(Note(title="100% done"))
        note_repository.create(Note(title="1000 items"))
        assert [n.title for n in note_repository.search("100%")] == ["100% done"]

    def test_escape_like_pattern(self):
        assert escape_like_pattern("a_b%c\\") == "a\\_b\\%c\\\\"

    def test_duplicate(self, note_repository, inbox):
        note = note_repository.create(Note(title="Plan", content="Steps", folder_id=inbox.id,
                                           is_favorite=True))
        note_repository.create(Note(title="Other", folder_id=inbox.id))

        copy = note_repository.duplicate(note.id)

        assert copy.id != note.id
        assert copy.title == "Plan (copy)"
        assert copy.content == "Steps"
        assert copy.position == 2
        assert copy.is_favorite is False

    def test_duplicate_missing(self, note_repository):
        with pytest.raises(NoteNotFoundError):
            note_repository.duplicate(999)

    def test_favorites(self, note_repository):
        note = note_repository.create(Note(title="Star"))
        note_repository.create(Note(title="Plain"))
        note_repository.toggle_favorite(note.id)
        assert [n.title for n in note_repository.get_favorites()] == ["Star"]
