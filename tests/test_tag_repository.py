"""Tests for the TagRepository class."""
import pytest

from notetree_mcp.exceptions import ErrorCode, NoteNotFoundError, TagError
from notetree_mcp.models.schema import Note


@pytest.fixture
def note(note_repository):
    return note_repository.create(Note(title="Tagged"))


class TestTagRepository:
    """Tests for the TagRepository class."""

    def test_create_trims_and_defaults_color(self, tag_repository, test_config):
        tag = tag_repository.create("  work  ")
        assert tag.id > 0
        assert tag.name == "work"
        assert tag.color == test_config.default_tag_color

    def test_names_unique_ignoring_case(self, tag_repository):
        tag_repository.create("Work")
        with pytest.raises(TagError) as exc_info:
            tag_repository.create("work")
        assert exc_info.value.code == ErrorCode.TAG_ALREADY_EXISTS

    def test_invalid_name(self, tag_repository):
        with pytest.raises(TagError) as exc_info:
            tag_repository.create("bad/name")
        assert exc_info.value.code == ErrorCode.TAG_INVALID

    def test_get_or_create(self, tag_repository):
        first = tag_repository.get_or_create("Ideas")
        again = tag_repository.get_or_create("ideas")
        assert first.id == again.id
        assert len(tag_repository.get_all()) == 1

    def test_update_and_rename_clash(self, tag_repository):
        work = tag_repository.create("work")
        tag_repository.create("home")
        saved = tag_repository.update(work.model_copy(update={"color": "#112233"}))
        assert saved.color == "#112233"
        with pytest.raises(TagError):
            tag_repository.update(work.model_copy(update={"name": "Home"}))

    def test_delete(self, tag_repository, note):
        tag = tag_repository.create("temp")
        tag_repository.add_to_note(note.id, tag.id)
        tag_repository.delete(tag.id)

        assert tag_repository.get(tag.id) is None
        assert tag_repository.get_for_note(note.id) == []
        with pytest.raises(TagError):
            tag_repository.delete(tag.id)

    def test_search(self, tag_repository):
        for name in ("project-a", "project_b", "personal"):
            tag_repository.create(name)
        assert [t.name for t in tag_repository.search("PROJECT")] == ["project-a", "project_b"]
        assert [t.name for t in tag_repository.search("t_")] == ["project_b"]


class TestNoteTags:
    """Tests for assigning tags to notes."""

    def test_add_is_idempotent(self, tag_repository, note):
        tag = tag_repository.create("work")
        first = tag_repository.add_to_note(note.id, tag.id)
        second = tag_repository.add_to_note(note.id, tag.id)

        assert (first.note_id, first.tag_id) == (note.id, tag.id)
        assert second.created_at == first.created_at
        assert tag_repository.get_with_counts() == {"work": 1}

    def test_counts_include_unused_tags(self, tag_repository, note):
        used = tag_repository.create("used")
        tag_repository.create("unused")
        tag_repository.add_to_note(note.id, used.id)
        assert tag_repository.get_with_counts() == {"unused": 0, "used": 1}

    def test_remove(self, tag_repository, note):
        tag = tag_repository.create("work")
        tag_repository.add_to_note(note.id, tag.id)
        assert tag_repository.remove_from_note(note.id, tag.id) is True
        assert tag_repository.remove_from_note(note.id, tag.id) is False
        assert tag_repository.get_for_note(note.id) == []

    def test_missing_note_or_tag(self, tag_repository, note):
        tag = tag_repository.create("work")
        with pytest.raises(NoteNotFoundError):
            tag_repository.add_to_note(999, tag.id)
        with pytest.raises(TagError):
            tag_repository.add_to_note(note.id, 999)

    def test_deleting_note_removes_assignments(self, tag_repository, note_repository, note):
        tag = tag_repository.create("work")
        tag_repository.add_to_note(note.id, tag.id)
        note_repository.delete(note.id)
        assert tag_repository.get_with_counts() == {"work": 0}
