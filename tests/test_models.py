"""Tests for the domain models and configuration."""
import datetime

import pytest
from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from notetree_mcp.config import NotetreeConfig
from notetree_mcp.exceptions import (ConsistencyError, ErrorCode,
                                     FolderNotFoundError, NoteNotFoundError,
                                     ValidationError)
from notetree_mcp.models.schema import (COPY_SUFFIX, Folder, ItemKind, Note,
                                        Tag, WorkspaceItem, duplicate_title,
                                        ensure_timezone_aware, is_temp_id,
                                        item_kind, item_label, item_parent_id,
                                        with_placement)


class TestFolderAndNote:
    """Tests for Folder and Note."""

    def test_folder_name_is_trimmed(self):
        folder = Folder(name="  Projects  ")
        assert folder.name == "Projects"
        assert folder.parent_id is None
        assert folder.created_at.tzinfo is not None

    @pytest.mark.parametrize("name", ["", "   "])
    def test_empty_folder_name_rejected(self, name):
        with pytest.raises(PydanticValidationError):
            Folder(name=name)

    def test_long_title_rejected(self, test_config):
        with pytest.raises(PydanticValidationError):
            Note(title="x" * (test_config.max_name_length + 1))

    def test_negative_position_rejected(self):
        with pytest.raises(PydanticValidationError):
            Note(title="A", position=-1)

    def test_unknown_fields_rejected(self):
        with pytest.raises(PydanticValidationError):
            Folder(name="A", folder_id=3)

    def test_union_dispatches_on_kind(self):
        """The workspace item union picks the model from the kind tag."""
        adapter = TypeAdapter(WorkspaceItem)
        note = adapter.validate_python({"kind": "note", "title": "Plan", "folder_id": 2})
        folder = adapter.validate_python({"kind": "folder", "name": "Inbox"})

        assert isinstance(note, Note)
        assert isinstance(folder, Folder)
        assert item_kind(note) is ItemKind.NOTE
        assert item_parent_id(note) == 2
        assert item_label(folder) == "Inbox"

    def test_helpers_reject_other_types(self):
        with pytest.raises(TypeError):
            item_parent_id("not an item")

    def test_with_placement(self):
        note = with_placement(Note(id=3, title="A"), 7, 2)
        assert (note.folder_id, note.position) == (7, 2)
        folder = with_placement(Folder(id=4, name="B"), None, 1)
        assert (folder.parent_id, folder.position) == (None, 1)


class TestHelpers:
    """Tests for the id, title and time helpers."""

    @pytest.mark.parametrize("item_id,expected", [(-1, True), (0, True), (1, False)])
    def test_is_temp_id(self, item_id, expected):
        assert is_temp_id(item_id) is expected

    def test_duplicate_title(self):
        assert duplicate_title("Plan") == "Plan (copy)"

    def test_duplicate_title_fits_length_limit(self, test_config):
        title = duplicate_title("x" * test_config.max_name_length)
        assert len(title) == test_config.max_name_length
        assert title.endswith(COPY_SUFFIX)

    def test_naive_datetime_treated_as_utc(self):
        naive = datetime.datetime(2024, 1, 1, 12, 0)
        aware = ensure_timezone_aware(naive)
        assert aware.tzinfo == datetime.timezone.utc
        assert aware.hour == 12


class TestTag:
    """Tests for the Tag model."""

    def test_color_normalized(self):
        assert Tag(name="work", color="#AABBCC").color == "#aabbcc"

    def test_default_color(self, test_config):
        assert Tag(name="work").color == test_config.default_tag_color

    @pytest.mark.parametrize("name", ["a/b", "semi;colon", ""])
    def test_invalid_names(self, name):
        with pytest.raises(PydanticValidationError):
            Tag(name=name)

    def test_invalid_color(self):
        with pytest.raises(PydanticValidationError):
            Tag(name="work", color="red")


class TestExceptions:
    """Tests for the error hierarchy."""

    def test_to_dict(self):
        error = ValidationError("Bad position", field="position", value=9,
                                code=ErrorCode.INVALID_POSITION)
        data = error.to_dict()
        assert data["error"] == "ValidationError"
        assert data["code_name"] == "INVALID_POSITION"
        assert data["details"] == {"field": "position", "value": "9"}

    def test_str_includes_code_and_details(self):
        error = ConsistencyError("Cycle", item_id=1, target_id=2)
        assert str(error) == "[CYCLE_DETECTED] Cycle (item_id=1, target_id=2)"

    def test_not_found_message(self):
        error = FolderNotFoundError(5)
        assert error.message == "Folder with ID '5' not found"
        assert error.code == ErrorCode.FOLDER_NOT_FOUND
        assert error.details == {"folder_id": 5}

        note_error = NoteNotFoundError(8)
        assert note_error.code == ErrorCode.NOTE_NOT_FOUND
        assert note_error.item_id == 8


class TestConfig:
    """Tests for NotetreeConfig."""

    def test_rejects_zero_name_length(self):
        with pytest.raises(PydanticValidationError):
            NotetreeConfig(max_name_length=0)

    def test_rejects_bad_tag_color(self):
        with pytest.raises(PydanticValidationError):
            NotetreeConfig(default_tag_color="blue")

    def test_db_url_creates_directory(self, tmp_path):
        cfg = NotetreeConfig(base_dir=tmp_path, database_path="nested/dir/notes.db")
        url = cfg.get_db_url()
        assert url == f"sqlite:///{tmp_path / 'nested' / 'dir' / 'notes.db'}"
        assert (tmp_path / "nested" / "dir").is_dir()

    def test_log_dir_relative_to_base(self, tmp_path):
        cfg = NotetreeConfig(base_dir=tmp_path, log_dir="logs")
        assert cfg.get_log_dir() == tmp_path / "logs"
