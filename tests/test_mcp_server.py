"""Tests for the MCP server implementation."""
from unittest.mock import MagicMock, patch

import pytest

from notetree_mcp.core.tree import build_workspace_tree
from notetree_mcp.exceptions import ValidationError
from notetree_mcp.observability import metrics
from notetree_mcp.server.mcp_server import NotetreeMcpServer, render_outline
from tests.fakes import make_folder, make_note


class TestMcpServer:
    """Tests for the NotetreeMcpServer class."""

    @pytest.fixture(autouse=True)
    def server(self, engine):
        """Create a server whose tools are captured instead of registered."""
        # Capture the tool decorator functions when registering
        self.registered_tools = {}

        # Create a mock for FastMCP
        self.mock_mcp = MagicMock()

        # Mock the tool decorator to capture registered functions BEFORE server creation
        def mock_tool_decorator(*args, **kwargs):
            def tool_wrapper(func):
                self.registered_tools[kwargs.get('name')] = func
                return func
            return tool_wrapper
        self.mock_mcp.tool = mock_tool_decorator

        with patch('notetree_mcp.server.mcp_server.FastMCP', return_value=self.mock_mcp):
            self.server = NotetreeMcpServer(engine=engine)
        yield self.server

    async def call(self, tool_name, /, **kwargs):
        return await self.registered_tools[tool_name](**kwargs)

    def test_tools_registered(self):
        """Every tool is registered under its name."""
        expected = {
            "nt_folder_tree", "nt_create_folder", "nt_update_folder", "nt_move_folder",
            "nt_reorder_folders", "nt_delete_folder", "nt_folder_path",
            "nt_create_note", "nt_get_note", "nt_update_note", "nt_move_note",
            "nt_reorder_notes", "nt_duplicate_note", "nt_delete_note", "nt_search_notes",
            "nt_toggle_favorite", "nt_list_favorites", "nt_tag_note", "nt_untag_note",
            "nt_list_tags", "nt_get_metrics",
        }
        assert expected <= set(self.registered_tools)

    @pytest.mark.anyio
    async def test_create_and_show_tree(self):
        """Created folders and notes show up in the outline."""
        result = await self.call("nt_create_folder", name="Projects")
        assert result == "Folder created successfully with ID: 1"
        await self.call("nt_create_folder", name="Alpha", parent_id=1)
        result = await self.call("nt_create_note", title="Plan", content="Steps", folder_id=2)
        assert "successfully" in result

        outline = await self.call("nt_folder_tree")
        assert outline.splitlines() == [
            "[1] Projects/",
            "  [2] Alpha/",
            "    - (1) Plan",
        ]

        folders_only = await self.call("nt_folder_tree", include_notes=False, max_depth=1)
        assert folders_only.splitlines() == ["[1] Projects/ ..."]

    @pytest.mark.anyio
    async def test_empty_tree(self):
        assert await self.call("nt_folder_tree") == "The workspace is empty."

    @pytest.mark.anyio
    async def test_move_into_child_is_rejected(self):
        await self.call("nt_create_folder", name="Parent")
        await self.call("nt_create_folder", name="Child", parent_id=1)

        result = await self.call("nt_move_folder", folder_id=1, position=0, parent_id=2)

        assert result.startswith("Rejected: Error:")
        assert "cycle" in result
        assert self.server.folder_repository.get(1).parent_id is None

    @pytest.mark.anyio
    async def test_move_and_path(self):
        await self.call("nt_create_folder", name="A")
        await self.call("nt_create_folder", name="B")

        result = await self.call("nt_move_folder", folder_id=2, position=0, parent_id=1)

        assert result == "Folder 2 moved to folder 1 at position 0"
        assert await self.call("nt_folder_path", folder_id=2) == "A [1] / B [2]"
        assert self.server.folder_repository.get(2).parent_id == 1

    @pytest.mark.anyio
    async def test_reorder_folders(self):
        for name in ("A", "B", "C"):
            await self.call("nt_create_folder", name=name)

        result = await self.call("nt_reorder_folders", ordered_ids=[3, 1, 2])

        assert result == "Reordered 3 folders"
        assert [f.name for f in self.server.folder_repository.get_children(None)] == ["C", "A", "B"]

    @pytest.mark.anyio
    async def test_delete_folder_policies(self):
        await self.call("nt_create_folder", name="Keep")
        await self.call("nt_create_folder", name="Inner", parent_id=1)
        await self.call("nt_create_note", title="Loose", folder_id=2)

        bad = await self.call("nt_delete_folder", folder_id=2, policy="orphan")
        assert bad.startswith("Error: Invalid delete policy")

        result = await self.call("nt_delete_folder", folder_id=1, policy="cascade")
        assert result == "Folder 1 deleted (cascade): 2 folders and 1 notes removed"
        assert self.server.note_repository.get_all() == []

    @pytest.mark.anyio
    async def test_note_round_trip(self):
        """Notes can be read, edited, tagged, searched and duplicated."""
        await self.call("nt_create_folder", name="Work")
        await self.call("nt_create_note", title="Standup", content="Daily sync", folder_id=1)

        assert await self.call("nt_update_note", note_id=1, content="Weekly sync") == "Note 1 updated"
        assert await self.call("nt_tag_note", note_id=1, tag="meetings") == "Note 1 tagged 'meetings'"

        shown = await self.call("nt_get_note", note_id=1)
        assert "# Standup" in shown
        assert "Folder: Work" in shown
        assert "Tags: meetings" in shown
        assert shown.endswith("Weekly sync")

        found = await self.call("nt_search_notes", query="weekly")
        assert "(1) Standup" in found

        duplicated = await self.call("nt_duplicate_note", note_id=1)
        assert duplicated == "Note duplicated with ID: 2 (Standup (copy))"

        assert await self.call("nt_list_tags") == "- meetings (1)"
        assert await self.call("nt_untag_note", note_id=1, tag="meetings") == (
            "Removed tag 'meetings' from note 1"
        )

    @pytest.mark.anyio
    async def test_move_reorder_and_delete_notes(self):
        await self.call("nt_create_folder", name="Inbox")
        for title in ("A", "B"):
            await self.call("nt_create_note", title=title)

        assert await self.call("nt_move_note", note_id=1, position=0, folder_id=1) == (
            "Note 1 moved to position 0"
        )
        await self.call("nt_create_note", title="C")
        assert await self.call("nt_reorder_notes", ordered_ids=[3, 2]) == "Reordered 2 notes"
        assert [n.title for n in self.server.note_repository.get_by_folder(None)] == ["C", "B"]

        assert await self.call("nt_delete_note", note_id=2) == "Note 2 deleted"
        assert self.server.note_repository.get(2) is None

    @pytest.mark.anyio
    async def test_favorites(self):
        await self.call("nt_create_folder", name="Pinned")
        await self.call("nt_create_note", title="Star")

        assert await self.call("nt_list_favorites") == "No favorites yet."
        assert await self.call("nt_toggle_favorite", kind="note", item_id=1) == (
            "Note 1 added to favorites"
        )
        await self.call("nt_toggle_favorite", kind="folder", item_id=1)

        listing = await self.call("nt_list_favorites")
        assert "- [1] Pinned" in listing
        assert "- (1) Star" in listing

        bad = await self.call("nt_toggle_favorite", kind="tag", item_id=1)
        assert bad.startswith("Error: Invalid kind")

    @pytest.mark.anyio
    async def test_missing_items(self):
        assert await self.call("nt_get_note", note_id=42) == "Note not found: 42"
        assert (await self.call("nt_folder_path", folder_id=42)).startswith("Error:")
        assert await self.call("nt_untag_note", note_id=1, tag="none") == "Tag not found: none"

    @pytest.mark.anyio
    async def test_content_length_limit(self, monkeypatch):
        monkeypatch.setattr("notetree_mcp.server.mcp_server.MAX_CONTENT_LENGTH", 5)
        result = await self.call("nt_create_note", title="Big", content="too long")
        assert result.startswith("Error: Content exceeds maximum length")

    @pytest.mark.anyio
    async def test_workspace_loaded_once(self, monkeypatch):
        persistence = self.server.workspace.persistence
        original = persistence.load_workspace
        calls = []

        async def counting_load():
            calls.append(1)
            return await original()

        monkeypatch.setattr(persistence, "load_workspace", counting_load)
        await self.call("nt_folder_tree")
        await self.call("nt_list_favorites")
        assert len(calls) == 1

    def test_format_error_response(self):
        """Domain errors keep their message; other errors are generic."""
        domain = self.server.format_error_response(ValidationError("Bad input"))
        assert domain.startswith("Error: Bad input (ref: ")

        assert self.server.format_error_response(ValueError("x")).startswith(
            "Error: Invalid input"
        )
        assert self.server.format_error_response(OSError("disk")).startswith(
            "Error: A file system error occurred"
        )
        assert self.server.format_error_response(RuntimeError("?")).startswith(
            "Error: An unexpected error occurred"
        )

    @pytest.mark.anyio
    async def test_metrics_tool(self):
        metrics.reset()
        await self.call("nt_create_folder", name="Solo")
        await self.call("nt_move_folder", folder_id=1, position=0, parent_id=1)

        report = await self.call("nt_get_metrics")

        assert "0 rolled back, 1 rejected" in report
        assert "- nt_move_folder: 1 calls" in report
        assert "- workspace.move_folder: 1 calls" in report


class TestRenderOutline:
    """Tests for the text outline."""

    def test_marks_favorites_and_root_notes(self):
        workspace = build_workspace_tree(
            [make_folder(1, name="Docs", is_favorite=True)],
            [make_note(5, folder_id=1, title="Guide"), make_note(6, title="Scratch")],
        )
        assert render_outline(workspace).splitlines() == [
            "[1] Docs/ *",
            "  - (5) Guide",
            "- (6) Scratch",
        ]

