"""MCP server implementation for the note workspace."""

import logging
import uuid
from typing import List, Optional

import anyio
from anyio import to_thread
from mcp.server.fastmcp import FastMCP

from notetree_mcp.config import config
from notetree_mcp.core.tree import (TreeBuildOptions, TreeSortKey,
                                    WorkspaceTree)
from notetree_mcp.exceptions import NotetreeError, ValidationError
from notetree_mcp.models.schema import DeletePolicy, ItemKind, Note
from notetree_mcp.observability import metrics, timed_operation
from notetree_mcp.services.persistence import SqlPersistenceService
from notetree_mcp.services.workspace_service import (MutationResult,
                                                     WorkspaceService)
from notetree_mcp.storage.folder_repository import FolderRepository
from notetree_mcp.storage.note_repository import NoteRepository
from notetree_mcp.storage.tag_repository import TagRepository

logger = logging.getLogger(__name__)

MAX_CONTENT_LENGTH = 1_000_000  # 1 MB


def _validate_content_length(content: Optional[str]) -> None:
    if content and len(content) > MAX_CONTENT_LENGTH:
        raise ValidationError(
            f"Content exceeds maximum length of {MAX_CONTENT_LENGTH} characters",
            field="content",
        )


def _parse_kind(kind: str) -> ItemKind:
    try:
        return ItemKind(kind.strip().lower())
    except ValueError:
        raise ValidationError(
            f"Invalid kind: {kind}. Valid kinds are: {', '.join(k.value for k in ItemKind)}",
            field="kind",
            value=kind,
        ) from None


def _parse_policy(policy: str) -> DeletePolicy:
    try:
        return DeletePolicy(policy.strip().lower())
    except ValueError:
        raise ValidationError(
            f"Invalid delete policy: {policy}. "
            f"Valid policies are: {', '.join(p.value for p in DeletePolicy)}",
            field="policy",
            value=policy,
        ) from None


def render_outline(workspace: WorkspaceTree) -> str:
    """Indented text outline: folders as ``[id] name/``, notes as ``- (id) title``."""
    lines: List[str] = []
    stack = [(node, 0) for node in reversed(workspace.roots)]
    while stack:
        entry, depth = stack.pop()
        indent = "  " * depth
        if isinstance(entry, Note):
            star = " *" if entry.is_favorite else ""
            lines.append(f"{indent}- ({entry.id}) {entry.title}{star}")
            continue
        star = " *" if entry.item is not None and entry.item.is_favorite else ""
        more = " ..." if entry.has_children and not entry.children else ""
        lines.append(f"{indent}[{entry.id}] {entry.label}/{star}{more}")
        below = [(child, depth + 1) for child in entry.children]
        below += [(note, depth + 1) for note in entry.notes]
        stack.extend(reversed(below))
    for note in workspace.root_notes:
        star = " *" if note.is_favorite else ""
        lines.append(f"- ({note.id}) {note.title}{star}")
    return "\n".join(lines) if lines else "The workspace is empty."


class NotetreeMcpServer:
    """MCP server exposing folders, notes and tags as tools."""

    def __init__(self, engine=None):
        """Initialize the MCP server.

        Args:
            engine: Pre-configured SQLAlchemy engine shared by every
                repository. When None, each repository creates its own.
        """
        self.mcp = FastMCP(config.server_name)
        self.folder_repository = FolderRepository(engine=engine)
        self.note_repository = NoteRepository(engine=engine)
        self.tag_repository = TagRepository(engine=engine)
        self.workspace = WorkspaceService(
            SqlPersistenceService(self.folder_repository, self.note_repository)
        )
        self._loaded = False
        self._load_lock: Optional[anyio.Lock] = None
        self._register_tools()
        logger.info("Notetree MCP server initialized")

    async def ensure_loaded(self) -> None:
        """Load the workspace into memory before the first tool call."""
        if self._loaded:
            return
        if self._load_lock is None:
            self._load_lock = anyio.Lock()
        async with self._load_lock:
            if not self._loaded:
                await self.workspace.load()
                self._loaded = True

    def format_error_response(self, error: Exception) -> str:
        """Format an error response in a consistent way.

        Args:
            error: The exception that occurred

        Returns:
            Formatted error message with appropriate level of detail
        """
        # Generate a unique error ID for traceability in logs
        error_id = str(uuid.uuid4())[:8]

        if isinstance(error, NotetreeError):
            logger.error(
                f"[{error.code.name}] [{error_id}]: {error.message}",
                extra={"error_details": error.details},
            )
            return f"Error: {error.message} (ref: {error_id})"
        elif isinstance(error, ValueError):
            logger.error(f"Validation error [{error_id}]: {str(error)}")
            return f"Error: Invalid input (ref: {error_id})"
        elif isinstance(error, OSError):
            logger.error(f"File system error [{error_id}]: {str(error)}", exc_info=True)
            return f"Error: A file system error occurred (ref: {error_id})"
        else:
            logger.error(f"Unexpected error [{error_id}]: {str(error)}", exc_info=True)
            return f"Error: An unexpected error occurred (ref: {error_id})"

    def _describe(self, result: MutationResult, success: str) -> str:
        if result.ok:
            return success
        prefix = "Rejected" if result.status.value == "rejected" else "Rolled back"
        return f"{prefix}: {self.format_error_response(result.error)}"

    def _register_tools(self) -> None:
        """Register MCP tools."""

        # ========== Tree and folders ==========

        @self.mcp.tool(name="nt_folder_tree")
        async def nt_folder_tree(
            include_notes: bool = True,
            max_depth: Optional[int] = None,
            sort_by: str = "position",
        ) -> str:
            """Show the folder hierarchy as an indented outline.
            Args:
                include_notes: List each folder's notes under it
                max_depth: Number of levels to show (1 = top-level folders only)
                sort_by: position, name, created_at or updated_at
            """
            with timed_operation("nt_folder_tree", max_depth=max_depth) as op:
                try:
                    await self.ensure_loaded()
                    options = TreeBuildOptions(
                        sort_by=TreeSortKey(sort_by),
                        max_depth=max_depth,
                        expanded_ids=self.workspace.view_state.expanded_ids,
                    )
                    if include_notes:
                        workspace = self.workspace.workspace_tree(options)
                    else:
                        workspace = WorkspaceTree(roots=self.workspace.folder_tree(options))
                    op["roots"] = len(workspace.roots)
                    return render_outline(workspace)
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="nt_create_folder")
        async def nt_create_folder(name: str, parent_id: Optional[int] = None) -> str:
            """Create a folder at the end of its parent.
            Args:
                name: Folder name
                parent_id: Parent folder ID (omit for a top-level folder)
            """
            with timed_operation("nt_create_folder", parent_id=parent_id) as op:
                try:
                    await self.ensure_loaded()
                    result = await self.workspace.create_folder(name, parent_id)
                    op["result"] = result.status.value
                    if result.ok:
                        return self._describe(
                            result, f"Folder created successfully with ID: {result.item.id}"
                        )
                    return self._describe(result, "")
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="nt_update_folder")
        async def nt_update_folder(
            folder_id: int,
            name: Optional[str] = None,
            is_public: Optional[bool] = None,
        ) -> str:
            """Rename a folder or change its visibility.
            Args:
                folder_id: Folder to update
                name: New name
                is_public: New visibility
            """
            with timed_operation("nt_update_folder", folder_id=folder_id) as op:
                try:
                    await self.ensure_loaded()
                    result = await self.workspace.update_folder(
                        folder_id, name=name, is_public=is_public
                    )
                    op["result"] = result.status.value
                    return self._describe(result, f"Folder {folder_id} updated")
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="nt_move_folder")
        async def nt_move_folder(
            folder_id: int,
            position: int,
            parent_id: Optional[int] = None,
        ) -> str:
            """Move a folder under another parent and/or to another position.
            Args:
                folder_id: Folder to move
                position: Index among the destination's other children (0 = first)
                parent_id: Destination folder (omit to move to the top level)
            """
            with timed_operation("nt_move_folder", folder_id=folder_id, parent_id=parent_id) as op:
                try:
                    await self.ensure_loaded()
                    result = await self.workspace.move_folder(folder_id, parent_id, position)
                    op["result"] = result.status.value
                    where = f"folder {parent_id}" if parent_id is not None else "the top level"
                    return self._describe(
                        result, f"Folder {folder_id} moved to {where} at position {position}"
                    )
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="nt_reorder_folders")
        async def nt_reorder_folders(
            ordered_ids: List[int], parent_id: Optional[int] = None
        ) -> str:
            """Reorder all children of a folder.
            Args:
                ordered_ids: Every child folder ID in the new order
                parent_id: Parent folder (omit for top-level folders)
            """
            with timed_operation("nt_reorder_folders", parent_id=parent_id) as op:
                try:
                    await self.ensure_loaded()
                    result = await self.workspace.reorder_folders(parent_id, ordered_ids)
                    op["result"] = result.status.value
                    return self._describe(result, f"Reordered {len(ordered_ids)} folders")
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="nt_delete_folder")
        async def nt_delete_folder(folder_id: int, policy: str) -> str:
            """Delete a folder.
            Args:
                folder_id: Folder to delete
                policy: "cascade" deletes every subfolder and note inside it;
                    "promote" moves its subfolders and notes up to its parent
            """
            with timed_operation("nt_delete_folder", folder_id=folder_id, policy=policy) as op:
                try:
                    await self.ensure_loaded()
                    result = await self.workspace.delete_folder(folder_id, _parse_policy(policy))
                    op["result"] = result.status.value
                    if result.ok:
                        plan = result.item
                        return (
                            f"Folder {folder_id} deleted ({plan.policy.value}): "
                            f"{len(plan.removed_folder_ids)} folders and "
                            f"{len(plan.removed_note_ids)} notes removed"
                        )
                    return self._describe(result, "")
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="nt_folder_path")
        async def nt_folder_path(folder_id: int) -> str:
            """Show the breadcrumb from the top level down to a folder.
            Args:
                folder_id: Folder to locate
            """
            with timed_operation("nt_folder_path", folder_id=folder_id):
                try:
                    await self.ensure_loaded()
                    path = self.workspace.folder_path(folder_id)
                    return " / ".join(f"{f.name} [{f.id}]" for f in path)
                except Exception as e:
                    return self.format_error_response(e)

        # ========== Notes ==========

        @self.mcp.tool(name="nt_create_note")
        async def nt_create_note(
            title: str,
            content: str = "",
            folder_id: Optional[int] = None,
        ) -> str:
            """Create a note at the end of a folder.
            Args:
                title: Note title
                content: Note body
                folder_id: Folder to file it under (omit for an unfiled note)
            """
            with timed_operation("nt_create_note", title=title[:30]) as op:
                try:
                    _validate_content_length(content)
                    await self.ensure_loaded()
                    result = await self.workspace.create_note(title, content, folder_id)
                    op["result"] = result.status.value
                    if result.ok:
                        return f"Note created successfully with ID: {result.item.id}"
                    return self._describe(result, "")
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="nt_get_note")
        async def nt_get_note(note_id: int) -> str:
            """Show a note with its folder path and tags.
            Args:
                note_id: Note to show
            """
            with timed_operation("nt_get_note", note_id=note_id) as op:
                try:
                    await self.ensure_loaded()
                    note = self.workspace.get_note(note_id)
                    if note is None:
                        op["found"] = False
                        return f"Note not found: {note_id}"
                    op["found"] = True
                    tags = await to_thread.run_sync(self.tag_repository.get_for_note, note_id)
                    location = "Unfiled"
                    if note.folder_id is not None:
                        location = " / ".join(
                            f.name for f in self.workspace.folder_path(note.folder_id)
                        )
                    lines = [
                        f"# {note.title}",
                        f"ID: {note.id}",
                        f"Folder: {location}",
                        f"Favorite: {'yes' if note.is_favorite else 'no'}",
                        f"Tags: {', '.join(t.name for t in tags) if tags else 'none'}",
                        f"Updated: {note.updated_at.isoformat()}",
                        "",
                        note.content,
                    ]
                    return "\n".join(lines)
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="nt_update_note")
        async def nt_update_note(
            note_id: int,
            title: Optional[str] = None,
            content: Optional[str] = None,
        ) -> str:
            """Change a note's title and/or content.
            Args:
                note_id: Note to update
                title: New title
                content: New body
            """
            with timed_operation("nt_update_note", note_id=note_id) as op:
                try:
                    _validate_content_length(content)
                    await self.ensure_loaded()
                    result = await self.workspace.update_note(note_id, title=title, content=content)
                    op["result"] = result.status.value
                    return self._describe(result, f"Note {note_id} updated")
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="nt_move_note")
        async def nt_move_note(
            note_id: int,
            position: int,
            folder_id: Optional[int] = None,
        ) -> str:
            """Move a note to another folder and/or position.
            Args:
                note_id: Note to move
                position: Index among the destination's other notes (0 = first)
                folder_id: Destination folder (omit to unfile the note)
            """
            with timed_operation("nt_move_note", note_id=note_id, folder_id=folder_id) as op:
                try:
                    await self.ensure_loaded()
                    result = await self.workspace.move_note(note_id, folder_id, position)
                    op["result"] = result.status.value
                    return self._describe(result, f"Note {note_id} moved to position {position}")
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="nt_reorder_notes")
        async def nt_reorder_notes(
            ordered_ids: List[int], folder_id: Optional[int] = None
        ) -> str:
            """Reorder all notes of a folder.
            Args:
                ordered_ids: Every note ID of the folder in the new order
                folder_id: Folder (omit for unfiled notes)
            """
            with timed_operation("nt_reorder_notes", folder_id=folder_id) as op:
                try:
                    await self.ensure_loaded()
                    result = await self.workspace.reorder_notes(folder_id, ordered_ids)
                    op["result"] = result.status.value
                    return self._describe(result, f"Reordered {len(ordered_ids)} notes")
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="nt_duplicate_note")
        async def nt_duplicate_note(note_id: int) -> str:
            """Copy a note into the same folder.
            Args:
                note_id: Note to copy
            """
            with timed_operation("nt_duplicate_note", note_id=note_id) as op:
                try:
                    await self.ensure_loaded()
                    result = await self.workspace.duplicate_note(note_id)
                    op["result"] = result.status.value
                    if result.ok:
                        return f"Note duplicated with ID: {result.item.id} ({result.item.title})"
                    return self._describe(result, "")
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="nt_delete_note")
        async def nt_delete_note(note_id: int) -> str:
            """Delete a note.
            Args:
                note_id: Note to delete
            """
            with timed_operation("nt_delete_note", note_id=note_id) as op:
                try:
                    await self.ensure_loaded()
                    result = await self.workspace.delete_note(note_id)
                    op["result"] = result.status.value
                    return self._describe(result, f"Note {note_id} deleted")
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="nt_search_notes")
        async def nt_search_notes(
            query: str,
            folder_id: Optional[int] = None,
            limit: int = 20,
        ) -> str:
            """Find notes whose title or content contains the query (case-insensitive).
            Args:
                query: Text to look for
                folder_id: Only search this folder
                limit: Maximum number of results
            """
            with timed_operation("nt_search_notes", query=query[:30]) as op:
                try:
                    notes = await to_thread.run_sync(
                        self.note_repository.search, query, folder_id, limit
                    )
                    op["result_count"] = len(notes)
                    if not notes:
                        return f"No notes found matching '{query}'"
                    lines = [f"Found {len(notes)} notes:"]
                    lines += [f"- ({n.id}) {n.title}" for n in notes]
                    return "\n".join(lines)
                except Exception as e:
                    return self.format_error_response(e)

        # ========== Favorites and tags ==========

        @self.mcp.tool(name="nt_toggle_favorite")
        async def nt_toggle_favorite(kind: str, item_id: int) -> str:
            """Add a folder or note to favorites, or remove it.
            Args:
                kind: "folder" or "note"
                item_id: ID of the folder or note
            """
            with timed_operation("nt_toggle_favorite", kind=kind, item_id=item_id) as op:
                try:
                    await self.ensure_loaded()
                    result = await self.workspace.toggle_favorite(_parse_kind(kind), item_id)
                    op["result"] = result.status.value
                    if result.ok:
                        state = "added to" if result.item.is_favorite else "removed from"
                        return f"{kind.capitalize()} {item_id} {state} favorites"
                    return self._describe(result, "")
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="nt_list_favorites")
        async def nt_list_favorites() -> str:
            """List favorite folders and notes."""
            with timed_operation("nt_list_favorites"):
                try:
                    await self.ensure_loaded()
                    folders, notes = self.workspace.favorites()
                    if not folders and not notes:
                        return "No favorites yet."
                    lines = []
                    if folders:
                        lines.append("Folders:")
                        lines += [f"- [{f.id}] {f.name}" for f in folders]
                    if notes:
                        lines.append("Notes:")
                        lines += [f"- ({n.id}) {n.title}" for n in notes]
                    return "\n".join(lines)
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="nt_tag_note")
        async def nt_tag_note(note_id: int, tag: str) -> str:
            """Tag a note, creating the tag if it does not exist.
            Args:
                note_id: Note to tag
                tag: Tag name
            """
            with timed_operation("nt_tag_note", note_id=note_id, tag=tag):
                try:
                    found = await to_thread.run_sync(self.tag_repository.get_or_create, tag)
                    await to_thread.run_sync(self.tag_repository.add_to_note, note_id, found.id)
                    return f"Note {note_id} tagged '{found.name}'"
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="nt_untag_note")
        async def nt_untag_note(note_id: int, tag: str) -> str:
            """Remove a tag from a note.
            Args:
                note_id: Note to untag
                tag: Tag name
            """
            with timed_operation("nt_untag_note", note_id=note_id, tag=tag):
                try:
                    found = await to_thread.run_sync(self.tag_repository.get_by_name, tag)
                    if found is None:
                        return f"Tag not found: {tag}"
                    removed = await to_thread.run_sync(
                        self.tag_repository.remove_from_note, note_id, found.id
                    )
                    if not removed:
                        return f"Note {note_id} is not tagged '{found.name}'"
                    return f"Removed tag '{found.name}' from note {note_id}"
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="nt_list_tags")
        async def nt_list_tags() -> str:
            """List every tag with the number of notes that carry it."""
            with timed_operation("nt_list_tags"):
                try:
                    counts = await to_thread.run_sync(self.tag_repository.get_with_counts)
                    if not counts:
                        return "No tags found."
                    return "\n".join(f"- {name} ({count})" for name, count in counts.items())
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="nt_get_metrics")
        async def nt_get_metrics() -> str:
            """Show operation counts and timings since the server started."""
            summary = metrics.get_summary()
            lines = [
                f"Uptime: {summary['uptime_seconds']:.0f}s",
                f"Operations: {summary['total_operations']} "
                f"({summary['total_errors']} errors, "
                f"{summary['rolled_back']} rolled back, {summary['rejected']} rejected)",
            ]
            for name, data in metrics.get_metrics().items():
                lines.append(
                    f"- {name}: {data['count']} calls, avg {data['avg_duration_ms']}ms"
                )
            return "\n".join(lines)

    def run(self) -> None:
        """Run the MCP server."""
        self.mcp.run()
