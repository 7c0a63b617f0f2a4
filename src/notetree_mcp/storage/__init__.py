"""Storage layer for the Notetree MCP server."""

from notetree_mcp.storage.base import Repository
from notetree_mcp.storage.folder_repository import FolderRepository
from notetree_mcp.storage.note_repository import NoteRepository
from notetree_mcp.storage.tag_repository import TagRepository

__all__ = [
    "Repository",
    "FolderRepository",
    "NoteRepository",
    "TagRepository",
]
