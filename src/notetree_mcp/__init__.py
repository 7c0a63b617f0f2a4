"""
Notetree MCP - a hierarchical note workspace (folders, notes, tags) as an MCP server.
This package keeps folders and notes in SQLite, derives an ordered folder tree
from the flat records, validates moves against cycles, and applies every
mutation optimistically with rollback when the backend rejects it.
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("notetree-mcp")
except PackageNotFoundError:
    __version__ = "0.3.0"
