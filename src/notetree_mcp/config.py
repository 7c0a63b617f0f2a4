"""Configuration module for the Notetree MCP server."""

import logging
import os
import re
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, model_validator

from notetree_mcp import __version__

# Load environment variables from the project root .env file.
# Anchored to __file__ so it works regardless of the process CWD.
_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
load_dotenv(_PROJECT_ROOT / ".env")

# User-level config: survives reinstalls, lives alongside the database
_USER_ENV = Path.home() / ".notetree" / ".env"
load_dotenv(_USER_ENV)


logger = logging.getLogger(__name__)

HEX_COLOR_PATTERN = re.compile(r"^#[0-9a-fA-F]{6}$")


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "yes")


class NotetreeConfig(BaseModel):
    """Configuration for the Notetree server."""

    # Base directory for the project
    base_dir: Path = Field(
        default_factory=lambda: Path(os.getenv("NOTETREE_BASE_DIR", "."))
    )
    # Database configuration
    database_path: Path = Field(
        default_factory=lambda: Path(
            os.getenv("NOTETREE_DATABASE_PATH", "data/db/notetree.db")
        )
    )
    # Log directory (None means ~/.notetree/logs)
    log_dir: Optional[Path] = Field(
        default_factory=lambda: (
            Path(os.getenv("NOTETREE_LOG_DIR"))
            if os.getenv("NOTETREE_LOG_DIR")
            else None
        )
    )
    # Server configuration
    server_name: str = Field(default=os.getenv("NOTETREE_SERVER_NAME", "notetree-mcp"))
    server_version: str = Field(default=__version__)

    # Defaults applied to freshly created items
    default_folder_name: str = Field(default="New Folder")
    default_note_title: str = Field(default="Untitled")
    default_tag_color: str = Field(
        default_factory=lambda: os.getenv("NOTETREE_DEFAULT_TAG_COLOR", "#6b7280")
    )
    # Longest folder name / note title / tag name accepted
    max_name_length: int = Field(
        default_factory=lambda: int(os.getenv("NOTETREE_MAX_NAME_LENGTH", "255"))
    )
    # Expand the destination folder in the tree view after a successful move
    expand_on_move: bool = Field(
        default_factory=lambda: _env_flag("NOTETREE_EXPAND_ON_MOVE", "true")
    )

    model_config = {"validate_assignment": True}

    @model_validator(mode="after")
    def _validate_limits(self) -> "NotetreeConfig":
        """Reject settings that would make every label or tag invalid."""
        if self.max_name_length < 1:
            raise ValueError("max_name_length must be >= 1")
        if not HEX_COLOR_PATTERN.match(self.default_tag_color):
            raise ValueError(
                f"default_tag_color must look like #rrggbb, got {self.default_tag_color!r}"
            )
        return self

    def get_absolute_path(self, path: Path) -> Path:
        """Convert a relative path to an absolute path based on base_dir."""
        if path.is_absolute():
            return path
        return self.base_dir / path

    def get_db_url(self) -> str:
        """Get the database URL for SQLite."""
        db_path = self.get_absolute_path(self.database_path)
        db_path.parent.mkdir(parents=True, exist_ok=True)
        return f"sqlite:///{db_path}"

    def get_log_dir(self) -> Path:
        """Get the directory that rotating log files are written to."""
        if self.log_dir is None:
            return Path.home() / ".notetree" / "logs"
        return self.get_absolute_path(self.log_dir)


# Create a global config instance
config = NotetreeConfig()
