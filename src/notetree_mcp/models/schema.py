"""Data models for the Notetree MCP server."""

import datetime
import re
from datetime import timezone
from enum import Enum
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator

from notetree_mcp.config import HEX_COLOR_PATTERN, config

# Tag names: letters, digits, spaces, hyphens and underscores
SAFE_TAG_PATTERN = re.compile(r"^[\w\- ]+$")


def utc_now() -> datetime.datetime:
    """Get current UTC time as timezone-aware datetime.

    Returns:
        Current time with UTC timezone info attached.
    """
    return datetime.datetime.now(timezone.utc)


def ensure_timezone_aware(dt_value: Optional[datetime.datetime]) -> datetime.datetime:
    """Ensure a datetime is timezone-aware, treating naive datetimes as UTC.

    SQLite hands DateTime columns back without tzinfo, so every value read
    from the database passes through here.

    Args:
        dt_value: A datetime that may or may not have timezone info.

    Returns:
        The same datetime with UTC timezone if it was naive, otherwise unchanged.
    """
    if dt_value is None:
        return utc_now()
    if dt_value.tzinfo is None:
        return dt_value.replace(tzinfo=timezone.utc)
    return dt_value


def validate_label(value: str, field_name: str = "name") -> str:
    """Validate a folder name, note title or tag name.

    Args:
        value: The raw label
        field_name: Name of the field for error messages

    Returns:
        The label with surrounding whitespace removed

    Raises:
        ValueError: If the label is empty after trimming or too long
    """
    if value is None or not value.strip():
        raise ValueError(f"{field_name} cannot be empty")
    value = value.strip()
    if len(value) > config.max_name_length:
        raise ValueError(
            f"{field_name} exceeds maximum length of {config.max_name_length} characters"
        )
    return value


def is_temp_id(item_id: int) -> bool:
    """Whether an id is a client-side placeholder not yet confirmed by the database."""
    return item_id <= 0


COPY_SUFFIX = " (copy)"


def duplicate_title(title: str) -> str:
    """Title for a copy of a note, shortened so the suffix still fits."""
    return title[:config.max_name_length - len(COPY_SUFFIX)] + COPY_SUFFIX


class ItemKind(str, Enum):
    """The two kinds of entity that live in the workspace tree."""

    FOLDER = "folder"
    NOTE = "note"


class DeletePolicy(str, Enum):
    """What happens to the contents of a deleted folder."""

    CASCADE = "cascade"  # Child folders and notes are deleted recursively
    PROMOTE = "promote"  # Children are re-parented to the deleted folder's parent


class Folder(BaseModel):
    """A folder in the workspace hierarchy."""

    kind: Literal["folder"] = "folder"
    id: int = Field(default=0, description="Database ID (<= 0 until persisted)")
    name: str = Field(..., description="Display name of the folder")
    parent_id: Optional[int] = Field(
        default=None, description="Parent folder ID, None for root folders"
    )
    position: int = Field(default=0, ge=0, description="Order among siblings")
    is_favorite: bool = Field(default=False, description="Pinned to favorites")
    is_public: bool = Field(default=False, description="Privacy setting")
    created_at: datetime.datetime = Field(
        default_factory=utc_now, description="When the folder was created (UTC)"
    )
    updated_at: datetime.datetime = Field(
        default_factory=utc_now, description="When the folder was last updated (UTC)"
    )

    model_config = {"validate_assignment": True, "extra": "forbid"}

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        """Validate that the name is not empty."""
        return validate_label(v, "Folder name")


class Note(BaseModel):
    """A note, filed under a folder or at the workspace root."""

    kind: Literal["note"] = "note"
    id: int = Field(default=0, description="Database ID (<= 0 until persisted)")
    title: str = Field(..., description="Title of the note")
    content: str = Field(default="", description="Opaque rich-text payload")
    folder_id: Optional[int] = Field(
        default=None, description="Containing folder ID, None for unfiled notes"
    )
    position: int = Field(default=0, ge=0, description="Order within the folder")
    is_favorite: bool = Field(default=False, description="Pinned to favorites")
    is_public: bool = Field(default=False, description="Privacy setting")
    created_at: datetime.datetime = Field(
        default_factory=utc_now, description="When the note was created (UTC)"
    )
    updated_at: datetime.datetime = Field(
        default_factory=utc_now, description="When the note was last updated (UTC)"
    )

    model_config = {"validate_assignment": True, "extra": "forbid"}

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: str) -> str:
        """Validate that the title is not empty."""
        return validate_label(v, "Title")


# Tagged union over the tree entities, discriminated on ``kind``
WorkspaceItem = Annotated[Union[Folder, Note], Field(discriminator="kind")]


def item_kind(item: WorkspaceItem) -> ItemKind:
    """Return the kind of a workspace item."""
    if isinstance(item, Folder):
        return ItemKind.FOLDER
    if isinstance(item, Note):
        return ItemKind.NOTE
    raise TypeError(f"Not a workspace item: {type(item).__name__}")


def item_parent_id(item: WorkspaceItem) -> Optional[int]:
    """Return the id of the folder that contains an item."""
    if isinstance(item, Folder):
        return item.parent_id
    if isinstance(item, Note):
        return item.folder_id
    raise TypeError(f"Not a workspace item: {type(item).__name__}")


def item_label(item: WorkspaceItem) -> str:
    """Return the primary label (folder name or note title) of an item."""
    if isinstance(item, Folder):
        return item.name
    if isinstance(item, Note):
        return item.title
    raise TypeError(f"Not a workspace item: {type(item).__name__}")


def with_placement(
    item: WorkspaceItem, parent_id: Optional[int], position: int
) -> WorkspaceItem:
    """Copy an item into a new parent/position slot."""
    if isinstance(item, Folder):
        return item.model_copy(update={"parent_id": parent_id, "position": position})
    if isinstance(item, Note):
        return item.model_copy(update={"folder_id": parent_id, "position": position})
    raise TypeError(f"Not a workspace item: {type(item).__name__}")


class Tag(BaseModel):
    """A tag for categorizing notes."""

    id: int = Field(default=0, description="Database ID (<= 0 until persisted)")
    name: str = Field(..., description="Tag name")
    color: str = Field(
        default_factory=lambda: config.default_tag_color, description="Hex color"
    )
    description: Optional[str] = Field(default=None, description="What the tag is for")
    created_at: datetime.datetime = Field(
        default_factory=utc_now, description="When the tag was created (UTC)"
    )
    updated_at: datetime.datetime = Field(
        default_factory=utc_now, description="When the tag was last updated (UTC)"
    )

    model_config = {"validate_assignment": True, "extra": "forbid"}

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        """Validate tag name characters and length."""
        v = validate_label(v, "Tag name")
        if not SAFE_TAG_PATTERN.match(v):
            raise ValueError(
                "Tag name contains invalid characters. "
                "Only letters, digits, spaces, hyphens and underscores are allowed."
            )
        return v

    @field_validator("color")
    @classmethod
    def validate_color(cls, v: str) -> str:
        """Validate that the color is a #rrggbb hex string."""
        if not HEX_COLOR_PATTERN.match(v):
            raise ValueError("Tag color must look like #rrggbb")
        return v.lower()

    def __str__(self) -> str:
        """Return string representation of tag."""
        return self.name


class NoteTag(BaseModel):
    """Association between a note and a tag."""

    note_id: int = Field(..., description="Tagged note")
    tag_id: int = Field(..., description="Applied tag")
    created_at: datetime.datetime = Field(
        default_factory=utc_now, description="When the tag was applied (UTC)"
    )

    model_config = {"frozen": True}
