"""Base repository interface for the storage layer."""
from abc import ABC, abstractmethod
from typing import Generic, List, Mapping, Optional, Tuple, TypeVar

from sqlalchemy import update
from sqlalchemy.orm import Session

from notetree_mcp.models.schema import utc_now

T = TypeVar("T")


class Repository(ABC, Generic[T]):
    """Abstract CRUD contract shared by the folder and note repositories.

    Deletion is left to each repository: folders need a delete policy,
    notes do not.
    """

    @abstractmethod
    def create(self, item: T) -> T:
        """Persist a new item and return it with its database ID."""

    @abstractmethod
    def get(self, id: int) -> Optional[T]:
        """Get an item by ID, or None if it does not exist."""

    @abstractmethod
    def get_all(self) -> List[T]:
        """Get every stored item."""

    @abstractmethod
    def update(self, item: T) -> T:
        """Write the fields of an existing item."""


def parent_clause(column, parent_id: Optional[int]):
    """WHERE clause matching a nullable parent column."""
    if parent_id is None:
        return column.is_(None)
    return column == parent_id


def apply_placements(
    session: Session,
    model,
    parent_attr: str,
    placements: Mapping[int, Tuple[Optional[int], int]],
    touched_id: Optional[int] = None,
) -> None:
    """Write ``(parent, position)`` pairs produced by the move planner.

    Args:
        session: Open session; the caller commits
        model: ``DBFolder`` or ``DBNote``
        parent_attr: Name of the parent column on ``model``
        placements: Map of row id to new parent and position
        touched_id: Row whose ``updated_at`` is bumped
    """
    now = utc_now()
    for row_id, (parent_id, position) in placements.items():
        values = {parent_attr: parent_id, "position": position}
        if row_id == touched_id:
            values["updated_at"] = now
        session.execute(update(model).where(model.id == row_id).values(**values))
