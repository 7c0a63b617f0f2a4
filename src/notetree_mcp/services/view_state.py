"""Tree view state: which folders are expanded, what is selected or being edited."""
import logging
from dataclasses import dataclass, field
from typing import FrozenSet, Iterable, NamedTuple, Optional, Protocol, Set

from notetree_mcp.models.schema import ItemKind

logger = logging.getLogger(__name__)


class ItemRef(NamedTuple):
    """Folder and note ids overlap, so references carry the kind."""

    kind: ItemKind
    id: int


class ViewStateSink(Protocol):
    """What the orchestrator tells the UI after a mutation settles."""

    @property
    def expanded_ids(self) -> FrozenSet[int]: ...

    def is_expanded(self, folder_id: int) -> bool: ...

    def expand(self, folder_id: int) -> None: ...

    def rename_id(self, kind: ItemKind, old_id: int, new_id: int) -> None: ...

    def forget(self, refs: Iterable[ItemRef]) -> None: ...


@dataclass
class TreeViewState:
    """Default ``ViewStateSink``: plain in-memory UI state."""

    expanded: Set[int] = field(default_factory=set)
    selected: Optional[ItemRef] = None
    editing: Optional[ItemRef] = None

    @property
    def expanded_ids(self) -> FrozenSet[int]:
        return frozenset(self.expanded)

    def is_expanded(self, folder_id: int) -> bool:
        return folder_id in self.expanded

    def expand(self, folder_id: int) -> None:
        self.expanded.add(folder_id)

    def collapse(self, folder_id: int) -> None:
        self.expanded.discard(folder_id)

    def toggle(self, folder_id: int) -> bool:
        """Flip a folder's expansion; returns the new state."""
        if folder_id in self.expanded:
            self.collapse(folder_id)
            return False
        self.expand(folder_id)
        return True

    def select(self, ref: Optional[ItemRef]) -> None:
        self.selected = ref

    def start_editing(self, ref: ItemRef) -> None:
        self.editing = ref

    def stop_editing(self) -> None:
        self.editing = None

    def rename_id(self, kind: ItemKind, old_id: int, new_id: int) -> None:
        """Carry state over from a placeholder id to the saved id."""
        if kind is ItemKind.FOLDER and old_id in self.expanded:
            self.expanded.discard(old_id)
            self.expanded.add(new_id)
        old_ref = ItemRef(kind, old_id)
        if self.selected == old_ref:
            self.selected = ItemRef(kind, new_id)
        if self.editing == old_ref:
            self.editing = ItemRef(kind, new_id)

    def forget(self, refs: Iterable[ItemRef]) -> None:
        """Drop state that points at deleted items."""
        for ref in refs:
            if ref.kind is ItemKind.FOLDER:
                self.expanded.discard(ref.id)
            if self.selected == ref:
                self.selected = None
            if self.editing == ref:
                self.editing = None
