"""In-memory store of the folders and notes the orchestrator works on."""
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

from notetree_mcp.models.schema import Folder, ItemKind, Note, WorkspaceItem

logger = logging.getLogger(__name__)

StoreListener = Callable[[int, str], None]


@dataclass(frozen=True)
class StoreSnapshot:
    """Saved state of selected entities.

    A value of None records that the id was absent, so restoring removes it.
    """

    folders: Dict[int, Optional[Folder]] = field(default_factory=dict)
    notes: Dict[int, Optional[Note]] = field(default_factory=dict)


class EntityStore:
    """Folders and notes keyed by id, plus a version counter.

    The store is owned by whoever creates it and handed to the
    orchestrator explicitly. Items are replaced, never mutated in place,
    so a snapshot can hold plain references.

    Every change to the contents is followed by an ``invalidate`` call,
    which bumps ``version`` and tells listeners. Derived data such as the
    folder tree is keyed on ``version``.
    """

    def __init__(self, folders: Sequence[Folder] = (), notes: Sequence[Note] = ()):
        self._folders: Dict[int, Folder] = {f.id: f for f in folders}
        self._notes: Dict[int, Note] = {n.id: n for n in notes}
        self._version = 0
        self._next_temp_id = -1
        self._listeners: List[StoreListener] = []

    @property
    def version(self) -> int:
        return self._version

    def subscribe(self, listener: StoreListener) -> Callable[[], None]:
        """Call ``listener(version, reason)`` after each invalidation.

        Returns:
            A function that removes the listener.
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def invalidate(self, reason: str) -> int:
        """Mark derived data stale after a change."""
        self._version += 1
        logger.debug(f"Store invalidated (v{self._version}): {reason}")
        for listener in list(self._listeners):
            listener(self._version, reason)
        return self._version

    def load(self, folders: Iterable[Folder], notes: Iterable[Note]) -> None:
        """Replace the whole contents with freshly loaded data."""
        self._folders = {f.id: f for f in folders}
        self._notes = {n.id: n for n in notes}
        self.invalidate("load")

    def next_temp_id(self) -> int:
        """Hand out a placeholder id (-1, -2, ...) for an unsaved item."""
        temp_id = self._next_temp_id
        self._next_temp_id -= 1
        return temp_id

    def folders(self) -> List[Folder]:
        return list(self._folders.values())

    def notes(self) -> List[Note]:
        return list(self._notes.values())

    def get_folder(self, folder_id: int) -> Optional[Folder]:
        return self._folders.get(folder_id)

    def get_note(self, note_id: int) -> Optional[Note]:
        return self._notes.get(note_id)

    def get(self, kind: ItemKind, item_id: int) -> Optional[WorkspaceItem]:
        if kind is ItemKind.FOLDER:
            return self._folders.get(item_id)
        return self._notes.get(item_id)

    def has_folder(self, folder_id: int) -> bool:
        return folder_id in self._folders

    def put(self, item: WorkspaceItem) -> None:
        """Insert or replace an item under its id."""
        if isinstance(item, Folder):
            self._folders[item.id] = item
        elif isinstance(item, Note):
            self._notes[item.id] = item
        else:
            raise TypeError(f"Not a workspace item: {type(item).__name__}")

    def remove(self, kind: ItemKind, item_id: int) -> Optional[WorkspaceItem]:
        if kind is ItemKind.FOLDER:
            return self._folders.pop(item_id, None)
        return self._notes.pop(item_id, None)

    def replace_id(self, kind: ItemKind, old_id: int, item: WorkspaceItem) -> None:
        """Swap a placeholder entry for the saved item carrying its real id."""
        self.remove(kind, old_id)
        self.put(item)

    def snapshot(
        self,
        folder_ids: Iterable[int] = (),
        note_ids: Iterable[int] = (),
    ) -> StoreSnapshot:
        """Record the current state of the given ids."""
        return StoreSnapshot(
            folders={fid: self._folders.get(fid) for fid in folder_ids},
            notes={nid: self._notes.get(nid) for nid in note_ids},
        )

    def current_of(self, snapshot: StoreSnapshot) -> StoreSnapshot:
        """Record the current state of the ids ``snapshot`` covers."""
        return self.snapshot(folder_ids=snapshot.folders, note_ids=snapshot.notes)

    def restore(
        self, snapshot: StoreSnapshot, expected: Optional[StoreSnapshot] = None
    ) -> int:
        """Put recorded ids back the way they were in ``snapshot``.

        With ``expected`` (the values a mutation wrote), an id is only put
        back while it still holds that value. Anything another mutation
        has written since is left alone.

        Returns:
            Number of ids left alone.
        """
        kept = 0
        tables = (
            (self._folders, snapshot.folders, expected.folders if expected else None),
            (self._notes, snapshot.notes, expected.notes if expected else None),
        )
        for table, saved, wrote in tables:
            for item_id, item in saved.items():
                if wrote is not None and item_id in wrote and table.get(item_id) != wrote[item_id]:
                    kept += 1
                    continue
                if item is None:
                    table.pop(item_id, None)
                else:
                    table[item_id] = item
        return kept

    def dump(self) -> Dict[str, Dict[int, Dict[str, Any]]]:
        """Plain-data copy of the contents, for comparison and debugging."""
        return {
            "folders": {fid: f.model_dump() for fid, f in sorted(self._folders.items())},
            "notes": {nid: n.model_dump() for nid, n in sorted(self._notes.items())},
        }

