"""Legality checks and placement plans for moving and reordering items.

A move is checked against the current flat list of folders (and notes,
for note moves) before anything is written. The result is a ``MovePlan``
describing the final order of every sibling group the move touches, so
callers can apply it locally or in a single database transaction.
"""
from collections import defaultdict
from dataclasses import dataclass
from typing import (AbstractSet, Dict, FrozenSet, List, Mapping, Optional,
                    Sequence, Set, Tuple, TypeVar)

from notetree_mcp.exceptions import ConsistencyError, ErrorCode, ValidationError
from notetree_mcp.models.schema import (DeletePolicy, Folder, ItemKind, Note,
                                        WorkspaceItem, item_parent_id)

T = TypeVar("T")

ChildrenIndex = Mapping[Optional[int], Sequence[int]]


def _order_key(item: WorkspaceItem) -> Tuple[int, int]:
    return (item.position, item.id)


def children_index(items: Sequence[WorkspaceItem]) -> Dict[Optional[int], List[int]]:
    """Map each parent id to its child ids, in sibling order."""
    groups: Dict[Optional[int], List[WorkspaceItem]] = defaultdict(list)
    for item in items:
        groups[item_parent_id(item)].append(item)
    return {
        parent_id: [child.id for child in sorted(group, key=_order_key)]
        for parent_id, group in groups.items()
    }


def collect_descendants(index: ChildrenIndex, item_id: int) -> Set[int]:
    """Return every id below ``item_id``, not including itself.

    Only the subtree is visited. Already-seen ids are skipped, so a
    cycle in stored data cannot loop forever.
    """
    descendants: Set[int] = set()
    frontier = list(index.get(item_id, ()))
    while frontier:
        current = frontier.pop()
        if current in descendants or current == item_id:
            continue
        descendants.add(current)
        frontier.extend(index.get(current, ()))
    return descendants


def move_in_list(values: Sequence[T], old_index: int, new_index: int) -> List[T]:
    """Return a copy of ``values`` with one element moved to a new index."""
    size = len(values)
    if not 0 <= old_index < size or not 0 <= new_index < size:
        raise ValidationError(
            f"Cannot move index {old_index} to {new_index} in a list of {size}",
            field="position",
            value=new_index,
            code=ErrorCode.INVALID_POSITION,
        )
    result = list(values)
    result.insert(new_index, result.pop(old_index))
    return result


@dataclass(frozen=True)
class MovePlan:
    """Outcome of a legal move.

    Attributes:
        item_id: The item being moved
        kind: Folder or note
        old_parent_id: Parent before the move
        new_parent_id: Parent after the move
        new_position: Index of the item in its new sibling group
        is_reorder: True when the parent does not change
        old_sibling_ids: Remaining order of the group the item left
            (empty for a reorder)
        new_sibling_ids: Order of the destination group, item included
    """

    item_id: int
    kind: ItemKind
    old_parent_id: Optional[int]
    new_parent_id: Optional[int]
    new_position: int
    is_reorder: bool
    old_sibling_ids: Tuple[int, ...] = ()
    new_sibling_ids: Tuple[int, ...] = ()

    def placements(self) -> Dict[int, Tuple[Optional[int], int]]:
        """Map every touched id to its ``(parent_id, position)`` after the move.

        Positions are renumbered ``0..n-1`` in each touched group.
        """
        result: Dict[int, Tuple[Optional[int], int]] = {}
        for index, sibling_id in enumerate(self.old_sibling_ids):
            result[sibling_id] = (self.old_parent_id, index)
        for index, sibling_id in enumerate(self.new_sibling_ids):
            result[sibling_id] = (self.new_parent_id, index)
        return result


def _check_position(new_position: int, sibling_count: int) -> None:
    if isinstance(new_position, bool) or not isinstance(new_position, int):
        raise ValidationError(
            "Position must be an integer",
            field="position",
            value=new_position,
            code=ErrorCode.INVALID_POSITION,
        )
    if not 0 <= new_position <= sibling_count:
        raise ValidationError(
            f"Position {new_position} is outside [0, {sibling_count}]",
            field="position",
            value=new_position,
            code=ErrorCode.INVALID_POSITION,
        )


def _plan(
    kind: ItemKind,
    item: WorkspaceItem,
    index: ChildrenIndex,
    new_parent_id: Optional[int],
    new_position: int,
) -> MovePlan:
    old_parent_id = item_parent_id(item)
    is_reorder = old_parent_id == new_parent_id

    others = [i for i in index.get(new_parent_id, ()) if i != item.id]
    _check_position(new_position, len(others))
    others.insert(new_position, item.id)

    old_siblings: Tuple[int, ...] = ()
    if not is_reorder:
        old_siblings = tuple(i for i in index.get(old_parent_id, ()) if i != item.id)

    return MovePlan(
        item_id=item.id,
        kind=kind,
        old_parent_id=old_parent_id,
        new_parent_id=new_parent_id,
        new_position=new_position,
        is_reorder=is_reorder,
        old_sibling_ids=old_siblings,
        new_sibling_ids=tuple(others),
    )


def validate_move(
    folders: Sequence[Folder],
    folder_id: int,
    new_parent_id: Optional[int],
    new_position: int,
) -> MovePlan:
    """Check that a folder may be placed under ``new_parent_id`` at ``new_position``.

    Args:
        folders: Every folder in the workspace
        folder_id: The folder to move
        new_parent_id: Destination parent, None for the root
        new_position: Index among the destination's other children

    Returns:
        The plan for the move.

    Raises:
        ValidationError: Unknown folder id or position out of range
        ConsistencyError: Self-parenting, missing destination, or a
            destination inside the folder's own subtree
    """
    by_id = {f.id: f for f in folders}
    folder = by_id.get(folder_id)
    if folder is None:
        raise ValidationError(
            f"Folder with ID '{folder_id}' not found",
            field="folder_id",
            value=folder_id,
            code=ErrorCode.INVALID_ID,
        )
    if new_parent_id == folder_id:
        raise ConsistencyError(
            f"Folder '{folder_id}' cannot be its own parent",
            item_id=folder_id,
            target_id=new_parent_id,
            code=ErrorCode.SELF_PARENT,
        )
    if new_parent_id is not None and new_parent_id not in by_id:
        raise ConsistencyError(
            f"Target folder '{new_parent_id}' not found",
            item_id=folder_id,
            target_id=new_parent_id,
            code=ErrorCode.TARGET_NOT_FOUND,
        )

    index = children_index(folders)
    if new_parent_id is not None and new_parent_id != folder.parent_id:
        if new_parent_id in collect_descendants(index, folder_id):
            raise ConsistencyError(
                f"Moving folder '{folder_id}' under '{new_parent_id}' would create a cycle",
                item_id=folder_id,
                target_id=new_parent_id,
                code=ErrorCode.CYCLE_DETECTED,
            )
    return _plan(ItemKind.FOLDER, folder, index, new_parent_id, new_position)


def validate_note_move(
    folder_ids: AbstractSet[int],
    notes: Sequence[Note],
    note_id: int,
    new_folder_id: Optional[int],
    new_position: int,
) -> MovePlan:
    """Check that a note may be filed under ``new_folder_id`` at ``new_position``.

    Args:
        folder_ids: Ids of every existing folder
        notes: At least the notes of the source and destination folders
        note_id: The note to move
        new_folder_id: Destination folder, None for unfiled
        new_position: Index among the destination folder's other notes

    Raises:
        ValidationError: Unknown note id or position out of range
        ConsistencyError: The destination folder does not exist
    """
    note = next((n for n in notes if n.id == note_id), None)
    if note is None:
        raise ValidationError(
            f"Note with ID '{note_id}' not found",
            field="note_id",
            value=note_id,
            code=ErrorCode.INVALID_ID,
        )
    if new_folder_id is not None and new_folder_id not in folder_ids:
        raise ConsistencyError(
            f"Target folder '{new_folder_id}' not found",
            item_id=note_id,
            target_id=new_folder_id,
            code=ErrorCode.TARGET_NOT_FOUND,
        )
    return _plan(ItemKind.NOTE, note, children_index(notes), new_folder_id, new_position)


def validate_reorder(
    siblings: Sequence[WorkspaceItem],
    parent_id: Optional[int],
    ordered_ids: Sequence[int],
) -> Dict[int, int]:
    """Check a full reordering of one sibling group.

    Args:
        siblings: Items that may belong to the group; only those whose
            parent is ``parent_id`` are considered
        parent_id: The group's parent
        ordered_ids: The complete group in its new order

    Returns:
        Map of id to new position, ``0..n-1``.

    Raises:
        ValidationError: ``ordered_ids`` is not exactly the current group
    """
    current = {item.id for item in siblings if item_parent_id(item) == parent_id}
    requested = list(ordered_ids)
    if len(set(requested)) != len(requested) or set(requested) != current:
        raise ValidationError(
            "Reorder must list every item of the group exactly once",
            field="ordered_ids",
            value=requested,
            code=ErrorCode.INVALID_REORDER,
        )
    return {item_id: position for position, item_id in enumerate(requested)}


@dataclass(frozen=True)
class DeletePlan:
    """Everything a folder deletion removes or re-parents.

    Attributes:
        folder_id: The folder being deleted
        policy: Cascade or promote
        removed_folder_ids: Folders that disappear, the target included
        removed_note_ids: Notes that disappear
        folder_placements: New ``(parent_id, position)`` for each folder
            whose placement changes
        note_placements: New ``(folder_id, position)`` for each note
            whose placement changes
    """

    folder_id: int
    policy: DeletePolicy
    removed_folder_ids: FrozenSet[int]
    removed_note_ids: FrozenSet[int]
    folder_placements: Mapping[int, Tuple[Optional[int], int]]
    note_placements: Mapping[int, Tuple[Optional[int], int]]


def plan_folder_delete(
    folders: Sequence[Folder],
    notes: Sequence[Note],
    folder_id: int,
    policy: DeletePolicy,
) -> DeletePlan:
    """Work out the effect of deleting a folder under the given policy.

    ``CASCADE`` removes the folder, every folder below it and all of their
    notes. ``PROMOTE`` removes only the folder: its child folders take its
    slot among its siblings, and its notes are appended after the notes
    already in the parent. Either way the surviving sibling groups are
    renumbered ``0..n-1``.

    Raises:
        ValidationError: Unknown folder id or policy
    """
    try:
        policy = DeletePolicy(policy)
    except ValueError:
        raise ValidationError(
            f"Unknown delete policy: {policy!r}",
            field="policy",
            value=policy,
        ) from None
    folder = next((f for f in folders if f.id == folder_id), None)
    if folder is None:
        raise ValidationError(
            f"Folder with ID '{folder_id}' not found",
            field="folder_id",
            value=folder_id,
            code=ErrorCode.INVALID_ID,
        )

    parent_id = folder.parent_id
    folder_index = children_index(folders)
    siblings = folder_index.get(parent_id, [])

    if policy is DeletePolicy.CASCADE:
        removed = collect_descendants(folder_index, folder_id) | {folder_id}
        removed_notes = frozenset(n.id for n in notes if n.folder_id in removed)
        folder_order = [i for i in siblings if i != folder_id]
        note_order: List[int] = []
    else:
        removed = {folder_id}
        removed_notes = frozenset()
        at = siblings.index(folder_id)
        folder_order = siblings[:at] + folder_index.get(folder_id, []) + siblings[at + 1:]
        note_index = children_index(notes)
        note_order = note_index.get(parent_id, []) + note_index.get(folder_id, [])

    return DeletePlan(
        folder_id=folder_id,
        policy=policy,
        removed_folder_ids=frozenset(removed),
        removed_note_ids=removed_notes,
        folder_placements={fid: (parent_id, pos) for pos, fid in enumerate(folder_order)},
        note_placements={nid: (parent_id, pos) for pos, nid in enumerate(note_order)},
    )
