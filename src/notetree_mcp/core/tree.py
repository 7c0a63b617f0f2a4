"""Build nested, ordered trees out of flat folder and note lists.

Everything here is a pure function of its input. The tree is rebuilt from
scratch on every call; nothing is maintained incrementally.

Malformed input is never an error:

- an item whose parent id does not match any item in the input (a
  dangling reference, or a parent removed by ``filter_fn``) becomes a
  root node;
- items caught in a parent cycle are unreachable from any root, so the
  first of them in sibling order is promoted to root and the rest hang
  below it as usual;
- duplicate ids keep their first occurrence.
"""
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from enum import Enum
from typing import (Any, Callable, Dict, FrozenSet, Iterator, List, Optional,
                    Sequence, Set, Union)

from notetree_mcp.models.schema import (Folder, Note, WorkspaceItem,
                                        item_kind, item_label, item_parent_id)

logger = logging.getLogger(__name__)


class TreeSortKey(str, Enum):
    """Field that orders siblings."""

    POSITION = "position"
    NAME = "name"
    CREATED_AT = "created_at"
    UPDATED_AT = "updated_at"


@dataclass(frozen=True)
class TreeRecord:
    """One row of a flattened tree: an id, its parent and its position."""

    id: int
    parent_id: Optional[int]
    position: int
    item: Optional[WorkspaceItem] = None


TreeInput = Union[Folder, Note, TreeRecord]


@dataclass
class TreeBuildOptions:
    """Optional knobs for ``build_tree``.

    Attributes:
        sort_by: Sibling ordering; position and id always break ties
        descending: Reverse the sibling order
        max_depth: Number of levels to emit (1 = roots only); deeper
            nodes are left out but ``has_children`` still reports them
        filter_fn: Items for which this returns False are dropped
            before the tree is assembled
        expanded_ids: Ids whose nodes are marked ``is_expanded``
    """

    sort_by: TreeSortKey = TreeSortKey.POSITION
    descending: bool = False
    max_depth: Optional[int] = None
    filter_fn: Optional[Callable[[Any], bool]] = None
    expanded_ids: FrozenSet[int] = frozenset()

    def __post_init__(self):
        self.sort_by = TreeSortKey(self.sort_by)
        self.expanded_ids = frozenset(self.expanded_ids)
        if self.max_depth is not None and self.max_depth < 1:
            raise ValueError("max_depth must be >= 1")


@dataclass
class TreeNode:
    """A node of a built tree.

    ``parent_id`` is the parent id carried by the input, even when the
    node was placed at the root because that parent was missing.
    """

    id: int
    parent_id: Optional[int]
    position: int
    item: Any = None
    depth: int = 0
    has_children: bool = False
    is_expanded: bool = False
    children: List["TreeNode"] = field(default_factory=list)
    notes: List[Note] = field(default_factory=list)

    @property
    def label(self) -> str:
        if isinstance(self.item, (Folder, Note)):
            return item_label(self.item)
        return str(self.id)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize the node and its subtree for JSON output."""
        data: Dict[str, Any] = {
            "id": self.id,
            "parent_id": self.parent_id,
            "position": self.position,
            "depth": self.depth,
            "has_children": self.has_children,
            "is_expanded": self.is_expanded,
            "children": [child.to_dict() for child in self.children],
        }
        if isinstance(self.item, (Folder, Note)):
            data["kind"] = item_kind(self.item).value
            data["label"] = item_label(self.item)
            data["is_favorite"] = self.item.is_favorite
        if self.notes:
            data["notes"] = [
                {"id": n.id, "title": n.title, "position": n.position}
                for n in self.notes
            ]
        return data


@dataclass
class WorkspaceTree:
    """Folder tree plus the notes that live outside any folder."""

    roots: List[TreeNode] = field(default_factory=list)
    root_notes: List[Note] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "folders": [node.to_dict() for node in self.roots],
            "root_notes": [
                {"id": n.id, "title": n.title, "position": n.position}
                for n in self.root_notes
            ],
        }


@dataclass
class _Entry:
    id: int
    parent_id: Optional[int]
    position: int
    item: Any


def _to_entry(value: TreeInput) -> _Entry:
    if isinstance(value, TreeRecord):
        return _Entry(value.id, value.parent_id, value.position,
                      value.item if value.item is not None else value)
    return _Entry(value.id, item_parent_id(value), value.position, value)


def _sort_key(sort_by: TreeSortKey) -> Callable[[_Entry], Any]:
    def key(entry: _Entry):
        item = entry.item
        if sort_by is TreeSortKey.NAME and isinstance(item, (Folder, Note)):
            return (item_label(item).casefold(), entry.position, entry.id)
        if sort_by is TreeSortKey.CREATED_AT and isinstance(item, (Folder, Note)):
            return (item.created_at, entry.position, entry.id)
        if sort_by is TreeSortKey.UPDATED_AT and isinstance(item, (Folder, Note)):
            return (item.updated_at, entry.position, entry.id)
        return (entry.position, entry.id)
    return key


def build_tree(
    items: Sequence[TreeInput],
    options: Optional[TreeBuildOptions] = None,
) -> List[TreeNode]:
    """Nest a flat list of items by parent id.

    Args:
        items: Folders, notes, or ``TreeRecord`` rows from ``flatten``
        options: Sorting, depth limit, filter and expansion state

    Returns:
        The ordered root nodes. Each node carries its sorted children,
        its depth (roots are 0) and whether it has children.
    """
    options = options or TreeBuildOptions()
    key = _sort_key(options.sort_by)

    by_id: Dict[int, _Entry] = {}
    for value in items:
        if options.filter_fn is not None and not options.filter_fn(value):
            continue
        entry = _to_entry(value)
        if entry.id in by_id:
            logger.debug(f"Duplicate id {entry.id} in tree input, keeping first")
            continue
        by_id[entry.id] = entry

    children: Dict[int, List[_Entry]] = defaultdict(list)
    roots: List[_Entry] = []
    for entry in by_id.values():
        parent_id = entry.parent_id
        if parent_id is None or parent_id == entry.id or parent_id not in by_id:
            roots.append(entry)
        else:
            children[parent_id].append(entry)
    for group in children.values():
        group.sort(key=key, reverse=options.descending)

    reached = _reachable(roots, children)
    if len(reached) < len(by_id):
        unreached = sorted(
            (e for e in by_id.values() if e.id not in reached), key=key
        )
        for entry in unreached:
            if entry.id in reached:
                continue
            logger.warning(f"Parent cycle through item {entry.id}, placing it at the root")
            roots.append(entry)
            reached |= _reachable([entry], children, reached)

    roots.sort(key=key, reverse=options.descending)
    return _grow(roots, children, options)


def _reachable(
    start: Sequence[_Entry],
    children: Dict[int, List[_Entry]],
    seen: Optional[Set[int]] = None,
) -> Set[int]:
    seen = set(seen or ())
    stack = [e.id for e in start]
    while stack:
        current = stack.pop()
        if current in seen:
            continue
        seen.add(current)
        stack.extend(c.id for c in children.get(current, ()))
    return seen


def _grow(
    roots: List[_Entry],
    children: Dict[int, List[_Entry]],
    options: TreeBuildOptions,
) -> List[TreeNode]:
    root_ids = {e.id for e in roots}
    result: List[TreeNode] = []
    placed: Set[int] = set()
    # Explicit stack: deep hierarchies must not hit the recursion limit
    stack = [(entry, 0, result) for entry in reversed(roots)]
    while stack:
        entry, depth, siblings = stack.pop()
        if entry.id in placed:
            continue
        placed.add(entry.id)
        kids = [k for k in children.get(entry.id, ()) if k.id not in root_ids]
        node = TreeNode(
            id=entry.id,
            parent_id=entry.parent_id,
            position=entry.position,
            item=entry.item,
            depth=depth,
            has_children=bool(kids),
            is_expanded=entry.id in options.expanded_ids,
        )
        siblings.append(node)
        if options.max_depth is not None and depth + 1 >= options.max_depth:
            continue
        for kid in reversed(kids):
            stack.append((kid, depth + 1, node.children))
    return result


def iter_nodes(tree: Sequence[TreeNode]) -> Iterator[TreeNode]:
    """Walk a tree in pre-order."""
    stack = list(reversed(tree))
    while stack:
        node = stack.pop()
        yield node
        stack.extend(reversed(node.children))


def flatten(tree: Sequence[TreeNode]) -> List[TreeRecord]:
    """Pre-order walk collecting ``(id, parent_id, position)`` rows."""
    return [
        TreeRecord(id=node.id, parent_id=node.parent_id,
                   position=node.position, item=node.item)
        for node in iter_nodes(tree)
    ]


def find_node(tree: Sequence[TreeNode], node_id: int) -> Optional[TreeNode]:
    for node in iter_nodes(tree):
        if node.id == node_id:
            return node
    return None


def count_nodes(tree: Sequence[TreeNode]) -> int:
    return sum(1 for _ in iter_nodes(tree))


def build_workspace_tree(
    folders: Sequence[Folder],
    notes: Sequence[Note],
    options: Optional[TreeBuildOptions] = None,
) -> WorkspaceTree:
    """Build the folder tree and file each note under its folder node.

    Notes are ordered by position within their folder. Unfiled notes and
    notes pointing at a folder that does not exist become root notes.
    Notes in a folder left out by ``max_depth`` or ``filter_fn`` are left
    out with it.
    """
    roots = build_tree(folders, options)
    nodes = {node.id: node for node in iter_nodes(roots)}
    known_folders = {f.id for f in folders}

    workspace = WorkspaceTree(roots=roots)
    for note in sorted(notes, key=lambda n: (n.position, n.id)):
        if note.folder_id is not None and note.folder_id in nodes:
            nodes[note.folder_id].notes.append(note)
        elif note.folder_id is None or note.folder_id not in known_folders:
            workspace.root_notes.append(note)
    return workspace
