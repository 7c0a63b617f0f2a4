"""Optimistic create/update/delete/move orchestration for the workspace.

Each mutation runs the same sequence:

1. validate against the local store; failures return ``REJECTED`` and
   nothing is written anywhere;
2. snapshot every entity the change touches and apply the change to the
   store at once (new items get a negative placeholder id);
3. await the persistence backend;
4. on success reconcile the store with what the backend returned and
   report ``COMMITTED``; on failure restore the snapshot and report
   ``ROLLED_BACK``. Only ids still holding the value this mutation wrote
   are restored, so a rollback never undoes another mutation's commit.

Mutations in flight at the same time are not coordinated. Each one
reconciles on its own when its call settles. A commit writes what the
backend returned; a rollback skips ids another mutation has written since.
"""
import logging
from collections import Counter
from dataclasses import dataclass
from enum import Enum
from typing import (Any, Awaitable, Callable, Dict, Generic, Iterable, List,
                    Optional, Sequence, Tuple, TypeVar)

from notetree_mcp.config import config
from notetree_mcp.core.moves import (DeletePlan, plan_folder_delete,
                                     validate_move, validate_note_move,
                                     validate_reorder)
from notetree_mcp.core.tree import (TreeBuildOptions, TreeNode, WorkspaceTree,
                                    build_tree, build_workspace_tree)
from notetree_mcp.exceptions import (ConsistencyError, ErrorCode,
                                     FolderNotFoundError, NotetreeError,
                                     PersistenceError, ValidationError)
from notetree_mcp.models.schema import (DeletePolicy, Folder, ItemKind, Note,
                                        WorkspaceItem, duplicate_title,
                                        is_temp_id, item_kind, item_parent_id,
                                        utc_now, validate_label, with_placement)
from notetree_mcp.observability import traced
from notetree_mcp.services.persistence import PersistenceService
from notetree_mcp.services.store import EntityStore, StoreSnapshot
from notetree_mcp.services.view_state import (ItemRef, TreeViewState,
                                              ViewStateSink)

logger = logging.getLogger(__name__)

T = TypeVar("T")

Placements = Dict[int, Tuple[Optional[int], int]]


class MutationState(str, Enum):
    """Lifecycle of one mutation."""

    IDLE = "idle"
    PENDING = "pending"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"
    REJECTED = "rejected"


@dataclass(frozen=True)
class MutationResult(Generic[T]):
    """Final state of a mutation, with the committed item or the error."""

    operation: str
    status: MutationState
    item: Optional[T] = None
    error: Optional[NotetreeError] = None

    @property
    def ok(self) -> bool:
        return self.status is MutationState.COMMITTED

    def unwrap(self) -> T:
        """Return the committed item, or raise the error that stopped it."""
        if self.error is not None:
            raise self.error
        return self.item

    @classmethod
    def committed(cls, operation: str, item: Any = None) -> "MutationResult":
        return cls(operation, MutationState.COMMITTED, item=item)

    @classmethod
    def rolled_back(cls, operation: str, error: NotetreeError) -> "MutationResult":
        return cls(operation, MutationState.ROLLED_BACK, error=error)

    @classmethod
    def rejected(cls, operation: str, error: NotetreeError) -> "MutationResult":
        return cls(operation, MutationState.REJECTED, error=error)


class WorkspaceService:
    """Folder and note mutations with immediate local feedback.

    Args:
        persistence: Backend that commits changes
        store: Local entity store; a fresh one is created if omitted
        view_state: UI state to notify; a ``TreeViewState`` if omitted
    """

    def __init__(
        self,
        persistence: PersistenceService,
        store: Optional[EntityStore] = None,
        view_state: Optional[ViewStateSink] = None,
    ):
        self.persistence = persistence
        self.store = store if store is not None else EntityStore()
        self.view_state = view_state if view_state is not None else TreeViewState()
        self._pending: Counter = Counter()
        self._tree_cache: Optional[Tuple[Any, List[TreeNode]]] = None

    # ========== Loading and read side ==========

    @traced("workspace.load")
    async def load(self) -> None:
        """Replace the local store with the backend's current contents.

        Raises:
            PersistenceError: If the backend cannot be read.
        """
        folders, notes = await self.persistence.load_workspace()
        self.store.load(folders, notes)
        logger.info(f"Loaded workspace: {len(folders)} folders, {len(notes)} notes")

    def folder_tree(self, options: Optional[TreeBuildOptions] = None) -> List[TreeNode]:
        """The folder tree, rebuilt only when the store or expansion changed.

        Explicit ``options`` bypass the cache.
        """
        if options is not None:
            return build_tree(self.store.folders(), options)
        key = (self.store.version, self.view_state.expanded_ids)
        if self._tree_cache is None or self._tree_cache[0] != key:
            tree = build_tree(
                self.store.folders(),
                TreeBuildOptions(expanded_ids=self.view_state.expanded_ids),
            )
            self._tree_cache = (key, tree)
        return self._tree_cache[1]

    def workspace_tree(self, options: Optional[TreeBuildOptions] = None) -> WorkspaceTree:
        """Folder tree with notes attached, plus unfiled notes."""
        if options is None:
            options = TreeBuildOptions(expanded_ids=self.view_state.expanded_ids)
        return build_workspace_tree(self.store.folders(), self.store.notes(), options)

    def folder_path(self, folder_id: int) -> List[Folder]:
        """Breadcrumb from the root down to ``folder_id`` (inclusive).

        Raises:
            FolderNotFoundError: If the folder is not in the store.
        """
        folder = self.store.get_folder(folder_id)
        if folder is None:
            raise FolderNotFoundError(folder_id)
        path = [folder]
        seen = {folder.id}
        while folder.parent_id is not None and folder.parent_id not in seen:
            folder = self.store.get_folder(folder.parent_id)
            if folder is None:
                break
            seen.add(folder.id)
            path.append(folder)
        path.reverse()
        return path

    def favorites(self) -> Tuple[List[Folder], List[Note]]:
        """Favorite folders and notes, most recently updated first."""
        def newest_first(item: WorkspaceItem):
            return (-item.updated_at.timestamp(), item.id)

        folders = sorted((f for f in self.store.folders() if f.is_favorite), key=newest_first)
        notes = sorted((n for n in self.store.notes() if n.is_favorite), key=newest_first)
        return folders, notes

    def get_folder(self, folder_id: int) -> Optional[Folder]:
        return self.store.get_folder(folder_id)

    def get_note(self, note_id: int) -> Optional[Note]:
        return self.store.get_note(note_id)

    def is_pending(self, kind: ItemKind, item_id: int) -> bool:
        """Whether a mutation of this item is waiting on the backend."""
        return self._pending[ItemRef(kind, item_id)] > 0

    # ========== Folders ==========

    @traced("workspace.create_folder")
    async def create_folder(
        self,
        name: Optional[str] = None,
        parent_id: Optional[int] = None,
    ) -> MutationResult[Folder]:
        """Create a folder at the end of ``parent_id``'s children."""
        op = "create_folder"
        try:
            label = self._label(
                config.default_folder_name if name is None else name,
                "Folder name", ErrorCode.FOLDER_NAME_REQUIRED,
            )
            self._require_folder(parent_id)
        except NotetreeError as e:
            return self._reject(op, e)

        temp_id = self.store.next_temp_id()
        optimistic = Folder(
            id=temp_id,
            name=label,
            parent_id=parent_id,
            position=self._next_position(self.store.folders(), parent_id),
        )
        return await self._insert(op, optimistic, lambda: self.persistence.create_folder(optimistic))

    @traced("workspace.update_folder")
    async def update_folder(
        self,
        folder_id: int,
        name: Optional[str] = None,
        is_favorite: Optional[bool] = None,
        is_public: Optional[bool] = None,
    ) -> MutationResult[Folder]:
        """Patch a folder's name and flags; None leaves a field as is."""
        op = "update_folder"
        try:
            current = self._saved_folder(folder_id)
            patch: Dict[str, Any] = {}
            if name is not None:
                patch["name"] = self._label(name, "Folder name", ErrorCode.FOLDER_NAME_REQUIRED)
            if is_favorite is not None:
                patch["is_favorite"] = is_favorite
            if is_public is not None:
                patch["is_public"] = is_public
        except NotetreeError as e:
            return self._reject(op, e)

        patched = current.model_copy(update={**patch, "updated_at": utc_now()})
        return await self._replace(op, patched, lambda: self.persistence.update_folder(patched))

    async def rename_folder(self, folder_id: int, name: str) -> MutationResult[Folder]:
        return await self.update_folder(folder_id, name=name)

    @traced("workspace.delete_folder")
    async def delete_folder(
        self, folder_id: int, policy: DeletePolicy
    ) -> MutationResult[DeletePlan]:
        """Delete a folder.

        Args:
            folder_id: Folder to delete
            policy: ``DeletePolicy.CASCADE`` removes everything below it;
                ``DeletePolicy.PROMOTE`` hands its children and notes to
                its parent. There is no default.
        """
        op = "delete_folder"
        try:
            self._saved_folder(folder_id)
            plan = plan_folder_delete(self.store.folders(), self.store.notes(), folder_id, policy)
        except NotetreeError as e:
            return self._reject(op, e)

        snapshot = self.store.snapshot(
            folder_ids=set(plan.removed_folder_ids) | set(plan.folder_placements),
            note_ids=set(plan.removed_note_ids) | set(plan.note_placements),
        )
        for removed_id in plan.removed_folder_ids:
            self.store.remove(ItemKind.FOLDER, removed_id)
        for removed_id in plan.removed_note_ids:
            self.store.remove(ItemKind.NOTE, removed_id)
        self._place(ItemKind.FOLDER, plan.folder_placements)
        self._place(ItemKind.NOTE, plan.note_placements)
        self.store.invalidate(op)

        refs = [ItemRef(ItemKind.FOLDER, folder_id)]
        try:
            await self._persist(op, snapshot, refs, lambda: self.persistence.delete_folder(folder_id, plan.policy))
        except PersistenceError as e:
            return self._roll_back(op, e)

        self.view_state.forget(
            [ItemRef(ItemKind.FOLDER, i) for i in plan.removed_folder_ids]
            + [ItemRef(ItemKind.NOTE, i) for i in plan.removed_note_ids]
        )
        logger.info(
            f"Deleted folder {folder_id} ({plan.policy.value}): "
            f"{len(plan.removed_folder_ids)} folders, {len(plan.removed_note_ids)} notes"
        )
        return MutationResult.committed(op, plan)

    @traced("workspace.move_folder")
    async def move_folder(
        self,
        folder_id: int,
        new_parent_id: Optional[int],
        new_position: int,
    ) -> MutationResult[Folder]:
        """Re-parent and/or reorder a folder after checking it is legal."""
        op = "move_folder"
        try:
            self._saved_folder(folder_id)
            self._require_folder(new_parent_id)
            plan = validate_move(self.store.folders(), folder_id, new_parent_id, new_position)
        except NotetreeError as e:
            return self._reject(op, e)

        result = await self._apply_move(
            op, ItemKind.FOLDER, folder_id, plan.placements(),
            lambda: self.persistence.move_folder(folder_id, new_parent_id, new_position),
        )
        if result.ok:
            self._expand_target(new_parent_id)
        return result

    @traced("workspace.reorder_folders")
    async def reorder_folders(
        self, parent_id: Optional[int], ordered_ids: Sequence[int]
    ) -> MutationResult[List[Folder]]:
        """Give every child of ``parent_id`` a new order."""
        op = "reorder_folders"
        try:
            self._require_saved_group(ItemKind.FOLDER, self.store.folders(), parent_id, ordered_ids)
            positions = validate_reorder(self.store.folders(), parent_id, ordered_ids)
        except NotetreeError as e:
            return self._reject(op, e)
        placements = {fid: (parent_id, pos) for fid, pos in positions.items()}
        return await self._apply_reorder(
            op, ItemKind.FOLDER, placements,
            lambda: self.persistence.reorder_folders(parent_id, list(ordered_ids)),
        )

    # ========== Notes ==========

    @traced("workspace.create_note")
    async def create_note(
        self,
        title: Optional[str] = None,
        content: str = "",
        folder_id: Optional[int] = None,
    ) -> MutationResult[Note]:
        """Create a note at the end of a folder (or unfiled)."""
        op = "create_note"
        try:
            label = self._label(
                config.default_note_title if title is None else title,
                "Title", ErrorCode.NOTE_TITLE_REQUIRED,
            )
            self._require_folder(folder_id)
        except NotetreeError as e:
            return self._reject(op, e)

        optimistic = Note(
            id=self.store.next_temp_id(),
            title=label,
            content=content,
            folder_id=folder_id,
            position=self._next_position(self.store.notes(), folder_id),
        )
        return await self._insert(op, optimistic, lambda: self.persistence.create_note(optimistic))

    @traced("workspace.update_note")
    async def update_note(
        self,
        note_id: int,
        title: Optional[str] = None,
        content: Optional[str] = None,
        is_favorite: Optional[bool] = None,
        is_public: Optional[bool] = None,
    ) -> MutationResult[Note]:
        """Patch a note; None leaves a field as is."""
        op = "update_note"
        try:
            current = self._saved_note(note_id)
            patch: Dict[str, Any] = {}
            if title is not None:
                patch["title"] = self._label(title, "Title", ErrorCode.NOTE_TITLE_REQUIRED)
            if content is not None:
                patch["content"] = content
            if is_favorite is not None:
                patch["is_favorite"] = is_favorite
            if is_public is not None:
                patch["is_public"] = is_public
        except NotetreeError as e:
            return self._reject(op, e)

        patched = current.model_copy(update={**patch, "updated_at": utc_now()})
        return await self._replace(op, patched, lambda: self.persistence.update_note(patched))

    @traced("workspace.delete_note")
    async def delete_note(self, note_id: int) -> MutationResult[Note]:
        """Delete a note and close the gap among its siblings."""
        op = "delete_note"
        try:
            note = self._saved_note(note_id)
        except NotetreeError as e:
            return self._reject(op, e)

        siblings = sorted(
            (n for n in self.store.notes() if n.folder_id == note.folder_id and n.id != note_id),
            key=lambda n: (n.position, n.id),
        )
        placements = {n.id: (note.folder_id, pos) for pos, n in enumerate(siblings)}
        snapshot = self.store.snapshot(note_ids=[note_id, *placements])
        self.store.remove(ItemKind.NOTE, note_id)
        self._place(ItemKind.NOTE, placements)
        self.store.invalidate(op)

        try:
            await self._persist(
                op, snapshot, [ItemRef(ItemKind.NOTE, note_id)],
                lambda: self.persistence.delete_note(note_id),
            )
        except PersistenceError as e:
            return self._roll_back(op, e)

        self.view_state.forget([ItemRef(ItemKind.NOTE, note_id)])
        return MutationResult.committed(op, note)

    @traced("workspace.move_note")
    async def move_note(
        self,
        note_id: int,
        folder_id: Optional[int],
        position: int,
    ) -> MutationResult[Note]:
        """File a note under another folder and/or position."""
        op = "move_note"
        try:
            self._saved_note(note_id)
            self._require_folder(folder_id)
            folder_ids = {f.id for f in self.store.folders()}
            plan = validate_note_move(folder_ids, self.store.notes(), note_id, folder_id, position)
        except NotetreeError as e:
            return self._reject(op, e)

        result = await self._apply_move(
            op, ItemKind.NOTE, note_id, plan.placements(),
            lambda: self.persistence.move_note(note_id, folder_id, position),
        )
        if result.ok:
            self._expand_target(folder_id)
        return result

    @traced("workspace.reorder_notes")
    async def reorder_notes(
        self, folder_id: Optional[int], ordered_ids: Sequence[int]
    ) -> MutationResult[List[Note]]:
        """Give every note of a folder a new order."""
        op = "reorder_notes"
        try:
            self._require_saved_group(ItemKind.NOTE, self.store.notes(), folder_id, ordered_ids)
            positions = validate_reorder(self.store.notes(), folder_id, ordered_ids)
        except NotetreeError as e:
            return self._reject(op, e)
        placements = {nid: (folder_id, pos) for nid, pos in positions.items()}
        return await self._apply_reorder(
            op, ItemKind.NOTE, placements,
            lambda: self.persistence.reorder_notes(folder_id, list(ordered_ids)),
        )

    @traced("workspace.duplicate_note")
    async def duplicate_note(self, note_id: int) -> MutationResult[Note]:
        """Copy a note to the end of its folder as "<title> (copy)"."""
        op = "duplicate_note"
        try:
            source = self._saved_note(note_id)
        except NotetreeError as e:
            return self._reject(op, e)

        optimistic = Note(
            id=self.store.next_temp_id(),
            title=duplicate_title(source.title),
            content=source.content,
            folder_id=source.folder_id,
            position=self._next_position(self.store.notes(), source.folder_id),
            is_public=source.is_public,
        )
        return await self._insert(op, optimistic, lambda: self.persistence.duplicate_note(note_id))

    # ========== Either kind ==========

    async def toggle_favorite(self, kind: ItemKind, item_id: int) -> MutationResult:
        """Flip the favorite flag of a folder or note."""
        kind = ItemKind(kind)
        item = self.store.get(kind, item_id)
        if item is None:
            return self._reject("toggle_favorite", self._unknown(kind, item_id))
        if kind is ItemKind.FOLDER:
            return await self.update_folder(item_id, is_favorite=not item.is_favorite)
        return await self.update_note(item_id, is_favorite=not item.is_favorite)

    # ========== Helpers ==========

    async def _persist(
        self,
        operation: str,
        snapshot: StoreSnapshot,
        refs: Iterable[ItemRef],
        call: Callable[[], Awaitable[T]],
    ) -> T:
        """Await the backend, restoring ``snapshot`` if the call fails.

        Callers apply their optimistic change before calling this, so the
        values seen here are the ones this mutation wrote. On failure only
        ids still holding those values are put back; a change another
        mutation committed meanwhile is kept. The restore also runs on
        cancellation, so the store never keeps a half-applied change.
        """
        refs = list(refs)
        applied = self.store.current_of(snapshot)
        for ref in refs:
            self._pending[ref] += 1
        try:
            return await call()
        except BaseException:
            kept = self.store.restore(snapshot, expected=applied)
            if kept:
                logger.debug(f"{operation} rollback kept {kept} newer values")
            self.store.invalidate(f"{operation} rolled back")
            raise
        finally:
            for ref in refs:
                self._pending[ref] -= 1
                if self._pending[ref] <= 0:
                    del self._pending[ref]

    async def _insert(
        self,
        operation: str,
        optimistic: WorkspaceItem,
        call: Callable[[], Awaitable[WorkspaceItem]],
    ) -> MutationResult:
        kind = item_kind(optimistic)
        temp_id = optimistic.id
        snapshot = self.store.snapshot(
            **{"folder_ids" if kind is ItemKind.FOLDER else "note_ids": [temp_id]}
        )
        self.store.put(optimistic)
        self.store.invalidate(operation)
        logger.debug(f"{operation}: placeholder {temp_id} visible")

        try:
            saved = await self._persist(operation, snapshot, [ItemRef(kind, temp_id)], call)
        except PersistenceError as e:
            return self._roll_back(operation, e)

        self.store.replace_id(kind, temp_id, saved)
        self.view_state.rename_id(kind, temp_id, saved.id)
        self.store.invalidate(f"{operation} committed")
        logger.info(f"{operation}: placeholder {temp_id} saved as {saved.id}")
        return MutationResult.committed(operation, saved)

    async def _replace(
        self,
        operation: str,
        patched: WorkspaceItem,
        call: Callable[[], Awaitable[WorkspaceItem]],
    ) -> MutationResult:
        kind = item_kind(patched)
        snapshot = self.store.snapshot(
            **{"folder_ids" if kind is ItemKind.FOLDER else "note_ids": [patched.id]}
        )
        self.store.put(patched)
        self.store.invalidate(operation)

        try:
            saved = await self._persist(operation, snapshot, [ItemRef(kind, patched.id)], call)
        except PersistenceError as e:
            return self._roll_back(operation, e)

        self.store.put(saved)
        self.store.invalidate(f"{operation} committed")
        return MutationResult.committed(operation, saved)

    async def _apply_move(
        self,
        operation: str,
        kind: ItemKind,
        item_id: int,
        placements: Placements,
        call: Callable[[], Awaitable[WorkspaceItem]],
    ) -> MutationResult:
        snapshot = self._snapshot_kind(kind, placements)
        self._place(kind, placements, touched_id=item_id)
        self.store.invalidate(operation)

        try:
            saved = await self._persist(operation, snapshot, [ItemRef(kind, item_id)], call)
        except PersistenceError as e:
            return self._roll_back(operation, e)

        self.store.put(saved)
        self.store.invalidate(f"{operation} committed")
        return MutationResult.committed(operation, saved)

    async def _apply_reorder(
        self,
        operation: str,
        kind: ItemKind,
        placements: Placements,
        call: Callable[[], Awaitable[List[WorkspaceItem]]],
    ) -> MutationResult:
        snapshot = self._snapshot_kind(kind, placements)
        self._place(kind, placements)
        self.store.invalidate(operation)

        refs = [ItemRef(kind, item_id) for item_id in placements]
        try:
            saved = await self._persist(operation, snapshot, refs, call)
        except PersistenceError as e:
            return self._roll_back(operation, e)

        for item in saved:
            self.store.put(item)
        self.store.invalidate(f"{operation} committed")
        return MutationResult.committed(operation, saved)

    def _snapshot_kind(self, kind: ItemKind, placements: Placements) -> StoreSnapshot:
        if kind is ItemKind.FOLDER:
            return self.store.snapshot(folder_ids=placements)
        return self.store.snapshot(note_ids=placements)

    def _place(
        self,
        kind: ItemKind,
        placements: Placements,
        touched_id: Optional[int] = None,
    ) -> None:
        now = utc_now()
        for item_id, (parent_id, position) in placements.items():
            item = self.store.get(kind, item_id)
            if item is None:
                continue
            moved = with_placement(item, parent_id, position)
            if item_id == touched_id:
                moved = moved.model_copy(update={"updated_at": now})
            self.store.put(moved)

    def _expand_target(self, folder_id: Optional[int]) -> None:
        if folder_id is None or not config.expand_on_move:
            return
        if not self.view_state.is_expanded(folder_id):
            self.view_state.expand(folder_id)
            logger.debug(f"Expanded folder {folder_id} after move")

    def _reject(self, operation: str, error: NotetreeError) -> MutationResult:
        logger.info(f"{operation} rejected: {error}")
        return MutationResult.rejected(operation, error)

    def _roll_back(self, operation: str, error: PersistenceError) -> MutationResult:
        logger.warning(f"{operation} rolled back: {error}")
        return MutationResult.rolled_back(operation, error)

    @staticmethod
    def _label(value: str, field_name: str, code: ErrorCode) -> str:
        try:
            return validate_label(value, field_name)
        except ValueError as e:
            raise ValidationError(str(e), field=field_name, value=value, code=code) from None

    @staticmethod
    def _next_position(items: Sequence[WorkspaceItem], parent_id: Optional[int]) -> int:
        positions = [
            item.position for item in items if item_parent_id(item) == parent_id
        ]
        return max(positions) + 1 if positions else 0

    def _require_folder(self, folder_id: Optional[int]) -> None:
        """A destination folder must exist and already be saved."""
        if folder_id is None:
            return
        if is_temp_id(folder_id):
            raise ValidationError(
                f"Folder '{folder_id}' is not saved yet",
                field="folder_id",
                value=folder_id,
                code=ErrorCode.INVALID_ID,
            )
        if not self.store.has_folder(folder_id):
            raise ConsistencyError(
                f"Target folder '{folder_id}' not found",
                target_id=folder_id,
                code=ErrorCode.TARGET_NOT_FOUND,
            )

    def _saved_folder(self, folder_id: int) -> Folder:
        folder = self.store.get_folder(folder_id)
        if folder is None or is_temp_id(folder_id):
            raise self._unknown(ItemKind.FOLDER, folder_id)
        return folder

    def _saved_note(self, note_id: int) -> Note:
        note = self.store.get_note(note_id)
        if note is None or is_temp_id(note_id):
            raise self._unknown(ItemKind.NOTE, note_id)
        return note

    def _require_saved_group(
        self,
        kind: ItemKind,
        items: Sequence[WorkspaceItem],
        parent_id: Optional[int],
        ordered_ids: Sequence[int],
    ) -> None:
        """A reorder needs every member of the group saved.

        The backend only knows real ids, so a group holding a placeholder
        is rejected until the create settles.
        """
        if parent_id is not None and is_temp_id(parent_id):
            raise self._unknown(ItemKind.FOLDER, parent_id)
        group = {item.id for item in items if item_parent_id(item) == parent_id}
        unsaved = sorted(i for i in group | set(ordered_ids) if is_temp_id(i))
        if unsaved:
            raise self._unknown(kind, unsaved[-1])

    @staticmethod
    def _unknown(kind: ItemKind, item_id: int) -> ValidationError:
        noun = "Folder" if kind is ItemKind.FOLDER else "Note"
        reason = "is not saved yet" if is_temp_id(item_id) else "not found"
        return ValidationError(
            f"{noun} '{item_id}' {reason}",
            field=f"{kind.value}_id",
            value=item_id,
            code=ErrorCode.INVALID_ID,
        )
