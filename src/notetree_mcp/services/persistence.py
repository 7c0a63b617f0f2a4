"""Persistence backends the orchestrator writes through."""
import functools
import logging
from typing import Any, Callable, List, Optional, Protocol, Sequence, Tuple

from anyio import to_thread
from sqlalchemy.exc import SQLAlchemyError

from notetree_mcp.exceptions import ErrorCode, NotetreeError, PersistenceError
from notetree_mcp.models.schema import DeletePolicy, Folder, Note
from notetree_mcp.storage.folder_repository import FolderRepository
from notetree_mcp.storage.note_repository import NoteRepository

logger = logging.getLogger(__name__)


class PersistenceService(Protocol):
    """Async backend for folders and notes.

    Every method either returns the committed entity (or entities) or
    raises ``PersistenceError``.
    """

    async def load_workspace(self) -> Tuple[List[Folder], List[Note]]: ...

    async def create_folder(self, folder: Folder) -> Folder: ...

    async def update_folder(self, folder: Folder) -> Folder: ...

    async def delete_folder(self, folder_id: int, policy: DeletePolicy) -> None: ...

    async def move_folder(
        self, folder_id: int, parent_id: Optional[int], position: int
    ) -> Folder: ...

    async def reorder_folders(
        self, parent_id: Optional[int], ordered_ids: Sequence[int]
    ) -> List[Folder]: ...

    async def create_note(self, note: Note) -> Note: ...

    async def update_note(self, note: Note) -> Note: ...

    async def delete_note(self, note_id: int) -> None: ...

    async def move_note(
        self, note_id: int, folder_id: Optional[int], position: int
    ) -> Note: ...

    async def reorder_notes(
        self, folder_id: Optional[int], ordered_ids: Sequence[int]
    ) -> List[Note]: ...

    async def duplicate_note(self, note_id: int) -> Note: ...


class SqlPersistenceService:
    """``PersistenceService`` over the SQLAlchemy repositories.

    Repository calls block, so each one runs in a worker thread.
    """

    def __init__(self, folders: FolderRepository, notes: NoteRepository):
        self.folders = folders
        self.notes = notes

    async def _call(self, operation: str, func: Callable[..., Any], *args: Any) -> Any:
        try:
            return await to_thread.run_sync(functools.partial(func, *args))
        except NotetreeError as e:
            logger.warning(f"{operation} rejected by storage: {e}")
            raise PersistenceError(
                e.message, operation=operation, code=e.code, original_error=e
            ) from e
        except SQLAlchemyError as e:
            logger.error(f"{operation} failed in the database: {e}")
            code = (
                ErrorCode.STORAGE_READ_FAILED if operation.startswith("load")
                else ErrorCode.STORAGE_WRITE_FAILED
            )
            raise PersistenceError(
                f"Database error during {operation}",
                operation=operation,
                code=code,
                original_error=e,
            ) from e

    async def load_workspace(self) -> Tuple[List[Folder], List[Note]]:
        folders = await self._call("load_folders", self.folders.get_all)
        notes = await self._call("load_notes", self.notes.get_all)
        return folders, notes

    async def create_folder(self, folder: Folder) -> Folder:
        return await self._call("create_folder", self.folders.create, folder)

    async def update_folder(self, folder: Folder) -> Folder:
        return await self._call("update_folder", self.folders.update, folder)

    async def delete_folder(self, folder_id: int, policy: DeletePolicy) -> None:
        await self._call("delete_folder", self.folders.delete, folder_id, policy)

    async def move_folder(
        self, folder_id: int, parent_id: Optional[int], position: int
    ) -> Folder:
        return await self._call("move_folder", self.folders.move, folder_id, parent_id, position)

    async def reorder_folders(
        self, parent_id: Optional[int], ordered_ids: Sequence[int]
    ) -> List[Folder]:
        return await self._call("reorder_folders", self.folders.reorder, parent_id, ordered_ids)

    async def create_note(self, note: Note) -> Note:
        return await self._call("create_note", self.notes.create, note)

    async def update_note(self, note: Note) -> Note:
        return await self._call("update_note", self.notes.update, note)

    async def delete_note(self, note_id: int) -> None:
        await self._call("delete_note", self.notes.delete, note_id)

    async def move_note(
        self, note_id: int, folder_id: Optional[int], position: int
    ) -> Note:
        return await self._call("move_note", self.notes.move, note_id, folder_id, position)

    async def reorder_notes(
        self, folder_id: Optional[int], ordered_ids: Sequence[int]
    ) -> List[Note]:
        return await self._call("reorder_notes", self.notes.reorder, folder_id, ordered_ids)

    async def duplicate_note(self, note_id: int) -> Note:
        return await self._call("duplicate_note", self.notes.duplicate, note_id)
