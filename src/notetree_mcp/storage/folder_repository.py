"""Repository for folder storage and retrieval."""
import logging
from typing import List, Optional, Sequence

from sqlalchemy import delete, func, or_, select
from sqlalchemy.orm import Session

from notetree_mcp.core.moves import (DeletePlan, MovePlan, children_index,
                                     collect_descendants, plan_folder_delete,
                                     validate_move, validate_reorder)
from notetree_mcp.exceptions import (ConsistencyError, ErrorCode,
                                     FolderNotFoundError)
from notetree_mcp.models.db_models import (DBFolder, DBNote,
                                           get_session_factory, init_db)
from notetree_mcp.models.schema import (DeletePolicy, Folder, Note,
                                        ensure_timezone_aware, utc_now)
from notetree_mcp.observability import traced
from notetree_mcp.storage.base import (Repository, apply_placements,
                                       parent_clause)

logger = logging.getLogger(__name__)


class FolderRepository(Repository[Folder]):
    """Repository for folder storage and retrieval.

    Folders form a tree through ``parent_id``. Every write that changes
    placement (create, move, reorder, delete) goes through the planners in
    ``notetree_mcp.core.moves`` and commits the whole sibling renumbering
    in one transaction.
    """

    def __init__(self, engine=None):
        """Initialize the repository.

        Args:
            engine: SQLAlchemy engine. If None, uses default from config.
        """
        self.engine = engine or init_db()
        self.session_factory = get_session_factory(self.engine)
        logger.info("FolderRepository initialized")

    @traced("folder.create")
    def create(self, folder: Folder) -> Folder:
        """Create a new folder at the end of its parent's children.

        The ``id`` and ``position`` of the given folder are ignored.

        Args:
            folder: Folder to create.

        Returns:
            The stored folder with its database ID and position.

        Raises:
            ConsistencyError: If the parent folder does not exist.
        """
        with self.session_factory() as session:
            if folder.parent_id is not None and session.get(DBFolder, folder.parent_id) is None:
                raise ConsistencyError(
                    f"Parent folder '{folder.parent_id}' not found",
                    target_id=folder.parent_id,
                    code=ErrorCode.TARGET_NOT_FOUND
                )

            db_folder = DBFolder(
                name=folder.name,
                parent_id=folder.parent_id,
                position=self._next_position(session, folder.parent_id),
                is_public=folder.is_public,
                is_favorite=folder.is_favorite,
                created_at=folder.created_at,
                updated_at=folder.updated_at,
            )
            session.add(db_folder)
            session.commit()

            logger.info(f"Created folder: {db_folder.id} ({folder.name!r})")
            return self._db_to_model(db_folder)

    def get(self, id: int) -> Optional[Folder]:
        """Get a folder by ID.

        Args:
            id: Folder ID.

        Returns:
            Folder if found, None otherwise.
        """
        with self.session_factory() as session:
            db_folder = session.get(DBFolder, id)
            if not db_folder:
                return None
            return self._db_to_model(db_folder)

    def get_all(self) -> List[Folder]:
        """Get all folders, ordered by parent and position."""
        with self.session_factory() as session:
            return self._load_all(session)

    @traced("folder.update")
    def update(self, folder: Folder) -> Folder:
        """Write the name and flags of an existing folder.

        Placement is not touched here; use ``move`` or ``reorder``.

        Args:
            folder: Folder with updated fields.

        Returns:
            The stored folder.

        Raises:
            FolderNotFoundError: If the folder does not exist.
        """
        with self.session_factory() as session:
            db_folder = session.get(DBFolder, folder.id)
            if not db_folder:
                raise FolderNotFoundError(folder.id)

            db_folder.name = folder.name
            db_folder.is_public = folder.is_public
            db_folder.is_favorite = folder.is_favorite
            db_folder.updated_at = utc_now()
            session.commit()

            logger.info(f"Updated folder: {folder.id}")
            return self._db_to_model(db_folder)

    @traced("folder.delete")
    def delete(self, id: int, policy: DeletePolicy) -> DeletePlan:
        """Delete a folder and deal with its contents.

        Args:
            id: Folder ID to delete.
            policy: ``CASCADE`` deletes the subtree and its notes,
                ``PROMOTE`` hands children and notes to the parent.

        Returns:
            The plan that was applied.

        Raises:
            FolderNotFoundError: If the folder does not exist.
        """
        policy = DeletePolicy(policy)
        with self.session_factory() as session:
            if session.get(DBFolder, id) is None:
                raise FolderNotFoundError(id)

            folders = self._load_all(session)
            if policy is DeletePolicy.PROMOTE:
                parent_id = next(f.parent_id for f in folders if f.id == id)
                scope = [parent_id, id]
            else:
                scope = [id, *collect_descendants(children_index(folders), id)]
            notes = self._load_notes(session, scope)
            plan = plan_folder_delete(folders, notes, id, policy)

            if plan.removed_note_ids:
                session.execute(delete(DBNote).where(DBNote.id.in_(plan.removed_note_ids)))
            apply_placements(session, DBFolder, "parent_id", plan.folder_placements)
            apply_placements(session, DBNote, "folder_id", plan.note_placements)
            session.execute(delete(DBFolder).where(DBFolder.id.in_(plan.removed_folder_ids)))
            session.commit()

            logger.info(
                f"Deleted folder {id} ({plan.policy.value}): "
                f"{len(plan.removed_folder_ids)} folders, {len(plan.removed_note_ids)} notes removed"
            )
            return plan

    @traced("folder.move")
    def move(self, id: int, new_parent_id: Optional[int], new_position: int) -> Folder:
        """Re-parent and/or reorder a folder.

        Args:
            id: Folder to move.
            new_parent_id: Destination parent, None for the root.
            new_position: Index among the destination's other children.

        Returns:
            The moved folder.

        Raises:
            ValidationError: Unknown folder or position out of range.
            ConsistencyError: Self-parenting, missing target, or cycle.
        """
        with self.session_factory() as session:
            plan: MovePlan = validate_move(self._load_all(session), id, new_parent_id, new_position)
            apply_placements(session, DBFolder, "parent_id", plan.placements(), touched_id=id)
            session.commit()
            session.expire_all()

            logger.info(
                f"Moved folder {id}: {plan.old_parent_id} -> {plan.new_parent_id} at {plan.new_position}"
            )
            return self._db_to_model(session.get(DBFolder, id))

    @traced("folder.reorder")
    def reorder(self, parent_id: Optional[int], ordered_ids: Sequence[int]) -> List[Folder]:
        """Set the order of all children of ``parent_id``.

        Args:
            parent_id: Parent whose children are reordered (None for roots).
            ordered_ids: Every child ID in the new order.

        Returns:
            The children in their new order.

        Raises:
            ValidationError: If ``ordered_ids`` is not exactly the current children.
        """
        with self.session_factory() as session:
            siblings = self._load_children(session, parent_id)
            positions = validate_reorder(siblings, parent_id, ordered_ids)
            apply_placements(
                session, DBFolder, "parent_id",
                {fid: (parent_id, pos) for fid, pos in positions.items()}
            )
            session.commit()
            session.expire_all()
            logger.info(f"Reordered {len(positions)} folders under {parent_id}")
            return self._load_children(session, parent_id)

    def get_children(self, parent_id: Optional[int]) -> List[Folder]:
        """Get the direct children of a folder (or the roots), in order."""
        with self.session_factory() as session:
            return self._load_children(session, parent_id)

    def get_descendants(self, id: int) -> List[Folder]:
        """Get every folder below ``id``.

        Raises:
            FolderNotFoundError: If the folder does not exist.
        """
        with self.session_factory() as session:
            folders = self._load_all(session)
            if not any(f.id == id for f in folders):
                raise FolderNotFoundError(id)
            below = collect_descendants(children_index(folders), id)
            return [f for f in folders if f.id in below]

    def get_path(self, id: int) -> List[Folder]:
        """Get the ancestors of a folder and the folder itself, root first.

        Raises:
            FolderNotFoundError: If the folder does not exist.
        """
        with self.session_factory() as session:
            path: List[Folder] = []
            seen = set()
            current = session.get(DBFolder, id)
            if current is None:
                raise FolderNotFoundError(id)
            while current is not None and current.id not in seen:
                seen.add(current.id)
                path.append(self._db_to_model(current))
                current = session.get(DBFolder, current.parent_id) if current.parent_id else None
            path.reverse()
            return path

    def next_position(self, parent_id: Optional[int]) -> int:
        """Position a new child of ``parent_id`` would get."""
        with self.session_factory() as session:
            return self._next_position(session, parent_id)

    @traced("folder.toggle_favorite")
    def toggle_favorite(self, id: int) -> Folder:
        """Flip the favorite flag of a folder.

        Raises:
            FolderNotFoundError: If the folder does not exist.
        """
        with self.session_factory() as session:
            db_folder = session.get(DBFolder, id)
            if not db_folder:
                raise FolderNotFoundError(id)
            db_folder.is_favorite = not db_folder.is_favorite
            db_folder.updated_at = utc_now()
            session.commit()
            return self._db_to_model(db_folder)

    def get_favorites(self) -> List[Folder]:
        """Get favorite folders, most recently updated first."""
        with self.session_factory() as session:
            result = session.execute(
                select(DBFolder)
                .where(DBFolder.is_favorite.is_(True))
                .order_by(DBFolder.updated_at.desc(), DBFolder.id)
            )
            return [self._db_to_model(db) for db in result.scalars().all()]

    def exists(self, id: int) -> bool:
        with self.session_factory() as session:
            return session.get(DBFolder, id) is not None

    def _next_position(self, session: Session, parent_id: Optional[int]) -> int:
        highest = session.execute(
            select(func.max(DBFolder.position)).where(parent_clause(DBFolder.parent_id, parent_id))
        ).scalar()
        return 0 if highest is None else highest + 1

    def _load_all(self, session: Session) -> List[Folder]:
        result = session.execute(
            select(DBFolder).order_by(DBFolder.parent_id, DBFolder.position, DBFolder.id)
        )
        return [self._db_to_model(db) for db in result.scalars().all()]

    def _load_children(self, session: Session, parent_id: Optional[int]) -> List[Folder]:
        result = session.execute(
            select(DBFolder)
            .where(parent_clause(DBFolder.parent_id, parent_id))
            .order_by(DBFolder.position, DBFolder.id)
        )
        return [self._db_to_model(db) for db in result.scalars().all()]

    def _load_notes(self, session: Session, folder_ids: List[Optional[int]]) -> List[Note]:
        """Placement-only view of the notes in the given folders."""
        result = session.execute(
            select(DBNote.id, DBNote.title, DBNote.folder_id, DBNote.position)
            .where(or_(*(parent_clause(DBNote.folder_id, fid) for fid in folder_ids)))
        )
        return [
            Note(id=row.id, title=row.title, folder_id=row.folder_id, position=row.position)
            for row in result
        ]

    def _db_to_model(self, db_folder: DBFolder) -> Folder:
        """Convert DBFolder to Folder model."""
        return Folder(
            id=db_folder.id,
            name=db_folder.name,
            parent_id=db_folder.parent_id,
            position=db_folder.position,
            is_favorite=db_folder.is_favorite,
            is_public=db_folder.is_public,
            created_at=ensure_timezone_aware(db_folder.created_at),
            updated_at=ensure_timezone_aware(db_folder.updated_at),
        )
