"""Repository for note storage and retrieval."""
import logging
from typing import List, Optional, Sequence

from sqlalchemy import delete, func, or_, select
from sqlalchemy.orm import Session

from notetree_mcp.core.moves import validate_note_move, validate_reorder
from notetree_mcp.exceptions import (ConsistencyError, ErrorCode,
                                     NoteNotFoundError)
from notetree_mcp.models.db_models import (DBFolder, DBNote,
                                           get_session_factory, init_db)
from notetree_mcp.models.schema import (Note, duplicate_title,
                                        ensure_timezone_aware, utc_now)
from notetree_mcp.observability import traced
from notetree_mcp.storage.base import (Repository, apply_placements,
                                       parent_clause)

logger = logging.getLogger(__name__)


def escape_like_pattern(value: str) -> str:
    """Escape SQL LIKE wildcards to treat them as literals.

    Args:
        value: User input string that may contain LIKE wildcards

    Returns:
        String with '%', '_', and '\\' escaped for safe use in LIKE clauses
    """
    escape_table = str.maketrans({
        '\\': '\\\\',
        '%': '\\%',
        '_': '\\_',
    })
    return value.translate(escape_table)


class NoteRepository(Repository[Note]):
    """Repository for notes filed under folders (or unfiled at the root).

    Notes are ordered within their folder by ``position``; the root
    (``folder_id`` None) is a sibling group like any other.
    """

    def __init__(self, engine=None):
        """Initialize the repository.

        Args:
            engine: SQLAlchemy engine. If None, uses default from config.
        """
        self.engine = engine or init_db()
        self.session_factory = get_session_factory(self.engine)
        logger.info("NoteRepository initialized")

    @traced("note.create")
    def create(self, note: Note) -> Note:
        """Create a note at the end of its folder.

        Args:
            note: Note to create; ``id`` and ``position`` are ignored.

        Returns:
            The stored note.

        Raises:
            ConsistencyError: If the folder does not exist.
        """
        with self.session_factory() as session:
            self._check_folder(session, note.folder_id)
            db_note = DBNote(
                title=note.title,
                content=note.content,
                folder_id=note.folder_id,
                position=self._next_position(session, note.folder_id),
                is_public=note.is_public,
                is_favorite=note.is_favorite,
                created_at=note.created_at,
                updated_at=note.updated_at,
            )
            session.add(db_note)
            session.commit()

            logger.info(f"Created note: {db_note.id} ({note.title!r})")
            return self._db_to_model(db_note)

    def get(self, id: int) -> Optional[Note]:
        """Get a note by ID, or None."""
        with self.session_factory() as session:
            db_note = session.get(DBNote, id)
            return self._db_to_model(db_note) if db_note else None

    def get_all(self) -> List[Note]:
        """Get every note, grouped by folder and ordered by position."""
        with self.session_factory() as session:
            result = session.execute(
                select(DBNote).order_by(DBNote.folder_id, DBNote.position, DBNote.id)
            )
            return [self._db_to_model(db) for db in result.scalars().all()]

    def get_by_folder(self, folder_id: Optional[int]) -> List[Note]:
        """Get the notes of one folder (None for unfiled notes), in order."""
        with self.session_factory() as session:
            return self._load_folder(session, folder_id)

    @traced("note.update")
    def update(self, note: Note) -> Note:
        """Write the title, content and flags of an existing note.

        Raises:
            NoteNotFoundError: If the note does not exist.
        """
        with self.session_factory() as session:
            db_note = session.get(DBNote, note.id)
            if not db_note:
                raise NoteNotFoundError(note.id)

            db_note.title = note.title
            db_note.content = note.content
            db_note.is_public = note.is_public
            db_note.is_favorite = note.is_favorite
            db_note.updated_at = utc_now()
            session.commit()

            logger.info(f"Updated note: {note.id}")
            return self._db_to_model(db_note)

    @traced("note.delete")
    def delete(self, id: int) -> None:
        """Delete a note and close the gap it leaves in its folder.

        Raises:
            NoteNotFoundError: If the note does not exist.
        """
        with self.session_factory() as session:
            db_note = session.get(DBNote, id)
            if not db_note:
                raise NoteNotFoundError(id)
            folder_id = db_note.folder_id

            session.execute(delete(DBNote).where(DBNote.id == id))
            remaining = [n.id for n in self._load_folder(session, folder_id) if n.id != id]
            apply_placements(
                session, DBNote, "folder_id",
                {nid: (folder_id, pos) for pos, nid in enumerate(remaining)}
            )
            session.commit()
            logger.info(f"Deleted note: {id}")

    @traced("note.move")
    def move(self, id: int, folder_id: Optional[int], position: int) -> Note:
        """File a note under ``folder_id`` at ``position``.

        Raises:
            ValidationError: Unknown note or position out of range.
            ConsistencyError: If the folder does not exist.
        """
        with self.session_factory() as session:
            db_note = session.get(DBNote, id)
            if not db_note:
                raise NoteNotFoundError(id)
            folder_ids = set(session.execute(select(DBFolder.id)).scalars().all())
            notes = self._load_folder(session, db_note.folder_id)
            if folder_id != db_note.folder_id:
                notes += self._load_folder(session, folder_id)

            plan = validate_note_move(folder_ids, notes, id, folder_id, position)
            apply_placements(session, DBNote, "folder_id", plan.placements(), touched_id=id)
            session.commit()
            session.expire_all()

            logger.info(f"Moved note {id}: {plan.old_parent_id} -> {plan.new_parent_id} at {position}")
            return self._db_to_model(session.get(DBNote, id))

    @traced("note.reorder")
    def reorder(self, folder_id: Optional[int], ordered_ids: Sequence[int]) -> List[Note]:
        """Set the order of every note in a folder.

        Raises:
            ValidationError: If ``ordered_ids`` is not exactly the folder's notes.
        """
        with self.session_factory() as session:
            notes = self._load_folder(session, folder_id)
            positions = validate_reorder(notes, folder_id, ordered_ids)
            apply_placements(
                session, DBNote, "folder_id",
                {nid: (folder_id, pos) for nid, pos in positions.items()}
            )
            session.commit()
            session.expire_all()
            return self._load_folder(session, folder_id)

    @traced("note.search")
    def search(
        self,
        query: str,
        folder_id: Optional[int] = None,
        limit: int = 50,
    ) -> List[Note]:
        """Case-insensitive substring search over titles and content.

        Args:
            query: Text to look for; LIKE wildcards are matched literally
            folder_id: Only search this folder
            limit: Maximum number of results

        Returns:
            Matching notes, most recently updated first.
        """
        pattern = f"%{escape_like_pattern(query.strip())}%"
        with self.session_factory() as session:
            stmt = select(DBNote).where(
                or_(
                    DBNote.title.ilike(pattern, escape='\\'),
                    DBNote.content.ilike(pattern, escape='\\'),
                )
            )
            if folder_id is not None:
                stmt = stmt.where(DBNote.folder_id == folder_id)
            stmt = stmt.order_by(DBNote.updated_at.desc(), DBNote.id).limit(limit)
            return [self._db_to_model(db) for db in session.execute(stmt).scalars().all()]

    @traced("note.duplicate")
    def duplicate(self, id: int) -> Note:
        """Copy a note into the same folder, at the end, titled "<title> (copy)".

        Raises:
            NoteNotFoundError: If the note does not exist.
        """
        with self.session_factory() as session:
            original = session.get(DBNote, id)
            if not original:
                raise NoteNotFoundError(id)

            now = utc_now()
            copy = DBNote(
                title=duplicate_title(original.title),
                content=original.content,
                folder_id=original.folder_id,
                position=self._next_position(session, original.folder_id),
                is_public=original.is_public,
                is_favorite=False,
                created_at=now,
                updated_at=now,
            )
            session.add(copy)
            session.commit()

            logger.info(f"Duplicated note {id} as {copy.id}")
            return self._db_to_model(copy)

    @traced("note.toggle_favorite")
    def toggle_favorite(self, id: int) -> Note:
        """Flip the favorite flag of a note.

        Raises:
            NoteNotFoundError: If the note does not exist.
        """
        with self.session_factory() as session:
            db_note = session.get(DBNote, id)
            if not db_note:
                raise NoteNotFoundError(id)
            db_note.is_favorite = not db_note.is_favorite
            db_note.updated_at = utc_now()
            session.commit()
            return self._db_to_model(db_note)

    def get_favorites(self) -> List[Note]:
        """Get favorite notes, most recently updated first."""
        with self.session_factory() as session:
            result = session.execute(
                select(DBNote)
                .where(DBNote.is_favorite.is_(True))
                .order_by(DBNote.updated_at.desc(), DBNote.id)
            )
            return [self._db_to_model(db) for db in result.scalars().all()]

    def _check_folder(self, session: Session, folder_id: Optional[int]) -> None:
        if folder_id is not None and session.get(DBFolder, folder_id) is None:
            raise ConsistencyError(
                f"Folder '{folder_id}' not found",
                target_id=folder_id,
                code=ErrorCode.TARGET_NOT_FOUND
            )

    def _next_position(self, session: Session, folder_id: Optional[int]) -> int:
        highest = session.execute(
            select(func.max(DBNote.position)).where(parent_clause(DBNote.folder_id, folder_id))
        ).scalar()
        return 0 if highest is None else highest + 1

    def _load_folder(self, session: Session, folder_id: Optional[int]) -> List[Note]:
        result = session.execute(
            select(DBNote)
            .where(parent_clause(DBNote.folder_id, folder_id))
            .order_by(DBNote.position, DBNote.id)
        )
        return [self._db_to_model(db) for db in result.scalars().all()]

    @staticmethod
    def _db_to_model(db_note: DBNote) -> Note:
        """Convert DBNote to Note model."""
        return Note(
            id=db_note.id,
            title=db_note.title,
            content=db_note.content or "",
            folder_id=db_note.folder_id,
            position=db_note.position,
            is_favorite=db_note.is_favorite,
            is_public=db_note.is_public,
            created_at=ensure_timezone_aware(db_note.created_at),
            updated_at=ensure_timezone_aware(db_note.updated_at),
        )
