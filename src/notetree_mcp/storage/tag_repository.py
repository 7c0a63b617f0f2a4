"""Repository for tag storage and retrieval."""
import logging
from typing import Dict, List, Optional

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import func, select

from notetree_mcp.exceptions import ErrorCode, NoteNotFoundError, TagError
from notetree_mcp.models.db_models import (DBNote, DBNoteTag, DBTag,
                                           get_session_factory, init_db)
from notetree_mcp.models.schema import (NoteTag, Tag, ensure_timezone_aware,
                                        utc_now)
from notetree_mcp.observability import traced
from notetree_mcp.storage.note_repository import escape_like_pattern

logger = logging.getLogger(__name__)


class TagRepository:
    """Repository for tags and their note assignments.

    Tag names are unique regardless of case: "Work" and "work" are the
    same tag.
    """

    def __init__(self, engine=None):
        """Initialize the tag repository.

        Args:
            engine: SQLAlchemy engine. If None, uses default from config.
        """
        self.engine = engine or init_db()
        self.session_factory = get_session_factory(self.engine)

    @traced("tag.create")
    def create(
        self,
        name: str,
        color: Optional[str] = None,
        description: Optional[str] = None,
    ) -> Tag:
        """Create a tag.

        Args:
            name: Tag name; surrounding whitespace is removed.
            color: ``#rrggbb`` color, config default when omitted.
            description: Optional free text.

        Returns:
            The stored tag.

        Raises:
            TagError: If the name or color is invalid, or a tag with the
                same name (ignoring case) exists.
        """
        fields = {"name": name, "description": description}
        if color is not None:
            fields["color"] = color
        try:
            tag = Tag(**fields)
        except PydanticValidationError as e:
            raise TagError(
                e.errors()[0]["msg"], tag_name=name, code=ErrorCode.TAG_INVALID
            ) from e
        with self.session_factory() as session:
            if self._find_by_name(session, tag.name) is not None:
                raise TagError(
                    f"Tag '{tag.name}' already exists",
                    tag_name=tag.name,
                    code=ErrorCode.TAG_ALREADY_EXISTS
                )
            db_tag = DBTag(
                name=tag.name,
                color=tag.color,
                description=tag.description,
                created_at=tag.created_at,
                updated_at=tag.updated_at,
            )
            session.add(db_tag)
            session.commit()
            logger.info(f"Created tag: {db_tag.id} ({tag.name!r})")
            return self._db_to_model(db_tag)

    def get_or_create(self, name: str) -> Tag:
        """Get a tag by name (ignoring case), creating it if needed."""
        existing = self.get_by_name(name)
        if existing is not None:
            return existing
        return self.create(name)

    @traced("tag.update")
    def update(self, tag: Tag) -> Tag:
        """Write the name, color and description of an existing tag.

        Raises:
            TagError: If the tag does not exist or the new name is taken.
        """
        with self.session_factory() as session:
            db_tag = session.get(DBTag, tag.id)
            if not db_tag:
                raise TagError(f"Tag '{tag.id}' not found", code=ErrorCode.TAG_NOT_FOUND)
            clash = self._find_by_name(session, tag.name)
            if clash is not None and clash.id != tag.id:
                raise TagError(
                    f"Tag '{tag.name}' already exists",
                    tag_name=tag.name,
                    code=ErrorCode.TAG_ALREADY_EXISTS
                )
            db_tag.name = tag.name
            db_tag.color = tag.color
            db_tag.description = tag.description
            db_tag.updated_at = utc_now()
            session.commit()
            logger.info(f"Updated tag: {tag.id}")
            return self._db_to_model(db_tag)

    @traced("tag.delete")
    def delete(self, tag_id: int) -> None:
        """Delete a tag and remove it from every note.

        Raises:
            TagError: If the tag does not exist.
        """
        with self.session_factory() as session:
            db_tag = session.get(DBTag, tag_id)
            if not db_tag:
                raise TagError(f"Tag '{tag_id}' not found", code=ErrorCode.TAG_NOT_FOUND)
            session.delete(db_tag)
            session.commit()
            logger.info(f"Deleted tag: {tag_id}")

    def get(self, tag_id: int) -> Optional[Tag]:
        """Get a tag by ID, or None."""
        with self.session_factory() as session:
            db_tag = session.get(DBTag, tag_id)
            return self._db_to_model(db_tag) if db_tag else None

    def get_by_name(self, name: str) -> Optional[Tag]:
        """Get a tag by name, ignoring case and surrounding whitespace."""
        with self.session_factory() as session:
            db_tag = self._find_by_name(session, name)
            return self._db_to_model(db_tag) if db_tag else None

    def get_all(self) -> List[Tag]:
        """Get all tags ordered by name."""
        with self.session_factory() as session:
            db_tags = session.scalars(select(DBTag).order_by(func.lower(DBTag.name))).all()
            return [self._db_to_model(t) for t in db_tags]

    def get_with_counts(self) -> Dict[str, int]:
        """Get all tags with their usage counts.

        Returns:
            Dictionary mapping tag names to their note counts.
        """
        with self.session_factory() as session:
            result = session.execute(
                select(DBTag.name, func.count(DBNoteTag.note_id))
                .select_from(DBTag)
                .outerjoin(DBNoteTag, DBTag.id == DBNoteTag.tag_id)
                .group_by(DBTag.id, DBTag.name)
                .order_by(func.lower(DBTag.name))
            ).all()
            return {name: count for name, count in result}

    def search(self, query: str) -> List[Tag]:
        """Tags whose name contains ``query``, ignoring case."""
        pattern = f"%{escape_like_pattern(query.strip())}%"
        with self.session_factory() as session:
            db_tags = session.scalars(
                select(DBTag)
                .where(DBTag.name.ilike(pattern, escape='\\'))
                .order_by(func.lower(DBTag.name))
            ).all()
            return [self._db_to_model(t) for t in db_tags]

    @traced("tag.add_to_note")
    def add_to_note(self, note_id: int, tag_id: int) -> NoteTag:
        """Tag a note. Tagging twice returns the existing assignment.

        Raises:
            NoteNotFoundError: If the note does not exist.
            TagError: If the tag does not exist.
        """
        with self.session_factory() as session:
            if session.get(DBNote, note_id) is None:
                raise NoteNotFoundError(note_id)
            if session.get(DBTag, tag_id) is None:
                raise TagError(f"Tag '{tag_id}' not found", code=ErrorCode.TAG_NOT_FOUND)

            link = session.scalar(
                select(DBNoteTag).where(DBNoteTag.note_id == note_id, DBNoteTag.tag_id == tag_id)
            )
            if link is None:
                link = DBNoteTag(note_id=note_id, tag_id=tag_id, created_at=utc_now())
                session.add(link)
                session.commit()
                logger.info(f"Tagged note {note_id} with tag {tag_id}")
            return NoteTag(
                note_id=link.note_id,
                tag_id=link.tag_id,
                created_at=ensure_timezone_aware(link.created_at),
            )

    @traced("tag.remove_from_note")
    def remove_from_note(self, note_id: int, tag_id: int) -> bool:
        """Untag a note.

        Returns:
            True if the note had the tag.
        """
        with self.session_factory() as session:
            link = session.scalar(
                select(DBNoteTag).where(DBNoteTag.note_id == note_id, DBNoteTag.tag_id == tag_id)
            )
            if link is None:
                return False
            session.delete(link)
            session.commit()
            logger.info(f"Removed tag {tag_id} from note {note_id}")
            return True

    def get_for_note(self, note_id: int) -> List[Tag]:
        """Tags of one note, ordered by name."""
        with self.session_factory() as session:
            db_tags = session.scalars(
                select(DBTag)
                .join(DBNoteTag, DBNoteTag.tag_id == DBTag.id)
                .where(DBNoteTag.note_id == note_id)
                .order_by(func.lower(DBTag.name))
            ).all()
            return [self._db_to_model(t) for t in db_tags]

    @staticmethod
    def _find_by_name(session, name: str) -> Optional[DBTag]:
        return session.scalar(
            select(DBTag).where(func.lower(DBTag.name) == name.strip().lower())
        )

    @staticmethod
    def _db_to_model(db_tag: DBTag) -> Tag:
        """Convert DBTag to Tag model."""
        return Tag(
            id=db_tag.id,
            name=db_tag.name,
            color=db_tag.color,
            description=db_tag.description,
            created_at=ensure_timezone_aware(db_tag.created_at),
            updated_at=ensure_timezone_aware(db_tag.updated_at),
        )
