"""SQLAlchemy database models for the Notetree MCP server."""
import datetime

from sqlalchemy import (Boolean, Column, DateTime, ForeignKey, Integer, String,
                        Text, UniqueConstraint, create_engine, event)
from sqlalchemy.orm import declarative_base, relationship, sessionmaker
from sqlalchemy.pool import QueuePool

from notetree_mcp.config import config

# Create base class for SQLAlchemy models
Base = declarative_base()


def _utc_now() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


class DBFolder(Base):
    """Database model for a folder."""
    __tablename__ = "folders"
    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    # Self-referencing for hierarchy
    parent_id = Column(Integer, ForeignKey("folders.id"), nullable=True, index=True)
    # For ordering within same parent
    position = Column(Integer, default=0, nullable=False)
    is_public = Column(Boolean, default=False, nullable=False)
    is_favorite = Column(Boolean, default=False, nullable=False, index=True)
    created_at = Column(DateTime, default=_utc_now, nullable=False)
    updated_at = Column(DateTime, default=_utc_now, nullable=False)

    # Relationships
    parent = relationship("DBFolder", remote_side=[id], back_populates="children")
    children = relationship("DBFolder", back_populates="parent")
    notes = relationship("DBNote", back_populates="folder")

    def __repr__(self) -> str:
        """Return string representation of folder."""
        return f"<Folder(id={self.id}, name='{self.name}', parent_id={self.parent_id})>"


class DBNote(Base):
    """Database model for a note."""
    __tablename__ = "notes"
    id = Column(Integer, primary_key=True, autoincrement=True)
    title = Column(String(255), nullable=False, index=True)
    content = Column(Text, nullable=False, default="")
    # Can be null for root notes
    folder_id = Column(Integer, ForeignKey("folders.id"), nullable=True, index=True)
    # For ordering within folder
    position = Column(Integer, default=0, nullable=False)
    is_public = Column(Boolean, default=False, nullable=False)
    is_favorite = Column(Boolean, default=False, nullable=False, index=True)
    created_at = Column(DateTime, default=_utc_now, nullable=False)
    updated_at = Column(DateTime, default=_utc_now, nullable=False)

    # Relationships
    folder = relationship("DBFolder", back_populates="notes")
    note_tags = relationship(
        "DBNoteTag", back_populates="note", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        """Return string representation of note."""
        return f"<Note(id={self.id}, title='{self.title}', folder_id={self.folder_id})>"


class DBTag(Base):
    """Database model for a tag."""
    __tablename__ = "tags"
    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), unique=True, nullable=False)
    color = Column(String(7), default="#6b7280", nullable=False)
    description = Column(Text, nullable=True)
    created_at = Column(DateTime, default=_utc_now, nullable=False)
    updated_at = Column(DateTime, default=_utc_now, nullable=False)

    # Relationships
    note_tags = relationship(
        "DBNoteTag", back_populates="tag", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        """Return string representation of tag."""
        return f"<Tag(id={self.id}, name='{self.name}')>"


class DBNoteTag(Base):
    """Database model for the note/tag junction."""
    __tablename__ = "note_tags"
    id = Column(Integer, primary_key=True, autoincrement=True)
    note_id = Column(
        Integer, ForeignKey("notes.id", ondelete="CASCADE"), nullable=False, index=True
    )
    tag_id = Column(
        Integer, ForeignKey("tags.id", ondelete="CASCADE"), nullable=False, index=True
    )
    created_at = Column(DateTime, default=_utc_now, nullable=False)

    note = relationship("DBNote", back_populates="note_tags")
    tag = relationship("DBTag", back_populates="note_tags")

    # A note can't have the same tag twice
    __table_args__ = (
        UniqueConstraint("note_id", "tag_id", name="unique_note_tag"),
    )

    def __repr__(self) -> str:
        """Return string representation of the association."""
        return f"<NoteTag(note_id={self.note_id}, tag_id={self.tag_id})>"


def create_db_engine(url=None):
    """Create an engine with the SQLite pragmas every connection needs.

    - WAL (Write-Ahead Logging) mode for atomic writes
    - NORMAL synchronous mode (good balance of safety vs speed)
    - foreign_keys so ON DELETE CASCADE on note_tags is honoured
    - check_same_thread disabled: sessions are opened from worker threads
    """
    engine = create_engine(
        url or config.get_db_url(),
        poolclass=QueuePool,
        pool_size=5,
        max_overflow=10,
        pool_timeout=30,
        pool_pre_ping=True,
        connect_args={"check_same_thread": False},
    )

    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA synchronous=NORMAL")
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    return engine


def init_db(url=None):
    """Initialize the database schema and return the engine."""
    engine = create_db_engine(url)
    Base.metadata.create_all(engine)
    return engine


def get_session_factory(engine=None):
    """Get a session factory for the database."""
    if engine is None:
        engine = create_db_engine()
    return sessionmaker(bind=engine, expire_on_commit=False)
