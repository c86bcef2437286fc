"""SQLAlchemy database models for cardnote."""
import datetime

from sqlalchemy import (JSON, Column, DateTime, ForeignKey, Integer, String, Table,
                        Text, create_engine, event)
from sqlalchemy.orm import declarative_base, relationship, sessionmaker
from sqlalchemy.pool import QueuePool

from cardnote.config import USER_TAG_NAMESPACE, config

# Create base class for SQLAlchemy models
Base = declarative_base()

# Association table for tags and cards
card_tags = Table(
    "card_tags",
    Base.metadata,
    Column("card_id", Integer, ForeignKey("cards.id", ondelete="CASCADE"), primary_key=True),
    Column("tag_id", Integer, ForeignKey("tags.id", ondelete="CASCADE"), primary_key=True),
)


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


class DBProject(Base):
    """Database model for a project."""
    __tablename__ = "projects"
    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    def __repr__(self) -> str:
        """Return string representation of project."""
        return f"<Project(id={self.id}, name='{self.name}')>"


class DBCard(Base):
    """Database model for a card."""
    __tablename__ = "cards"
    id = Column(Integer, primary_key=True, autoincrement=True)
    project_id = Column(Integer, ForeignKey("projects.id"), nullable=False, index=True)
    title = Column(String(255), nullable=True, index=True)
    summary = Column(Text, nullable=True)
    content = Column(Text, nullable=False, default="")
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    # Relationships
    tags = relationship(
        "DBTag", secondary=card_tags, back_populates="cards"
    )

    def __repr__(self) -> str:
        """Return string representation of card."""
        return f"<Card(id={self.id}, title='{self.title}')>"


class DBTag(Base):
    """Database model for a tag.

    Backlink annotations are tags in the reserved reference namespace whose
    ``annotation`` column carries the structured payload.
    """
    __tablename__ = "tags"
    id = Column(Integer, primary_key=True, autoincrement=True)
    project_id = Column(Integer, ForeignKey("projects.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    namespace = Column(String(100), nullable=False, default=USER_TAG_NAMESPACE, index=True)
    color = Column(String(50), nullable=True)
    annotation = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    # Relationships
    cards = relationship(
        "DBCard", secondary=card_tags, back_populates="tags"
    )

    def __repr__(self) -> str:
        """Return string representation of tag."""
        return f"<Tag(id={self.id}, namespace='{self.namespace}', name='{self.name}')>"


def _set_sqlite_pragma(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    # WAL mode: writes go to separate journal, preventing corruption on crash
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA synchronous=NORMAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def init_db(db_url=None):
    """Initialize the database with hardened configuration.

    Applies SQLite settings for crash resilience:
    - WAL (Write-Ahead Logging) mode for atomic writes
    - NORMAL synchronous mode
    - Foreign keys enforced so deleting a tag drops its card associations
    - QueuePool with pre-ping to detect stale connections

    Args:
        db_url: Database URL. Defaults to the configured SQLite file.

    Returns:
        The configured engine with all tables created.
    """
    engine = create_engine(
        db_url or config.get_db_url(),
        poolclass=QueuePool,
        pool_size=5,
        max_overflow=10,
        pool_timeout=30,
        pool_pre_ping=True,
    )
    event.listen(engine, "connect", _set_sqlite_pragma)

    Base.metadata.create_all(engine)
    return engine


def get_session_factory(engine=None):
    """Get a session factory for the database."""
    if engine is None:
        engine = init_db()
    return sessionmaker(bind=engine, expire_on_commit=False)
