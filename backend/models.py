# models.py — Database models for fivetwo
# - Integer primary keys (ids are exposed to agents and shell tools)
# - Enum vocabularies stored as plain strings, guarded by CHECK constraints
# - Cards are never hard-deleted; comments are soft-deleted via status
# - cards_fts: SQLite FTS5 index over cards(title, description), rowid = card id

from datetime import datetime, timezone
from enum import Enum as PyEnum
from sqlalchemy import (
    Column, String, DateTime, Integer, ForeignKey, Text, Index,
    UniqueConstraint, CheckConstraint, DDL, event,
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


def utcnow():
    return datetime.now(timezone.utc)


def _in_clause(column: str, enum_cls) -> str:
    values = ", ".join(f"'{member.value}'" for member in enum_cls)
    return f"{column} IN ({values})"


# ============================================================
# ENUMS
# ============================================================

class UserType(str, PyEnum):
    HUMAN = "human"
    AI = "ai"


class CardStatus(str, PyEnum):
    BACKLOG = "backlog"
    IN_PROGRESS = "in_progress"
    REVIEW = "review"
    BLOCKED = "blocked"
    DONE = "done"
    WONT_DO = "wont_do"
    INVALID = "invalid"


TERMINAL_STATUSES = frozenset(s.value for s in (CardStatus.DONE, CardStatus.WONT_DO, CardStatus.INVALID))


class CardType(str, PyEnum):
    STORY = "story"
    BUG = "bug"
    TASK = "task"
    EPIC = "epic"
    SPIKE = "spike"
    CHORE = "chore"


class CommentStatus(str, PyEnum):
    CREATED = "created"
    DELETED = "deleted"


class ReferenceType(str, PyEnum):
    BLOCKS = "blocks"
    BLOCKED_BY = "blocked_by"
    RELATES_TO = "relates_to"
    DUPLICATES = "duplicates"
    DUPLICATED_BY = "duplicated_by"
    PARENT_OF = "parent_of"
    CHILD_OF = "child_of"
    FOLLOWS = "follows"
    PRECEDES = "precedes"
    CLONES = "clones"
    CLONED_BY = "cloned_by"


DEFAULT_STATUS = CardStatus.BACKLOG
DEFAULT_PRIORITY = 50
DEFAULT_CARD_TYPE = CardType.TASK
MIN_PRIORITY = 0
MAX_PRIORITY = 100


# ============================================================
# PROJECTS & USERS
# ============================================================

class Project(Base):
    """A trackable repository. Immutable after creation."""
    __tablename__ = "projects"

    id = Column(Integer, primary_key=True)
    name = Column(String, nullable=False)
    repository_url = Column(String, nullable=False, unique=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    cards = relationship("Card", back_populates="project")


class User(Base):
    """An actor: a human or an AI agent"""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True)
    username = Column(String, nullable=False, unique=True)
    type = Column(String, nullable=False)
    email = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    __table_args__ = (
        CheckConstraint(_in_clause("type", UserType), name="ck_users_type"),
    )


# ============================================================
# CARDS
# ============================================================

class Card(Base):
    """A unit of work. `version` is bumped on every meaningful mutation."""
    __tablename__ = "cards"

    id = Column(Integer, primary_key=True)
    project_id = Column(Integer, ForeignKey("projects.id"), nullable=False, index=True)
    card_number = Column(Integer, nullable=False)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    status = Column(String, nullable=False, default=DEFAULT_STATUS.value)
    priority = Column(Integer, nullable=False, default=DEFAULT_PRIORITY)
    type = Column(String, nullable=False, default=DEFAULT_CARD_TYPE.value)
    created_by = Column(Integer, ForeignKey("users.id"), nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    version = Column(Integer, nullable=False, default=1)

    project = relationship("Project", back_populates="cards")
    creator = relationship("User", foreign_keys=[created_by])
    comments = relationship("Comment", back_populates="card", order_by="Comment.id")

    __table_args__ = (
        CheckConstraint(_in_clause("status", CardStatus), name="ck_cards_status"),
        CheckConstraint(_in_clause("type", CardType), name="ck_cards_type"),
        CheckConstraint(
            f"priority >= {MIN_PRIORITY} AND priority <= {MAX_PRIORITY}",
            name="ck_cards_priority",
        ),
        CheckConstraint("version >= 1", name="ck_cards_version"),
        Index("idx_cards_project_card_number", "project_id", "card_number", unique=True),
        Index("idx_cards_status", "status"),
    )


class Comment(Base):
    """A comment on a card. Deletion flips status, the row is kept."""
    __tablename__ = "comments"

    id = Column(Integer, primary_key=True)
    card_id = Column(Integer, ForeignKey("cards.id"), nullable=False, index=True)
    message = Column(Text, nullable=False)
    created_by = Column(Integer, ForeignKey("users.id"), nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    status = Column(String, nullable=False, default=CommentStatus.CREATED.value)

    card = relationship("Card", back_populates="comments")
    author = relationship("User", foreign_keys=[created_by])

    __table_args__ = (
        CheckConstraint(_in_clause("status", CommentStatus), name="ck_comments_status"),
    )


class CardReference(Base):
    """Directed, typed edge between two distinct cards"""
    __tablename__ = "card_references"

    id = Column(Integer, primary_key=True, autoincrement=True)
    source_card_id = Column(Integer, ForeignKey("cards.id"), nullable=False)
    target_card_id = Column(Integer, ForeignKey("cards.id"), nullable=False)
    reference_type = Column(String, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    source = relationship("Card", foreign_keys=[source_card_id])
    target = relationship("Card", foreign_keys=[target_card_id])

    __table_args__ = (
        UniqueConstraint(
            "source_card_id", "target_card_id", "reference_type",
            name="uq_card_references_edge",
        ),
        CheckConstraint("source_card_id != target_card_id", name="ck_card_references_distinct"),
        CheckConstraint(_in_clause("reference_type", ReferenceType), name="ck_card_references_type"),
        Index("idx_card_references_source", "source_card_id"),
        Index("idx_card_references_target", "target_card_id"),
        {"sqlite_autoincrement": True},
    )


class CardAudit(Base):
    """Append-only before/after record written for every card update"""
    __tablename__ = "cards_audit"

    id = Column(Integer, primary_key=True)
    card_id = Column(Integer, ForeignKey("cards.id"), nullable=False, index=True)
    old_status = Column(String, nullable=True)
    new_status = Column(String, nullable=True)
    old_title = Column(String, nullable=True)
    new_title = Column(String, nullable=True)
    old_description = Column(Text, nullable=True)
    new_description = Column(Text, nullable=True)
    old_priority = Column(Integer, nullable=True)
    new_priority = Column(Integer, nullable=True)
    changed_by = Column(Integer, ForeignKey("users.id"), nullable=False)
    changed_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)


# ============================================================
# FULL-TEXT INDEX
# ============================================================

CARDS_FTS_TABLE = "cards_fts"

event.listen(
    Card.__table__,
    "after_create",
    DDL(
        f"CREATE VIRTUAL TABLE IF NOT EXISTS {CARDS_FTS_TABLE} "
        "USING fts5(title, description)"
    ).execute_if(dialect="sqlite"),
)
event.listen(
    Card.__table__,
    "before_drop",
    DDL(f"DROP TABLE IF EXISTS {CARDS_FTS_TABLE}").execute_if(dialect="sqlite"),
)
