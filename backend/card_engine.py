"""
fivetwo — Card engine

Owns every card mutation: creation, the optimistic-concurrency update
protocol, comments, and the audit trail. Each operation runs as one session
transaction that carries the base write, the version bump, the search reindex
and the audit row together; any failure rolls all of them back.

Version rules:
- a new card starts at version 1
- update_card bumps it only when title, description, status or priority
  actually change value
- add_comment / delete_comment bump the parent card
- reference add/remove bump the source card (see reference_graph)
"""

import logging
from typing import Any, Dict, List, Optional

from pydantic import BaseModel
from sqlalchemy import select, update, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from card_search import reindex_card
from errors import NotFound, InvalidArgument, AlreadyExists, VersionConflict
from models import (
    Card, Comment, CardAudit, CardStatus, CardType, CommentStatus,
    DEFAULT_STATUS, DEFAULT_PRIORITY, DEFAULT_CARD_TYPE, MIN_PRIORITY, MAX_PRIORITY,
    TERMINAL_STATUSES, utcnow,
)
from project_registry import get_project

logger = logging.getLogger("fivetwo.cards")

AUDITED_FIELDS = ("title", "description", "status", "priority")
INDEXED_FIELDS = ("title", "description")
MAX_WRITE_ATTEMPTS = 5


class CardPatch(BaseModel):
    """Partial card update. Only fields present in the payload are applied;
    an explicit null description clears it."""
    title: Optional[str] = None
    description: Optional[str] = None
    status: Optional[str] = None
    priority: Optional[int] = None

    def supplied(self) -> Dict[str, Any]:
        return {name: getattr(self, name) for name in AUDITED_FIELDS if name in self.model_fields_set}


# ============================================================
# VALIDATION
# ============================================================

def validate_status(value: Any) -> str:
    try:
        return CardStatus(value).value
    except ValueError:
        allowed = ", ".join(s.value for s in CardStatus)
        raise InvalidArgument(f"Invalid status. Must be one of: {allowed}")


def validate_card_type(value: Any) -> str:
    try:
        return CardType(value).value
    except ValueError:
        allowed = ", ".join(t.value for t in CardType)
        raise InvalidArgument(f"Invalid type. Must be one of: {allowed}")


def validate_priority(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or not MIN_PRIORITY <= value <= MAX_PRIORITY:
        raise InvalidArgument(f"Priority must be between {MIN_PRIORITY} and {MAX_PRIORITY}")
    return value


def validate_title(value: Any) -> str:
    if not isinstance(value, str) or not value.strip():
        raise InvalidArgument("title is required")
    return value


# ============================================================
# HELPERS
# ============================================================

async def bump_version(db: AsyncSession, card_id: int) -> None:
    """Increment a card's version inside the caller's transaction"""
    await db.execute(
        update(Card)
        .where(Card.id == card_id)
        .values(version=Card.version + 1, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )


def foreign_key_failed(exc: IntegrityError) -> bool:
    """True when the store rejected a write because a parent row is missing"""
    return "FOREIGN KEY constraint failed" in str(exc.orig)


async def _current_version(db: AsyncSession, card_id: int) -> int:
    result = await db.execute(select(Card.version).where(Card.id == card_id))
    version = result.scalar_one_or_none()
    if version is None:
        raise NotFound("Card not found")
    return version


async def get_card(db: AsyncSession, card_id: int) -> Card:
    result = await db.execute(
        select(Card).where(Card.id == card_id).execution_options(populate_existing=True)
    )
    card = result.scalar_one_or_none()
    if not card:
        raise NotFound("Card not found")
    return card


# ============================================================
# CARDS
# ============================================================

async def create_card(
    db: AsyncSession,
    project_id: int,
    title: str,
    created_by: int,
    description: Optional[str] = None,
    status: Optional[str] = None,
    priority: Optional[int] = None,
    card_type: Optional[str] = None,
) -> Card:
    """Create a card with the next per-project card number, at version 1"""
    await get_project(db, project_id)

    title = validate_title(title)
    status = validate_status(status) if status is not None else DEFAULT_STATUS.value
    priority = validate_priority(priority) if priority is not None else DEFAULT_PRIORITY
    card_type = validate_card_type(card_type) if card_type is not None else DEFAULT_CARD_TYPE.value

    max_result = await db.execute(
        select(func.max(Card.card_number)).where(Card.project_id == project_id)
    )
    card_number = (max_result.scalar() or 0) + 1

    now = utcnow()
    card = Card(
        project_id=project_id,
        card_number=card_number,
        title=title,
        description=description,
        status=status,
        priority=priority,
        type=card_type,
        created_by=created_by,
        created_at=now,
        updated_at=now,
        version=1,
    )
    db.add(card)
    try:
        await db.flush()
        await reindex_card(db, card.id, card.title, card.description)
        await db.commit()
    except IntegrityError as exc:
        await db.rollback()
        logger.warning(f"Card insert rejected in project {project_id}: {exc.orig}")
        if foreign_key_failed(exc):
            raise NotFound("User not found") from exc
        raise AlreadyExists(
            f"Card number {card_number} already allocated in project {project_id}; retry"
        ) from exc

    await db.refresh(card)
    logger.info(f"Card {card.id} (#{card.card_number}) created in project {project_id} by user {created_by}")
    return card


async def update_card(
    db: AsyncSession,
    card_id: int,
    patch: CardPatch,
    changed_by: int,
    caller_version: Optional[int] = None,
) -> Card:
    """Apply a partial update under optimistic concurrency and audit it.

    With caller_version the write only lands if the stored version still
    matches; otherwise VersionConflict carries the current version. Without
    it the update is last-writer-wins: the supplied fields always overwrite,
    but version, index and audit are computed from the row actually replaced.
    """
    card = await get_card(db, card_id)

    values = patch.supplied()
    if "title" in values:
        values["title"] = validate_title(values["title"])
    if "status" in values:
        values["status"] = validate_status(values["status"])
    if "priority" in values:
        values["priority"] = validate_priority(values["priority"])
    if not values:
        raise InvalidArgument("No fields to update")

    for attempt in range(1, MAX_WRITE_ATTEMPTS + 1):
        if attempt > 1:
            card = await get_card(db, card_id)

        if caller_version is not None and caller_version != card.version:
            logger.warning(
                f"Version conflict on card {card_id}: caller has {caller_version}, "
                f"stored is {card.version} (user {changed_by})"
            )
            raise VersionConflict(card.version)

        if card.status in TERMINAL_STATUSES:
            logger.info(f"Card {card_id} edited while in terminal status '{card.status}'")

        old = {name: getattr(card, name) for name in AUDITED_FIELDS}
        new = {**old, **values}
        changed = [name for name in AUDITED_FIELDS if new[name] != old[name]]

        row_values = dict(values, updated_at=utcnow())
        if changed:
            row_values["version"] = Card.version + 1

        # Guard on the version just read so old/new/changed describe the row replaced
        stmt = (
            update(Card)
            .where(Card.id == card_id, Card.version == card.version)
            .values(**row_values)
            .execution_options(synchronize_session=False)
        )

        try:
            result = await db.execute(stmt)
            if result.rowcount == 0:
                await db.rollback()
                if caller_version is not None:
                    current = await _current_version(db, card_id)
                    logger.warning(f"Version conflict on card {card_id}: lost race, stored is {current}")
                    raise VersionConflict(current)
                logger.info(f"Card {card_id} changed during unversioned update; re-reading (attempt {attempt})")
                continue

            if any(name in changed for name in INDEXED_FIELDS):
                await reindex_card(db, card_id, new["title"], new["description"])

            db.add(CardAudit(
                card_id=card_id,
                old_status=old["status"],
                new_status=new["status"],
                old_title=old["title"],
                new_title=new["title"],
                old_description=old["description"],
                new_description=new["description"],
                old_priority=old["priority"],
                new_priority=new["priority"],
                changed_by=changed_by,
            ))
            await db.commit()
        except IntegrityError as exc:
            await db.rollback()
            logger.warning(f"Card {card_id} update rejected by store: {exc.orig}")
            if foreign_key_failed(exc):
                raise NotFound("User not found") from exc
            raise InvalidArgument(f"Update rejected: {exc.orig}") from exc
        break
    else:
        current = await _current_version(db, card_id)
        logger.warning(f"Card {card_id} kept changing during unversioned update; giving up at version {current}")
        raise VersionConflict(current)

    await db.refresh(card)
    if changed:
        logger.info(
            f"Card {card_id} updated by user {changed_by}: {', '.join(changed)} "
            f"(version {card.version})"
        )
    return card


# ============================================================
# COMMENTS
# ============================================================

async def add_comment(db: AsyncSession, card_id: int, message: str, author_id: int) -> Comment:
    await get_card(db, card_id)
    if not message or not message.strip():
        raise InvalidArgument("message is required")

    comment = Comment(
        card_id=card_id,
        message=message,
        created_by=author_id,
        status=CommentStatus.CREATED.value,
    )
    db.add(comment)
    try:
        await db.flush()
        await bump_version(db, card_id)
        await db.commit()
    except IntegrityError as exc:
        await db.rollback()
        raise NotFound(f"Comment rejected: {exc.orig}") from exc

    await db.refresh(comment)
    logger.info(f"Comment {comment.id} added to card {card_id} by user {author_id}")
    return comment


async def delete_comment(db: AsyncSession, comment_id: int) -> Comment:
    """Soft-delete: the status flips to deleted and the message stays readable"""
    comment = await get_comment(db, comment_id)
    if comment.status == CommentStatus.DELETED.value:
        raise InvalidArgument("Comment already deleted")

    flipped = await db.execute(
        update(Comment)
        .where(Comment.id == comment_id, Comment.status != CommentStatus.DELETED.value)
        .values(status=CommentStatus.DELETED.value)
        .execution_options(synchronize_session=False)
    )
    if flipped.rowcount == 0:
        await db.rollback()
        raise InvalidArgument("Comment already deleted")

    await bump_version(db, comment.card_id)
    await db.commit()
    await db.refresh(comment)
    logger.info(f"Comment {comment_id} on card {comment.card_id} deleted")
    return comment


async def list_comments(db: AsyncSession, card_id: int) -> List[Comment]:
    await get_card(db, card_id)
    result = await db.execute(
        select(Comment)
        .where(Comment.card_id == card_id, Comment.status == CommentStatus.CREATED.value)
        .order_by(Comment.created_at.asc(), Comment.id.asc())
    )
    return list(result.scalars().all())


async def get_comment(db: AsyncSession, comment_id: int) -> Comment:
    result = await db.execute(
        select(Comment).where(Comment.id == comment_id).execution_options(populate_existing=True)
    )
    comment = result.scalar_one_or_none()
    if not comment:
        raise NotFound("Comment not found")
    return comment


# ============================================================
# AUDIT
# ============================================================

async def list_audit(db: AsyncSession, card_id: int) -> List[CardAudit]:
    await get_card(db, card_id)
    result = await db.execute(
        select(CardAudit).where(CardAudit.card_id == card_id).order_by(CardAudit.id.asc())
    )
    return list(result.scalars().all())
