"""
fivetwo — Card search

Two read paths over the cards table:
- an exact-filter scan (AND of the supplied predicates), ordered by
  priority desc, created_at desc
- a ranked full-text match against cards_fts, where a title hit weighs ten
  times a description hit (bm25 column weights)

When a search string is present every other filter is dropped. Existing
clients depend on that, so it is kept and logged rather than changed.
"""

import logging
from dataclasses import dataclass, fields
from typing import List, Optional

from sqlalchemy import select, delete, insert, func, literal_column, table, column
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from errors import InvalidArgument
from models import Card, CARDS_FTS_TABLE

logger = logging.getLogger("fivetwo.search")

TITLE_WEIGHT = 10.0
DESCRIPTION_WEIGHT = 1.0

# sqlite error text produced by a malformed MATCH expression
QUERY_ERROR_MARKERS = ("fts5", "no such column", "unterminated string", "unknown special query")

cards_fts = table(CARDS_FTS_TABLE, column("rowid"), column("title"), column("description"))


@dataclass
class CardFilters:
    """Optional ListCards predicates; None means "not supplied"."""
    id: Optional[int] = None
    project_id: Optional[int] = None
    status: Optional[str] = None
    priority: Optional[int] = None
    type: Optional[str] = None
    search: Optional[str] = None

    def supplied(self) -> List[str]:
        return [f.name for f in fields(self) if getattr(self, f.name) is not None]


async def reindex_card(db: AsyncSession, card_id: int, title: str, description: Optional[str]) -> None:
    """Replace the full-text row for a card. Runs inside the caller's transaction."""
    await db.execute(delete(cards_fts).where(cards_fts.c.rowid == card_id))
    await db.execute(
        insert(cards_fts).values(rowid=card_id, title=title, description=description)
    )


async def list_cards(db: AsyncSession, filters: CardFilters) -> List[Card]:
    if filters.search:
        ignored = [name for name in filters.supplied() if name != "search"]
        if ignored:
            logger.info("Full-text search ignores filters: %s", ", ".join(ignored))
        return await search_cards(db, filters.search)

    stmt = select(Card)
    if filters.id is not None:
        stmt = stmt.where(Card.id == filters.id)
    if filters.project_id is not None:
        stmt = stmt.where(Card.project_id == filters.project_id)
    if filters.status is not None:
        stmt = stmt.where(Card.status == filters.status)
    if filters.priority is not None:
        stmt = stmt.where(Card.priority == filters.priority)
    if filters.type is not None:
        stmt = stmt.where(Card.type == filters.type)
    stmt = stmt.order_by(Card.priority.desc(), Card.created_at.desc(), Card.id.asc())

    result = await db.execute(stmt)
    return list(result.scalars().all())


async def search_cards(db: AsyncSession, query: str) -> List[Card]:
    """Ranked full-text match; best match first"""
    fts = literal_column(CARDS_FTS_TABLE)
    rank = func.bm25(fts, TITLE_WEIGHT, DESCRIPTION_WEIGHT)
    stmt = (
        select(Card)
        .join(cards_fts, Card.id == cards_fts.c.rowid)
        .where(fts.op("MATCH")(query))
        .order_by(rank.asc(), Card.id.asc())
    )
    try:
        result = await db.execute(stmt)
    except OperationalError as exc:
        reason = str(exc.orig)
        if not any(marker in reason for marker in QUERY_ERROR_MARKERS):
            raise
        await db.rollback()
        logger.warning("Rejected full-text query %r: %s", query, reason)
        raise InvalidArgument(f"Invalid search query: {reason}") from exc
    return list(result.scalars().all())
