"""
fivetwo — Card reference graph

Typed, directed edges between cards. Every stored edge is one-way: creating
A --blocks--> B does not create B --blocked_by--> A. The inverse labels below
only change how an incoming edge is *displayed* to its target card.

Adding or removing an edge bumps the version of the source card only.
No cycle detection or traversal beyond one hop.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import select, delete
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from card_engine import get_card, bump_version, foreign_key_failed
from errors import NotFound, InvalidArgument, AlreadyExists
from models import Card, CardReference, ReferenceType

logger = logging.getLogger("fivetwo.references")

OUTGOING = "outgoing"
INCOMING = "incoming"

# type -> (label seen by the source, label seen by the target)
REFERENCE_LABELS: Dict[ReferenceType, tuple] = {
    ReferenceType.BLOCKS: ("Blocks", "Blocked by"),
    ReferenceType.BLOCKED_BY: ("Blocked by", "Blocks"),
    ReferenceType.RELATES_TO: ("Relates to", "Relates to"),
    ReferenceType.DUPLICATES: ("Duplicates", "Duplicated by"),
    ReferenceType.DUPLICATED_BY: ("Duplicated by", "Duplicates"),
    ReferenceType.PARENT_OF: ("Parent of", "Child of"),
    ReferenceType.CHILD_OF: ("Child of", "Parent of"),
    ReferenceType.FOLLOWS: ("Follows", "Precedes"),
    ReferenceType.PRECEDES: ("Precedes", "Follows"),
    ReferenceType.CLONES: ("Clones", "Cloned by"),
    ReferenceType.CLONED_BY: ("Cloned by", "Clones"),
}


def label_for(reference_type: str, direction: str = OUTGOING) -> str:
    label, inverse = REFERENCE_LABELS[ReferenceType(reference_type)]
    return inverse if direction == INCOMING else label


def reference_types() -> List[Dict[str, str]]:
    return [
        {"type": rt.value, "label": label, "inverse_label": inverse}
        for rt, (label, inverse) in REFERENCE_LABELS.items()
    ]


@dataclass
class ReferenceView:
    """A stored edge as seen from one of its two cards"""
    id: int
    source_card_id: int
    target_card_id: int
    reference_type: str
    direction: str
    source_title: str
    target_title: str
    created_at: Optional[datetime] = None

    @property
    def label(self) -> str:
        return label_for(self.reference_type, self.direction)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "source_card_id": self.source_card_id,
            "target_card_id": self.target_card_id,
            "reference_type": self.reference_type,
            "direction": self.direction,
            "label": self.label,
            "source_title": self.source_title,
            "target_title": self.target_title,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


@dataclass
class CardReferences:
    card_id: int
    outgoing: List[ReferenceView] = field(default_factory=list)
    incoming: List[ReferenceView] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "card_id": self.card_id,
            "outgoing": [r.to_dict() for r in self.outgoing],
            "incoming": [r.to_dict() for r in self.incoming],
        }


def _validate_type(reference_type: Any) -> str:
    try:
        return ReferenceType(reference_type).value
    except ValueError:
        allowed = ", ".join(rt.value for rt in ReferenceType)
        raise InvalidArgument(f"Invalid reference type. Must be one of: {allowed}")


async def create_reference(
    db: AsyncSession, source_id: int, target_id: int, reference_type: str,
) -> ReferenceView:
    source = await get_card(db, source_id)
    target = await get_card(db, target_id)
    if source_id == target_id:
        raise InvalidArgument("A card cannot reference itself (self-reference)")
    reference_type = _validate_type(reference_type)

    existing = await db.execute(
        select(CardReference.id).where(
            CardReference.source_card_id == source_id,
            CardReference.target_card_id == target_id,
            CardReference.reference_type == reference_type,
        )
    )
    if existing.scalar_one_or_none() is not None:
        raise AlreadyExists("Reference already exists")

    ref = CardReference(
        source_card_id=source_id,
        target_card_id=target_id,
        reference_type=reference_type,
    )
    db.add(ref)
    try:
        await db.flush()
        await bump_version(db, source_id)
        await db.commit()
    except IntegrityError as exc:
        await db.rollback()
        logger.warning(f"Reference insert {source_id}->{target_id} ({reference_type}) rejected: {exc.orig}")
        if foreign_key_failed(exc):
            raise NotFound("Card not found") from exc
        raise AlreadyExists("Reference already exists") from exc

    await db.refresh(ref)
    logger.info(f"Reference {ref.id}: card {source_id} {reference_type} card {target_id}")
    return ReferenceView(
        id=ref.id,
        source_card_id=source_id,
        target_card_id=target_id,
        reference_type=reference_type,
        direction=OUTGOING,
        source_title=source.title,
        target_title=target.title,
        created_at=ref.created_at,
    )


async def delete_reference(db: AsyncSession, card_id: int, reference_id: int) -> None:
    result = await db.execute(
        select(CardReference).where(
            CardReference.id == reference_id,
            CardReference.source_card_id == card_id,
        )
    )
    ref = result.scalar_one_or_none()
    if not ref:
        raise NotFound("Reference not found")

    await db.execute(delete(CardReference).where(CardReference.id == reference_id))
    await bump_version(db, card_id)
    await db.commit()
    logger.info(f"Reference {reference_id} removed from card {card_id}")


async def list_references(db: AsyncSession, card_id: int) -> CardReferences:
    card = await get_card(db, card_id)

    outgoing = await db.execute(
        select(CardReference, Card.title)
        .join(Card, Card.id == CardReference.target_card_id)
        .where(CardReference.source_card_id == card_id)
        .order_by(CardReference.created_at.asc(), CardReference.id.asc())
    )
    incoming = await db.execute(
        select(CardReference, Card.title)
        .join(Card, Card.id == CardReference.source_card_id)
        .where(CardReference.target_card_id == card_id)
        .order_by(CardReference.created_at.asc(), CardReference.id.asc())
    )

    listing = CardReferences(card_id=card_id)
    for ref, target_title in outgoing.all():
        listing.outgoing.append(ReferenceView(
            id=ref.id, source_card_id=ref.source_card_id, target_card_id=ref.target_card_id,
            reference_type=ref.reference_type, direction=OUTGOING,
            source_title=card.title, target_title=target_title, created_at=ref.created_at,
        ))
    for ref, source_title in incoming.all():
        listing.incoming.append(ReferenceView(
            id=ref.id, source_card_id=ref.source_card_id, target_card_id=ref.target_card_id,
            reference_type=ref.reference_type, direction=INCOMING,
            source_title=source_title, target_title=card.title, created_at=ref.created_at,
        ))
    return listing
