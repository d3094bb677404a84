# routers/cards.py — Cards, comments, audit trail and card references
from datetime import datetime
from typing import Optional, List

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from auth import get_current_user
from database import get_db_session
from models import User, Card, Comment, CardAudit
import card_engine
import reference_graph
from card_engine import CardPatch
from card_search import CardFilters, list_cards as search_list_cards

router = APIRouter(prefix="/api/v1", tags=["Cards"])


# ============================================================
# SCHEMAS
# ============================================================

class CardCreate(BaseModel):
    project_id: int
    title: str
    description: Optional[str] = None
    status: Optional[str] = None
    priority: Optional[int] = None
    type: Optional[str] = None


class CardUpdate(CardPatch):
    version: Optional[int] = None  # last version the caller observed


class CardOut(BaseModel):
    id: int
    project_id: int
    card_number: int
    title: str
    description: Optional[str] = None
    status: str
    priority: int
    type: str
    created_by: int
    created_at: str
    updated_at: str
    version: int


class CommentCreate(BaseModel):
    message: str


class CommentOut(BaseModel):
    id: int
    card_id: int
    message: str
    created_by: int
    created_at: str
    status: str


class AuditOut(BaseModel):
    id: int
    card_id: int
    old_status: Optional[str] = None
    new_status: Optional[str] = None
    old_title: Optional[str] = None
    new_title: Optional[str] = None
    old_description: Optional[str] = None
    new_description: Optional[str] = None
    old_priority: Optional[int] = None
    new_priority: Optional[int] = None
    changed_by: int
    changed_at: str


class ReferenceCreate(BaseModel):
    target_card_id: int
    reference_type: str


class ReferenceOut(BaseModel):
    id: int
    source_card_id: int
    target_card_id: int
    reference_type: str
    direction: str
    label: str
    source_title: str
    target_title: str
    created_at: Optional[str] = None


class ReferenceListOut(BaseModel):
    card_id: int
    outgoing: List[ReferenceOut] = []
    incoming: List[ReferenceOut] = []


# ============================================================
# HELPERS
# ============================================================

def _ts(dt) -> Optional[str]:
    if dt is None:
        return None
    return dt.isoformat() if isinstance(dt, datetime) else str(dt)


def _card_to_out(card: Card) -> CardOut:
    return CardOut(
        id=card.id,
        project_id=card.project_id,
        card_number=card.card_number,
        title=card.title,
        description=card.description,
        status=card.status,
        priority=card.priority,
        type=card.type,
        created_by=card.created_by,
        created_at=_ts(card.created_at),
        updated_at=_ts(card.updated_at),
        version=card.version,
    )


def _comment_to_out(comment: Comment) -> CommentOut:
    return CommentOut(
        id=comment.id,
        card_id=comment.card_id,
        message=comment.message,
        created_by=comment.created_by,
        created_at=_ts(comment.created_at),
        status=comment.status,
    )


def _audit_to_out(row: CardAudit) -> AuditOut:
    return AuditOut(
        id=row.id,
        card_id=row.card_id,
        old_status=row.old_status,
        new_status=row.new_status,
        old_title=row.old_title,
        new_title=row.new_title,
        old_description=row.old_description,
        new_description=row.new_description,
        old_priority=row.old_priority,
        new_priority=row.new_priority,
        changed_by=row.changed_by,
        changed_at=_ts(row.changed_at),
    )


# ============================================================
# CARD ENDPOINTS
# ============================================================

@router.get("/cards", response_model=List[CardOut])
async def list_cards(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
    id: Optional[int] = None,
    project_id: Optional[int] = None,
    status: Optional[str] = None,
    priority: Optional[int] = None,
    card_type: Optional[str] = Query(None, alias="type"),
    search: Optional[str] = None,
):
    """List cards by exact filters, or rank them by full-text `search`.

    When `search` is given every other filter is ignored.
    """
    filters = CardFilters(
        id=id, project_id=project_id, status=status,
        priority=priority, type=card_type, search=search or None,
    )
    cards = await search_list_cards(db, filters)
    return [_card_to_out(c) for c in cards]


@router.post("/cards", response_model=CardOut, status_code=201)
async def create_card(
    data: CardCreate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Create a card in a project"""
    card = await card_engine.create_card(
        db,
        project_id=data.project_id,
        title=data.title,
        created_by=user.id,
        description=data.description,
        status=data.status,
        priority=data.priority,
        card_type=data.type,
    )
    return _card_to_out(card)


@router.get("/cards/{card_id}", response_model=CardOut)
async def get_card(
    card_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    return _card_to_out(await card_engine.get_card(db, card_id))


@router.patch("/cards/{card_id}", response_model=CardOut)
async def update_card(
    card_id: int,
    data: CardUpdate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Partially update a card. Send `version` to guard against lost updates;
    a stale version answers 409 with `current_version`."""
    card = await card_engine.update_card(
        db, card_id, data, changed_by=user.id, caller_version=data.version,
    )
    return _card_to_out(card)


@router.get("/cards/{card_id}/audit", response_model=List[AuditOut])
async def get_card_audit(
    card_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    rows = await card_engine.list_audit(db, card_id)
    return [_audit_to_out(r) for r in rows]


# ============================================================
# COMMENT ENDPOINTS
# ============================================================

@router.get("/cards/{card_id}/comments", response_model=List[CommentOut])
async def list_comments(
    card_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    comments = await card_engine.list_comments(db, card_id)
    return [_comment_to_out(c) for c in comments]


@router.post("/cards/{card_id}/comments", response_model=CommentOut, status_code=201)
async def add_comment(
    card_id: int,
    data: CommentCreate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    comment = await card_engine.add_comment(db, card_id, data.message, author_id=user.id)
    return _comment_to_out(comment)


@router.delete("/comments/{comment_id}")
async def delete_comment(
    comment_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Soft-delete a comment"""
    comment = await card_engine.delete_comment(db, comment_id)
    return {"success": True, "comment_id": comment.id, "status": comment.status}


# ============================================================
# REFERENCE ENDPOINTS
# ============================================================

@router.get("/reference-types")
async def list_reference_types(user: User = Depends(get_current_user)):
    return {"reference_types": reference_graph.reference_types()}


@router.get("/cards/{card_id}/references", response_model=ReferenceListOut)
async def list_references(
    card_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    listing = await reference_graph.list_references(db, card_id)
    return listing.to_dict()


@router.post("/cards/{card_id}/references", response_model=ReferenceOut, status_code=201)
async def create_reference(
    card_id: int,
    data: ReferenceCreate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    ref = await reference_graph.create_reference(
        db, card_id, data.target_card_id, data.reference_type,
    )
    return ref.to_dict()


@router.delete("/cards/{card_id}/references/{reference_id}")
async def delete_reference(
    card_id: int,
    reference_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    await reference_graph.delete_reference(db, card_id, reference_id)
    return {"success": True, "reference_id": reference_id}
