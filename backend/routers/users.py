# routers/users.py — Caller identity
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from auth import get_current_user
from models import User

router = APIRouter(prefix="/api/v1", tags=["Users"])


def _ts(dt) -> Optional[str]:
    if dt is None:
        return None
    return dt.isoformat() if isinstance(dt, datetime) else str(dt)


class UserOut(BaseModel):
    id: int
    username: str
    type: str
    email: Optional[str] = None
    created_at: str


@router.get("/user", response_model=UserOut)
async def get_me(user: User = Depends(get_current_user)):
    """The user the bearer token resolves to"""
    return UserOut(
        id=user.id,
        username=user.username,
        type=user.type,
        email=user.email,
        created_at=_ts(user.created_at),
    )
