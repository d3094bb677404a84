# auth.py — Bearer-token authentication for fivetwo
# - HS256 JWT whose `sub` claim is the numeric user id
# - Tokens are issued offline by the CLI (`fivetwo auth <username>`)
# - The card engine only ever sees the resolved user id

import os
import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any

from jose import jwt, JWTError, ExpiredSignatureError
from fastapi import HTTPException, Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db_session
from models import User

logger = logging.getLogger("fivetwo.auth")

# ============================================================
# CONFIGURATION
# ============================================================

MIN_SECRET_LENGTH = 32

SECRET_KEY = os.getenv("JWT_SECRET_KEY", "")
if len(SECRET_KEY) < MIN_SECRET_LENGTH:
    SECRET_KEY = secrets.token_urlsafe(64)
    logger.warning(
        "JWT_SECRET_KEY not set or shorter than %d chars. Generated ephemeral key; "
        "tokens will not survive a restart.", MIN_SECRET_LENGTH,
    )

ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_DAYS = int(os.getenv("ACCESS_TOKEN_EXPIRE_DAYS", "7"))

security = HTTPBearer()


# ============================================================
# AUTH SERVICE
# ============================================================

class AuthService:
    """Token issuance and verification"""

    @staticmethod
    def create_access_token(user_id: int, expires_delta: Optional[timedelta] = None) -> str:
        now = datetime.now(timezone.utc)
        payload = {
            "sub": str(user_id),
            "iat": now,
            "exp": now + (expires_delta or timedelta(days=ACCESS_TOKEN_EXPIRE_DAYS)),
        }
        return jwt.encode(payload, SECRET_KEY, algorithm=ALGORITHM)

    @staticmethod
    def verify_token(token: str) -> Dict[str, Any]:
        try:
            return jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
        except ExpiredSignatureError:
            raise HTTPException(status_code=401, detail="Token expired")
        except JWTError:
            raise HTTPException(status_code=401, detail="Invalid token")

    @staticmethod
    def user_id_from_payload(payload: Dict[str, Any]) -> int:
        try:
            return int(payload["sub"])
        except (KeyError, TypeError, ValueError):
            raise HTTPException(status_code=401, detail="Invalid token")


# ============================================================
# FASTAPI DEPENDENCIES
# ============================================================

async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: AsyncSession = Depends(get_db_session),
) -> User:
    payload = AuthService.verify_token(credentials.credentials)
    user_id = AuthService.user_id_from_payload(payload)

    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if not user:
        raise HTTPException(status_code=401, detail="User not found")
    return user
