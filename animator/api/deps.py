"""Request dependencies: database session and the calling user.

Callers authenticate with an API key, sent either as ``X-API-Key`` or as a
bearer token carrying the key prefix. In dev mode a request without a key
(or with the dev token) runs as an auto-created dev user.
"""

import hashlib
import logging
from datetime import datetime, timezone
from typing import Annotated, Optional

from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from animator.config import get_settings
from animator.models.api_key import APIKey
from animator.models.database import get_db
from animator.models.user import User

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)

DEV_TOKEN = "dev-token"
API_KEY_PREFIX = "animator_sk_"


def hash_api_key(key: str) -> str:
    return hashlib.sha256(key.encode()).hexdigest()


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def extract_api_key(
    credentials: Optional[HTTPAuthorizationCredentials], x_api_key: Optional[str]
) -> str | None:
    """The API key sent with the request, header first."""
    if x_api_key is not None:
        return x_api_key
    if credentials is not None and credentials.credentials.startswith(API_KEY_PREFIX):
        return credentials.credentials
    return None


async def get_user_by_api_key(db: AsyncSession, raw_key: str) -> User | None:
    """Resolve a key to its owner, stamping ``last_used_at``.

    Returns None for unknown, revoked or expired keys.
    """
    result = await db.execute(select(APIKey).where(APIKey.key_hash == hash_api_key(raw_key)))
    record = result.scalar_one_or_none()
    if record is None or not record.is_usable():
        return None

    record.last_used_at = datetime.now(timezone.utc)
    return await db.get(User, record.user_id)


async def _dev_user(db: AsyncSession) -> User:
    settings = get_settings()
    result = await db.execute(select(User).where(User.email == settings.dev_user_email))
    user = result.scalar_one_or_none()
    if user is None:
        user = User(email=settings.dev_user_email, name=settings.dev_user_name)
        db.add(user)
        await db.flush()
        logger.info(f"Created dev user {settings.dev_user_email}")
    return user


async def get_current_user(
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(bearer_scheme)],
    db: Annotated[AsyncSession, Depends(get_db)],
    x_api_key: Annotated[Optional[str], Header(alias="X-API-Key")] = None,
) -> User:
    raw_key = extract_api_key(credentials, x_api_key)
    if raw_key is not None:
        if not raw_key.startswith(API_KEY_PREFIX):
            raise _unauthorized("Invalid API key format")
        user = await get_user_by_api_key(db, raw_key)
        if user is None:
            raise _unauthorized("Invalid, revoked or expired API key")
        return user

    if get_settings().dev_mode:
        token = credentials.credentials if credentials else None
        if token is None or token == DEV_TOKEN:
            return await _dev_user(db)

    raise _unauthorized("Missing or invalid authentication token")


CurrentUser = Annotated[User, Depends(get_current_user)]
DbSession = Annotated[AsyncSession, Depends(get_db)]
