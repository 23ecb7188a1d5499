"""
FastAPI dependencies for establishing the caller identity.
"""
from typing import Annotated, Optional
from datetime import datetime, timezone
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database.engine import get_db
from app.features.users.models import User
from app.features.users.auth import verify_jwt_token, get_appwrite_user
from app.features.permissions.exceptions import Unauthenticated


# auto_error=False: a missing header is reported by the enforcement layer
security = HTTPBearer(auto_error=False)


async def get_optional_user(
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(security)],
    db: Annotated[AsyncSession, Depends(get_db)]
) -> Optional[User]:
    """
    Resolve the caller from the bearer token, or None when no token is sent.

    This dependency:
    1. Extracts JWT from Authorization header
    2. Decodes it and reads the Appwrite user id
    3. Looks up or creates the user in the local database
    4. Updates last_login_at timestamp
    """
    if credentials is None:
        return None

    payload = verify_jwt_token(credentials.credentials)
    appwrite_user_id = payload.get("userId")
    if not appwrite_user_id:
        raise Unauthenticated("Invalid token payload")

    result = await db.execute(
        select(User).where(User.appwrite_id == appwrite_user_id)
    )
    user = result.scalar_one_or_none()

    now = datetime.now(timezone.utc)
    if user is None:
        appwrite_user = await get_appwrite_user(appwrite_user_id)
        user = User(
            appwrite_id=appwrite_user_id,
            email=appwrite_user.get("email", ""),
            name=appwrite_user.get("name", "Unknown"),
            last_login_at=now,
        )
        db.add(user)
    else:
        user.last_login_at = now
    await db.commit()
    await db.refresh(user)

    if not user.is_active:
        return None

    return user


async def get_current_user(
    user: Annotated[Optional[User], Depends(get_optional_user)]
) -> User:
    """
    Require an authenticated, active caller.

    Usage:
        @router.get("/roles")
        async def list_roles(user: User = Depends(get_current_user)):
            ...
    """
    if user is None:
        raise Unauthenticated()
    return user


def get_authorization_header(request) -> str:
    """
    Extract authorization header for rate limiting.
    Used with slowapi Limiter.
    """
    auth = request.headers.get("Authorization", "")
    return auth or "anonymous"
