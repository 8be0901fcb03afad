# app/utils/get_user.py
from fastapi import Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.user_models import User
from app.core.db import get_db
from app.core.exceptions import AuthenticationError, ForbiddenError
from app.core.security import decode_access_token


async def resolve_token_user(db: AsyncSession, raw_token: str) -> User:
    """The active user a raw access token belongs to; shared by HTTP routes and the socket."""
    payload = decode_access_token(raw_token)

    user = await db.get(User, payload["user_id"])
    if not user:
        raise AuthenticationError("User not found")
    if user.token_version != payload["token_version"]:
        raise AuthenticationError("Token invalidated. Please log in again.")
    if not user.is_active:
        raise ForbiddenError("User account is inactive.")
    return user


async def get_current_user(
    request: Request,
    token: str | None = Header(default=None),
    authorization: str | None = Header(default=None),
    db: AsyncSession = Depends(get_db),
) -> User:
    # Support either header
    raw_token = token
    if not raw_token and authorization and authorization.startswith("Bearer "):
        raw_token = authorization.split("Bearer ")[1]

    if not raw_token:
        raise AuthenticationError("Missing access token")

    user = await resolve_token_user(db, raw_token)
    request.state.user = user
    return user
