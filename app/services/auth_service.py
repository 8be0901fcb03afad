# app/services/auth_service.py
from datetime import datetime, timezone
import logging

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from app.core.exceptions import AuthenticationError, ForbiddenError
from app.core.security import verify_password, create_access_token
from app.models.user_models import User
from app.schemas.auth_schemas import TokenResponse, UserOut, LogoutResponse

logger = logging.getLogger(__name__)


async def authenticate_user(db: AsyncSession, email: str, password: str) -> User:
    result = await db.execute(select(User).where(User.email == email.lower()))
    user = result.scalars().first()
    if not user or not verify_password(password, user.password_hash):
        raise AuthenticationError("Invalid credentials")
    if not user.is_active:
        raise ForbiddenError("User account is inactive.")
    return user


async def login(db: AsyncSession, email: str, password: str) -> TokenResponse:
    user = await authenticate_user(db, email, password)
    user.last_login = datetime.now(timezone.utc)
    await db.commit()
    logger.info("User %s logged in", user.email)
    return TokenResponse(access_token=create_access_token(user), user=UserOut.model_validate(user))


async def logout_user(db: AsyncSession, user: User) -> LogoutResponse:
    user.token_version = (user.token_version or 0) + 1
    await db.commit()
    logger.info("User %s logged out", user.email)
    return LogoutResponse(message="Logged out successfully")
