# app/core/security.py
from passlib.context import CryptContext
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any
from jose import jwt, JWTError
from app.core.config import (
    JWT_SECRET, JWT_ALGORITHM, ACCESS_TOKEN_EXPIRE_MINUTES, OWNER_ACCESS_TOKEN_EXPIRE_MINUTES
)
from app.core.exceptions import AuthenticationError
from app.models.user_models import UserRole

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

def hash_password(password: str) -> str:
    return pwd_context.hash(password)

def verify_password(plain: str, hashed: str) -> bool:
    return pwd_context.verify(plain, hashed)


def access_token_lifetime(role: UserRole) -> timedelta:
    # owners work long sessions from the office dashboard
    if role == UserRole.owner:
        return timedelta(minutes=OWNER_ACCESS_TOKEN_EXPIRE_MINUTES)
    return timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)


def create_access_token(user, expires_delta: Optional[timedelta] = None) -> str:
    """
    Signed access token for ``user``. It carries the user's token_version, so
    bumping that column (logout) invalidates every token issued before.
    """
    now = datetime.now(timezone.utc)
    claims: Dict[str, Any] = {
        "sub": user.email,
        "user_id": user.id,
        "role": user.role.value,
        "token_version": user.token_version or 0,
        "type": "access",
        "iat": now,
        "exp": now + (expires_delta or access_token_lifetime(user.role)),
    }
    return jwt.encode(claims, JWT_SECRET, algorithm=JWT_ALGORITHM)


def decode_access_token(raw_token: str) -> Dict[str, Any]:
    try:
        payload = jwt.decode(raw_token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
    except JWTError:
        raise AuthenticationError("Invalid or expired token")
    if payload.get("type") != "access":
        raise AuthenticationError("Invalid token type")
    if payload.get("user_id") is None or payload.get("token_version") is None:
        raise AuthenticationError("Invalid token payload")
    return payload
