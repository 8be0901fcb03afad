# app/utils/check_roles.py
from typing import Callable, Iterable
from functools import wraps

from app.core.exceptions import AuthenticationError, ForbiddenError
from app.models.user_models import UserRole


def ensure_role(user, roles: Iterable[UserRole], action: str = "perform this action") -> None:
    allowed = set(roles)
    if user.role not in allowed:
        names = ", ".join(sorted(r.value for r in allowed))
        raise ForbiddenError(f"Only {names} users can {action}")


def require_role(roles: list[UserRole]):
    """Decorator to validate user role; expects user to be passed by route as `_user`."""
    def decorator(func: Callable):
        @wraps(func)
        async def wrapper(*args, _user, **kwargs):
            if _user is None:
                raise AuthenticationError("User not authenticated")
            ensure_role(_user, roles)
            return await func(*args, _user=_user, **kwargs)
        return wrapper
    return decorator
