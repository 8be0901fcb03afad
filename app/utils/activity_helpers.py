# app/utils/activity_helpers.py
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
from app.models.activity_models import UserActivity

async def log_user_activity(db: AsyncSession, user, message: str, purchase_order_id: Optional[int] = None):
    """
    Adds a user activity row to the session. The caller commits, so the
    activity lands in the same transaction as the change it describes.
    """
    db.add(
        UserActivity(
            user_id=user.id,
            user_email=user.email,
            purchase_order_id=purchase_order_id,
            message=message,
        )
    )
