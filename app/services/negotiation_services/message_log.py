# app/services/negotiation_services/message_log.py
"""
Append-only storage of negotiation messages.

Nothing here commits: appends and read receipts join the caller's transaction
so a transition either lands completely or not at all.
"""
from datetime import datetime, timezone
from typing import List, Optional, Type

from sqlalchemy import select, insert, update, func, exists, literal, DateTime
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import NotFoundError, InvalidStateError
from app.models.negotiation_models import NegotiationMessage, MessageRead
from app.models.purchase_order_models import PurchaseOrder


async def get_order_or_404(db: AsyncSession, order_id: int, for_update: bool = False) -> PurchaseOrder:
    stmt = (
        select(PurchaseOrder)
        .where(PurchaseOrder.id == order_id)
        .execution_options(populate_existing=True)
    )
    if for_update:
        stmt = stmt.with_for_update()
    result = await db.execute(stmt)
    order = result.scalars().first()
    if not order:
        raise NotFoundError("Purchase order not found")
    return order


async def guarded_order_update(db: AsyncSession, order_id: int, conditions: List, values: dict, failure: str) -> None:
    """
    UPDATE the order only while ``conditions`` still hold; otherwise refuse the
    transition. The conditions restate what the caller's precondition read, so
    two writers racing on one order cannot both apply.
    """
    result = await db.execute(
        update(PurchaseOrder)
        .where(PurchaseOrder.id == order_id, *conditions)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise InvalidStateError(failure)


async def append_message(db: AsyncSession, message: NegotiationMessage) -> NegotiationMessage:
    if message.purchase_order_id is None or await db.get(PurchaseOrder, message.purchase_order_id) is None:
        raise NotFoundError("Purchase order not found")
    if message.created_at is None:
        message.created_at = datetime.now(timezone.utc)
    db.add(message)
    await db.flush()
    await db.refresh(message, attribute_names=["reads", "sender"])
    return message


async def list_order_messages(db: AsyncSession, order_id: int) -> list[NegotiationMessage]:
    if await db.get(PurchaseOrder, order_id) is None:
        raise NotFoundError("Purchase order not found")
    result = await db.execute(
        select(NegotiationMessage)
        .where(NegotiationMessage.purchase_order_id == order_id)
        .order_by(NegotiationMessage.created_at.asc(), NegotiationMessage.id.asc())
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


async def get_order_message(
    db: AsyncSession,
    order_id: int,
    message_id: int,
    message_cls: Type[NegotiationMessage] = NegotiationMessage,
    label: str = "Message",
) -> NegotiationMessage:
    result = await db.execute(
        select(message_cls)
        .where(message_cls.id == message_id, message_cls.purchase_order_id == order_id)
        .execution_options(populate_existing=True)
    )
    message = result.scalars().first()
    if not message:
        raise NotFoundError(f"{label} not found")
    return message


async def mark_read(db: AsyncSession, order_id: int, user_id: int) -> int:
    """Add a read receipt for every message of the order the user has not read yet."""
    if await db.get(PurchaseOrder, order_id) is None:
        raise NotFoundError("Purchase order not found")

    now = datetime.now(timezone.utc)
    unread = (
        select(
            NegotiationMessage.id,
            literal(user_id),
            literal(now, type_=DateTime(timezone=True)),
        )
        .where(
            NegotiationMessage.purchase_order_id == order_id,
            ~exists().where(
                MessageRead.message_id == NegotiationMessage.id,
                MessageRead.user_id == user_id,
            ),
        )
    )
    result = await db.execute(
        insert(MessageRead).from_select(["message_id", "user_id", "read_at"], unread)
    )
    return max(result.rowcount or 0, 0)


async def count_unread(db: AsyncSession, user_id: int, order_filter: Optional[object] = None) -> int:
    stmt = (
        select(func.count(NegotiationMessage.id))
        .where(
            ~exists().where(
                MessageRead.message_id == NegotiationMessage.id,
                MessageRead.user_id == user_id,
            )
        )
    )
    if order_filter is not None:
        stmt = stmt.where(
            NegotiationMessage.purchase_order_id.in_(select(PurchaseOrder.id).where(order_filter))
        )
    result = await db.execute(stmt)
    return result.scalar() or 0
