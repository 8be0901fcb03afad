from datetime import datetime, timedelta, timezone

import pytest

from app.core.exceptions import NotFoundError
from app.models.negotiation_models import TextMessage, SystemMessage, SenderRole, SystemEvent
from app.models.purchase_order_models import PurchaseOrder
from app.models.user_models import User
from app.services.negotiation_services.message_log import (
    append_message, list_order_messages, mark_read, count_unread
)
from app.utils.access_control import visible_orders_filter


def text(order_id, sender_id, content, created_at=None):
    return TextMessage(
        purchase_order_id=order_id,
        sender_id=sender_id,
        sender_role=SenderRole.owner,
        content=content,
        created_at=created_at,
    )


async def test_append_assigns_id_and_timestamp(db, world):
    message = await append_message(db, text(world.order, world.owner, "hello"))
    await db.commit()

    assert message.id is not None
    assert message.created_at is not None
    assert message.reads == []
    assert message.sender.email == "owner@example.com"


async def test_append_to_missing_order_fails(db, world):
    with pytest.raises(NotFoundError):
        await append_message(db, text(9999, world.owner, "hello"))


async def test_list_is_ordered_by_creation_time(db, world):
    base = datetime.now(timezone.utc)
    await append_message(db, text(world.order, world.owner, "second", base + timedelta(seconds=5)))
    await append_message(db, text(world.order, world.owner, "first", base))
    await append_message(
        db,
        SystemMessage(
            purchase_order_id=world.order, sender_id=world.owner, sender_role=SenderRole.system,
            content="third", system_event=SystemEvent.delivery_update, created_at=base + timedelta(seconds=10),
        ),
    )
    await db.commit()

    messages = await list_order_messages(db, world.order)
    assert [m.content for m in messages] == ["first", "second", "third"]
    assert isinstance(messages[2], SystemMessage)
    assert messages[2].system_event == SystemEvent.delivery_update


async def test_list_missing_order(db, world):
    with pytest.raises(NotFoundError):
        await list_order_messages(db, 4242)


async def test_mark_read_is_idempotent(db, world):
    for content in ("a", "b", "c"):
        await append_message(db, text(world.order, world.owner, content))
    await db.commit()

    assert await mark_read(db, world.order, world.vendor) == 3
    await db.commit()
    assert await mark_read(db, world.order, world.vendor) == 0
    await db.commit()

    messages = await list_order_messages(db, world.order)
    assert all(m.is_read_by(world.vendor) for m in messages)
    assert all(len(m.reads) == 1 for m in messages)


async def test_count_unread_scoped_to_visible_orders(db, world):
    other_order = PurchaseOrder(
        order_number="PO-TEST-0002", project_id=world.project, vendor_id=world.other_vendor,
        created_by=world.owner, title="Cement", items=[], currency="INR",
    )
    db.add(other_order)
    await db.flush()

    await append_message(db, text(world.order, world.owner, "for steel"))
    await append_message(db, text(other_order.id, world.owner, "for cement"))
    await append_message(db, text(other_order.id, world.owner, "for cement again"))
    await db.commit()

    vendor = await db.get(User, world.vendor)
    owner = await db.get(User, world.owner)

    assert await count_unread(db, vendor.id, visible_orders_filter(vendor)) == 1
    assert await count_unread(db, owner.id, visible_orders_filter(owner)) == 3

    await mark_read(db, other_order.id, owner.id)
    await db.commit()
    assert await count_unread(db, owner.id, visible_orders_filter(owner)) == 1
