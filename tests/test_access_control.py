import pytest
from sqlalchemy import select

from app.core.exceptions import ForbiddenError
from app.models.purchase_order_models import PurchaseOrder
from app.models.user_models import User
from app.utils.access_control import (
    can_access_order, ensure_order_access, ensure_order_vendor, visible_orders_filter
)


async def _load(db, world):
    order = await db.get(PurchaseOrder, world.order)
    users = {name: await db.get(User, getattr(world, name)) for name in (
        "owner", "vendor", "other_vendor", "employee", "outsider", "client", "admin"
    )}
    return order, users


async def test_access_per_role(db, world):
    order, users = await _load(db, world)

    allowed = {name for name, user in users.items() if await can_access_order(db, order, user)}
    assert allowed == {"owner", "vendor", "employee", "client"}


async def test_visible_orders_filter_agrees_with_predicate(db, world):
    order, users = await _load(db, world)

    for name, user in users.items():
        result = await db.execute(select(PurchaseOrder.id).where(visible_orders_filter(user)))
        visible = world.order in result.scalars().all()
        assert visible == await can_access_order(db, order, user), name


async def test_missing_project_denies_employee_and_client(db, world):
    order, users = await _load(db, world)
    orphan = PurchaseOrder(
        order_number="PO-ORPHAN", project_id=987654, vendor_id=world.vendor, created_by=world.owner,
        title="Orphan", items=[], currency="INR",
    )
    # never flushed: the project lookup has nothing to find
    assert not await can_access_order(db, orphan, users["employee"])
    assert not await can_access_order(db, orphan, users["client"])


async def test_ensure_helpers_raise_forbidden(db, world):
    order, users = await _load(db, world)

    with pytest.raises(ForbiddenError, match="Access denied"):
        await ensure_order_access(db, order, users["outsider"])

    ensure_order_vendor(order, users["vendor"], "submit quotations")
    with pytest.raises(ForbiddenError, match="Only vendors"):
        ensure_order_vendor(order, users["owner"], "submit quotations")
    with pytest.raises(ForbiddenError, match="your own purchase orders"):
        ensure_order_vendor(order, users["other_vendor"], "submit quotations")
