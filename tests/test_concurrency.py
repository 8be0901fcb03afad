import asyncio

from sqlalchemy import select, func

from app.core.exceptions import InvalidStateError
from app.models.negotiation_models import SystemMessage, SystemEvent
from app.models.purchase_order_models import PurchaseOrder, OrderStatus
from app.models.vendor_invoice_models import VendorInvoice
from app.schemas.negotiation_schemas import QuotationCreate, DeliveryDetailsCreate
from app.services.negotiation_services.negotiation_service import (
    submit_quotation, accept_quotation, submit_delivery_details
)


async def test_concurrent_accepts_apply_once(as_user, world, db):
    quotation = await as_user(world.vendor, submit_quotation, world.order, QuotationCreate(amount=180000))
    message_id = quotation.data.id

    results = await asyncio.gather(
        as_user(world.owner, accept_quotation, world.order, message_id),
        as_user(world.owner, accept_quotation, world.order, message_id),
        return_exceptions=True,
    )

    assert not [r for r in results if isinstance(r, Exception)]
    assert sorted(r.data.already_accepted for r in results) == [False, True]

    events = await db.execute(
        select(SystemMessage.system_event, func.count())
        .where(SystemMessage.purchase_order_id == world.order)
        .group_by(SystemMessage.system_event)
    )
    assert dict(events.all()) == {
        SystemEvent.quotation_accepted: 1,
        SystemEvent.delivery_details_required: 1,
    }
    order = await db.get(PurchaseOrder, world.order)
    assert order.status == OrderStatus.accepted


async def test_concurrent_accepts_of_different_quotations(as_user, world, db):
    first = (await as_user(world.vendor, submit_quotation, world.order, QuotationCreate(amount=200000))).data.id
    second = (await as_user(world.vendor, submit_quotation, world.order, QuotationCreate(amount=190000))).data.id

    results = await asyncio.gather(
        as_user(world.owner, accept_quotation, world.order, first),
        as_user(world.owner, accept_quotation, world.order, second),
        return_exceptions=True,
    )

    failures = [r for r in results if isinstance(r, Exception)]
    assert len(failures) == 1
    assert isinstance(failures[0], InvalidStateError)

    order = await db.get(PurchaseOrder, world.order)
    assert order.accepted_quotation_message_id in (first, second)
    accepted = await db.execute(
        select(func.count()).select_from(SystemMessage)
        .where(SystemMessage.system_event == SystemEvent.quotation_accepted)
    )
    assert accepted.scalar() == 1


async def test_concurrent_delivery_details_generate_one_invoice(as_user, world, db):
    message_id = (await as_user(world.vendor, submit_quotation, world.order, QuotationCreate(amount=50000))).data.id
    await as_user(world.owner, accept_quotation, world.order, message_id)

    details = DeliveryDetailsCreate(tracking_number="TRK-1", carrier="DHL")
    results = await asyncio.gather(
        as_user(world.vendor, submit_delivery_details, world.order, details),
        as_user(world.vendor, submit_delivery_details, world.order, details),
        return_exceptions=True,
    )

    failures = [r for r in results if isinstance(r, Exception)]
    assert len(failures) == 1
    assert isinstance(failures[0], InvalidStateError)

    invoices = await db.execute(select(func.count(VendorInvoice.id)))
    assert invoices.scalar() == 1
