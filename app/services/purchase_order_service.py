# app/services/purchase_order_service.py
from datetime import datetime, timezone
import logging
import random
from typing import Optional

from sqlalchemy import select, update, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import SUPPORTED_CURRENCIES
from app.core.exceptions import NotFoundError, InvalidStateError, ValidationError
from app.core.notifications import NotificationSink, OrderEvent, order_channel, vendor_channel, publish_events
from app.models.negotiation_models import SystemMessage, SenderRole, SystemEvent
from app.models.project_models import Project
from app.models.purchase_order_models import PurchaseOrder, OrderStatus, DeliveryStatus, DeliveryReceipt, TERMINAL_ORDER_STATUSES
from app.models.vendor_invoice_models import VendorInvoice, VendorInvoiceStatus
from app.models.user_models import User, UserRole
from app.schemas.order_schemas import (
    PurchaseOrderCreate,
    DeliveryReceiptCreate,
    PurchaseOrderResponse,
    PurchaseOrderListResponse,
    DeliveryTrackingResponse,
    DeliveryOverview,
    DeliveryOverviewResponse,
    purchase_order_out,
    delivery_tracking_out,
)
from app.schemas.negotiation_schemas import serialize_message
from app.services.negotiation_services.message_log import get_order_or_404, guarded_order_update, append_message
from app.services.negotiation_services.order_state import Transition, next_status
from app.utils.access_control import ensure_order_access, ensure_order_vendor, visible_orders_filter
from app.utils.activity_helpers import log_user_activity
from app.utils.check_roles import ensure_role

logger = logging.getLogger(__name__)

ORDER_NUMBER_ATTEMPTS = 5

# orders that have gone past negotiation far enough to show up on the delivery board
DELIVERY_OVERVIEW_STATUSES = (
    OrderStatus.acknowledged,
    OrderStatus.accepted,
    OrderStatus.in_progress,
    OrderStatus.partially_delivered,
    OrderStatus.completed,
)
DELIVERY_OVERVIEW_LIMIT = 200


def make_order_number() -> str:
    stamp = datetime.now(timezone.utc).strftime("%Y%m%d%H%M%S%f")
    return f"PO-{stamp}-{random.randint(0, 9999):04d}"


async def _unique_order_number(db: AsyncSession) -> str:
    for _ in range(ORDER_NUMBER_ATTEMPTS):
        number = make_order_number()
        taken = await db.execute(select(PurchaseOrder.id).where(PurchaseOrder.order_number == number))
        if taken.first() is None:
            return number
    raise InvalidStateError("Could not allocate a unique purchase order number")


async def _publish(sink: Optional[NotificationSink], order: PurchaseOrder, message) -> None:
    if sink is None:
        return
    payload = {"orderId": order.id, "status": order.status.value}
    await publish_events(sink, [
        OrderEvent("newMessage", order_channel(order.id), serialize_message(message).model_dump(mode="json")),
        OrderEvent("orderUpdated", order_channel(order.id), payload),
        OrderEvent("orderUpdated", vendor_channel(order.vendor_id), payload),
    ])


# --------------------------
# CREATE PURCHASE ORDER
# --------------------------
async def create_purchase_order(db: AsyncSession, data: PurchaseOrderCreate, current_user) -> PurchaseOrderResponse:
    ensure_role(current_user, [UserRole.owner], "create purchase orders")

    currency = (data.currency or "").upper()
    if currency not in SUPPORTED_CURRENCIES:
        raise ValidationError(f"Currency must be one of {', '.join(SUPPORTED_CURRENCIES)}")

    project = await db.get(Project, data.project_id)
    if not project:
        raise NotFoundError(f"Project {data.project_id} not found")

    vendor = await db.get(User, data.vendor_id)
    if not vendor or vendor.role != UserRole.vendor:
        raise NotFoundError(f"Vendor {data.vendor_id} not found")
    if not vendor.is_active:
        raise InvalidStateError(f"Vendor {vendor.display_name} is inactive")

    try:
        order = PurchaseOrder(
            order_number=await _unique_order_number(db),
            material_request_id=data.material_request_id,
            project_id=project.id,
            vendor_id=vendor.id,
            created_by=current_user.id,
            title=data.title.strip(),
            description=data.description,
            items=[item.model_dump() for item in data.items],
            currency=currency,
            status=OrderStatus.draft,
            delivery_status=DeliveryStatus.not_started,
        )
        db.add(order)
        await db.flush()

        await append_message(
            db,
            SystemMessage(
                purchase_order_id=order.id,
                sender_id=current_user.id,
                sender_role=SenderRole.owner,
                content=f"Purchase order {order.order_number} created",
                system_event=SystemEvent.order_created,
            ),
        )
        await log_user_activity(
            db,
            current_user,
            f"Created purchase order '{order.order_number}' for vendor '{vendor.display_name}' "
            f"with {len(data.items)} items",
            order.id,
        )
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info("Purchase order %s created for project %s", order.order_number, project.id)
    order = await get_order_or_404(db, order.id)
    return PurchaseOrderResponse(message="Purchase order created successfully", data=purchase_order_out(order))


# --------------------------
# LIST / GET PURCHASE ORDERS
# --------------------------
async def list_purchase_orders(
    db: AsyncSession,
    current_user,
    status: Optional[OrderStatus] = None,
    project_id: Optional[int] = None,
    vendor_id: Optional[int] = None,
) -> PurchaseOrderListResponse:
    query = select(PurchaseOrder).where(visible_orders_filter(current_user))
    if status:
        query = query.where(PurchaseOrder.status == status)
    if project_id:
        query = query.where(PurchaseOrder.project_id == project_id)
    if vendor_id:
        query = query.where(PurchaseOrder.vendor_id == vendor_id)

    result = await db.execute(query.order_by(PurchaseOrder.created_at.desc(), PurchaseOrder.id.desc()))
    orders = result.scalars().all()
    return PurchaseOrderListResponse(
        message="Purchase orders retrieved successfully",
        data=[purchase_order_out(o) for o in orders],
    )


async def get_purchase_order(db: AsyncSession, order_id: int, current_user) -> PurchaseOrderResponse:
    order = await get_order_or_404(db, order_id)
    await ensure_order_access(db, order, current_user)
    return PurchaseOrderResponse(message="Purchase order retrieved successfully", data=purchase_order_out(order))


# --------------------------
# SEND / ACKNOWLEDGE / CANCEL
# --------------------------
async def send_purchase_order(
    db: AsyncSession, order_id: int, current_user, sink: NotificationSink = None
) -> PurchaseOrderResponse:
    order = await get_order_or_404(db, order_id)
    ensure_role(current_user, [UserRole.owner], "send purchase orders")
    if order.status != OrderStatus.draft:
        raise InvalidStateError("Only draft purchase orders can be sent")

    now = datetime.now(timezone.utc)
    try:
        await guarded_order_update(
            db, order.id,
            [PurchaseOrder.status == OrderStatus.draft],
            {
                "status": next_status(order.status, Transition.order_sent),
                "sent_at": now,
                "last_message_at": now,
            },
            "Only draft purchase orders can be sent",
        )
        message = await append_message(
            db,
            SystemMessage(
                purchase_order_id=order.id,
                sender_id=current_user.id,
                sender_role=SenderRole.owner,
                content=f"Purchase order {order.order_number} sent to vendor",
                system_event=SystemEvent.order_sent,
                created_at=now,
            ),
        )
        await log_user_activity(db, current_user, f"Sent purchase order '{order.order_number}' to vendor", order.id)
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    order = await get_order_or_404(db, order_id)
    await _publish(sink, order, message)
    return PurchaseOrderResponse(message="Purchase order sent successfully", data=purchase_order_out(order))


async def acknowledge_purchase_order(
    db: AsyncSession, order_id: int, current_user, sink: NotificationSink = None
) -> PurchaseOrderResponse:
    order = await get_order_or_404(db, order_id)
    ensure_order_vendor(order, current_user, "acknowledge purchase orders")
    if order.status != OrderStatus.sent:
        raise InvalidStateError("Only sent purchase orders can be acknowledged")

    now = datetime.now(timezone.utc)
    try:
        await guarded_order_update(
            db, order.id,
            [PurchaseOrder.status == OrderStatus.sent],
            {
                "status": next_status(order.status, Transition.order_acknowledged),
                "acknowledged_at": now,
                "last_message_at": now,
            },
            "Only sent purchase orders can be acknowledged",
        )
        message = await append_message(
            db,
            SystemMessage(
                purchase_order_id=order.id,
                sender_id=current_user.id,
                sender_role=SenderRole.vendor,
                content=f"Purchase order {order.order_number} acknowledged by vendor",
                system_event=SystemEvent.order_acknowledged,
                created_at=now,
            ),
        )
        await log_user_activity(db, current_user, f"Acknowledged purchase order '{order.order_number}'", order.id)
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    order = await get_order_or_404(db, order_id)
    await _publish(sink, order, message)
    return PurchaseOrderResponse(message="Purchase order acknowledged successfully", data=purchase_order_out(order))


async def cancel_purchase_order(
    db: AsyncSession, order_id: int, current_user, reason: str = "", sink: NotificationSink = None
) -> PurchaseOrderResponse:
    """
    Cancel a non-terminal order. The chat closes and a still-pending vendor
    invoice is cancelled with it; approved or paid invoices are left alone.
    """
    order = await get_order_or_404(db, order_id)
    ensure_role(current_user, [UserRole.owner], "cancel purchase orders")
    if order.is_terminal:
        raise InvalidStateError(f"Cannot cancel a {order.status.value} purchase order")

    reason = (reason or "").strip()
    now = datetime.now(timezone.utc)
    status_read = order.status
    try:
        # refused if anything moved the order since it was read, e.g. delivery details
        await guarded_order_update(
            db, order.id,
            [
                PurchaseOrder.status == status_read,
                PurchaseOrder.status.notin_(TERMINAL_ORDER_STATUSES),
            ],
            {
                "status": next_status(status_read, Transition.order_cancelled),
                "negotiation_active": False,
                "chat_closed": True,
                "chat_closed_at": func.coalesce(PurchaseOrder.chat_closed_at, now),
                "last_message_at": now,
            },
            f"Purchase order changed while it was being cancelled (was {status_read.value}), please retry",
        )
        await db.execute(
            update(VendorInvoice)
            .where(
                VendorInvoice.purchase_order_id == order.id,
                VendorInvoice.status == VendorInvoiceStatus.pending,
            )
            .values(status=VendorInvoiceStatus.cancelled)
            .execution_options(synchronize_session=False)
        )
        message = await append_message(
            db,
            SystemMessage(
                purchase_order_id=order.id,
                sender_id=current_user.id,
                sender_role=SenderRole.owner,
                content=f"Purchase order cancelled: {reason}" if reason else "Purchase order cancelled",
                system_event=SystemEvent.order_cancelled,
                created_at=now,
            ),
        )
        await log_user_activity(db, current_user, f"Cancelled purchase order '{order.order_number}'", order.id)
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info("Purchase order %s cancelled", order.order_number)
    order = await get_order_or_404(db, order_id)
    await _publish(sink, order, message)
    return PurchaseOrderResponse(message="Purchase order cancelled", data=purchase_order_out(order))


# --------------------------
# DELIVERY RECEIPTS
# --------------------------
RECEIVABLE_ORDER_STATUSES = (
    OrderStatus.accepted,
    OrderStatus.in_progress,
    OrderStatus.partially_delivered,
)


def apply_receipt_items(items: list, received: list, delivery_date: datetime) -> list:
    """
    Add the received quantities to a copy of the order items. An item whose
    running total reaches its ordered quantity becomes ``delivered`` and keeps
    the date of the receipt that completed it.
    """
    updated = [dict(item) for item in items]
    for line in received:
        if line.item_index >= len(updated):
            raise ValidationError(f"Order has no item at index {line.item_index}")
        item = updated[line.item_index]
        item["delivered_quantity"] = float(item.get("delivered_quantity") or 0) + line.delivered_quantity
        if item["delivered_quantity"] >= item["quantity"]:
            item["delivery_status"] = "delivered"
            item["delivery_date"] = item.get("delivery_date") or delivery_date.isoformat()
        else:
            item["delivery_status"] = "partial"
    return updated


async def record_delivery(
    db: AsyncSession, order_id: int, data: DeliveryReceiptCreate, current_user, sink: NotificationSink = None
) -> PurchaseOrderResponse:
    order = await get_order_or_404(db, order_id)
    ensure_role(current_user, [UserRole.owner, UserRole.employee], "record deliveries")
    await ensure_order_access(db, order, current_user)
    if order.status not in RECEIVABLE_ORDER_STATUSES:
        raise InvalidStateError(f"Cannot record a delivery for a {order.status.value} purchase order")

    delivery_date = data.delivery_date
    if delivery_date.tzinfo is None:
        delivery_date = delivery_date.replace(tzinfo=timezone.utc)
    items = apply_receipt_items(order.items or [], data.items, delivery_date)
    all_delivered = all(item.get("delivery_status") == "delivered" for item in items)
    outcome = DeliveryStatus.delivered if all_delivered else DeliveryStatus.partially_delivered
    now = datetime.now(timezone.utc)
    status_read = order.status
    new_status = next_status(status_read, Transition.delivery_recorded, outcome)

    values = {
        "items": items,
        "status": new_status,
        "delivery_status": outcome,
        "receipts_recorded": PurchaseOrder.receipts_recorded + 1,
        "last_message_at": now,
    }
    if new_status == OrderStatus.completed:
        values["actual_arrival"] = delivery_date
    try:
        # a second receipt racing on the same item totals must re-read them
        await guarded_order_update(
            db, order.id,
            [
                PurchaseOrder.status == status_read,
                PurchaseOrder.receipts_recorded == order.receipts_recorded,
            ],
            values,
            "Purchase order changed while the delivery was being recorded, please retry",
        )
        db.add(DeliveryReceipt(
            purchase_order_id=order.id,
            delivery_date=delivery_date,
            items=[line.model_dump() for line in data.items],
            delivered_by=data.delivered_by.strip(),
            notes=data.notes.strip(),
            outcome=outcome,
            received_by=current_user.id,
            created_at=now,
        ))
        message = await append_message(
            db,
            SystemMessage(
                purchase_order_id=order.id,
                sender_id=current_user.id,
                sender_role=SenderRole(current_user.role.value),
                content=(
                    "All items delivered, purchase order completed" if all_delivered
                    else f"Partial delivery recorded for {len(data.items)} item(s)"
                ),
                system_event=SystemEvent.delivery_recorded,
                created_at=now,
            ),
        )
        await log_user_activity(
            db, current_user,
            f"Recorded delivery for purchase order '{order.order_number}' ({outcome.value})",
            order.id,
        )
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info("Delivery recorded for purchase order %s, now %s", order.order_number, new_status.value)
    order = await get_order_or_404(db, order_id)
    await _publish(sink, order, message)
    return PurchaseOrderResponse(message="Delivery recorded successfully", data=purchase_order_out(order))


# --------------------------
# DELIVERY READS
# --------------------------
async def get_delivery_tracking(db: AsyncSession, order_id: int, current_user) -> DeliveryTrackingResponse:
    order = await get_order_or_404(db, order_id)
    await ensure_order_access(db, order, current_user)
    return DeliveryTrackingResponse(message="Delivery tracking retrieved", data=delivery_tracking_out(order))


async def get_delivery_overview(db: AsyncSession, current_user) -> DeliveryOverviewResponse:
    ensure_role(current_user, [UserRole.owner], "view the delivery overview")
    result = await db.execute(
        select(PurchaseOrder)
        .where(PurchaseOrder.status.in_(DELIVERY_OVERVIEW_STATUSES))
        .order_by(
            PurchaseOrder.delivery_updated_at.desc().nulls_last(),
            PurchaseOrder.updated_at.desc().nulls_last(),
            PurchaseOrder.id.desc(),
        )
        .limit(DELIVERY_OVERVIEW_LIMIT)
    )
    orders = result.scalars().all()

    def is_delivered(order: PurchaseOrder) -> bool:
        return order.delivery_status == DeliveryStatus.delivered or order.status == OrderStatus.completed

    return DeliveryOverviewResponse(
        message="Delivery overview retrieved",
        data=DeliveryOverview(
            active_deliveries=[purchase_order_out(o) for o in orders if not is_delivered(o)],
            delivered=[purchase_order_out(o) for o in orders if is_delivered(o)],
            total=len(orders),
        ),
    )
