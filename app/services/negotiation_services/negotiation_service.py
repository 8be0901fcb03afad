# app/services/negotiation_services/negotiation_service.py
"""
Negotiation transitions for a purchase order.

Every write follows the same shape: load the order, check who is asking, check
the preconditions, then append to the message log and update the order in one
transaction. Events are published only after the commit went through.

Per-order serialization comes from conditional UPDATEs keyed on the state the
precondition just read (quotation status, chat flag, accepted reference). When
such an update matches no row another request got there first and the
transition is refused instead of applied twice.
"""
from datetime import datetime, timezone
import logging
import math
from typing import Iterable, Optional

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import InvalidStateError
from app.core.notifications import (
    NotificationSink, OrderEvent, order_channel, vendor_channel, publish_events
)
from app.models.negotiation_models import (
    TextMessage, QuotationMessage, SystemMessage, DeliveryMessage, InvoiceMessage,
    SenderRole, QuotationStatus, SystemEvent
)
from app.models.purchase_order_models import PurchaseOrder, OrderStatus, DeliveryStatus, DeliveryTrackingUpdate
from app.models.user_models import UserRole
from app.schemas.negotiation_schemas import (
    MessageCreate, QuotationCreate, QuotationReject, DeliveryDetailsCreate, DeliveryStatusUpdate,
    MessageResponse, MessageListResponse, UnreadCountResponse, UnreadCount,
    MarkReadResponse, MarkReadResult, AcceptQuotationResponse, AcceptQuotationResult,
    DeliveryDetailsResponse, DeliveryDetailsResult, serialize_message,
)
from app.schemas.order_schemas import PurchaseOrderResponse, purchase_order_out, delivery_tracking_out
from app.schemas.vendor_invoice_schemas import VendorInvoiceOut
from app.services.negotiation_services.invoice_generation import generate_invoice
from app.services.negotiation_services.message_log import (
    get_order_or_404, guarded_order_update, append_message, list_order_messages, get_order_message,
    mark_read, count_unread,
)
from app.services.negotiation_services.order_state import Transition, next_status
from app.utils.access_control import ensure_order_access, ensure_order_vendor, visible_orders_filter
from app.utils.activity_helpers import log_user_activity
from app.utils.check_roles import ensure_role

logger = logging.getLogger(__name__)

CHAT_CLOSED_MESSAGES = "This negotiation has ended. No new messages can be sent."
CHAT_CLOSED_QUOTATIONS = "This negotiation has ended. No new quotations can be submitted."
ALREADY_ACCEPTED_QUOTATIONS = "A quotation has already been accepted. No new quotations can be submitted."


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _valid_amount(amount) -> bool:
    if amount is None or isinstance(amount, bool):
        return False
    try:
        value = float(amount)
    except (TypeError, ValueError):
        return False
    return math.isfinite(value) and value > 0


def _status_name(status) -> str:
    return getattr(status, "value", status) or "unknown"


def _sender_role(user) -> SenderRole:
    return SenderRole(_status_name(user.role))


def _message_event(name: str, order_id: int, message) -> OrderEvent:
    return OrderEvent(name, order_channel(order_id), serialize_message(message).model_dump(mode="json"))


async def _publish(sink: Optional[NotificationSink], events: Iterable[OrderEvent]) -> None:
    if sink is None:
        return
    await publish_events(sink, events)


async def _claim_quotation(db: AsyncSession, message_id: int, new_status: QuotationStatus) -> bool:
    result = await db.execute(
        update(QuotationMessage)
        .where(
            QuotationMessage.id == message_id,
            QuotationMessage.quotation_status == QuotationStatus.pending,
        )
        .values(quotation_status=new_status)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


# --------------------------
# LIST MESSAGES
# --------------------------
async def list_messages(db: AsyncSession, order_id: int, current_user) -> MessageListResponse:
    order = await get_order_or_404(db, order_id)
    await ensure_order_access(db, order, current_user)
    messages = await list_order_messages(db, order_id)
    return MessageListResponse(
        message="Messages retrieved successfully",
        data=[serialize_message(m) for m in messages],
    )


# --------------------------
# SEND MESSAGE
# --------------------------
async def send_message(
    db: AsyncSession, order_id: int, data: MessageCreate, current_user, sink: NotificationSink = None
) -> MessageResponse:
    order = await get_order_or_404(db, order_id)
    await ensure_order_access(db, order, current_user)

    if order.chat_closed:
        raise InvalidStateError(CHAT_CLOSED_MESSAGES)

    content = (data.content or "").strip()
    if data.message_type == "text" and not content:
        raise InvalidStateError("Message content is required")

    now = _now()
    try:
        await guarded_order_update(
            db, order.id,
            [PurchaseOrder.chat_closed.is_(False)],
            {"last_message_at": now},
            CHAT_CLOSED_MESSAGES,
        )
        message_cls = SystemMessage if data.message_type == "system" else TextMessage
        message = await append_message(
            db,
            message_cls(
                purchase_order_id=order.id,
                sender_id=current_user.id,
                sender_role=_sender_role(current_user),
                content=content,
                created_at=now,
            ),
        )
        await log_user_activity(
            db, current_user, f"Sent a message on purchase order '{order.order_number}'", order.id
        )
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    await _publish(sink, [_message_event("newMessage", order.id, message)])
    return MessageResponse(message="Message sent", data=serialize_message(message))


# --------------------------
# SUBMIT QUOTATION
# --------------------------
async def submit_quotation(
    db: AsyncSession, order_id: int, data: QuotationCreate, current_user, sink: NotificationSink = None
) -> MessageResponse:
    order = await get_order_or_404(db, order_id)
    ensure_order_vendor(order, current_user, "submit quotations")

    if order.chat_closed:
        raise InvalidStateError(CHAT_CLOSED_QUOTATIONS)
    if order.status == OrderStatus.accepted or order.accepted_quotation_message_id is not None:
        raise InvalidStateError(ALREADY_ACCEPTED_QUOTATIONS)
    if order.is_terminal:
        raise InvalidStateError(f"Cannot submit a quotation on a {_status_name(order.status)} purchase order")
    if not _valid_amount(data.amount):
        raise InvalidStateError("Valid quotation amount is required")
    if data.in_response_to is not None:
        await get_order_message(db, order.id, data.in_response_to, QuotationMessage, "Referenced quotation")

    items = []
    for item in data.items:
        row = item.model_dump()
        if row["total"] is None:
            row["total"] = row["quantity"] * row["unit_price"]
        items.append(row)

    now = _now()
    new_status = next_status(order.status, Transition.quotation_submitted)
    try:
        await guarded_order_update(
            db, order.id,
            [
                PurchaseOrder.chat_closed.is_(False),
                PurchaseOrder.accepted_quotation_message_id.is_(None),
            ],
            {"status": new_status, "last_message_at": now},
            ALREADY_ACCEPTED_QUOTATIONS,
        )
        message = await append_message(
            db,
            QuotationMessage(
                purchase_order_id=order.id,
                sender_id=current_user.id,
                sender_role=SenderRole.vendor,
                content=data.note.strip(),
                created_at=now,
                quotation_amount=data.amount,
                quotation_currency=data.currency,
                quotation_note=data.note.strip(),
                quotation_status=QuotationStatus.pending,
                quotation_items=items,
                valid_until=data.valid_until,
                in_response_to_id=data.in_response_to,
            ),
        )
        await log_user_activity(
            db,
            current_user,
            f"Submitted quotation of {data.currency} {data.amount:.2f} on purchase order '{order.order_number}'",
            order.id,
        )
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info("Quotation %s submitted on %s, order now %s", message.id, order.order_number, new_status.value)
    await _publish(sink, [
        OrderEvent("quotationSubmitted", order_channel(order.id), {"orderId": order.id, "messageId": message.id}),
        _message_event("newMessage", order.id, message),
        OrderEvent("orderUpdated", order_channel(order.id), {"orderId": order.id, "status": new_status.value}),
    ])
    return MessageResponse(message="Quotation submitted", data=serialize_message(message))


# --------------------------
# ACCEPT QUOTATION
# --------------------------
async def _accept_after_lost_race(db: AsyncSession, order_id: int, message_id: int) -> AcceptQuotationResponse:
    # another request changed the quotation between our read and our update
    order = await get_order_or_404(db, order_id)
    quotation = await get_order_message(db, order_id, message_id, QuotationMessage, "Quotation message")
    if quotation.quotation_status == QuotationStatus.accepted and order.status == OrderStatus.accepted:
        return AcceptQuotationResponse(
            message="Quotation already accepted",
            data=AcceptQuotationResult(purchase_order=purchase_order_out(order), already_accepted=True),
        )
    raise InvalidStateError(
        f"Quotation is not pending (current status: {_status_name(quotation.quotation_status)})"
    )


async def accept_quotation(
    db: AsyncSession, order_id: int, message_id: int, current_user, sink: NotificationSink = None
) -> AcceptQuotationResponse:
    order = await get_order_or_404(db, order_id)
    ensure_role(current_user, [UserRole.owner], "accept quotations")

    quotation = await get_order_message(db, order.id, message_id, QuotationMessage, "Quotation message")
    if not _valid_amount(quotation.quotation_amount):
        raise InvalidStateError("Invalid quotation structure - missing amount")

    if quotation.quotation_status == QuotationStatus.accepted and order.status == OrderStatus.accepted:
        return AcceptQuotationResponse(
            message="Quotation already accepted",
            data=AcceptQuotationResult(purchase_order=purchase_order_out(order), already_accepted=True),
        )

    if order.chat_closed:
        raise InvalidStateError("This negotiation has ended. No quotations can be accepted.")
    if order.accepted_quotation_message_id is not None:
        raise InvalidStateError("Another quotation has already been accepted for this purchase order")
    if quotation.quotation_status != QuotationStatus.pending:
        raise InvalidStateError(
            f"Quotation is not pending (current status: {_status_name(quotation.quotation_status)})"
        )

    order_id, vendor_id, order_number = order.id, order.vendor_id, order.order_number
    now = _now()
    new_status = next_status(order.status, Transition.quotation_accepted)
    lost_race = False
    try:
        if not await _claim_quotation(db, quotation.id, QuotationStatus.accepted):
            lost_race = True
        else:
            await guarded_order_update(
                db, order_id,
                [
                    PurchaseOrder.chat_closed.is_(False),
                    PurchaseOrder.accepted_quotation_message_id.is_(None),
                ],
                {
                    "status": new_status,
                    "accepted_quotation_message_id": quotation.id,
                    "final_amount": quotation.quotation_amount,
                    "last_message_at": now,
                },
                "Another quotation has already been accepted for this purchase order",
            )
            acceptance = await append_message(
                db,
                SystemMessage(
                    purchase_order_id=order_id,
                    sender_id=current_user.id,
                    sender_role=SenderRole.owner,
                    content="Quotation accepted. Awaiting delivery details from vendor.",
                    system_event=SystemEvent.quotation_accepted,
                ),
            )
            prompt = await append_message(
                db,
                SystemMessage(
                    purchase_order_id=order_id,
                    sender_id=current_user.id,
                    sender_role=SenderRole.system,
                    content="Please submit delivery details to proceed with the order.",
                    system_event=SystemEvent.delivery_details_required,
                ),
            )
            await log_user_activity(
                db,
                current_user,
                f"Accepted quotation {quotation.id} ({quotation.quotation_currency} "
                f"{quotation.quotation_amount}) on purchase order '{order_number}'",
                order_id,
            )
            await db.commit()
    except Exception:
        await db.rollback()
        raise

    if lost_race:
        await db.rollback()
        return await _accept_after_lost_race(db, order_id, message_id)

    order = await get_order_or_404(db, order_id)
    logger.info("Quotation %s accepted on %s", message_id, order_number)
    order_update = {"orderId": order_id, "status": new_status.value, "awaitingDelivery": True}
    await _publish(sink, [
        OrderEvent("quotationAccepted", order_channel(order_id), {"orderId": order_id, "messageId": message_id}),
        _message_event("newMessage", order_id, acceptance),
        _message_event("newMessage", order_id, prompt),
        OrderEvent("orderUpdated", order_channel(order_id), order_update),
        OrderEvent("orderUpdated", vendor_channel(vendor_id), order_update),
    ])
    return AcceptQuotationResponse(
        message="Quotation accepted. Awaiting delivery details from vendor.",
        data=AcceptQuotationResult(purchase_order=purchase_order_out(order)),
    )


# --------------------------
# REJECT QUOTATION
# --------------------------
async def reject_quotation(
    db: AsyncSession, order_id: int, message_id: int, data: QuotationReject, current_user,
    sink: NotificationSink = None,
) -> MessageResponse:
    order = await get_order_or_404(db, order_id)
    ensure_role(current_user, [UserRole.owner], "reject quotations")

    quotation = await get_order_message(db, order.id, message_id, QuotationMessage, "Quotation message")
    if order.chat_closed:
        raise InvalidStateError("This negotiation has ended. No quotations can be rejected.")
    if order.status == OrderStatus.accepted or order.accepted_quotation_message_id is not None:
        raise InvalidStateError("A quotation has already been accepted for this purchase order")
    if quotation.quotation_status != QuotationStatus.pending:
        raise InvalidStateError("Quotation is not pending")

    reason = (data.reason or "").strip()
    now = _now()
    new_status = next_status(order.status, Transition.quotation_rejected)
    try:
        if not await _claim_quotation(db, quotation.id, QuotationStatus.rejected):
            raise InvalidStateError("Quotation is not pending")
        await guarded_order_update(
            db, order.id,
            [
                PurchaseOrder.chat_closed.is_(False),
                PurchaseOrder.accepted_quotation_message_id.is_(None),
            ],
            {"status": new_status, "last_message_at": now},
            "A quotation has already been accepted for this purchase order",
        )
        message = await append_message(
            db,
            SystemMessage(
                purchase_order_id=order.id,
                sender_id=current_user.id,
                sender_role=SenderRole.owner,
                content=f"Quotation rejected: {reason}" if reason else "Quotation rejected",
                system_event=SystemEvent.quotation_rejected,
                created_at=now,
            ),
        )
        await log_user_activity(
            db, current_user, f"Rejected quotation {quotation.id} on purchase order '{order.order_number}'", order.id
        )
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    await _publish(sink, [
        OrderEvent(
            "quotationRejected", order_channel(order.id),
            {"orderId": order.id, "messageId": message_id, "reason": reason},
        ),
        _message_event("newMessage", order.id, message),
        OrderEvent("orderUpdated", order_channel(order.id), {"orderId": order.id, "status": new_status.value}),
    ])
    return MessageResponse(message="Quotation rejected", data=serialize_message(message))


# --------------------------
# SUBMIT DELIVERY DETAILS
# --------------------------
async def submit_delivery_details(
    db: AsyncSession, order_id: int, data: DeliveryDetailsCreate, current_user, sink: NotificationSink = None
) -> DeliveryDetailsResponse:
    order = await get_order_or_404(db, order_id)
    ensure_order_vendor(order, current_user, "submit delivery details")

    if order.status != OrderStatus.accepted:
        raise InvalidStateError("Purchase order must be in accepted status")
    if order.accepted_quotation_message_id is None:
        raise InvalidStateError("No accepted quotation found")
    if order.chat_closed:
        raise InvalidStateError("This negotiation has ended. Delivery details were already submitted.")

    quotation = await get_order_message(
        db, order.id, order.accepted_quotation_message_id, QuotationMessage, "Accepted quotation"
    )

    tracking_number = (data.tracking_number or "").strip()
    carrier = (data.carrier or "").strip()
    notes = (data.delivery_notes or "").strip()
    now = _now()
    new_status = next_status(order.status, Transition.delivery_details_submitted)
    try:
        await guarded_order_update(
            db, order.id,
            [
                PurchaseOrder.status == OrderStatus.accepted,
                PurchaseOrder.chat_closed.is_(False),
                PurchaseOrder.accepted_quotation_message_id.is_not(None),
            ],
            {
                "status": new_status,
                "negotiation_active": False,
                "chat_closed": True,
                "chat_closed_at": now,
                "last_message_at": now,
                "delivery_status": DeliveryStatus.processing,
                "tracking_number": tracking_number,
                "carrier": carrier,
                "expected_arrival": data.estimated_delivery_date,
                "delivery_notes": notes,
                "delivery_updated_at": now,
                "delivery_updated_by": current_user.id,
            },
            "Delivery details have already been submitted for this purchase order",
        )
        delivery_message = await append_message(
            db,
            DeliveryMessage(
                purchase_order_id=order.id,
                sender_id=current_user.id,
                sender_role=SenderRole.vendor,
                content=f"Delivery details submitted: {notes}" if notes else "Delivery details submitted",
                estimated_delivery_date=data.estimated_delivery_date,
                delivery_tracking_number=tracking_number,
                delivery_carrier=carrier,
                delivery_notes=notes,
            ),
        )
        invoice = await generate_invoice(db, order, quotation, current_user.id)
        invoice_message = await append_message(
            db,
            InvoiceMessage(
                purchase_order_id=order.id,
                sender_id=current_user.id,
                sender_role=SenderRole.system,
                content=f"Invoice generated: {invoice.invoice_number}",
                invoice_id=invoice.id,
                invoice_number=invoice.invoice_number,
                invoice_amount=invoice.total_amount,
                invoice_status=invoice.status.value,
            ),
        )
        await log_user_activity(
            db,
            current_user,
            f"Submitted delivery details for purchase order '{order.order_number}'; "
            f"invoice '{invoice.invoice_number}' generated",
            order.id,
        )
        await db.commit()
    except IntegrityError:
        # the partial unique index caught a second live invoice
        await db.rollback()
        raise InvalidStateError("An invoice already exists for this purchase order")
    except Exception:
        await db.rollback()
        raise

    order = await get_order_or_404(db, order_id)
    logger.info("Delivery details submitted for %s, invoice %s", order.order_number, invoice.invoice_number)
    await _publish(sink, [
        OrderEvent("deliveryDetailsSubmitted", order_channel(order.id), {"orderId": order.id}),
        _message_event("newMessage", order.id, delivery_message),
        _message_event("newMessage", order.id, invoice_message),
        OrderEvent(
            "orderUpdated", order_channel(order.id),
            {"orderId": order.id, "status": order.status.value, "chatClosed": True},
        ),
    ])
    return DeliveryDetailsResponse(
        message="Delivery details submitted and invoice generated. Chat is now closed.",
        data=DeliveryDetailsResult(
            purchase_order=purchase_order_out(order),
            invoice=VendorInvoiceOut.model_validate(invoice),
            delivery_message=serialize_message(delivery_message),
            invoice_message=serialize_message(invoice_message),
        ),
    )


# --------------------------
# UPDATE DELIVERY STATUS
# --------------------------
async def update_delivery_status(
    db: AsyncSession, order_id: int, data: DeliveryStatusUpdate, current_user, sink: NotificationSink = None
) -> PurchaseOrderResponse:
    order = await get_order_or_404(db, order_id, for_update=True)
    ensure_order_vendor(order, current_user, "update delivery")

    now = _now()
    expected_arrival = data.canonical_expected_arrival
    previous_status = order.status
    try:
        if data.status is not None:
            order.delivery_status = data.status
        if data.tracking_number is not None:
            order.tracking_number = data.tracking_number.strip()
        if data.carrier is not None:
            order.carrier = data.carrier.strip()
        if expected_arrival is not None:
            order.expected_arrival = expected_arrival
        if data.notes is not None:
            order.delivery_notes = data.notes.strip()
        order.delivery_updated_at = now
        order.delivery_updated_by = current_user.id

        if data.status == DeliveryStatus.delivered:
            order.actual_arrival = now
        if data.status is not None:
            order.status = next_status(order.status, Transition.tracking_updated, data.status)

        order.delivery_updates.append(
            DeliveryTrackingUpdate(
                status=order.delivery_status,
                status_supplied=data.status is not None,
                tracking_number=(data.tracking_number or "").strip(),
                carrier=(data.carrier or "").strip(),
                expected_arrival=expected_arrival,
                notes=(data.notes or "").strip(),
                updated_at=now,
                updated_by=current_user.id,
            )
        )
        await log_user_activity(
            db,
            current_user,
            f"Updated delivery of purchase order '{order.order_number}' to '{_status_name(order.delivery_status)}'",
            order.id,
        )
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    order = await get_order_or_404(db, order_id)
    if order.status != previous_status:
        logger.info("Purchase order %s moved to %s by delivery update", order.order_number, order.status.value)

    update_payload = {
        "orderId": order.id,
        "status": order.status.value,
        "deliveryTracking": delivery_tracking_out(order).model_dump(mode="json"),
    }
    await _publish(sink, [
        OrderEvent("orderUpdated", order_channel(order.id), update_payload),
        OrderEvent("orderUpdated", vendor_channel(order.vendor_id), update_payload),
    ])
    return PurchaseOrderResponse(message="Delivery tracking updated", data=purchase_order_out(order))


# --------------------------
# READ RECEIPTS
# --------------------------
async def mark_messages_read(db: AsyncSession, order_id: int, current_user) -> MarkReadResponse:
    order = await get_order_or_404(db, order_id)
    await ensure_order_access(db, order, current_user)
    try:
        marked = await mark_read(db, order.id, current_user.id)
        await db.commit()
    except Exception:
        await db.rollback()
        raise
    return MarkReadResponse(message="Messages marked as read", data=MarkReadResult(marked=marked))


async def unread_count(db: AsyncSession, current_user) -> UnreadCountResponse:
    unread = await count_unread(db, current_user.id, visible_orders_filter(current_user))
    return UnreadCountResponse(message="Unread count retrieved", data=UnreadCount(unread=unread))
