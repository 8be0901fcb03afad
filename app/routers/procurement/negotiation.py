# app/routers/procurement/negotiation.py
from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.db import get_db
from app.core.notifications import NotificationSink, get_notification_sink
from app.models.user_models import UserRole
from app.schemas.negotiation_schemas import (
    MessageCreate,
    QuotationCreate,
    QuotationReject,
    DeliveryDetailsCreate,
    DeliveryStatusUpdate,
    MessageResponse,
    MessageListResponse,
    UnreadCountResponse,
    MarkReadResponse,
    AcceptQuotationResponse,
    DeliveryDetailsResponse,
)
from app.schemas.order_schemas import PurchaseOrderResponse
from app.services.negotiation_services.negotiation_service import (
    list_messages,
    send_message,
    submit_quotation,
    accept_quotation,
    reject_quotation,
    submit_delivery_details,
    update_delivery_status,
    mark_messages_read,
    unread_count,
)
from app.utils.get_user import get_current_user
from app.utils.check_roles import require_role

router = APIRouter(prefix="/orders", tags=["Negotiation"])


# --------------------------
# UNREAD COUNT (before /{order_id} routes)
# --------------------------
@router.get("/unread-count", response_model=UnreadCountResponse)
async def unread_count_route(
    db: AsyncSession = Depends(get_db),
    _user=Depends(get_current_user)
):
    return await unread_count(db, _user)


# --------------------------
# MESSAGES
# --------------------------
@router.get("/{order_id}/messages", response_model=MessageListResponse)
async def list_messages_route(
    order_id: int,
    db: AsyncSession = Depends(get_db),
    _user=Depends(get_current_user)
):
    return await list_messages(db, order_id, _user)


@router.post("/{order_id}/messages", response_model=MessageResponse, status_code=status.HTTP_201_CREATED)
async def send_message_route(
    order_id: int,
    data: MessageCreate,
    db: AsyncSession = Depends(get_db),
    sink: NotificationSink = Depends(get_notification_sink),
    _user=Depends(get_current_user)
):
    return await send_message(db, order_id, data, _user, sink)


@router.put("/{order_id}/mark-read", response_model=MarkReadResponse)
async def mark_read_route(
    order_id: int,
    db: AsyncSession = Depends(get_db),
    _user=Depends(get_current_user)
):
    return await mark_messages_read(db, order_id, _user)


# --------------------------
# QUOTATIONS
# --------------------------
@router.post("/{order_id}/quotation", response_model=MessageResponse, status_code=status.HTTP_201_CREATED)
@require_role([UserRole.vendor])
async def submit_quotation_route(
    order_id: int,
    data: QuotationCreate,
    db: AsyncSession = Depends(get_db),
    sink: NotificationSink = Depends(get_notification_sink),
    _user=Depends(get_current_user)
):
    return await submit_quotation(db, order_id, data, _user, sink)


@router.put("/{order_id}/quotation/{message_id}/accept", response_model=AcceptQuotationResponse)
@require_role([UserRole.owner])
async def accept_quotation_route(
    order_id: int,
    message_id: int,
    db: AsyncSession = Depends(get_db),
    sink: NotificationSink = Depends(get_notification_sink),
    _user=Depends(get_current_user)
):
    return await accept_quotation(db, order_id, message_id, _user, sink)


@router.put("/{order_id}/quotation/{message_id}/reject", response_model=MessageResponse)
@require_role([UserRole.owner])
async def reject_quotation_route(
    order_id: int,
    message_id: int,
    data: QuotationReject = QuotationReject(),
    db: AsyncSession = Depends(get_db),
    sink: NotificationSink = Depends(get_notification_sink),
    _user=Depends(get_current_user)
):
    return await reject_quotation(db, order_id, message_id, data, _user, sink)


# --------------------------
# DELIVERY
# --------------------------
@router.post("/{order_id}/delivery-details", response_model=DeliveryDetailsResponse, status_code=status.HTTP_201_CREATED)
@require_role([UserRole.vendor])
async def submit_delivery_details_route(
    order_id: int,
    data: DeliveryDetailsCreate,
    db: AsyncSession = Depends(get_db),
    sink: NotificationSink = Depends(get_notification_sink),
    _user=Depends(get_current_user)
):
    return await submit_delivery_details(db, order_id, data, _user, sink)


@router.put("/{order_id}/delivery-status", response_model=PurchaseOrderResponse)
@require_role([UserRole.vendor])
async def update_delivery_status_route(
    order_id: int,
    data: DeliveryStatusUpdate,
    db: AsyncSession = Depends(get_db),
    sink: NotificationSink = Depends(get_notification_sink),
    _user=Depends(get_current_user)
):
    return await update_delivery_status(db, order_id, data, _user, sink)
