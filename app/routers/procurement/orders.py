# app/routers/procurement/orders.py
from fastapi import APIRouter, Depends, Query, status
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.db import get_db
from app.core.notifications import NotificationSink, get_notification_sink
from app.models.purchase_order_models import OrderStatus
from app.models.user_models import UserRole
from app.schemas.order_schemas import (
    PurchaseOrderCreate,
    PurchaseOrderCancel,
    DeliveryReceiptCreate,
    PurchaseOrderResponse,
    PurchaseOrderListResponse,
    DeliveryTrackingResponse,
    DeliveryOverviewResponse,
)
from app.services.purchase_order_service import (
    create_purchase_order,
    list_purchase_orders,
    get_purchase_order,
    send_purchase_order,
    acknowledge_purchase_order,
    cancel_purchase_order,
    record_delivery,
    get_delivery_tracking,
    get_delivery_overview,
)
from app.utils.get_user import get_current_user
from app.utils.check_roles import require_role

router = APIRouter(prefix="/orders", tags=["Purchase Orders"])


# --------------------------
# CREATE PURCHASE ORDER
# --------------------------
@router.post("", response_model=PurchaseOrderResponse, status_code=status.HTTP_201_CREATED)
@require_role([UserRole.owner])
async def create_purchase_order_route(
    data: PurchaseOrderCreate,
    db: AsyncSession = Depends(get_db),
    _user=Depends(get_current_user)
):
    return await create_purchase_order(db, data, _user)


# --------------------------
# LIST PURCHASE ORDERS (visible to the caller)
# --------------------------
@router.get("", response_model=PurchaseOrderListResponse)
async def list_purchase_orders_route(
    status: Optional[OrderStatus] = Query(None, description="Filter by order status"),
    project_id: Optional[int] = Query(None, alias="projectId"),
    vendor_id: Optional[int] = Query(None, alias="vendorId"),
    db: AsyncSession = Depends(get_db),
    _user=Depends(get_current_user)
):
    return await list_purchase_orders(db, _user, status=status, project_id=project_id, vendor_id=vendor_id)


# --------------------------
# DELIVERY OVERVIEW (before /{order_id})
# --------------------------
@router.get("/delivery-overview", response_model=DeliveryOverviewResponse)
@require_role([UserRole.owner])
async def delivery_overview_route(
    db: AsyncSession = Depends(get_db),
    _user=Depends(get_current_user)
):
    return await get_delivery_overview(db, _user)


# --------------------------
# GET SINGLE PURCHASE ORDER
# --------------------------
@router.get("/{order_id}", response_model=PurchaseOrderResponse)
async def get_purchase_order_route(
    order_id: int,
    db: AsyncSession = Depends(get_db),
    _user=Depends(get_current_user)
):
    return await get_purchase_order(db, order_id, _user)


@router.get("/{order_id}/delivery-tracking", response_model=DeliveryTrackingResponse)
async def get_delivery_tracking_route(
    order_id: int,
    db: AsyncSession = Depends(get_db),
    _user=Depends(get_current_user)
):
    return await get_delivery_tracking(db, order_id, _user)


# --------------------------
# SEND / ACKNOWLEDGE / CANCEL
# --------------------------
@router.put("/{order_id}/send", response_model=PurchaseOrderResponse)
@require_role([UserRole.owner])
async def send_purchase_order_route(
    order_id: int,
    db: AsyncSession = Depends(get_db),
    sink: NotificationSink = Depends(get_notification_sink),
    _user=Depends(get_current_user)
):
    return await send_purchase_order(db, order_id, _user, sink)


@router.put("/{order_id}/acknowledge", response_model=PurchaseOrderResponse)
@require_role([UserRole.vendor])
async def acknowledge_purchase_order_route(
    order_id: int,
    db: AsyncSession = Depends(get_db),
    sink: NotificationSink = Depends(get_notification_sink),
    _user=Depends(get_current_user)
):
    return await acknowledge_purchase_order(db, order_id, _user, sink)


@router.put("/{order_id}/cancel", response_model=PurchaseOrderResponse)
@require_role([UserRole.owner])
async def cancel_purchase_order_route(
    order_id: int,
    data: PurchaseOrderCancel = PurchaseOrderCancel(),
    db: AsyncSession = Depends(get_db),
    sink: NotificationSink = Depends(get_notification_sink),
    _user=Depends(get_current_user)
):
    return await cancel_purchase_order(db, order_id, _user, reason=data.reason, sink=sink)


# --------------------------
# RECORD DELIVERY (goods received on site)
# --------------------------
@router.post("/{order_id}/delivery", response_model=PurchaseOrderResponse)
@require_role([UserRole.owner, UserRole.employee])
async def record_delivery_route(
    order_id: int,
    data: DeliveryReceiptCreate,
    db: AsyncSession = Depends(get_db),
    sink: NotificationSink = Depends(get_notification_sink),
    _user=Depends(get_current_user)
):
    return await record_delivery(db, order_id, data, _user, sink)
