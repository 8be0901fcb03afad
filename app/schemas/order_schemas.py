# app/schemas/order_schemas.py
from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel
from typing import List, Optional
from datetime import datetime

from app.core.config import DEFAULT_CURRENCY
from app.models.purchase_order_models import PurchaseOrder, OrderStatus, DeliveryStatus


class CamelModel(BaseModel):
    """Request bodies accept both camelCase and snake_case keys."""

    class Config:
        alias_generator = to_camel
        populate_by_name = True


# --------------------------
# Purchase Order Item Schemas
# --------------------------
class OrderItemIn(BaseModel):
    material_name: str = Field(min_length=1)
    description: Optional[str] = None
    quantity: float = Field(gt=0)
    unit: str


class OrderItemOut(BaseModel):
    material_name: str
    description: Optional[str] = None
    quantity: float
    unit: str
    delivered_quantity: float = 0
    delivery_status: str = "pending"
    delivery_date: Optional[datetime] = None


# --------------------------
# Purchase Order Schemas
# --------------------------
class PurchaseOrderCreate(BaseModel):
    project_id: int
    vendor_id: int
    material_request_id: Optional[int] = None
    title: str = Field(min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    items: List[OrderItemIn] = Field(min_length=1)
    currency: str = DEFAULT_CURRENCY


class PurchaseOrderCancel(BaseModel):
    reason: str = ""


# --------------------------
# Delivery Receipt Schemas
# --------------------------
class DeliveryReceiptItemIn(CamelModel):
    item_index: int = Field(ge=0)
    delivered_quantity: float = Field(gt=0)


class DeliveryReceiptCreate(CamelModel):
    delivery_date: datetime
    items: List[DeliveryReceiptItemIn] = Field(min_length=1)
    delivered_by: str = ""
    notes: str = ""


class DeliveryReceiptOut(BaseModel):
    id: int
    delivery_date: datetime
    items: List[dict] = []
    delivered_by: str = ""
    notes: str = ""
    outcome: DeliveryStatus
    received_by: Optional[int] = None
    created_at: datetime

    class Config:
        from_attributes = True


class NegotiationOut(BaseModel):
    is_active: bool
    chat_closed: bool
    chat_closed_at: Optional[datetime] = None
    accepted_quotation_message_id: Optional[int] = None
    final_amount: Optional[float] = None
    last_message_at: Optional[datetime] = None


class DeliveryUpdateOut(BaseModel):
    status: DeliveryStatus
    tracking_number: str = ""
    carrier: str = ""
    expected_arrival: Optional[datetime] = None
    notes: str = ""
    updated_at: datetime
    updated_by: Optional[int] = None

    class Config:
        from_attributes = True


class DeliveryTrackingOut(BaseModel):
    status: DeliveryStatus
    tracking_number: str = ""
    carrier: str = ""
    expected_arrival: Optional[datetime] = None
    # same value as expected_arrival, kept for older clients
    expected_delivery_date: Optional[datetime] = None
    actual_arrival: Optional[datetime] = None
    notes: str = ""
    updated_at: Optional[datetime] = None
    updated_by: Optional[int] = None
    updates: List[DeliveryUpdateOut] = []


class PurchaseOrderOut(BaseModel):
    id: int
    order_number: str
    material_request_id: Optional[int] = None
    project_id: int
    vendor_id: int
    created_by: int
    title: str
    description: Optional[str] = None
    items: List[OrderItemOut] = []
    currency: str
    status: OrderStatus
    sent_at: Optional[datetime] = None
    acknowledged_at: Optional[datetime] = None
    negotiation: NegotiationOut
    delivery_tracking: DeliveryTrackingOut
    deliveries: List[DeliveryReceiptOut] = []
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


def delivery_tracking_out(order: PurchaseOrder) -> DeliveryTrackingOut:
    return DeliveryTrackingOut(
        status=order.delivery_status,
        tracking_number=order.tracking_number or "",
        carrier=order.carrier or "",
        expected_arrival=order.expected_arrival,
        expected_delivery_date=order.expected_arrival,
        actual_arrival=order.actual_arrival,
        notes=order.delivery_notes or "",
        updated_at=order.delivery_updated_at,
        updated_by=order.delivery_updated_by,
        updates=[DeliveryUpdateOut.model_validate(u) for u in order.delivery_updates],
    )


def purchase_order_out(order: PurchaseOrder) -> PurchaseOrderOut:
    return PurchaseOrderOut(
        id=order.id,
        order_number=order.order_number,
        material_request_id=order.material_request_id,
        project_id=order.project_id,
        vendor_id=order.vendor_id,
        created_by=order.created_by,
        title=order.title,
        description=order.description,
        items=order.items or [],
        currency=order.currency,
        status=order.status,
        sent_at=order.sent_at,
        acknowledged_at=order.acknowledged_at,
        negotiation=NegotiationOut(
            is_active=order.negotiation_active,
            chat_closed=order.chat_closed,
            chat_closed_at=order.chat_closed_at,
            accepted_quotation_message_id=order.accepted_quotation_message_id,
            final_amount=order.final_amount,
            last_message_at=order.last_message_at,
        ),
        delivery_tracking=delivery_tracking_out(order),
        deliveries=[DeliveryReceiptOut.model_validate(r) for r in order.delivery_receipts],
        created_at=order.created_at,
        updated_at=order.updated_at,
    )


# --------------------------
# Response Schemas
# --------------------------
class PurchaseOrderResponse(BaseModel):
    message: str
    data: Optional[PurchaseOrderOut] = None


class PurchaseOrderListResponse(BaseModel):
    message: str
    data: List[PurchaseOrderOut] = []


class DeliveryTrackingResponse(BaseModel):
    message: str
    data: DeliveryTrackingOut


class DeliveryOverview(BaseModel):
    active_deliveries: List[PurchaseOrderOut] = []
    delivered: List[PurchaseOrderOut] = []
    total: int = 0


class DeliveryOverviewResponse(BaseModel):
    message: str
    data: DeliveryOverview
