# app/schemas/negotiation_schemas.py
from datetime import datetime
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator

from app.core.config import (
    DEFAULT_CURRENCY, SUPPORTED_CURRENCIES, MESSAGE_MAX_LENGTH, QUOTATION_NOTE_MAX_LENGTH
)
from app.models.negotiation_models import (
    NegotiationMessage, QuotationMessage, InvoiceMessage, SystemMessage, DeliveryMessage,
    SenderRole, QuotationStatus, SystemEvent
)
from app.models.purchase_order_models import DeliveryStatus
from app.schemas.order_schemas import CamelModel, PurchaseOrderOut
from app.schemas.vendor_invoice_schemas import VendorInvoiceOut


# --------------------------
# Requests
# --------------------------
class MessageCreate(CamelModel):
    content: Optional[str] = Field(default="", max_length=MESSAGE_MAX_LENGTH)
    message_type: Literal["text", "system"] = "text"


class QuotationItemIn(CamelModel):
    name: str
    quantity: float = 0
    unit: Optional[str] = None
    unit_price: float = 0
    total: Optional[float] = None


class QuotationCreate(CamelModel):
    # positivity is a negotiation rule, checked by the service
    amount: Optional[float] = None
    currency: str = DEFAULT_CURRENCY
    note: str = Field(default="", max_length=QUOTATION_NOTE_MAX_LENGTH)
    items: List[QuotationItemIn] = []
    valid_until: Optional[datetime] = None
    in_response_to: Optional[int] = None

    @field_validator("currency")
    @classmethod
    def check_currency(cls, v: str) -> str:
        v = (v or DEFAULT_CURRENCY).upper()
        if v not in SUPPORTED_CURRENCIES:
            raise ValueError(f"Currency must be one of {', '.join(SUPPORTED_CURRENCIES)}")
        return v


class QuotationReject(CamelModel):
    reason: str = ""


class DeliveryDetailsCreate(CamelModel):
    estimated_delivery_date: Optional[datetime] = None
    tracking_number: str = ""
    carrier: str = ""
    delivery_notes: str = ""


class DeliveryStatusUpdate(CamelModel):
    status: Optional[DeliveryStatus] = None
    tracking_number: Optional[str] = None
    carrier: Optional[str] = None
    # older clients send expectedDeliveryDate; both map to one stored field
    expected_arrival: Optional[datetime] = None
    expected_delivery_date: Optional[datetime] = None
    notes: Optional[str] = None

    @property
    def canonical_expected_arrival(self) -> Optional[datetime]:
        return self.expected_arrival or self.expected_delivery_date


# --------------------------
# Message variants
# --------------------------
class ReadReceiptOut(BaseModel):
    user_id: int
    read_at: datetime


class MessageOutBase(BaseModel):
    id: int
    purchase_order_id: int
    sender_id: int
    sender_name: Optional[str] = None
    sender_role: SenderRole
    content: str = ""
    created_at: datetime
    read_by: List[ReadReceiptOut] = []


class TextMessageOut(MessageOutBase):
    message_type: Literal["text"] = "text"


class QuotationItemOut(BaseModel):
    name: str
    quantity: float = 0
    unit: Optional[str] = None
    unit_price: float = 0
    total: Optional[float] = None


class QuotationPayload(BaseModel):
    amount: Optional[float]
    currency: Optional[str]
    note: Optional[str]
    status: Optional[QuotationStatus]
    items: List[QuotationItemOut] = []
    valid_until: Optional[datetime] = None
    in_response_to: Optional[int] = None


class QuotationMessageOut(MessageOutBase):
    message_type: Literal["quotation"] = "quotation"
    quotation: QuotationPayload


class InvoicePayload(BaseModel):
    invoice_id: Optional[int]
    invoice_number: Optional[str]
    amount: Optional[float]
    status: Optional[str]


class InvoiceMessageOut(MessageOutBase):
    message_type: Literal["invoice"] = "invoice"
    invoice: InvoicePayload


class DeliveryPayload(BaseModel):
    estimated_delivery_date: Optional[datetime] = None
    tracking_number: Optional[str] = None
    carrier: Optional[str] = None
    notes: Optional[str] = None


class DeliveryMessageOut(MessageOutBase):
    message_type: Literal["delivery"] = "delivery"
    delivery: DeliveryPayload


class SystemMessageOut(MessageOutBase):
    message_type: Literal["system"] = "system"
    system_event: Optional[SystemEvent] = None


NegotiationMessageOut = Annotated[
    Union[TextMessageOut, QuotationMessageOut, InvoiceMessageOut, DeliveryMessageOut, SystemMessageOut],
    Field(discriminator="message_type"),
]


def serialize_message(message: NegotiationMessage):
    base = {
        "id": message.id,
        "purchase_order_id": message.purchase_order_id,
        "sender_id": message.sender_id,
        "sender_name": message.sender.display_name if message.sender else None,
        "sender_role": message.sender_role,
        "content": message.content or "",
        "created_at": message.created_at,
        "read_by": [ReadReceiptOut(user_id=r.user_id, read_at=r.read_at) for r in message.reads],
    }
    if isinstance(message, QuotationMessage):
        return QuotationMessageOut(
            **base,
            quotation=QuotationPayload(
                amount=message.quotation_amount,
                currency=message.quotation_currency,
                note=message.quotation_note,
                status=message.quotation_status,
                items=message.quotation_items or [],
                valid_until=message.valid_until,
                in_response_to=message.in_response_to_id,
            ),
        )
    if isinstance(message, InvoiceMessage):
        return InvoiceMessageOut(
            **base,
            invoice=InvoicePayload(
                invoice_id=message.invoice_id,
                invoice_number=message.invoice_number,
                amount=message.invoice_amount,
                status=message.invoice_status,
            ),
        )
    if isinstance(message, DeliveryMessage):
        return DeliveryMessageOut(
            **base,
            delivery=DeliveryPayload(
                estimated_delivery_date=message.estimated_delivery_date,
                tracking_number=message.delivery_tracking_number,
                carrier=message.delivery_carrier,
                notes=message.delivery_notes,
            ),
        )
    if isinstance(message, SystemMessage):
        return SystemMessageOut(**base, system_event=message.system_event)
    return TextMessageOut(**base)


# --------------------------
# Response Schemas
# --------------------------
class MessageResponse(BaseModel):
    message: str
    data: Optional[NegotiationMessageOut] = None


class MessageListResponse(BaseModel):
    message: str
    data: List[NegotiationMessageOut] = []


class UnreadCount(BaseModel):
    unread: int


class UnreadCountResponse(BaseModel):
    message: str
    data: UnreadCount


class MarkReadResult(BaseModel):
    marked: int


class MarkReadResponse(BaseModel):
    message: str
    data: MarkReadResult


class AcceptQuotationResult(BaseModel):
    purchase_order: PurchaseOrderOut
    awaiting_delivery_details: bool = True
    already_accepted: bool = False


class AcceptQuotationResponse(BaseModel):
    message: str
    data: AcceptQuotationResult


class DeliveryDetailsResult(BaseModel):
    purchase_order: PurchaseOrderOut
    invoice: VendorInvoiceOut
    delivery_message: DeliveryMessageOut
    invoice_message: InvoiceMessageOut


class DeliveryDetailsResponse(BaseModel):
    message: str
    data: DeliveryDetailsResult
