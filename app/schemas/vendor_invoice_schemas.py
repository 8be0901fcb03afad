# app/schemas/vendor_invoice_schemas.py
from pydantic import BaseModel
from typing import List, Optional
from datetime import datetime

from app.models.vendor_invoice_models import VendorInvoiceStatus


class InvoiceItemOut(BaseModel):
    name: Optional[str] = None
    quantity: float = 0
    unit: Optional[str] = None
    unit_price: float = 0
    total: Optional[float] = None


class VendorInvoiceOut(BaseModel):
    id: int
    invoice_number: str
    purchase_order_id: int
    project_id: int
    vendor_id: int
    accepted_quotation_id: int
    title: str
    description: str
    items: List[InvoiceItemOut] = []
    subtotal: float
    total_amount: float
    amount_paid: float
    amount_due: float
    currency: str
    status: VendorInvoiceStatus
    due_date: Optional[datetime] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class VendorInvoiceResponse(BaseModel):
    message: str
    data: Optional[VendorInvoiceOut] = None


class VendorInvoiceListResponse(BaseModel):
    message: str
    data: List[VendorInvoiceOut] = []
