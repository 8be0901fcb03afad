# app/models/vendor_invoice_models.py
from decimal import Decimal
import enum
from sqlalchemy import (
    Column, Integer, String, ForeignKey, Numeric, DateTime, Enum, Index, JSON, text
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.core.db import Base
from app.models.purchase_order_models import utcnow


class VendorInvoiceStatus(str, enum.Enum):
    pending = "pending"
    approved = "approved"
    paid = "paid"
    rejected = "rejected"
    cancelled = "cancelled"


class VendorInvoice(Base):
    """Snapshot of the accepted quotation; never re-derived from the message afterwards."""
    __tablename__ = "vendor_invoices"

    id = Column(Integer, primary_key=True, index=True)
    invoice_number = Column(String, unique=True, nullable=False, index=True)

    purchase_order_id = Column(Integer, ForeignKey("purchase_orders.id", ondelete="CASCADE"), nullable=False, index=True)
    project_id = Column(Integer, ForeignKey("projects.id"), nullable=False, index=True)
    vendor_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    accepted_quotation_id = Column(Integer, ForeignKey("negotiation_messages.id"), nullable=False)

    title = Column(String, default="", nullable=False)
    description = Column(String, default="", nullable=False)
    items = Column(JSON, default=list)

    subtotal = Column(Numeric(14, 2), nullable=False, default=Decimal("0.00"))
    total_amount = Column(Numeric(14, 2), nullable=False)
    amount_paid = Column(Numeric(14, 2), nullable=False, default=Decimal("0.00"))
    amount_due = Column(Numeric(14, 2), nullable=False, default=Decimal("0.00"))
    currency = Column(String(3), nullable=False, default="INR")

    status = Column(Enum(VendorInvoiceStatus, name="vendor_invoice_status"), default=VendorInvoiceStatus.pending, nullable=False, index=True)
    due_date = Column(DateTime(timezone=True), nullable=True)

    created_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=utcnow)

    purchase_order = relationship("PurchaseOrder", lazy="selectin")
    vendor = relationship("User", foreign_keys=[vendor_id], lazy="selectin")

    __table_args__ = (
        # one live invoice per purchase order
        Index(
            "uq_vendor_invoices_active_order",
            "purchase_order_id",
            unique=True,
            sqlite_where=text("status != 'cancelled'"),
            postgresql_where=text("status != 'cancelled'"),
        ),
    )
