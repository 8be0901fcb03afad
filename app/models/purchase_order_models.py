# app/models/purchase_order_models.py
from datetime import datetime, timezone
import enum
from sqlalchemy import (
    Column, Integer, String, Boolean, ForeignKey, Numeric, DateTime, Enum, JSON, Text, func
)
from sqlalchemy.ext.mutable import MutableList
from sqlalchemy.orm import relationship
from app.core.db import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OrderStatus(str, enum.Enum):
    draft = "draft"
    sent = "sent"
    acknowledged = "acknowledged"
    in_negotiation = "in_negotiation"
    accepted = "accepted"
    in_progress = "in_progress"
    partially_delivered = "partially_delivered"
    completed = "completed"
    cancelled = "cancelled"


TERMINAL_ORDER_STATUSES = {OrderStatus.completed, OrderStatus.cancelled}


class DeliveryStatus(str, enum.Enum):
    not_started = "not_started"
    processing = "processing"
    preparing = "preparing"
    packed = "packed"
    dispatched = "dispatched"
    in_transit = "in_transit"
    out_for_delivery = "out_for_delivery"
    delivered = "delivered"
    partially_delivered = "partially_delivered"


class PurchaseOrder(Base):
    __tablename__ = "purchase_orders"

    id = Column(Integer, primary_key=True, index=True)
    order_number = Column(String, unique=True, nullable=False, index=True)

    material_request_id = Column(Integer, nullable=True, index=True)
    project_id = Column(Integer, ForeignKey("projects.id"), nullable=False, index=True)
    vendor_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    created_by = Column(Integer, ForeignKey("users.id"), nullable=False)

    title = Column(String(100), nullable=False)
    description = Column(String(500), nullable=True)
    items = Column(MutableList.as_mutable(JSON), default=list)  # [{"material_name", "quantity", "unit"}]
    currency = Column(String(3), nullable=False, default="INR")

    status = Column(Enum(OrderStatus, name="order_status"), default=OrderStatus.draft, nullable=False, index=True)
    sent_at = Column(DateTime(timezone=True), nullable=True)
    acknowledged_at = Column(DateTime(timezone=True), nullable=True)

    # Negotiation
    negotiation_active = Column(Boolean, default=True, nullable=False)
    chat_closed = Column(Boolean, default=False, nullable=False)
    chat_closed_at = Column(DateTime(timezone=True), nullable=True)
    accepted_quotation_message_id = Column(
        Integer,
        ForeignKey("negotiation_messages.id", use_alter=True, name="fk_po_accepted_quotation"),
        nullable=True,
    )
    final_amount = Column(Numeric(14, 2), nullable=True)
    last_message_at = Column(DateTime(timezone=True), nullable=True, index=True)

    # Delivery tracking; expected_arrival is the only expected-date column
    delivery_status = Column(Enum(DeliveryStatus, name="delivery_status"), default=DeliveryStatus.not_started, nullable=False)
    tracking_number = Column(String, default="", nullable=False)
    carrier = Column(String, default="", nullable=False)
    expected_arrival = Column(DateTime(timezone=True), nullable=True)
    actual_arrival = Column(DateTime(timezone=True), nullable=True)
    delivery_notes = Column(Text, default="", nullable=False)
    delivery_updated_at = Column(DateTime(timezone=True), nullable=True)
    delivery_updated_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    # bumped by every goods receipt; guards the read-modify-write of items
    receipts_recorded = Column(Integer, default=0, nullable=False)

    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=utcnow)

    project = relationship("Project", lazy="selectin")
    vendor = relationship("User", foreign_keys=[vendor_id], lazy="selectin")
    delivery_updates = relationship(
        "DeliveryTrackingUpdate",
        back_populates="purchase_order",
        cascade="all, delete-orphan",
        order_by="DeliveryTrackingUpdate.id",
        lazy="selectin",
    )
    delivery_receipts = relationship(
        "DeliveryReceipt",
        back_populates="purchase_order",
        cascade="all, delete-orphan",
        order_by="DeliveryReceipt.id",
        lazy="selectin",
    )

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_ORDER_STATUSES

    def __repr__(self):
        return f"<PurchaseOrder(id={self.id}, number='{self.order_number}', status='{self.status}')>"


class DeliveryTrackingUpdate(Base):
    """One row per vendor tracking update; never edited."""
    __tablename__ = "delivery_tracking_updates"

    id = Column(Integer, primary_key=True, index=True)
    purchase_order_id = Column(Integer, ForeignKey("purchase_orders.id", ondelete="CASCADE"), nullable=False, index=True)
    status = Column(Enum(DeliveryStatus, name="delivery_status"), nullable=False)
    # false for notes/carrier/date-only updates, which carry the current status forward
    status_supplied = Column(Boolean, default=True, nullable=False)
    tracking_number = Column(String, default="", nullable=False)
    carrier = Column(String, default="", nullable=False)
    expected_arrival = Column(DateTime(timezone=True), nullable=True)
    notes = Column(Text, default="", nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_by = Column(Integer, ForeignKey("users.id"), nullable=True)

    purchase_order = relationship("PurchaseOrder", back_populates="delivery_updates")


class DeliveryReceipt(Base):
    """Goods received on site, recorded by the owner or an assigned employee."""
    __tablename__ = "delivery_receipts"

    id = Column(Integer, primary_key=True, index=True)
    purchase_order_id = Column(Integer, ForeignKey("purchase_orders.id", ondelete="CASCADE"), nullable=False, index=True)
    delivery_date = Column(DateTime(timezone=True), nullable=False)
    items = Column(JSON, default=list)  # [{"item_index", "delivered_quantity"}]
    delivered_by = Column(String, default="", nullable=False)
    notes = Column(Text, default="", nullable=False)
    # partially_delivered or delivered, whatever the receipt left the order at
    outcome = Column(Enum(DeliveryStatus, name="delivery_status"), nullable=False)
    received_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    purchase_order = relationship("PurchaseOrder", back_populates="delivery_receipts")
