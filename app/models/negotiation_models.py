# app/models/negotiation_models.py
"""
Negotiation log.

One table, one row per message, mapped with single-table inheritance on
``message_type`` so every message type is its own class carrying only its own
payload columns. Payload columns are prefixed per type because they share the
table.
"""
import enum
from sqlalchemy import (
    Column, Integer, String, ForeignKey, Numeric, DateTime, Enum, JSON, Text,
    UniqueConstraint, Index
)
from sqlalchemy.orm import relationship
from app.core.db import Base
from app.models.purchase_order_models import utcnow


class MessageType(str, enum.Enum):
    text = "text"
    quotation = "quotation"
    invoice = "invoice"
    system = "system"
    delivery = "delivery"


class SenderRole(str, enum.Enum):
    owner = "owner"
    vendor = "vendor"
    employee = "employee"
    client = "client"
    admin = "admin"
    system = "system"


class QuotationStatus(str, enum.Enum):
    pending = "pending"
    negotiated = "negotiated"
    accepted = "accepted"
    rejected = "rejected"
    expired = "expired"


class SystemEvent(str, enum.Enum):
    order_created = "order_created"
    order_sent = "order_sent"
    order_acknowledged = "order_acknowledged"
    order_cancelled = "order_cancelled"
    quotation_accepted = "quotation_accepted"
    quotation_rejected = "quotation_rejected"
    invoice_generated = "invoice_generated"
    payment_received = "payment_received"
    delivery_update = "delivery_update"
    delivery_details_required = "delivery_details_required"
    delivery_submitted = "delivery_submitted"
    delivery_recorded = "delivery_recorded"


class NegotiationMessage(Base):
    __tablename__ = "negotiation_messages"

    id = Column(Integer, primary_key=True, index=True)
    purchase_order_id = Column(Integer, ForeignKey("purchase_orders.id", ondelete="CASCADE"), nullable=False, index=True)
    sender_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    sender_role = Column(Enum(SenderRole, name="sender_role"), nullable=False)
    message_type = Column(Enum(MessageType, name="message_type"), nullable=False)
    content = Column(Text, default="", nullable=False)
    # Python-side default: several messages of one transition must not share a server timestamp
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    sender = relationship("User", lazy="selectin")
    reads = relationship(
        "MessageRead",
        back_populates="message",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    __mapper_args__ = {"polymorphic_on": message_type, "with_polymorphic": "*"}
    __table_args__ = (
        Index("ix_negotiation_messages_order_created", "purchase_order_id", "created_at"),
    )

    def is_read_by(self, user_id: int) -> bool:
        return any(r.user_id == user_id for r in self.reads)

    def __repr__(self):
        return f"<{type(self).__name__}(id={self.id}, order={self.purchase_order_id})>"


class TextMessage(NegotiationMessage):
    __mapper_args__ = {"polymorphic_identity": MessageType.text}


class QuotationMessage(NegotiationMessage):
    quotation_amount = Column(Numeric(14, 2), nullable=True)
    quotation_currency = Column(String(3), nullable=True)
    quotation_note = Column(String(500), nullable=True)
    quotation_status = Column(Enum(QuotationStatus, name="quotation_status"), nullable=True, index=True)
    quotation_items = Column(JSON, nullable=True)
    valid_until = Column(DateTime(timezone=True), nullable=True)
    in_response_to_id = Column(Integer, ForeignKey("negotiation_messages.id"), nullable=True)

    __mapper_args__ = {"polymorphic_identity": MessageType.quotation}

    @property
    def can_act(self) -> bool:
        return self.quotation_status == QuotationStatus.pending


class InvoiceMessage(NegotiationMessage):
    invoice_id = Column(Integer, ForeignKey("vendor_invoices.id", use_alter=True, name="fk_message_invoice"), nullable=True)
    invoice_number = Column(String, nullable=True)
    invoice_amount = Column(Numeric(14, 2), nullable=True)
    invoice_status = Column(String, nullable=True)

    __mapper_args__ = {"polymorphic_identity": MessageType.invoice}


class SystemMessage(NegotiationMessage):
    system_event = Column(Enum(SystemEvent, name="system_event"), nullable=True)

    __mapper_args__ = {"polymorphic_identity": MessageType.system}


class DeliveryMessage(NegotiationMessage):
    estimated_delivery_date = Column(DateTime(timezone=True), nullable=True)
    delivery_tracking_number = Column(String, nullable=True)
    delivery_carrier = Column(String, nullable=True)
    delivery_notes = Column(Text, nullable=True)

    __mapper_args__ = {"polymorphic_identity": MessageType.delivery}


class MessageRead(Base):
    __tablename__ = "message_reads"

    id = Column(Integer, primary_key=True, index=True)
    message_id = Column(Integer, ForeignKey("negotiation_messages.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    read_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    message = relationship("NegotiationMessage", back_populates="reads")

    __table_args__ = (
        UniqueConstraint("message_id", "user_id", name="uq_message_read_user"),
    )
