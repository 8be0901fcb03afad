# app/models/__init__.py
from app.models.user_models import User, UserRole
from app.models.activity_models import UserActivity
from app.models.project_models import Project, project_employees
from app.models.purchase_order_models import (
    PurchaseOrder, DeliveryTrackingUpdate, DeliveryReceipt, OrderStatus, DeliveryStatus
)
from app.models.negotiation_models import (
    NegotiationMessage, TextMessage, QuotationMessage, InvoiceMessage,
    SystemMessage, DeliveryMessage, MessageRead,
    MessageType, SenderRole, QuotationStatus, SystemEvent
)
from app.models.vendor_invoice_models import VendorInvoice, VendorInvoiceStatus
