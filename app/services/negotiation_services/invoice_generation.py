# app/services/negotiation_services/invoice_generation.py
"""
Turns the accepted quotation of an order into a VendorInvoice.

The invoice copies amount, currency, items and note by value so later edits to
the chat can never change what was billed. Runs inside the delivery-details
transaction and does not commit.
"""
from datetime import datetime, timezone
from decimal import Decimal
import logging
import random

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import DEFAULT_CURRENCY
from app.core.exceptions import InvalidStateError
from app.models.negotiation_models import QuotationMessage
from app.models.purchase_order_models import PurchaseOrder
from app.models.vendor_invoice_models import VendorInvoice, VendorInvoiceStatus

logger = logging.getLogger(__name__)

INVOICE_NUMBER_ATTEMPTS = 5


def make_invoice_number() -> str:
    stamp = datetime.now(timezone.utc).strftime("%Y%m%d%H%M%S%f")
    return f"INV-{stamp}-{random.randint(0, 9999):04d}"


async def active_invoice_for_order(db: AsyncSession, order_id: int):
    result = await db.execute(
        select(VendorInvoice).where(
            VendorInvoice.purchase_order_id == order_id,
            VendorInvoice.status != VendorInvoiceStatus.cancelled,
        )
    )
    return result.scalars().first()


async def unique_invoice_number(db: AsyncSession) -> str:
    for _ in range(INVOICE_NUMBER_ATTEMPTS):
        number = make_invoice_number()
        taken = await db.execute(select(VendorInvoice.id).where(VendorInvoice.invoice_number == number))
        if taken.first() is None:
            return number
        logger.warning("Invoice number %s already taken, generating another", number)
    raise InvalidStateError("Could not allocate a unique invoice number")


async def generate_invoice(
    db: AsyncSession,
    order: PurchaseOrder,
    quotation: QuotationMessage,
    created_by: int,
) -> VendorInvoice:
    if await active_invoice_for_order(db, order.id) is not None:
        raise InvalidStateError("An invoice already exists for this purchase order")
    if quotation.quotation_amount is None:
        raise InvalidStateError("Invalid quotation structure - missing amount")

    amount = Decimal(str(quotation.quotation_amount))
    invoice = VendorInvoice(
        invoice_number=await unique_invoice_number(db),
        purchase_order_id=order.id,
        project_id=order.project_id,
        vendor_id=order.vendor_id,
        accepted_quotation_id=quotation.id,
        title=f"Invoice for {order.title}",
        description=quotation.quotation_note or "",
        items=list(quotation.quotation_items or []),
        subtotal=amount,
        total_amount=amount,
        amount_paid=Decimal("0.00"),
        amount_due=amount,
        currency=quotation.quotation_currency or DEFAULT_CURRENCY,
        status=VendorInvoiceStatus.pending,
        created_by=created_by,
    )
    db.add(invoice)
    await db.flush()
    logger.info("Generated invoice %s for purchase order %s", invoice.invoice_number, order.order_number)
    return invoice
