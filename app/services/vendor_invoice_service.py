# app/services/vendor_invoice_service.py
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import NotFoundError, ForbiddenError
from app.models.user_models import UserRole
from app.models.vendor_invoice_models import VendorInvoice, VendorInvoiceStatus
from app.schemas.vendor_invoice_schemas import VendorInvoiceOut, VendorInvoiceResponse, VendorInvoiceListResponse

INVOICE_READER_ROLES = (UserRole.owner, UserRole.admin, UserRole.vendor)


def _ensure_invoice_reader(current_user) -> None:
    if current_user.role not in INVOICE_READER_ROLES:
        raise ForbiddenError("Access denied")


# --------------------------
# LIST VENDOR INVOICES
# --------------------------
async def list_vendor_invoices(
    db: AsyncSession,
    current_user,
    status: Optional[VendorInvoiceStatus] = None,
    project_id: Optional[int] = None,
    vendor_id: Optional[int] = None,
) -> VendorInvoiceListResponse:
    _ensure_invoice_reader(current_user)

    query = select(VendorInvoice)
    if current_user.role == UserRole.vendor:
        # vendors only ever see their own invoices, whatever filter they pass
        query = query.where(VendorInvoice.vendor_id == current_user.id)
    elif vendor_id:
        query = query.where(VendorInvoice.vendor_id == vendor_id)
    if status:
        query = query.where(VendorInvoice.status == status)
    if project_id:
        query = query.where(VendorInvoice.project_id == project_id)

    result = await db.execute(query.order_by(VendorInvoice.created_at.desc(), VendorInvoice.id.desc()))
    invoices = result.scalars().all()
    return VendorInvoiceListResponse(
        message="Vendor invoices retrieved successfully",
        data=[VendorInvoiceOut.model_validate(i) for i in invoices],
    )


# --------------------------
# GET VENDOR INVOICE
# --------------------------
async def get_vendor_invoice(db: AsyncSession, invoice_id: int, current_user) -> VendorInvoiceResponse:
    _ensure_invoice_reader(current_user)

    invoice = await db.get(VendorInvoice, invoice_id)
    if not invoice:
        raise NotFoundError("Vendor invoice not found")
    if current_user.role == UserRole.vendor and invoice.vendor_id != current_user.id:
        raise ForbiddenError("Access denied")

    return VendorInvoiceResponse(
        message="Vendor invoice retrieved successfully",
        data=VendorInvoiceOut.model_validate(invoice),
    )
