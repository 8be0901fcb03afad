# app/routers/procurement/vendor_invoices.py
from fastapi import APIRouter, Depends, Query
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.db import get_db
from app.models.vendor_invoice_models import VendorInvoiceStatus
from app.schemas.vendor_invoice_schemas import VendorInvoiceResponse, VendorInvoiceListResponse
from app.services.vendor_invoice_service import list_vendor_invoices, get_vendor_invoice
from app.utils.get_user import get_current_user

router = APIRouter(prefix="/vendor-invoices", tags=["Vendor Invoices"])


@router.get("", response_model=VendorInvoiceListResponse)
async def list_vendor_invoices_route(
    status: Optional[VendorInvoiceStatus] = Query(None),
    project_id: Optional[int] = Query(None, alias="projectId"),
    vendor_id: Optional[int] = Query(None, alias="vendorId"),
    db: AsyncSession = Depends(get_db),
    _user=Depends(get_current_user)
):
    return await list_vendor_invoices(db, _user, status=status, project_id=project_id, vendor_id=vendor_id)


@router.get("/{invoice_id}", response_model=VendorInvoiceResponse)
async def get_vendor_invoice_route(
    invoice_id: int,
    db: AsyncSession = Depends(get_db),
    _user=Depends(get_current_user)
):
    return await get_vendor_invoice(db, invoice_id, _user)
