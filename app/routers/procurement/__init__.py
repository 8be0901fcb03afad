from fastapi import APIRouter
from .negotiation import router as negotiation_router
from .orders import router as orders_router
from .vendor_invoices import router as vendor_invoices_router
from .realtime import router as realtime_router

router = APIRouter()

# negotiation first: /orders/unread-count must win over /orders/{order_id}
router.include_router(negotiation_router)
router.include_router(orders_router)
router.include_router(vendor_invoices_router)
router.include_router(realtime_router)
