# app/utils/access_control.py
"""
Who may see and act on a purchase order.

owner     every order
vendor    orders placed with them
employee  orders of projects they are assigned to
client    orders of their own projects
anyone else, or an order whose project cannot be found: no access

Checks always hit the database; nothing is cached between calls.
"""
from sqlalchemy import select, exists, true, false
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import ForbiddenError
from app.models.project_models import Project, project_employees
from app.models.purchase_order_models import PurchaseOrder
from app.models.user_models import UserRole


async def can_access_order(db: AsyncSession, order: PurchaseOrder, user) -> bool:
    if order is None or user is None:
        return False

    if user.role == UserRole.owner:
        return True

    if user.role == UserRole.vendor:
        return order.vendor_id == user.id

    if user.role == UserRole.employee:
        assigned = await db.execute(
            select(
                exists().where(
                    project_employees.c.project_id == order.project_id,
                    project_employees.c.user_id == user.id,
                )
            )
        )
        return bool(assigned.scalar())

    if user.role == UserRole.client:
        result = await db.execute(select(Project.client_id).where(Project.id == order.project_id))
        row = result.first()
        return row is not None and row.client_id == user.id

    return False


async def ensure_order_access(db: AsyncSession, order: PurchaseOrder, user) -> None:
    if not await can_access_order(db, order, user):
        raise ForbiddenError("Access denied")


def ensure_order_vendor(order: PurchaseOrder, user, action: str) -> None:
    if user.role != UserRole.vendor:
        raise ForbiddenError(f"Only vendors can {action}")
    if order.vendor_id != user.id:
        raise ForbiddenError(f"You can only {action} for your own purchase orders")


def visible_orders_filter(user):
    """The same rules as can_access_order, as a WHERE clause over PurchaseOrder."""
    if user.role == UserRole.owner:
        return true()
    if user.role == UserRole.vendor:
        return PurchaseOrder.vendor_id == user.id
    if user.role == UserRole.employee:
        return PurchaseOrder.project_id.in_(
            select(project_employees.c.project_id).where(project_employees.c.user_id == user.id)
        )
    if user.role == UserRole.client:
        return PurchaseOrder.project_id.in_(select(Project.id).where(Project.client_id == user.id))
    return false()
