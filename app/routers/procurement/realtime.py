# app/routers/procurement/realtime.py
"""
Socket endpoint for live negotiation updates.

Connect with ``/ws?token=<access token>``. Vendors are put in their personal
``vendor_<id>`` room straight away; anyone may then send
``{"action": "joinOrder", "orderId": 12}`` / ``{"action": "leaveOrder", ...}``
to follow an order they are allowed to see.

A socket can stay open for hours, so it never holds a database session: the
token check and every join open their own short session.
"""
import logging

from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect, status

from app.core.db import get_session_factory
from app.core.exceptions import ProcurementError
from app.core.notifications import WebSocketNotificationSink, order_channel, vendor_channel
from app.models.user_models import User, UserRole
from app.services.negotiation_services.message_log import get_order_or_404
from app.utils.access_control import can_access_order
from app.utils.get_user import resolve_token_user

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Realtime"])


def _error(detail: str, **extra) -> dict:
    return {"event": "error", "data": {"detail": detail, **extra}}


async def _authenticate(session_factory, token: str):
    async with session_factory() as db:
        user = await resolve_token_user(db, token)
        return user.id, user.role


async def _join_order(session_factory, sink: WebSocketNotificationSink, websocket: WebSocket, user_id, order_id) -> dict:
    try:
        order_id = int(order_id)
    except (TypeError, ValueError):
        return _error("orderId must be an integer")

    async with session_factory() as db:
        try:
            order = await get_order_or_404(db, order_id)
        except ProcurementError as e:
            return _error(e.detail, orderId=order_id)
        # access is re-checked against the current user row on every join
        user = await db.get(User, user_id)
        if user is None or not user.is_active or not await can_access_order(db, order, user):
            return _error("Access denied", orderId=order.id)

    sink.join(order_channel(order_id), websocket)
    return {"event": "joinedOrder", "data": {"orderId": order_id}}


@router.websocket("/ws")
async def negotiation_socket(
    websocket: WebSocket,
    token: str = Query(""),
    session_factory=Depends(get_session_factory),
):
    sink = websocket.app.state.notification_sink
    if not isinstance(sink, WebSocketNotificationSink):
        await websocket.close(code=status.WS_1011_INTERNAL_ERROR)
        return

    try:
        user_id, role = await _authenticate(session_factory, token)
    except ProcurementError as e:
        logger.info("Rejected socket connection: %s", e.detail)
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()
    if role == UserRole.vendor:
        sink.join(vendor_channel(user_id), websocket)

    try:
        while True:
            try:
                payload = await websocket.receive_json()
            except ValueError:
                await websocket.send_json(_error("Frames must be JSON objects"))
                continue

            action = payload.get("action") if isinstance(payload, dict) else None
            order_id = payload.get("orderId") if isinstance(payload, dict) else None

            if action == "joinOrder":
                await websocket.send_json(await _join_order(session_factory, sink, websocket, user_id, order_id))
            elif action == "leaveOrder":
                try:
                    sink.leave(order_channel(int(order_id)), websocket)
                except (TypeError, ValueError):
                    await websocket.send_json(_error("orderId must be an integer"))
                    continue
                await websocket.send_json({"event": "leftOrder", "data": {"orderId": int(order_id)}})
            else:
                await websocket.send_json(_error(f"Unknown action: {action}"))
    except WebSocketDisconnect:
        logger.debug("Socket for user %s disconnected", user_id)
    finally:
        sink.disconnect(websocket)
