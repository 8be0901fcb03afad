# app/core/notifications.py
"""
Real-time fan-out of negotiation events.

Services never talk to sockets directly; they build ``OrderEvent`` objects and
hand them to whatever ``NotificationSink`` the application was started with
(``app.state.notification_sink``). Delivery is best effort: clients treat
events as a hint to re-fetch, persisted state is the source of truth.
"""
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Set

from fastapi import Request, WebSocket

logger = logging.getLogger(__name__)


def order_channel(order_id: int) -> str:
    return f"order_{order_id}"


def vendor_channel(vendor_id: int) -> str:
    return f"vendor_{vendor_id}"


@dataclass
class OrderEvent:
    name: str
    channel: str
    payload: Dict[str, Any] = field(default_factory=dict)


class NotificationSink:
    async def publish(self, event: OrderEvent) -> None:
        raise NotImplementedError


class NullNotificationSink(NotificationSink):
    async def publish(self, event: OrderEvent) -> None:
        return None


class InMemoryNotificationSink(NotificationSink):
    """Keeps every published event; handy for scripts and tests."""

    def __init__(self):
        self.events: List[OrderEvent] = []

    async def publish(self, event: OrderEvent) -> None:
        self.events.append(event)

    def names(self, channel: str = None) -> List[str]:
        return [e.name for e in self.events if channel is None or e.channel == channel]

    def clear(self) -> None:
        self.events.clear()


class WebSocketNotificationSink(NotificationSink):
    def __init__(self):
        self.rooms: Dict[str, Set[WebSocket]] = defaultdict(set)

    def join(self, channel: str, websocket: WebSocket) -> None:
        self.rooms[channel].add(websocket)
        logger.debug("Socket joined %s", channel)

    def leave(self, channel: str, websocket: WebSocket) -> None:
        members = self.rooms.get(channel)
        if members is None:
            return
        members.discard(websocket)
        if not members:
            del self.rooms[channel]

    def disconnect(self, websocket: WebSocket) -> None:
        for channel in list(self.rooms):
            self.leave(channel, websocket)

    async def publish(self, event: OrderEvent) -> None:
        message = {"event": event.name, "data": event.payload}
        for websocket in list(self.rooms.get(event.channel, ())):
            try:
                await websocket.send_json(message)
            except Exception as e:
                logger.info("Dropping socket from %s after send failure: %s", event.channel, e)
                self.disconnect(websocket)


async def publish_events(sink: NotificationSink, events: Iterable[OrderEvent]) -> None:
    """Publish after commit. A failing sink is logged, never raised."""
    for event in events:
        try:
            await sink.publish(event)
        except Exception:
            logger.exception("Failed to publish %s on %s", event.name, event.channel)


def get_notification_sink(request: Request) -> NotificationSink:
    return request.app.state.notification_sink
