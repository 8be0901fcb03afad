# app/services/negotiation_services/order_state.py
"""
Order status as a function of what happened to the order.

``next_status`` is the single place where a transition decides the order's new
status; the negotiation service calls it for every write, and ``replay_status``
folds the same function over an order's recorded history. Replaying an order's
message log together with its delivery-tracking history and goods receipts
therefore always lands on the status stored on the order.
"""
import enum
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable, List, Optional

from app.models.negotiation_models import (
    NegotiationMessage, MessageType, SystemEvent
)
from app.models.purchase_order_models import (
    OrderStatus, DeliveryStatus, DeliveryTrackingUpdate, DeliveryReceipt
)


class Transition(str, enum.Enum):
    order_sent = "order_sent"
    order_acknowledged = "order_acknowledged"
    order_cancelled = "order_cancelled"
    quotation_submitted = "quotation_submitted"
    quotation_accepted = "quotation_accepted"
    quotation_rejected = "quotation_rejected"
    delivery_details_submitted = "delivery_details_submitted"
    tracking_updated = "tracking_updated"
    delivery_recorded = "delivery_recorded"


_SYSTEM_EVENT_TRANSITIONS = {
    SystemEvent.order_sent: Transition.order_sent,
    SystemEvent.order_acknowledged: Transition.order_acknowledged,
    SystemEvent.order_cancelled: Transition.order_cancelled,
    SystemEvent.quotation_accepted: Transition.quotation_accepted,
    SystemEvent.quotation_rejected: Transition.quotation_rejected,
}


def next_status(
    current: OrderStatus,
    transition: Transition,
    delivery_status: Optional[DeliveryStatus] = None,
) -> OrderStatus:
    if transition == Transition.order_sent:
        return OrderStatus.sent
    if transition == Transition.order_acknowledged:
        return OrderStatus.acknowledged
    if transition == Transition.order_cancelled:
        return OrderStatus.cancelled

    if transition == Transition.quotation_submitted:
        # a draft order only becomes "sent" on its first quotation
        if current == OrderStatus.draft:
            return OrderStatus.sent
        if current in (OrderStatus.sent, OrderStatus.acknowledged):
            return OrderStatus.in_negotiation
        return current

    if transition == Transition.quotation_accepted:
        return OrderStatus.accepted
    if transition == Transition.quotation_rejected:
        return OrderStatus.in_negotiation
    if transition == Transition.delivery_details_submitted:
        return OrderStatus.in_progress

    if transition in (Transition.tracking_updated, Transition.delivery_recorded):
        # a cancelled order stays cancelled whatever the trucks do
        if current == OrderStatus.cancelled:
            return current
        if delivery_status == DeliveryStatus.delivered:
            return OrderStatus.completed
        if delivery_status == DeliveryStatus.partially_delivered:
            return OrderStatus.partially_delivered
        return current

    raise ValueError(f"Unknown transition: {transition}")


@dataclass(frozen=True)
class RecordedTransition:
    at: datetime
    source: int  # 0 = message log, 1 = tracking history, 2 = receipts; breaks timestamp ties
    seq: int
    transition: Transition
    delivery_status: Optional[DeliveryStatus] = None

    @property
    def sort_key(self):
        return (self.at, self.source, self.seq)


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def transition_for_message(message: NegotiationMessage) -> Optional[Transition]:
    if message.message_type == MessageType.quotation:
        return Transition.quotation_submitted
    if message.message_type == MessageType.delivery:
        return Transition.delivery_details_submitted
    if message.message_type == MessageType.system:
        return _SYSTEM_EVENT_TRANSITIONS.get(message.system_event)
    return None


def recorded_transitions(
    messages: Iterable[NegotiationMessage],
    tracking_updates: Iterable[DeliveryTrackingUpdate] = (),
    receipts: Iterable[DeliveryReceipt] = (),
) -> List[RecordedTransition]:
    recorded = []
    for message in messages:
        transition = transition_for_message(message)
        if transition is not None:
            recorded.append(RecordedTransition(_as_utc(message.created_at), 0, message.id, transition))
    for update in tracking_updates:
        if update.status_supplied is False:
            continue
        recorded.append(
            RecordedTransition(
                _as_utc(update.updated_at), 1, update.id,
                Transition.tracking_updated, update.status,
            )
        )
    for receipt in receipts:
        recorded.append(
            RecordedTransition(
                _as_utc(receipt.created_at), 2, receipt.id,
                Transition.delivery_recorded, receipt.outcome,
            )
        )
    recorded.sort(key=lambda r: r.sort_key)
    return recorded


def replay_status(
    messages: Iterable[NegotiationMessage],
    tracking_updates: Iterable[DeliveryTrackingUpdate] = (),
    receipts: Iterable[DeliveryReceipt] = (),
    initial: OrderStatus = OrderStatus.draft,
) -> OrderStatus:
    status = initial
    for recorded in recorded_transitions(messages, tracking_updates, receipts):
        status = next_status(status, recorded.transition, recorded.delivery_status)
    return status
