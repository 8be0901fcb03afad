from app.core.notifications import (
    InMemoryNotificationSink,
    NotificationSink,
    OrderEvent,
    WebSocketNotificationSink,
    order_channel,
    publish_events,
    vendor_channel,
)


class FakeSocket:
    def __init__(self, fail=False):
        self.sent = []
        self.fail = fail

    async def send_json(self, data):
        if self.fail:
            raise RuntimeError("connection reset")
        self.sent.append(data)


class BrokenSink(NotificationSink):
    async def publish(self, event):
        raise RuntimeError("sink down")


def test_channel_names():
    assert order_channel(7) == "order_7"
    assert vendor_channel(3) == "vendor_3"


async def test_publish_events_keeps_order():
    sink = InMemoryNotificationSink()
    await publish_events(sink, [
        OrderEvent("quotationSubmitted", "order_1"),
        OrderEvent("newMessage", "order_1"),
        OrderEvent("orderUpdated", "vendor_2"),
    ])
    assert sink.names() == ["quotationSubmitted", "newMessage", "orderUpdated"]
    assert sink.names("vendor_2") == ["orderUpdated"]


async def test_failing_sink_is_not_raised(caplog):
    await publish_events(BrokenSink(), [OrderEvent("newMessage", "order_1")])
    assert "Failed to publish newMessage" in caplog.text


async def test_websocket_sink_fans_out_to_room_members():
    sink = WebSocketNotificationSink()
    follower, bystander = FakeSocket(), FakeSocket()
    sink.join("order_1", follower)
    sink.join("order_2", bystander)

    await sink.publish(OrderEvent("orderUpdated", "order_1", {"orderId": 1}))

    assert follower.sent == [{"event": "orderUpdated", "data": {"orderId": 1}}]
    assert bystander.sent == []


async def test_websocket_sink_drops_dead_sockets():
    sink = WebSocketNotificationSink()
    dead = FakeSocket(fail=True)
    sink.join("order_1", dead)
    sink.join("vendor_2", dead)

    await sink.publish(OrderEvent("newMessage", "order_1"))

    assert sink.rooms == {}


def test_leave_removes_empty_rooms():
    sink = WebSocketNotificationSink()
    socket = FakeSocket()
    sink.join("order_1", socket)
    sink.leave("order_1", socket)
    sink.leave("order_9", socket)
    assert "order_1" not in sink.rooms
