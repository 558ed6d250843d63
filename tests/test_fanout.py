"""Tests for the real-time connection registry."""
import anyio
import pytest
from starlette.websockets import WebSocketDisconnect

from faae_core import fanout


class RecordingSink:
    def __init__(self):
        self.messages = []

    async def send_json(self, data):
        self.messages.append(data)


class FailingSink:
    async def send_json(self, data):
        raise ConnectionError("socket closed")


class TestConnectionRegistry:
    """Test scoped broadcast and dead-connection pruning."""

    def test_broadcast_reaches_scope_only(self):
        registry = fanout.ConnectionRegistry()
        ana, bruno = RecordingSink(), RecordingSink()
        registry.register(ana, fanout.GLOBAL_SCOPE, fanout.user_scope("ana"))
        registry.register(bruno, fanout.GLOBAL_SCOPE, fanout.user_scope("bruno"))

        delivered = anyio.run(registry.broadcast, fanout.user_scope("ana"), fanout.EventType.NOTIFICATION_CREATED, {"id": 1})

        assert delivered == 1
        assert ana.messages == [{"type": "notification_created", "data": {"id": 1}}]
        assert bruno.messages == []

    def test_global_broadcast(self):
        registry = fanout.ConnectionRegistry()
        sinks = [RecordingSink() for _ in range(3)]
        for sink in sinks:
            registry.register(sink, fanout.GLOBAL_SCOPE)

        assert anyio.run(registry.broadcast, fanout.GLOBAL_SCOPE, "task_created", {"id": 7}) == 3
        assert all(s.messages[0]["type"] == "task_created" for s in sinks)

    def test_failed_sink_is_dropped_and_others_still_receive(self):
        registry = fanout.ConnectionRegistry()
        good, bad = RecordingSink(), FailingSink()
        registry.register(bad, fanout.GLOBAL_SCOPE, fanout.user_scope("x"))
        registry.register(good, fanout.GLOBAL_SCOPE)

        assert anyio.run(registry.broadcast, fanout.GLOBAL_SCOPE, "task_deleted", {"id": 1}) == 1
        assert good.messages
        assert registry.sinks(fanout.user_scope("x")) == set()
        assert registry.connection_count() == 1

    def test_unregister(self):
        registry = fanout.ConnectionRegistry()
        sink = RecordingSink()
        registry.register(sink, fanout.GLOBAL_SCOPE, fanout.user_scope("ana"))
        registry.unregister(sink)

        assert registry.connection_count() == 0
        assert anyio.run(registry.broadcast, fanout.GLOBAL_SCOPE, "task_created", {}) == 0

    def test_publish_without_event_loop_is_dropped(self):
        registry = fanout.ConnectionRegistry()
        sink = RecordingSink()
        registry.register(sink, fanout.GLOBAL_SCOPE)

        assert fanout.publish(fanout.EventType.TASK_CREATED, {"id": 1}, target=registry) == 0
        assert sink.messages == []


class TestReconnectDelays:
    """Test the client backoff schedule."""

    def test_exponential_with_cap(self):
        assert fanout.reconnect_delays(5, 1.0, 30.0) == [1.0, 2.0, 4.0, 8.0, 16.0]
        assert fanout.reconnect_delays(7, 1.0, 30.0)[-2:] == [30.0, 30.0]

    def test_no_attempts(self):
        assert fanout.reconnect_delays(0, 1.0, 30.0) == []


class TestWebSocketEndpoint:
    """Test the /ws endpoint."""

    def test_welcome_message(self, client):
        with client.websocket_connect("/ws?userId=user-ana") as websocket:
            message = websocket.receive_json()

        assert message["type"] == "connected"
        assert message["reconnect"]["max_attempts"] == 5
        assert message["reconnect"]["delays_seconds"][0] == 1.0

    def test_missing_user_id_is_rejected(self, client):
        with pytest.raises(WebSocketDisconnect) as exc_info:
            with client.websocket_connect("/ws") as websocket:
                websocket.receive_json()
        assert exc_info.value.code == 1008
