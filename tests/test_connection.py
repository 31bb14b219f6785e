"""Tests for the assistant stream connection manager."""

import json

import pytest

from campus_assistant.api.connection import ConnectionManager
from campus_assistant.errors import ConnectionFailure
from campus_assistant.models.events import DoneEvent, RoutingEvent, StreamingEvent
from tests.helpers import FakeWebSocket, wait_for


@pytest.fixture
def websocket() -> FakeWebSocket:
    return FakeWebSocket()


@pytest.fixture
def connection(test_settings, websocket) -> ConnectionManager:
    async def connector(url: str) -> FakeWebSocket:
        assert url == "ws://test/ws/chat"
        return websocket

    return ConnectionManager(test_settings, connector=connector)


@pytest.mark.asyncio
async def test_events_are_dispatched_in_arrival_order(connection, websocket) -> None:
    received = []
    await connection.connect(received.append)

    websocket.feed({"status": "routing", "current_tool": "mail"})
    websocket.feed({"status": "STREAMING", "chunk": "Hello "})
    websocket.feed({"status": "done", "answer": {"answer": "Hello"}})
    await wait_for(lambda: len(received) == 3)

    assert [type(e) for e in received] == [RoutingEvent, StreamingEvent, DoneEvent]
    await connection.close()


@pytest.mark.asyncio
async def test_malformed_frames_are_dropped(connection, websocket, caplog) -> None:
    received = []
    await connection.connect(received.append)

    websocket.feed("{not json")
    websocket.feed({"status": "unknown"})
    websocket.feed({"status": "STREAMING", "chunk": "ok "})
    await wait_for(lambda: len(received) == 1)

    assert received[0].chunk == "ok "
    assert connection.is_open
    assert caplog.text.count("Dropping malformed frame") == 2
    await connection.close()


@pytest.mark.asyncio
async def test_handler_errors_do_not_stop_the_reader(connection, websocket) -> None:
    received = []

    def handler(event) -> None:
        received.append(event)
        if len(received) == 1:
            raise RuntimeError("boom")

    await connection.connect(handler)
    websocket.feed({"status": "STREAMING", "chunk": "a "})
    websocket.feed({"status": "STREAMING", "chunk": "b "})
    await wait_for(lambda: len(received) == 2)
    await connection.close()


@pytest.mark.asyncio
async def test_send_writes_outbound_frame(connection, websocket) -> None:
    await connection.connect(lambda event: None)

    assert await connection.send("When is the library open?", "abc123") is True
    assert json.loads(websocket.sent[0]) == {
        "question": "When is the library open?",
        "session_id": "abc123",
    }
    await connection.close()


@pytest.mark.asyncio
async def test_send_while_closed_is_a_logged_noop(connection, websocket, caplog) -> None:
    assert await connection.send("q", None) is False
    assert websocket.sent == []
    assert "stream is not open" in caplog.text


@pytest.mark.asyncio
async def test_close_marks_stream_closed(connection, websocket) -> None:
    await connection.connect(lambda event: None)
    await connection.close()

    assert connection.is_open is False
    assert websocket.closed is True
    assert await connection.send("q", "s") is False
    await connection.close()


@pytest.mark.asyncio
async def test_peer_close_marks_stream_closed(connection, websocket) -> None:
    await connection.connect(lambda event: None)
    await websocket.close()

    await wait_for(lambda: not connection.is_open)
    await connection.close()


@pytest.mark.asyncio
async def test_connect_failure_raises_connection_failure(test_settings) -> None:
    async def refusing(url: str):
        raise OSError("connection refused")

    connection = ConnectionManager(test_settings, connector=refusing)

    with pytest.raises(ConnectionFailure):
        await connection.connect(lambda event: None)
    assert connection.is_open is False


@pytest.mark.asyncio
async def test_connect_twice_is_rejected(connection) -> None:
    await connection.connect(lambda event: None)
    with pytest.raises(ConnectionFailure):
        await connection.connect(lambda event: None)
    await connection.close()
