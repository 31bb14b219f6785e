"""Client side of the assistant's WebSocket stream.

Owns exactly one connection. Inbound frames are parsed and forwarded to a
single ``on_event`` callback in arrival order; malformed frames are logged
and dropped. There is no outbound queue: ``send`` while the channel is not
open logs a warning and does nothing.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional, Union

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from campus_assistant.config import Settings, get_settings
from campus_assistant.errors import ConnectionFailure, FrameParseFailure
from campus_assistant.models.events import (
    DoneEvent,
    OutgoingQuery,
    RoutingEvent,
    StreamingEvent,
    parse_frame,
)

logger = logging.getLogger(__name__)

Event = Union[RoutingEvent, StreamingEvent, DoneEvent]
EventHandler = Callable[[Event], Any]
Connector = Callable[[str], Awaitable[Any]]


class ConnectionManager:
    """Owns a single bidirectional stream to the assistant service.

    Lifecycle:
        conn = ConnectionManager()
        await conn.connect(on_event)   # opens the socket, starts the reader
        await conn.send("question", session_id)
        await conn.close()
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        connector: Optional[Connector] = None,
    ) -> None:
        settings = settings or get_settings()
        self.url = settings.assistant_ws_url
        self._connector: Connector = connector or websockets.connect
        self._websocket: Any = None
        self._reader: Optional[asyncio.Task] = None
        self._on_event: Optional[EventHandler] = None
        self._open = False

    @property
    def is_open(self) -> bool:
        return self._open

    async def connect(self, on_event: EventHandler) -> None:
        """Open the stream and start dispatching inbound events.

        Raises:
            ConnectionFailure: the socket could not be opened, or a stream
                is already open.
        """
        if self._open:
            raise ConnectionFailure("stream already open")

        logger.info("Connecting to assistant stream at %s", self.url)
        try:
            self._websocket = await self._connector(self.url)
        except (OSError, WebSocketException, asyncio.TimeoutError) as exc:
            raise ConnectionFailure(f"could not connect to {self.url}: {exc}") from exc

        self._on_event = on_event
        self._open = True
        self._reader = asyncio.create_task(self._read_loop())
        logger.info("Assistant stream connected")

    async def send(self, question: str, session_id: Optional[str]) -> bool:
        """Transmit one query. Returns False if nothing was sent."""
        if not self._open or self._websocket is None:
            logger.warning("Dropping outbound query: stream is not open")
            return False

        frame = OutgoingQuery(question=question, session_id=session_id).to_frame()
        try:
            await self._websocket.send(frame)
        except (OSError, WebSocketException) as exc:
            logger.error("Failed to send query on assistant stream: %s", exc)
            return False
        logger.debug("Sent query for session %s", session_id)
        return True

    async def close(self) -> None:
        """Tear down the stream. Safe to call more than once."""
        self._open = False
        websocket, self._websocket = self._websocket, None
        reader, self._reader = self._reader, None

        if websocket is not None:
            try:
                await websocket.close()
            except (OSError, WebSocketException) as exc:
                logger.warning("Error while closing assistant stream: %s", exc)

        if reader is not None and reader is not asyncio.current_task():
            reader.cancel()
            try:
                await reader
            except asyncio.CancelledError:
                pass
        logger.info("Assistant stream closed")

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _read_loop(self) -> None:
        websocket = self._websocket
        try:
            async for raw in websocket:
                self._dispatch(raw)
        except ConnectionClosed as exc:
            logger.info("Assistant stream closed by peer: %s", exc)
        except (OSError, WebSocketException) as exc:
            logger.error("Assistant stream failed: %s", exc)
        finally:
            if self._websocket is websocket:
                self._open = False

    def _dispatch(self, raw: Union[str, bytes]) -> None:
        try:
            event = parse_frame(raw)
        except FrameParseFailure as exc:
            logger.warning("Dropping malformed frame: %s (raw=%.200r)", exc, exc.raw)
            return

        if self._on_event is None:
            return
        try:
            self._on_event(event)
        except Exception:
            logger.exception("Event handler failed for %s frame", event.status)
