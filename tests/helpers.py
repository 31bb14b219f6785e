"""Test doubles shared across test modules."""

from __future__ import annotations

import asyncio
import itertools
import json
from typing import Callable, Optional

from fastapi import FastAPI, HTTPException, Request

from campus_assistant.models.events import parse_frame


class FakeTimer:
    def __init__(self, due: float, seq: int, callback: Callable[[], None]) -> None:
        self.due = due
        self.seq = seq
        self.callback = callback
        self.cancelled = False
        self.fired = False

    def cancel(self) -> None:
        self.cancelled = True


class FakeScheduler:
    """Manual clock: timers fire only when the test advances time."""

    def __init__(self) -> None:
        self.now = 0.0
        self.timers: list[FakeTimer] = []
        self._seq = itertools.count()

    def call_later(self, delay: float, callback: Callable[[], None]) -> FakeTimer:
        timer = FakeTimer(self.now + delay, next(self._seq), callback)
        self.timers.append(timer)
        return timer

    @property
    def pending(self) -> list[FakeTimer]:
        live = [t for t in self.timers if not t.cancelled and not t.fired]
        return sorted(live, key=lambda t: (t.due, t.seq))

    def run_next(self) -> bool:
        pending = self.pending
        if not pending:
            return False
        timer = pending[0]
        self.now = max(self.now, timer.due)
        timer.fired = True
        timer.callback()
        return True

    def advance(self, seconds: float) -> None:
        target = self.now + seconds
        while self.pending and self.pending[0].due <= target:
            self.run_next()
        self.now = target

    def run_all(self) -> None:
        while self.run_next():
            pass


class FakeWebSocket:
    """Async-iterable stand-in for a websockets client connection."""

    def __init__(self) -> None:
        self.sent: list[str] = []
        self.closed = False
        self._incoming: asyncio.Queue = asyncio.Queue()

    def feed(self, frame: str | bytes | dict) -> None:
        if isinstance(frame, dict):
            frame = json.dumps(frame)
        self._incoming.put_nowait(frame)

    async def send(self, data: str) -> None:
        self.sent.append(data)

    async def close(self) -> None:
        self.closed = True
        self._incoming.put_nowait(None)

    def __aiter__(self) -> FakeWebSocket:
        return self

    async def __anext__(self) -> str | bytes:
        item = await self._incoming.get()
        if item is None:
            raise StopAsyncIteration
        return item


class FakeConnection:
    """ConnectionManager double that records sends and injects frames."""

    def __init__(self) -> None:
        self.sent: list[tuple[str, Optional[str]]] = []
        self.is_open = False
        self._on_event = None

    async def connect(self, on_event) -> None:
        self._on_event = on_event
        self.is_open = True

    async def send(self, question: str, session_id: Optional[str]) -> bool:
        if not self.is_open:
            return False
        self.sent.append((question, session_id))
        return True

    async def close(self) -> None:
        self.is_open = False

    def push(self, frame: dict) -> None:
        self._on_event(parse_frame(json.dumps(frame)))


async def wait_for(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(0.005)


def create_fake_service() -> FastAPI:
    """In-memory assistant service implementing the session REST contract.

    Set ``app.state.fail_writes = True`` to make every write return 503.
    """
    app = FastAPI()
    app.state.sessions = {}
    app.state.fail_writes = False
    ids = itertools.count(1)

    def _session(session_id: str) -> dict:
        try:
            return app.state.sessions[session_id]
        except KeyError:
            raise HTTPException(status_code=404, detail="Session not found")

    def _check_writable() -> None:
        if app.state.fail_writes:
            raise HTTPException(status_code=503, detail="unavailable")

    @app.post("/api/sessions")
    async def create_session(request: Request) -> dict:
        _check_writable()
        body = await request.json()
        session_id = f"session-{next(ids)}"
        app.state.sessions[session_id] = {
            "title": body["first_question"],
            "messages": [],
            "meta_data": [],
        }
        return {"session_id": session_id}

    @app.get("/api/sessions")
    async def list_sessions() -> list:
        return [
            {"session_id": sid, "session_title": doc["title"]}
            for sid, doc in app.state.sessions.items()
        ]

    @app.post("/api/sessions/{session_id}/messages")
    async def add_message(session_id: str, request: Request) -> dict:
        _check_writable()
        body = await request.json()
        _session(session_id)["messages"].append(
            {"content": body["content"], "role": body["role"]}
        )
        return {"status": "ok"}

    @app.get("/api/sessions/{session_id}/messages")
    async def get_messages(session_id: str) -> list:
        return _session(session_id)["messages"]

    @app.get("/api/sessions/{session_id}/metadata")
    async def get_metadata(session_id: str) -> dict:
        return {"meta_data": _session(session_id)["meta_data"]}

    @app.put("/api/sessions/{session_id}/metadata")
    async def update_metadata(session_id: str, request: Request) -> dict:
        _check_writable()
        body = await request.json()
        _session(session_id)["meta_data"].append(body["meta_data"])
        return {"status": "ok"}

    return app
