"""Session actor tying the chat engine together.

One ``ChatEngine`` owns one conversation. Every state change happens inside
a single task that consumes an inbox queue: user sends, inbound frames,
reveal/finalize timer ticks and new-conversation requests are all just
messages handled one at a time, to completion.

Data flow::

    send(question) -> SessionManager.ensure_session -> ConnectionManager.send
    frame -> StreamingReconstructor -> MessageStore
          -> CitationAggregator (done frames)
    finalize -> SessionManager.append_remote (background)

A send while a reply is still streaming supersedes that turn: its timers
are cancelled, its unrevealed tokens dropped and its partial message closed.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from campus_assistant.api.connection import ConnectionManager, Event
from campus_assistant.config import Settings, get_settings
from campus_assistant.engine.citations import CitationAggregator, MailSearch
from campus_assistant.engine.message_store import MessageStore
from campus_assistant.engine.reconstructor import StreamingReconstructor, StreamPhase
from campus_assistant.engine.scheduler import BackgroundTasks, InboxScheduler
from campus_assistant.engine.scroll import ScrollFollowController
from campus_assistant.errors import AssistantError
from campus_assistant.models.citations import Citation
from campus_assistant.models.events import Answer, DoneEvent, RoutingEvent, StreamingEvent
from campus_assistant.models.messages import ChatMessage, MessageRole
from campus_assistant.models.sessions import HydratedSession
from campus_assistant.session.manager import SessionManager

logger = logging.getLogger(__name__)


@dataclass
class _Command:
    reply: Optional[asyncio.Future] = field(default=None, kw_only=True)


@dataclass
class _Send(_Command):
    question: str


@dataclass
class _Frame(_Command):
    event: Event


@dataclass
class _Tick(_Command):
    callback: Callable[[], None]


@dataclass
class _NewConversation(_Command):
    pass


@dataclass
class _SwitchSession(_Command):
    session_id: str


@dataclass
class _Stop(_Command):
    pass


class ChatEngine:
    """Streaming chat session engine for one conversation view.

    Lifecycle:
        engine = ChatEngine(connection, sessions)
        await engine.start()          # hydrate, connect, start the actor
        await engine.send("When is the library open?")
        ...
        await engine.stop()
    """

    def __init__(
        self,
        connection: ConnectionManager,
        sessions: SessionManager,
        *,
        settings: Optional[Settings] = None,
        mail_search: Optional[MailSearch] = None,
        on_message: Optional[Callable[[ChatMessage], None]] = None,
        on_citations: Optional[Callable[[list[Citation]], None]] = None,
    ) -> None:
        settings = settings or get_settings()
        self.connection = connection
        self.sessions = sessions
        self._on_message = on_message

        self._shutdown_timeout = settings.api_timeout_seconds
        self._inbox: asyncio.Queue[_Command] = asyncio.Queue()
        self._actor: Optional[asyncio.Task] = None
        self._tasks = BackgroundTasks()

        self.store = MessageStore(listener=self._message_changed)
        self.citations = CitationAggregator(
            self._tasks,
            persist=sessions.persist_citation,
            mail_search=mail_search,
            on_change=on_citations,
        )
        self.reconstructor = StreamingReconstructor(
            self.store,
            InboxScheduler(self._post_tick),
            token_delay=settings.reveal_token_delay,
            settle_margin=settings.finalize_settle_margin,
            on_finalized=self._finalized,
        )
        self.scroll = ScrollFollowController(settings.scroll_bottom_threshold)

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    @property
    def messages(self) -> list[ChatMessage]:
        return self.store.messages

    @property
    def phase(self) -> StreamPhase:
        return self.reconstructor.phase

    @property
    def session_id(self) -> Optional[str]:
        return self.sessions.session_id

    @property
    def running(self) -> bool:
        return self._actor is not None and not self._actor.done()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> Optional[HydratedSession]:
        """Hydrate the last session, open the stream and start the actor.

        Raises:
            ConnectionFailure: the stream could not be opened.
        """
        if self.running:
            raise RuntimeError("ChatEngine already started")

        hydrated = await self.sessions.load_last_session()
        if hydrated is not None:
            self._replay(hydrated)

        self._actor = asyncio.create_task(self._run(), name="chat-engine")
        try:
            await self.connection.connect(self._on_event)
        except AssistantError:
            await self._stop_actor()
            raise
        return hydrated

    async def stop(self) -> None:
        """Close the stream, stop the actor and let persistence finish.

        Background work still running after ``api_timeout_seconds`` is
        cancelled.
        """
        await self.connection.close()
        await self._stop_actor()
        self.reconstructor.cancel()
        if not await self._tasks.drain(timeout=self._shutdown_timeout):
            logger.warning(
                "Cancelling %d background task(s) still running at shutdown",
                len(self._tasks),
            )
            self._tasks.cancel_all()
            await self._tasks.drain()

    async def drain(self) -> None:
        """Wait until queued commands and background persistence are done."""
        await self._inbox.join()
        await self._tasks.drain()

    # ------------------------------------------------------------------
    # User actions
    # ------------------------------------------------------------------

    async def send(self, question: str) -> bool:
        """Send a user question. Returns False if it was not transmitted.

        Raises:
            PersistenceFailure: no session existed and creating one failed.
        """
        return await self._call(_Send(question))

    async def new_conversation(self) -> None:
        await self._call(_NewConversation())

    async def switch_session(self, session_id: str) -> HydratedSession:
        return await self._call(_SwitchSession(session_id))

    def on_content_size_change(self, content_height: float) -> bool:
        """Feed a view resize; True if the view should scroll to the end."""
        return self.scroll.on_content_size_change(
            content_height, is_streaming=self.store.active_message is not None
        )

    # ------------------------------------------------------------------
    # Actor
    # ------------------------------------------------------------------

    def _on_event(self, event: Event) -> None:
        self._inbox.put_nowait(_Frame(event))

    def _post_tick(self, callback: Callable[[], None]) -> None:
        self._inbox.put_nowait(_Tick(callback))

    async def _call(self, command: _Command) -> Any:
        if not self.running:
            raise RuntimeError("ChatEngine is not running")
        command.reply = asyncio.get_running_loop().create_future()
        self._inbox.put_nowait(command)
        return await command.reply

    async def _stop_actor(self) -> None:
        actor, self._actor = self._actor, None
        if actor is None or actor.done():
            return
        self._inbox.put_nowait(_Stop())
        await actor

    async def _run(self) -> None:
        while True:
            command = await self._inbox.get()
            try:
                if isinstance(command, _Stop):
                    return
                result = await self._handle(command)
            except AssistantError as exc:
                logger.warning("%s rejected: %s", type(command).__name__.lstrip("_"), exc)
                self._reply(command, exc=exc)
            except Exception as exc:
                logger.exception("Unhandled error in %s", type(command).__name__)
                self._reply(command, exc=exc)
            else:
                self._reply(command, result)
            finally:
                self._inbox.task_done()

    async def _handle(self, command: _Command) -> Any:
        if isinstance(command, _Tick):
            command.callback()
        elif isinstance(command, _Frame):
            self._handle_event(command.event)
        elif isinstance(command, _Send):
            return await self._handle_send(command.question)
        elif isinstance(command, _NewConversation):
            self._handle_new_conversation()
        elif isinstance(command, _SwitchSession):
            return await self._handle_switch(command.session_id)
        return None

    @staticmethod
    def _reply(command: _Command, result: Any = None, exc: Optional[BaseException] = None) -> None:
        if command.reply is None or command.reply.done():
            return
        if exc is not None:
            command.reply.set_exception(exc)
        else:
            command.reply.set_result(result)

    # ------------------------------------------------------------------
    # Handlers (run inside the actor only)
    # ------------------------------------------------------------------

    def _handle_event(self, event: Event) -> None:
        if isinstance(event, RoutingEvent):
            self.reconstructor.handle_routing(event.current_tool)
        elif isinstance(event, StreamingEvent):
            self.reconstructor.handle_chunk(event.chunk)
        elif isinstance(event, DoneEvent):
            self.reconstructor.handle_done(event.answer)
            self.citations.handle_done(event.answer, session_id=self.session_id)

    async def _handle_send(self, question: str) -> bool:
        question = question.strip()
        if not question:
            return False

        self.reconstructor.begin_turn()
        message = self.store.append_user(question)
        try:
            session_id = await self.sessions.ensure_session(question)
        except AssistantError:
            self.store.mark_undelivered(message.id)
            raise
        await self.sessions.append_remote(
            MessageRole.USER, question, session_id=session_id
        )
        sent = await self.connection.send(question, session_id)
        if not sent:
            self.store.mark_undelivered(message.id)
        return sent

    def _handle_new_conversation(self) -> None:
        self.reconstructor.begin_turn()
        self.store.reset()
        self.citations.reset()
        self.scroll.reset()
        self.sessions.start_new_conversation()

    async def _handle_switch(self, session_id: str) -> HydratedSession:
        self.reconstructor.begin_turn()
        self.store.reset()
        self.citations.reset()
        self.scroll.reset()
        hydrated = await self.sessions.switch_session(session_id)
        self._replay(hydrated)
        return hydrated

    def _replay(self, hydrated: HydratedSession) -> None:
        self.store.replay(hydrated.messages)
        self.citations.replay(hydrated.citations)

    def _finalized(self, message: ChatMessage, answer: Answer) -> None:
        self._tasks.spawn(
            self.sessions.append_remote(
                MessageRole.ASSISTANT, message.text, session_id=self.session_id
            ),
            name="persist-assistant-message",
        )

    def _message_changed(self, message: ChatMessage) -> None:
        if self._on_message is not None:
            self._on_message(message)
