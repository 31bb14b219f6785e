"""Paced, cancellable reveal of streamed assistant text.

Network chunks arrive in bursts; the reveal does not. Text is split into
whitespace-delimited tokens (each keeping its trailing separator) and
appended to the active message one token per ``token_delay`` seconds.
Each step schedules the next, so tokens land strictly in order.

Per-turn phases::

    IDLE --first chunk / done--> STREAMING --finalize timer--> COMPLETE
      ^                              |
      +------ routing / new turn ----+

When ``done`` arrives a finalize timer is armed for
``token_count(answer) * token_delay + settle_margin``. When it fires the
message text is overwritten with the canonical answer, whatever was
revealed locally. A routing event or a new turn bumps the generation,
cancels both timers and drops the pending tokens; ticks from an older
generation that are already queued are ignored.
"""

from __future__ import annotations

import logging
import re
from collections import deque
from enum import Enum
from typing import Callable, Optional

from campus_assistant.engine.message_store import MessageStore
from campus_assistant.engine.scheduler import Scheduler, TimerHandle
from campus_assistant.errors import UnexpectedStateTransition
from campus_assistant.models.citations import Citation
from campus_assistant.models.events import Answer
from campus_assistant.models.messages import ChatMessage

logger = logging.getLogger(__name__)

_TOKEN_RE = re.compile(r"\s*\S+\s*")


class StreamPhase(str, Enum):
    IDLE = "idle"
    STREAMING = "streaming"
    COMPLETE = "complete"


def tokenize(text: str) -> list[str]:
    """Split text into reveal tokens; ``"".join(tokenize(t)) == t``."""
    tokens = _TOKEN_RE.findall(text)
    if not tokens and text:
        return [text]
    return tokens


def token_count(text: str) -> int:
    return len(tokenize(text))


class StreamingReconstructor:
    """Turns chunk/done events into a uniformly paced reveal."""

    def __init__(
        self,
        store: MessageStore,
        scheduler: Scheduler,
        *,
        token_delay: float,
        settle_margin: float,
        on_step: Optional[Callable[[ChatMessage], None]] = None,
        on_finalized: Optional[Callable[[ChatMessage, Answer], None]] = None,
    ) -> None:
        self._store = store
        self._scheduler = scheduler
        self.token_delay = token_delay
        self.settle_margin = settle_margin
        self._on_step = on_step
        self._on_finalized = on_finalized

        self.phase = StreamPhase.IDLE
        self._generation = 0
        self._pending: deque[str] = deque()
        self._buffer = ""
        self._tick: Optional[TimerHandle] = None
        self._finalize: Optional[TimerHandle] = None
        self._answer: Optional[Answer] = None
        self._chunked = False

    @property
    def buffer(self) -> str:
        """Text revealed so far in the current turn."""
        return self._buffer

    @property
    def finalize_pending(self) -> bool:
        return self._finalize is not None

    def finalize_delay(self, answer: str) -> float:
        return token_count(answer) * self.token_delay + self.settle_margin

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def begin_turn(self) -> None:
        """A new user turn starts; anything still in flight is discarded."""
        self._reset("new turn")

    def handle_routing(self, current_tool: str = "") -> None:
        logger.debug("Routing to %r", current_tool)
        self._reset("routing")

    def handle_chunk(self, chunk: str) -> None:
        """Queue an incremental chunk for reveal.

        Raises:
            UnexpectedStateTransition: the turn is complete, or its final
                answer has already arrived.
        """
        if self.phase is StreamPhase.COMPLETE or self._answer is not None:
            raise UnexpectedStateTransition(self._phase_label(), "STREAMING")
        if self.phase is StreamPhase.IDLE:
            self._start()
        self._chunked = True
        self._enqueue(tokenize(chunk))

    def handle_done(self, answer: Answer) -> None:
        """Accept the canonical answer and arm the finalize timer.

        If no chunk arrived this turn the answer itself is revealed.

        Raises:
            UnexpectedStateTransition: the turn is complete, or already has
                a final answer.
        """
        if self.phase is StreamPhase.COMPLETE or self._answer is not None:
            raise UnexpectedStateTransition(self._phase_label(), "done")
        if self.phase is StreamPhase.IDLE:
            self._start()
        self._answer = answer
        if not self._chunked:
            self._enqueue(tokenize(answer.answer))

        generation = self._generation
        self._finalize = self._scheduler.call_later(
            self.finalize_delay(answer.answer),
            lambda: self._on_finalize_due(generation),
        )

    def cancel(self) -> None:
        """Stop all timers, e.g. on shutdown."""
        self._reset("cancel")

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _start(self) -> None:
        self._store.append_assistant_empty()
        self.phase = StreamPhase.STREAMING

    def _enqueue(self, tokens: list[str]) -> None:
        self._pending.extend(tokens)
        if self._tick is None:
            self._step()

    def _step(self) -> None:
        self._tick = None
        if not self._pending:
            return
        token = self._pending.popleft()
        self._buffer += token
        if self._store.mutate_last_assistant_text(append=token):
            if self._on_step is not None:
                self._on_step(self._store.active_message)
        if self._pending:
            generation = self._generation
            self._tick = self._scheduler.call_later(
                self.token_delay, lambda: self._on_tick_due(generation)
            )

    def _on_tick_due(self, generation: int) -> None:
        if generation != self._generation:
            logger.debug("Dropping stale reveal tick (generation %d)", generation)
            return
        self._step()

    def _on_finalize_due(self, generation: int) -> None:
        if generation != self._generation or self._answer is None:
            logger.debug("Dropping stale finalize (generation %d)", generation)
            return
        answer = self._answer
        if self._tick is not None:
            self._tick.cancel()
            self._tick = None
        self._pending.clear()
        self._finalize = None

        if self._buffer != answer.answer:
            logger.debug(
                "Revealed text diverged from canonical answer (%d vs %d chars)",
                len(self._buffer),
                len(answer.answer),
            )
        self._buffer = answer.answer
        message = self._store.finalize_last(
            citation=Citation.from_answer(answer), text=answer.answer
        )
        self.phase = StreamPhase.COMPLETE
        if message is not None and self._on_finalized is not None:
            self._on_finalized(message, answer)

    def _reset(self, reason: str) -> None:
        self._generation += 1
        for handle in (self._tick, self._finalize):
            if handle is not None:
                handle.cancel()
        self._tick = None
        self._finalize = None
        if self._pending:
            logger.debug("Discarding %d unrevealed tokens (%s)", len(self._pending), reason)
        self._pending.clear()
        self._buffer = ""
        self._answer = None
        self._chunked = False

        abandoned = self._store.abandon_last()
        if abandoned is not None:
            logger.info("Closed partially revealed message %s (%s)", abandoned.id, reason)
        self.phase = StreamPhase.IDLE

    def _phase_label(self) -> str:
        if self.phase is StreamPhase.STREAMING and self._answer is not None:
            return "finalizing"
        return self.phase.value
