"""Ordered, append-only conversation log.

Messages are kept in insertion order and are never reordered or removed,
except by ``reset()``. The message being streamed is tracked by id rather
than by position, and at most one message is streaming at any time.
"""

from __future__ import annotations

import logging
from typing import Callable, Iterable, Optional

from campus_assistant.errors import UnexpectedStateTransition
from campus_assistant.models.citations import Citation
from campus_assistant.models.messages import ChatMessage, MessageRole

logger = logging.getLogger(__name__)

MessageListener = Callable[[ChatMessage], None]


class MessageStore:
    """Conversation log mutated by user input and the reconstructor."""

    def __init__(self, listener: Optional[MessageListener] = None) -> None:
        self._messages: list[ChatMessage] = []
        self._by_id: dict[str, ChatMessage] = {}
        self._active_id: Optional[str] = None
        self._listener = listener

    def __len__(self) -> int:
        return len(self._messages)

    @property
    def messages(self) -> list[ChatMessage]:
        return list(self._messages)

    @property
    def active_message_id(self) -> Optional[str]:
        return self._active_id

    @property
    def active_message(self) -> Optional[ChatMessage]:
        if self._active_id is None:
            return None
        return self._by_id[self._active_id]

    def append_user(self, text: str) -> ChatMessage:
        return self._append(ChatMessage(role=MessageRole.USER, text=text))

    def append_assistant_empty(self) -> ChatMessage:
        """Start a new streaming assistant message.

        Raises:
            UnexpectedStateTransition: another message is still streaming.
        """
        if self._active_id is not None:
            raise UnexpectedStateTransition("streaming", "append_assistant_empty")
        message = ChatMessage(role=MessageRole.ASSISTANT, is_streaming=True)
        self._active_id = message.id
        return self._append(message)

    def mutate_last_assistant_text(
        self,
        *,
        append: Optional[str] = None,
        replace: Optional[str] = None,
    ) -> bool:
        """Append to, or replace, the streaming message's text.

        A no-op returning False when nothing is streaming, so a late reveal
        step after a reset cannot write into the log.
        """
        if (append is None) == (replace is None):
            raise ValueError("pass exactly one of append= or replace=")
        message = self.active_message
        if message is None:
            logger.debug("Ignoring text mutation: no message is streaming")
            return False
        message.text = replace if replace is not None else message.text + append
        self._notify(message)
        return True

    def finalize_last(
        self, citation: Optional[Citation] = None, text: Optional[str] = None
    ) -> Optional[ChatMessage]:
        """Close the streaming message, optionally setting its final text."""
        message = self.active_message
        if message is None:
            return None
        if text is not None:
            message.text = text
        message.citation = citation
        message.is_streaming = False
        self._active_id = None
        self._notify(message)
        return message

    def mark_undelivered(self, message_id: str) -> Optional[ChatMessage]:
        """Flag a user message that never reached the assistant."""
        message = self._by_id.get(message_id)
        if message is None:
            return None
        message.delivered = False
        self._notify(message)
        return message

    def abandon_last(self) -> Optional[ChatMessage]:
        """Close the streaming message as-is, without final text or citation."""
        message = self.active_message
        if message is None:
            return None
        message.is_streaming = False
        self._active_id = None
        self._notify(message)
        return message

    def replay(self, messages: Iterable[ChatMessage]) -> None:
        """Append already-finalized messages, e.g. hydrated history."""
        for message in messages:
            message.is_streaming = False
            self._append(message)

    def reset(self) -> None:
        self._messages = []
        self._by_id = {}
        self._active_id = None

    def _append(self, message: ChatMessage) -> ChatMessage:
        self._messages.append(message)
        self._by_id[message.id] = message
        self._notify(message)
        return message

    def _notify(self, message: ChatMessage) -> None:
        if self._listener is not None:
            self._listener(message)
