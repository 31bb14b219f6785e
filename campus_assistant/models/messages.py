"""Conversation message models."""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional
from uuid import uuid4

from pydantic import BaseModel, Field

from campus_assistant.models.citations import Citation


class MessageRole(str, Enum):
    """Message sender role."""

    USER = "user"
    ASSISTANT = "assistant"


def _new_id() -> str:
    return uuid4().hex


class ChatMessage(BaseModel):
    """One entry of the conversation log.

    ``text`` is mutated in place while ``is_streaming`` is set; once the
    message is finalized it is never changed again. A user message that
    could not be sent keeps its place in the log with ``delivered=False``.
    """

    id: str = Field(default_factory=_new_id)
    role: MessageRole
    text: str = ""
    is_streaming: bool = False
    delivered: bool = True
    citation: Optional[Citation] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def from_remote(cls, entry: dict) -> "ChatMessage":
        """Rebuild a finalized message from a stored ``{content, role}`` entry."""
        role = entry.get("role", MessageRole.USER.value)
        try:
            role = MessageRole(role)
        except ValueError:
            role = MessageRole.ASSISTANT if role in ("bot", "ai") else MessageRole.USER
        return cls(role=role, text=entry.get("content") or "")
