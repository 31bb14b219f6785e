"""Session models for conversation management."""

from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from campus_assistant.models.citations import Citation
from campus_assistant.models.messages import ChatMessage


class Session(BaseModel):
    """An active conversation session.

    Frozen: a conversation keeps its id for its whole lifetime, and a new
    conversation gets a new ``Session`` rather than a mutated one.
    """

    model_config = ConfigDict(frozen=True)

    session_id: str
    title: Optional[str] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class SessionSummary(BaseModel):
    """Summary of a session for list views."""

    model_config = ConfigDict(extra="ignore")

    session_id: str
    session_title: Optional[str] = None


class HydratedSession(BaseModel):
    """History and citations replayed from a persisted session."""

    session: Session
    messages: list[ChatMessage] = Field(default_factory=list)
    citations: list[Citation] = Field(default_factory=list)
