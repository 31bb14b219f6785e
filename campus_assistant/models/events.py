"""Wire frames exchanged with the assistant stream.

Outbound::

    {"question": "...", "session_id": "abc123" | null}

Inbound frames are JSON objects tagged by ``status``::

    {"status": "routing", "current_tool": "mail_search"}
    {"status": "STREAMING", "chunk": "Hello world "}
    {"status": "done", "answer": {"answer": "...", "source": "Mail", ...}}
"""

from __future__ import annotations

import json
from typing import Annotated, Literal, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    TypeAdapter,
    ValidationError,
    field_validator,
)

from campus_assistant.errors import FrameParseFailure
from campus_assistant.models.citations import Attachment


class Answer(BaseModel):
    """Final answer object carried by a ``done`` frame."""

    model_config = ConfigDict(extra="ignore")

    answer: str
    source: Optional[str] = None
    subject: Optional[str] = None
    received_on: Optional[str] = None
    received_by: Optional[str] = None
    after_date: Optional[str] = None
    before_date: Optional[str] = None
    has_attachment: bool = False
    attachments: list[Attachment] = Field(default_factory=list)

    @field_validator("has_attachment", mode="before")
    @classmethod
    def _coerce_flag(cls, value: object) -> object:
        return False if value is None else value

    @field_validator("attachments", mode="before")
    @classmethod
    def _coerce_attachments(cls, value: object) -> object:
        return [] if value is None else value


class RoutingEvent(BaseModel):
    """The backend is (re)selecting a tool; resets the current turn."""

    model_config = ConfigDict(extra="ignore")

    status: Literal["routing"]
    current_tool: str = ""


class StreamingEvent(BaseModel):
    """An incremental text chunk of the assistant's reply."""

    model_config = ConfigDict(extra="ignore")

    status: Literal["STREAMING"]
    chunk: str


class DoneEvent(BaseModel):
    """The canonical final answer for the current turn."""

    model_config = ConfigDict(extra="ignore")

    status: Literal["done"]
    answer: Answer


InboundEvent = Annotated[
    Union[RoutingEvent, StreamingEvent, DoneEvent],
    Field(discriminator="status"),
]

_inbound_adapter: TypeAdapter[InboundEvent] = TypeAdapter(InboundEvent)


class OutgoingQuery(BaseModel):
    """Query sent to the assistant stream."""

    question: str
    session_id: Optional[str] = None

    def to_frame(self) -> str:
        return self.model_dump_json()


def parse_frame(raw: str | bytes) -> RoutingEvent | StreamingEvent | DoneEvent:
    """Decode one inbound frame.

    Raises:
        FrameParseFailure: the frame is not JSON, not an object, or does not
            match any known event shape.
    """
    try:
        data = json.loads(raw)
    except (TypeError, ValueError) as exc:
        raise FrameParseFailure(f"invalid JSON: {exc}", raw) from exc

    if not isinstance(data, dict):
        raise FrameParseFailure("frame is not a JSON object", raw)

    try:
        return _inbound_adapter.validate_python(data)
    except ValidationError as exc:
        raise FrameParseFailure(
            f"unrecognised frame (status={data.get('status')!r}): "
            f"{exc.error_count()} validation error(s)",
            raw,
        ) from exc
