"""Citation models attached to finalized assistant answers."""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

if TYPE_CHECKING:
    from campus_assistant.models.events import Answer

MAIL_SOURCE = "Mail"


class Attachment(BaseModel):
    """A file attached to a cited source document."""

    model_config = ConfigDict(extra="ignore")

    file_name: str
    link: str


class Citation(BaseModel):
    """A structured reference to a source document backing an answer.

    Two citations refer to the same document when their ``key`` matches,
    i.e. they share ``(subject, received_on)``.
    """

    model_config = ConfigDict(extra="ignore", frozen=True)

    source: str
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

    @property
    def key(self) -> tuple[Optional[str], Optional[str]]:
        return (self.subject, self.received_on)

    @property
    def is_mail(self) -> bool:
        return self.source == MAIL_SOURCE

    @classmethod
    def from_answer(cls, answer: Answer) -> Optional[Citation]:
        """Build a citation from a final answer, or None if it names no source."""
        if not answer.source:
            return None
        return cls(
            source=answer.source,
            subject=answer.subject,
            received_on=answer.received_on,
            received_by=answer.received_by,
            after_date=answer.after_date,
            before_date=answer.before_date,
            has_attachment=answer.has_attachment,
            attachments=list(answer.attachments),
        )

    def to_record(self) -> dict:
        """Return the JSON-ready record written to session metadata."""
        return self.model_dump(mode="json")


class MailSearchQuery(BaseModel):
    """Date/sender/subject query handed to the mail-search collaborator."""

    subject: str
    sender: Optional[str] = None
    received_on: Optional[str] = None
    after_date: Optional[str] = None
    before_date: Optional[str] = None
    has_attachment: bool = False

    @classmethod
    def from_citation(cls, citation: Citation) -> Optional[MailSearchQuery]:
        """Derive a query from a mail citation; None unless it has a subject."""
        if not citation.is_mail or not citation.subject:
            return None
        return cls(
            subject=citation.subject,
            sender=citation.received_by,
            received_on=citation.received_on,
            after_date=citation.after_date,
            before_date=citation.before_date,
            has_attachment=citation.has_attachment,
        )
