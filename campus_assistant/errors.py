"""Error taxonomy for the chat session engine.

Every error here is caught at the handler boundary that produced it; none
of them is allowed to stop the engine's event loop.
"""

from __future__ import annotations


class AssistantError(Exception):
    """Base class for all engine errors."""


class ConnectionFailure(AssistantError):
    """The assistant stream could not be opened, written to, or closed."""


class FrameParseFailure(AssistantError):
    """An inbound frame was not a valid event object.

    Attributes:
        raw: The frame as received, for logging.
    """

    def __init__(self, message: str, raw: str | bytes | None = None) -> None:
        super().__init__(message)
        self.raw = raw


class PersistenceFailure(AssistantError):
    """A remote persistence call was rejected or could not be made.

    Attributes:
        operation: Name of the REST operation that failed.
    """

    def __init__(self, operation: str, message: str) -> None:
        super().__init__(f"{operation}: {message}")
        self.operation = operation


class UnexpectedStateTransition(AssistantError):
    """An event arrived that the current turn phase cannot accept."""

    def __init__(self, phase: str, event: str) -> None:
        super().__init__(f"cannot handle {event!r} while {phase}")
        self.phase = phase
        self.event = event
