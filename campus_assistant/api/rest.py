"""HTTP client for the assistant service's session REST endpoints.

Thin wrapper around httpx. Every transport error and non-2xx response is
raised as ``PersistenceFailure`` so callers have one thing to catch.

Endpoints (relative to ``settings.assistant_api_url``)::

    POST /sessions                      {first_question} -> {session_id}
    GET  /sessions                      -> [{session_id, session_title}]
    POST /sessions/{id}/messages        {content, role}
    GET  /sessions/{id}/messages        -> [{content, role}]
    GET  /sessions/{id}/metadata        -> {meta_data}
    PUT  /sessions/{id}/metadata        {meta_data}
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

from campus_assistant.config import Settings, get_settings
from campus_assistant.errors import PersistenceFailure
from campus_assistant.models.citations import Citation
from campus_assistant.models.messages import ChatMessage, MessageRole
from campus_assistant.models.sessions import SessionSummary

logger = logging.getLogger(__name__)


class AssistantApiClient:
    """Session/message/metadata client for the assistant service."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        settings = settings or get_settings()
        self._client = httpx.AsyncClient(
            base_url=settings.assistant_api_url,
            timeout=settings.api_timeout_seconds,
            transport=transport,
        )

    async def __aenter__(self) -> AssistantApiClient:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    async def create_session(self, first_question: str) -> str:
        """Create a remote session named after the first question.

        Returns:
            The new session id.
        """
        data = await self._request(
            "create_session",
            "POST",
            "/sessions",
            json={"first_question": first_question},
        )
        session_id = data.get("session_id") if isinstance(data, dict) else None
        if not session_id:
            raise PersistenceFailure("create_session", "response has no session_id")
        return str(session_id)

    async def list_sessions(self) -> list[SessionSummary]:
        data = await self._request("list_sessions", "GET", "/sessions")
        return [SessionSummary.model_validate(item) for item in data or []]

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    async def add_message(
        self, session_id: str, role: MessageRole, content: str
    ) -> None:
        await self._request(
            "add_message",
            "POST",
            f"/sessions/{session_id}/messages",
            json={"content": content, "role": MessageRole(role).value},
        )

    async def get_messages(self, session_id: str) -> list[ChatMessage]:
        data = await self._request(
            "get_messages", "GET", f"/sessions/{session_id}/messages"
        )
        return [ChatMessage.from_remote(entry) for entry in data or []]

    # ------------------------------------------------------------------
    # Metadata (citations)
    # ------------------------------------------------------------------

    async def get_metadata(self, session_id: str) -> list[Citation]:
        """Return the citations stored in a session's metadata.

        ``meta_data`` may hold a single record, a list of records, or null.
        Records that do not validate are skipped with a warning.
        """
        data = await self._request(
            "get_metadata", "GET", f"/sessions/{session_id}/metadata"
        )
        meta = data.get("meta_data") if isinstance(data, dict) else data
        if not meta:
            return []
        records = meta if isinstance(meta, list) else [meta]

        citations: list[Citation] = []
        for record in records:
            try:
                citations.append(Citation.model_validate(record))
            except ValueError as exc:
                logger.warning(
                    "Skipping invalid citation record in session %s: %s",
                    session_id,
                    exc,
                )
        return citations

    async def update_metadata(self, session_id: str, citation: Citation) -> None:
        """Write one citation record to the session's metadata."""
        await self._request(
            "update_metadata",
            "PUT",
            f"/sessions/{session_id}/metadata",
            json={"meta_data": citation.to_record()},
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _request(self, operation: str, method: str, url: str, **kwargs) -> Any:
        try:
            resp = await self._client.request(method, url, **kwargs)
            resp.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise PersistenceFailure(
                operation, f"HTTP {exc.response.status_code}"
            ) from exc
        except httpx.HTTPError as exc:
            raise PersistenceFailure(operation, str(exc) or type(exc).__name__) from exc

        if not resp.content:
            return None
        try:
            return resp.json()
        except ValueError as exc:
            raise PersistenceFailure(operation, "response is not JSON") from exc
