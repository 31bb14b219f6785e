"""Session identity, persistence and history hydration.

The manager owns the one active session id per device. The id is created
lazily from the first outgoing question, persisted in the local state store,
and replayed on the next start. Starting a new conversation only forgets
the local pointer: the remote session is kept, never deleted.
"""

from __future__ import annotations

import logging
from typing import Optional

from campus_assistant.api.rest import AssistantApiClient
from campus_assistant.errors import PersistenceFailure
from campus_assistant.models.citations import Citation
from campus_assistant.models.messages import ChatMessage, MessageRole
from campus_assistant.models.sessions import HydratedSession, Session, SessionSummary
from campus_assistant.session.state_store import StateStore

logger = logging.getLogger(__name__)

LAST_SESSION_KEY = "last_session_id"


class SessionManager:
    """Creates, loads and persists the active conversation session."""

    def __init__(self, api: AssistantApiClient, state: StateStore) -> None:
        self._api = api
        self._state = state
        self._session: Optional[Session] = None

    @property
    def session(self) -> Optional[Session]:
        return self._session

    @property
    def session_id(self) -> Optional[str]:
        return self._session.session_id if self._session else None

    async def ensure_session(self, first_question: str) -> str:
        """Return the active session id, creating a remote session if needed.

        Raises:
            PersistenceFailure: no session exists and the remote create call
                failed. Nothing is persisted locally in that case.
        """
        if self._session is not None:
            return self._session.session_id

        persisted = self._state.get(LAST_SESSION_KEY)
        if persisted:
            self._session = Session(session_id=persisted)
            return persisted

        session_id = await self._api.create_session(first_question)
        self._session = Session(session_id=session_id, title=first_question)
        self._state.set(LAST_SESSION_KEY, session_id)
        logger.info("Created session %s", session_id)
        return session_id

    async def load_last_session(self) -> Optional[HydratedSession]:
        """Hydrate the persisted session, or return None if there is none.

        History and metadata are fetched independently; a failure of either
        is logged and that part comes back empty.
        """
        persisted = self._state.get(LAST_SESSION_KEY)
        if not persisted:
            return None
        return await self._hydrate(persisted)

    async def switch_session(self, session_id: str) -> HydratedSession:
        """Make an existing remote session the active one and hydrate it."""
        self._state.set(LAST_SESSION_KEY, session_id)
        return await self._hydrate(session_id)

    async def list_sessions(self) -> list[SessionSummary]:
        return await self._api.list_sessions()

    async def append_remote(
        self, role: MessageRole, content: str, session_id: Optional[str] = None
    ) -> bool:
        """Persist one message. Failures are logged.

        ``session_id`` pins the write to the session the message belongs to;
        it defaults to the active session at the time of the call.
        """
        session_id = session_id or self.session_id
        if session_id is None:
            logger.warning("Not persisting %s message: no active session", role.value)
            return False
        try:
            await self._api.add_message(session_id, role, content)
        except PersistenceFailure as exc:
            logger.warning("Failed to persist message to session %s: %s", session_id, exc)
            return False
        return True

    async def persist_citation(
        self, citation: Citation, session_id: Optional[str] = None
    ) -> bool:
        """Write one citation record to a session's metadata."""
        session_id = session_id or self.session_id
        if session_id is None:
            logger.warning("Not persisting citation: no active session")
            return False
        try:
            await self._api.update_metadata(session_id, citation)
        except PersistenceFailure as exc:
            logger.warning("Failed to persist citation to session %s: %s", session_id, exc)
            return False
        return True

    def start_new_conversation(self) -> None:
        """Forget the active session locally; the remote session is retained."""
        previous = self.session_id
        self._session = None
        self._state.delete(LAST_SESSION_KEY)
        logger.info("Started new conversation (previous session %s retained)", previous)

    async def _hydrate(self, session_id: str) -> HydratedSession:
        self._session = Session(session_id=session_id)

        messages: list[ChatMessage] = []
        try:
            messages = await self._api.get_messages(session_id)
        except PersistenceFailure as exc:
            logger.warning("Failed to load history for session %s: %s", session_id, exc)

        citations: list[Citation] = []
        try:
            citations = await self._api.get_metadata(session_id)
        except PersistenceFailure as exc:
            logger.warning("Failed to load metadata for session %s: %s", session_id, exc)

        logger.info(
            "Hydrated session %s: %d messages, %d citations",
            session_id,
            len(messages),
            len(citations),
        )
        return HydratedSession(
            session=self._session, messages=messages, citations=citations
        )
