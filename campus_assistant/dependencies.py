"""Lazily built singletons shared by the front-end."""

from __future__ import annotations

from typing import Optional

from campus_assistant.api.connection import ConnectionManager
from campus_assistant.api.rest import AssistantApiClient
from campus_assistant.config import get_settings
from campus_assistant.engine.chat import ChatEngine
from campus_assistant.session.manager import SessionManager
from campus_assistant.session.state_store import JsonFileStateStore

_api_client: Optional[AssistantApiClient] = None
_session_manager: Optional[SessionManager] = None


def get_api_client() -> AssistantApiClient:
    """Return singleton AssistantApiClient instance."""
    global _api_client
    if _api_client is None:
        _api_client = AssistantApiClient(get_settings())
    return _api_client


def get_session_manager() -> SessionManager:
    """Return singleton SessionManager backed by the local state file."""
    global _session_manager
    if _session_manager is None:
        state = JsonFileStateStore(get_settings().state_path)
        _session_manager = SessionManager(get_api_client(), state)
    return _session_manager


def build_engine(**kwargs) -> ChatEngine:
    """Create a ChatEngine on the shared session manager and a fresh stream."""
    settings = get_settings()
    return ChatEngine(
        ConnectionManager(settings),
        get_session_manager(),
        settings=settings,
        **kwargs,
    )


async def close_resources() -> None:
    """Release the shared HTTP client."""
    global _api_client, _session_manager
    if _api_client is not None:
        await _api_client.aclose()
    _api_client = None
    _session_manager = None
