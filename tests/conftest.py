"""Shared test fixtures for the campus assistant engine."""

from collections.abc import AsyncGenerator

import httpx
import pytest
import pytest_asyncio
from fastapi import FastAPI

from campus_assistant.api.rest import AssistantApiClient
from campus_assistant.config import Settings
from campus_assistant.session.manager import SessionManager
from campus_assistant.session.state_store import InMemoryStateStore
from tests.helpers import FakeScheduler, create_fake_service


@pytest.fixture
def test_settings(tmp_path) -> Settings:
    return Settings(
        assistant_api_url="http://test/api",
        assistant_ws_url="ws://test/ws/chat",
        reveal_token_delay=0.001,
        finalize_settle_margin=0.01,
        state_file=tmp_path / "state.json",
    )


@pytest.fixture
def scheduler() -> FakeScheduler:
    return FakeScheduler()


@pytest.fixture
def fake_service() -> FastAPI:
    return create_fake_service()


@pytest_asyncio.fixture
async def api_client(
    fake_service: FastAPI, test_settings: Settings
) -> AsyncGenerator[AssistantApiClient, None]:
    """API client wired to the in-memory service through ASGI."""
    transport = httpx.ASGITransport(app=fake_service)
    async with AssistantApiClient(test_settings, transport=transport) as client:
        yield client


@pytest.fixture
def state_store() -> InMemoryStateStore:
    return InMemoryStateStore()


@pytest.fixture
def session_manager(api_client, state_store) -> SessionManager:
    return SessionManager(api_client, state_store)
