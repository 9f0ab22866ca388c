"""
Pytest configuration and shared fixtures for the case backend tests.

This file provides reusable test fixtures including:
- Settings built from explicit values (no .env)
- An in-process mock of the Ethora chat API, reachable through httpx
- A scriptable fake chat client for orchestration tests
- Helpers to build chat service error responses
"""

import asyncio
import os
import random
from typing import Dict, List, Optional

import httpx
import pytest

# casechat.main builds its app at import time; give it a configuration
os.environ.setdefault("ETHORA_CHAT_API_URL", "https://chat.example.test")
os.environ.setdefault("ETHORA_CHAT_APP_ID", "test-app")
os.environ.setdefault("ETHORA_CHAT_APP_SECRET", "test-secret-key-for-signing-tokens")

from casechat.config import Settings, load_settings
from casechat.core.naming import create_chat_name
from casechat.core.tokens import TokenIssuer
from casechat.services.case_service import CaseService
from casechat.services.case_store import CaseStore
from casechat.services.chat_api_client import EthoraChatClient
from mocks.chat_api_mock import create_mock_app

APP_ID = "test-app"
APP_SECRET = "test-secret-key-for-signing-tokens"
CHAT_API_URL = "https://chat.example.test"


def make_settings(**overrides) -> Settings:
    values = {
        "ETHORA_CHAT_API_URL": CHAT_API_URL,
        "ETHORA_CHAT_APP_ID": APP_ID,
        "ETHORA_CHAT_APP_SECRET": APP_SECRET,
        "ETHORA_CHAT_BOT_JID": "",
        "LOG_LEVEL": "DEBUG",
    }
    values.update(overrides)
    return load_settings(_env_file=None, **values)


class FakeChatClient:
    """
    Stand-in for EthoraChatClient that records calls.

    - `fail(method, *errors)` queues outcomes for the next calls of `method`;
      `None` in the queue means "succeed this time"
    - `gates[method]` is an asyncio.Event the call waits on before answering
    """

    def __init__(self, app_id: str = APP_ID):
        self.app_id = app_id
        self.calls: List[tuple] = []
        self.failures: Dict[str, list] = {}
        self.gates: Dict[str, asyncio.Event] = {}

    def fail(self, method: str, *errors: Optional[Exception]):
        self.failures.setdefault(method, []).extend(errors)

    def count(self, method: str) -> int:
        return sum(1 for call in self.calls if call[0] == method)

    def calls_to(self, method: str) -> List[tuple]:
        return [call[1:] for call in self.calls if call[0] == method]

    async def _call(self, method: str, *args):
        self.calls.append((method, *args))
        gate = self.gates.get(method)
        if gate is not None:
            await gate.wait()
        else:
            await asyncio.sleep(0)
        queued = self.failures.get(method)
        if queued:
            error = queued.pop(0)
            if error is not None:
                raise error
        return {"ok": True}

    def create_chat_name(self, workspace_id: str, full: bool = True) -> str:
        return create_chat_name(self.app_id, workspace_id, full)

    def create_user_token(self, user_id: str) -> str:
        return f"token-for-{user_id}"

    async def create_user(self, user_id, user_data=None):
        return await self._call("create_user", user_id, user_data)

    async def create_chat_room(self, workspace_id, room_data=None):
        return await self._call("create_chat_room", workspace_id, room_data)

    async def grant_user_access(self, workspace_id, user_id):
        return await self._call("grant_user_access", workspace_id, user_id)

    async def grant_chatbot_access(self, workspace_id):
        return await self._call("grant_chatbot_access", workspace_id)

    async def delete_users(self, user_ids):
        return await self._call("delete_users", user_ids)

    async def delete_chat_room(self, workspace_id):
        return await self._call("delete_chat_room", workspace_id)


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def token_issuer() -> TokenIssuer:
    return TokenIssuer(APP_ID, APP_SECRET)


@pytest.fixture
def http_error():
    """Factory for the HTTPStatusError raised on a chat service rejection."""

    def _make(status_code: int, error: str = "Simulated error", path: str = "/users"):
        request = httpx.Request("POST", f"{CHAT_API_URL}{path}")
        response = httpx.Response(status_code, json={"error": error}, request=request)
        return httpx.HTTPStatusError(
            f"Client error '{status_code}' for url '{request.url}'",
            request=request,
            response=response
        )

    return _make


@pytest.fixture
def fake_chat_client() -> FakeChatClient:
    return FakeChatClient()


@pytest.fixture
def case_store() -> CaseStore:
    return CaseStore()


@pytest.fixture
def case_service(fake_chat_client, case_store, settings) -> CaseService:
    return CaseService(fake_chat_client, case_store, settings, rng=random.Random(7))


@pytest.fixture
def mock_chat_app():
    """Isolated in-memory chat API mock; state on `mock_chat_app.state.mock`."""
    return create_mock_app(APP_ID, APP_SECRET)


@pytest.fixture
def mock_transport(mock_chat_app) -> httpx.ASGITransport:
    return httpx.ASGITransport(app=mock_chat_app)


@pytest.fixture
async def chat_client(settings, token_issuer, mock_transport):
    """Real EthoraChatClient talking to the in-memory mock."""
    client = EthoraChatClient(settings, token_issuer, transport=mock_transport)
    yield client
    await client.aclose()
