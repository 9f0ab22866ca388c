"""
Ethora Chat API Mock Server

In-memory mock of the Ethora chat REST API used by the case backend.

Features:
- Users, chat rooms and room access grants kept in memory
- Server JWT check on `x-custom-token` (shared app secret, HS256)
- The real service's answers for duplicates and missing resources:
  HTTP 422 with `{"error": "... already exists"}` / `{"error": "... not found"}`
- Last name validation (at least 2 characters), like the real service
- Failure injection per endpoint and request metrics for tests
- Optional network delay simulation

Usage:
    python -m mocks.chat_api_mock
    # or
    uvicorn mocks.chat_api_mock:app --reload --port 8080

Tests build an isolated instance with `create_mock_app()` and call it through
`httpx.ASGITransport`.
"""

from threading import Lock
from typing import Any, Dict, List, Optional, Set

from fastapi import Depends, FastAPI, Header, Request
from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from mocks.mock_utils import (
    FailureInjector,
    MockMetrics,
    decode_server_token,
    simulate_network_delay,
    unprocessable,
)


# ============================================================================
# Configuration
# ============================================================================

class MockSettings(BaseSettings):
    """Mock server settings."""

    model_config = SettingsConfigDict(env_prefix="MOCK_", case_sensitive=False)

    HOST: str = "0.0.0.0"
    PORT: int = 8080

    # MUST match the backend's ETHORA_CHAT_APP_ID / ETHORA_CHAT_APP_SECRET
    APP_ID: str = "mock-app"
    APP_SECRET: str = "mock-app-secret"

    SIMULATE_DELAYS: bool = False
    MIN_DELAY_MS: int = 50
    MAX_DELAY_MS: int = 200


# ============================================================================
# Request Models
# ============================================================================

class CreateUserRequest(BaseModel):
    model_config = ConfigDict(extra="allow")

    userId: str = Field(..., min_length=1)
    firstName: Optional[str] = None
    lastName: Optional[str] = None


class UserIdsRequest(BaseModel):
    userIds: List[str]


class UpdateUsersRequest(BaseModel):
    users: List[Dict[str, Any]]


class ChatRequest(BaseModel):
    model_config = ConfigDict(extra="allow")

    name: str = Field(..., min_length=1)


class GrantRequest(BaseModel):
    name: str = Field(..., min_length=1)
    userId: Optional[str] = None


# ============================================================================
# In-Memory Storage
# ============================================================================

class MockChatState:
    """Users and chat rooms of one mock instance."""

    def __init__(self, app_id: str):
        self.app_id = app_id
        self.users: Dict[str, Dict[str, Any]] = {}  # keyed by xmppUsername
        self.chats: Dict[str, Dict[str, Any]] = {}  # keyed by short chat name
        self.members: Dict[str, Set[str]] = {}
        self.lock = Lock()
        self.failures = FailureInjector()
        self.metrics = MockMetrics()

    def xmpp_username(self, user_id: str) -> str:
        if user_id.startswith(f"{self.app_id}_"):
            return user_id
        return f"{self.app_id}_{user_id}"

    def find_user(self, user_id: str) -> Optional[Dict[str, Any]]:
        return self.users.get(self.xmpp_username(user_id))


# ============================================================================
# FastAPI Application
# ============================================================================

def create_mock_app(
    app_id: str,
    app_secret: str,
    simulate_delays: bool = False,
    min_delay_ms: int = 50,
    max_delay_ms: int = 200
) -> FastAPI:
    """Build an isolated mock chat API; its state is on `app.state.mock`."""
    state = MockChatState(app_id)

    app = FastAPI(
        title="Ethora Chat API Mock Server",
        description="Mock chat service for case backend development and testing",
        version="1.0.0",
    )
    app.state.mock = state

    @app.middleware("http")
    async def metrics_and_failures(request: Request, call_next):
        endpoint = f"{request.method} {request.url.path}"
        state.metrics.record_request(endpoint)

        if simulate_delays:
            await simulate_network_delay(min_delay_ms, max_delay_ms)

        forced = state.failures.take(endpoint)
        if forced is not None:
            state.metrics.record_error(endpoint)
            return forced

        response = await call_next(request)
        if response.status_code >= 400:
            state.metrics.record_error(endpoint)
        return response

    def require_server_token(x_custom_token: Optional[str] = Header(None)):
        return decode_server_token(x_custom_token, app_secret, app_id)

    @app.get("/health", tags=["Health"])
    async def health_check():
        return {
            "status": "healthy",
            "service": "chat-api-mock",
            "users": len(state.users),
            "chats": len(state.chats),
            "metrics": state.metrics.get_stats(),
        }

    # ---------- Users ----------

    @app.post("/users", tags=["Users"], dependencies=[Depends(require_server_token)])
    async def create_user(body: CreateUserRequest):
        if body.lastName is not None and len(body.lastName) < 2:
            return unprocessable("lastName must be at least 2 characters long")

        xmpp_username = state.xmpp_username(body.userId)
        with state.lock:
            if xmpp_username in state.users:
                return unprocessable(f"User {body.userId} already exists")
            user = {**body.model_dump(exclude_none=True), "xmppUsername": xmpp_username}
            user.pop("password", None)
            state.users[xmpp_username] = user

        return {"ok": True, "user": user}

    @app.delete("/users", tags=["Users"], dependencies=[Depends(require_server_token)])
    async def delete_users(body: UserIdsRequest):
        deleted = []
        with state.lock:
            for user_id in body.userIds:
                xmpp_username = state.xmpp_username(user_id)
                if state.users.pop(xmpp_username, None) is not None:
                    deleted.append(xmpp_username)
                for members in state.members.values():
                    members.discard(xmpp_username)
        return {"ok": True, "deleted": deleted}

    @app.patch("/users", tags=["Users"], dependencies=[Depends(require_server_token)])
    async def update_users(body: UpdateUsersRequest):
        updated = []
        with state.lock:
            for changes in body.users:
                key = changes.get("xmppUsername") or changes.get("userId")
                user = state.find_user(key) if key else None
                if user is None:
                    continue
                user.update({k: v for k, v in changes.items() if k not in ("userId", "xmppUsername")})
                updated.append(user["xmppUsername"])
        return {"ok": True, "updated": updated}

    @app.get("/users", tags=["Users"], dependencies=[Depends(require_server_token)])
    async def get_users(chatName: Optional[str] = None, xmppUsername: Optional[str] = None):
        with state.lock:
            users = list(state.users.values())
            if chatName is not None:
                members = state.members.get(chatName, set())
                users = [u for u in users if u["xmppUsername"] in members]
            if xmppUsername is not None:
                users = [u for u in users if u["xmppUsername"] == xmppUsername]
        return {"ok": True, "items": users}

    # ---------- Chats ----------

    @app.post("/chats", tags=["Chats"], dependencies=[Depends(require_server_token)])
    async def create_chat(body: ChatRequest):
        with state.lock:
            if body.name in state.chats:
                return unprocessable(f"Chat {body.name} already exists")
            state.chats[body.name] = body.model_dump()
            state.members[body.name] = set()
        return {"ok": True, "chat": state.chats[body.name]}

    @app.delete("/chats", tags=["Chats"], dependencies=[Depends(require_server_token)])
    async def delete_chat(body: ChatRequest):
        with state.lock:
            if state.chats.pop(body.name, None) is None:
                return unprocessable(f"Chat {body.name} not found")
            state.members.pop(body.name, None)
        return {"ok": True}

    @app.post("/chats/grant", tags=["Chats"], dependencies=[Depends(require_server_token)])
    async def grant_access(body: GrantRequest):
        with state.lock:
            if body.name not in state.chats:
                return unprocessable(f"Chat {body.name} not found")
            if body.userId is None:
                member = f"{app_id}_bot"
            else:
                user = state.find_user(body.userId)
                if user is None:
                    return unprocessable(f"User {body.userId} not found")
                member = user["xmppUsername"]
            state.members[body.name].add(member)
        return {"ok": True, "name": body.name, "member": member}

    @app.get("/mock/metrics", tags=["Development"])
    async def get_metrics():
        return state.metrics.get_stats()

    return app


settings = MockSettings()
app = create_mock_app(
    settings.APP_ID,
    settings.APP_SECRET,
    simulate_delays=settings.SIMULATE_DELAYS,
    min_delay_ms=settings.MIN_DELAY_MS,
    max_delay_ms=settings.MAX_DELAY_MS
)


if __name__ == "__main__":
    import uvicorn

    print("=" * 80)
    print("Ethora Chat API Mock Server")
    print("=" * 80)
    print(f"Server: http://{settings.HOST}:{settings.PORT}")
    print(f"Docs:   http://{settings.HOST}:{settings.PORT}/docs")
    print(f"App ID: {settings.APP_ID}")
    print("Point the backend at it with ETHORA_CHAT_API_URL, ETHORA_CHAT_APP_ID")
    print("and ETHORA_CHAT_APP_SECRET matching MOCK_APP_ID / MOCK_APP_SECRET.")
    print("=" * 80)

    uvicorn.run(
        app,
        host=settings.HOST,
        port=settings.PORT,
        log_level="info"
    )
