"""
Ethora Chat API Client

Server-to-server REST calls to the Ethora chat service: users, chat rooms
and room access grants.

Every request carries a freshly signed server JWT in the `x-custom-token`
header. Non-2xx responses raise `httpx.HTTPStatusError`; callers decide which
ones are benign using `is_already_exists()` / `is_not_found()`.

The chat service signals "resource already exists" and "resource not found"
with HTTP 422 and a message in the body, not with 409/404.
"""

from typing import Any, List, Optional

import httpx

from casechat.config import Settings
from casechat.core.logging_config import get_logger
from casechat.core.naming import create_chat_name
from casechat.core.tokens import TokenIssuer

logger = get_logger(__name__)

UNPROCESSABLE = 422


def error_message(response: httpx.Response) -> str:
    """The `error` field of a JSON object body, else the raw body text."""
    try:
        data = response.json()
    except ValueError:
        return response.text
    if isinstance(data, dict):
        return str(data.get("error") or "")
    return str(data)


def is_already_exists(error: Exception) -> bool:
    """True for the chat service's "already exists" conflict response."""
    if not isinstance(error, httpx.HTTPStatusError):
        return False
    if error.response.status_code != UNPROCESSABLE:
        return False
    return "already exist" in error_message(error.response)


def is_not_found(error: Exception) -> bool:
    """True for the chat service's "not found" response on deletes."""
    if not isinstance(error, httpx.HTTPStatusError):
        return False
    if error.response.status_code != UNPROCESSABLE:
        return False
    return "not found" in error.response.text.lower()


class EthoraChatClient:
    """
    Client for the Ethora chat REST API.

    Example:
        client = EthoraChatClient(settings, TokenIssuer(app_id, secret))
        await client.create_user("u1", {"firstName": "Ada", "lastName": "Lovelace"})
        await client.create_chat_room("case-1", {"title": "Case case-1"})
        await client.grant_user_access("case-1", "appId_u1")
        await client.aclose()
    """

    def __init__(
        self,
        settings: Settings,
        token_issuer: TokenIssuer,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.base_url = settings.ETHORA_CHAT_API_URL
        self.app_id = settings.ETHORA_CHAT_APP_ID
        self.jid_domain = settings.ETHORA_JID_DOMAIN
        self.token_issuer = token_issuer

        timeout = httpx.Timeout(
            settings.ETHORA_API_TIMEOUT,
            connect=settings.ETHORA_API_CONNECT_TIMEOUT
        )
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            headers={"Content-Type": "application/json"},
            transport=transport
        )

        logger.info(
            "chat_api_client_initialized",
            chat_api_url=self.base_url,
            app_id=self.app_id,
            timeout=settings.ETHORA_API_TIMEOUT
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    def create_chat_name(self, workspace_id: str, full: bool = True) -> str:
        """Room JID (full) or short room name for a workspace."""
        chat_name = create_chat_name(self.app_id, workspace_id, full, self.jid_domain)
        logger.debug("chat_name_created", workspace_id=workspace_id, chat_name=chat_name)
        return chat_name

    def create_user_token(self, user_id: str) -> str:
        """Client-side JWT for a chat user."""
        return self.token_issuer.client_token(user_id)

    async def _request(
        self,
        method: str,
        path: str,
        json: Optional[dict] = None,
        params: Optional[dict] = None
    ) -> Any:
        headers = {"x-custom-token": self.token_issuer.server_token()}

        logger.debug("chat_api_request", method=method, path=path, payload=json)

        try:
            response = await self._client.request(
                method,
                path,
                json=json,
                params=params,
                headers=headers
            )
            response.raise_for_status()

        except httpx.HTTPStatusError as e:
            logger.error(
                "chat_api_http_error",
                method=method,
                path=path,
                status_code=e.response.status_code,
                response=e.response.text
            )
            raise

        except httpx.TimeoutException as e:
            logger.error(
                "chat_api_timeout",
                method=method,
                path=path,
                error=str(e)
            )
            raise

        except httpx.RequestError as e:
            logger.error(
                "chat_api_request_error",
                method=method,
                path=path,
                error=str(e),
                error_type=type(e).__name__
            )
            raise

        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError:
            # Some endpoints answer 2xx with a plain-text body such as "OK"
            logger.debug("chat_api_non_json_response", method=method, path=path)
            return response.text

    async def create_user(self, user_id: str, user_data: Optional[dict] = None) -> Any:
        """
        Create a chat user.

        The chat service prefixes `user_id` with the application ID on its side.

        Raises:
            httpx.HTTPStatusError: 422 "already exists" when the user exists
        """
        logger.info("chat_api_create_user", user_id=user_id)
        payload = {"userId": str(user_id), **(user_data or {})}
        return await self._request("POST", "/users", json=payload)

    async def create_chat_room(self, workspace_id: str, room_data: Optional[dict] = None) -> Any:
        """
        Create the chat room for a workspace, addressed by its short name.

        Raises:
            httpx.HTTPStatusError: 422 "already exists" when the room exists
        """
        logger.info("chat_api_create_chat_room", workspace_id=workspace_id)
        payload = {"name": self.create_chat_name(workspace_id, full=False), **(room_data or {})}
        return await self._request("POST", "/chats", json=payload)

    async def grant_user_access(self, workspace_id: str, user_id: str) -> Any:
        """Grant one chat user access to a workspace's room."""
        logger.info("chat_api_grant_user_access", workspace_id=workspace_id, user_id=user_id)
        payload = {
            "name": self.create_chat_name(workspace_id, full=False),
            "userId": str(user_id),
        }
        return await self._request("POST", "/chats/grant", json=payload)

    async def grant_chatbot_access(self, workspace_id: str) -> Any:
        """Grant the application's chatbot access to a workspace's room."""
        logger.info("chat_api_grant_chatbot_access", workspace_id=workspace_id)
        payload = {"name": self.create_chat_name(workspace_id, full=False)}
        return await self._request("POST", "/chats/grant", json=payload)

    async def delete_users(self, user_ids: List[str]) -> Any:
        logger.info("chat_api_delete_users", user_ids=user_ids)
        payload = {"userIds": [str(user_id) for user_id in user_ids]}
        return await self._request("DELETE", "/users", json=payload)

    async def delete_chat_room(self, workspace_id: str) -> Any:
        """
        Delete a workspace's chat room.

        A room that no longer exists is not an error: the chat service answers
        422 "not found" and this returns `{"ok": False, "reason": ...}`.
        """
        chat_name = self.create_chat_name(workspace_id, full=False)
        logger.info("chat_api_delete_chat_room", workspace_id=workspace_id, chat_name=chat_name)

        try:
            response = await self._request("DELETE", "/chats", json={"name": chat_name})
        except httpx.HTTPStatusError as e:
            if is_not_found(e):
                logger.warning("chat_room_not_found_on_delete", chat_name=chat_name)
                return {"ok": False, "reason": "Chat room not found"}
            raise

        logger.info("chat_room_deleted", chat_name=chat_name)
        return response

    async def update_users(self, users: List[dict]) -> Any:
        """Update profile fields of existing chat users in one call."""
        logger.info("chat_api_update_users", user_count=len(users))
        return await self._request("PATCH", "/users", json={"users": users})

    async def get_users(
        self,
        chat_name: Optional[str] = None,
        xmpp_username: Optional[str] = None
    ) -> Any:
        """
        List chat users, optionally narrowed to a room or a single user.

        `chat_name` is the short room name for group chats.
        """
        params = {}
        if chat_name:
            params["chatName"] = chat_name
        if xmpp_username:
            params["xmppUsername"] = xmpp_username
        logger.info("chat_api_get_users", **params)
        return await self._request("GET", "/users", params=params or None)
