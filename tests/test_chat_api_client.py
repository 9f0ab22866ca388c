"""
Tests for the Ethora chat API client.

Most tests run the real client against the in-memory mock through
httpx.ASGITransport; header and error classification tests use
httpx.MockTransport.
"""

import json

import httpx
import jwt
import pytest

from casechat.services.chat_api_client import (
    EthoraChatClient,
    error_message,
    is_already_exists,
    is_not_found,
)

from conftest import APP_ID, APP_SECRET


def status_error(status_code, content):
    request = httpx.Request("POST", "https://chat.example.test/users")
    response = httpx.Response(status_code, content=content, request=request)
    return httpx.HTTPStatusError("error", request=request, response=response)


class TestErrorClassification:
    """Test the 422 "already exists" / "not found" conventions."""

    def test_already_exists(self):
        assert is_already_exists(status_error(422, b'{"error": "User u1 already exists"}'))

    def test_already_exists_plural(self):
        assert is_already_exists(status_error(422, b'{"error": "Users already exist"}'))

    def test_already_exists_requires_422(self):
        assert not is_already_exists(status_error(409, b'{"error": "User u1 already exists"}'))

    def test_other_422_is_not_conflict(self):
        assert not is_already_exists(status_error(422, b'{"error": "lastName too short"}'))

    def test_non_http_error_is_not_conflict(self):
        assert not is_already_exists(httpx.ConnectError("refused"))

    def test_not_found_is_case_insensitive(self):
        assert is_not_found(status_error(422, b'{"error": "Chat Not Found"}'))

    def test_not_found_plain_text_body(self):
        assert is_not_found(status_error(422, b"chat not found"))

    def test_not_found_requires_422(self):
        assert not is_not_found(status_error(404, b'{"error": "not found"}'))

    def test_error_message_falls_back_to_text(self):
        response = httpx.Response(500, content=b"upstream exploded")

        assert error_message(response) == "upstream exploded"


class TestRequests:
    """Test the wire format sent to the chat service."""

    @pytest.mark.asyncio
    async def test_server_token_header_and_payload(self, settings, token_issuer):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"ok": True})

        client = EthoraChatClient(settings, token_issuer, transport=httpx.MockTransport(handler))
        try:
            await client.create_chat_room("case-1", {"title": "Case case-1"})
        finally:
            await client.aclose()

        request = seen[0]
        assert request.method == "POST"
        assert request.url.path == "/chats"
        payload = jwt.decode(request.headers["x-custom-token"], APP_SECRET, algorithms=["HS256"])
        assert payload["data"] == {"appId": APP_ID, "type": "server"}
        assert json.loads(request.content) == {"name": f"{APP_ID}_case-1", "title": "Case case-1"}

    @pytest.mark.asyncio
    async def test_chatbot_grant_has_no_user(self, settings, token_issuer):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(json.loads(request.content))
            return httpx.Response(200, json={"ok": True})

        client = EthoraChatClient(settings, token_issuer, transport=httpx.MockTransport(handler))
        try:
            await client.grant_chatbot_access("case-1")
        finally:
            await client.aclose()

        assert seen == [{"name": f"{APP_ID}_case-1"}]

    @pytest.mark.asyncio
    async def test_empty_body_returns_empty_dict(self, settings, token_issuer):
        client = EthoraChatClient(
            settings,
            token_issuer,
            transport=httpx.MockTransport(lambda request: httpx.Response(204))
        )
        try:
            assert await client.delete_users(["u1"]) == {}
        finally:
            await client.aclose()

    @pytest.mark.asyncio
    async def test_plain_text_success_body_returned_as_text(self, settings, token_issuer):
        client = EthoraChatClient(
            settings,
            token_issuer,
            transport=httpx.MockTransport(lambda request: httpx.Response(200, text="OK"))
        )
        try:
            assert await client.grant_user_access("case-1", f"{APP_ID}_u1") == "OK"
        finally:
            await client.aclose()

    @pytest.mark.asyncio
    async def test_transport_error_propagates(self, settings, token_issuer):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        client = EthoraChatClient(settings, token_issuer, transport=httpx.MockTransport(handler))
        try:
            with pytest.raises(httpx.ConnectError):
                await client.create_user("u1")
        finally:
            await client.aclose()


class TestAgainstMock:
    """Test the client against the in-memory chat service."""

    @pytest.mark.asyncio
    async def test_create_user(self, chat_client, mock_chat_app):
        response = await chat_client.create_user(
            "u1",
            {"firstName": "Ada", "lastName": "Lovelace", "role": "patient"}
        )

        assert response["user"]["xmppUsername"] == f"{APP_ID}_u1"
        assert f"{APP_ID}_u1" in mock_chat_app.state.mock.users

    @pytest.mark.asyncio
    async def test_duplicate_user_is_conflict(self, chat_client):
        await chat_client.create_user("u1", {"lastName": "Lovelace"})

        with pytest.raises(httpx.HTTPStatusError) as exc_info:
            await chat_client.create_user("u1", {"lastName": "Lovelace"})

        assert is_already_exists(exc_info.value)

    @pytest.mark.asyncio
    async def test_short_last_name_rejected(self, chat_client):
        with pytest.raises(httpx.HTTPStatusError) as exc_info:
            await chat_client.create_user("u1", {"lastName": "X"})

        assert exc_info.value.response.status_code == 422
        assert not is_already_exists(exc_info.value)

    @pytest.mark.asyncio
    async def test_duplicate_room_is_conflict(self, chat_client):
        await chat_client.create_chat_room("case-1")

        with pytest.raises(httpx.HTTPStatusError) as exc_info:
            await chat_client.create_chat_room("case-1")

        assert is_already_exists(exc_info.value)

    @pytest.mark.asyncio
    async def test_grant_user_access(self, chat_client, mock_chat_app):
        await chat_client.create_user("u1", {"lastName": "Lovelace"})
        await chat_client.create_chat_room("case-1")

        await chat_client.grant_user_access("case-1", f"{APP_ID}_u1")

        assert mock_chat_app.state.mock.members[f"{APP_ID}_case-1"] == {f"{APP_ID}_u1"}

    @pytest.mark.asyncio
    async def test_grant_unknown_user_fails(self, chat_client):
        await chat_client.create_chat_room("case-1")

        with pytest.raises(httpx.HTTPStatusError):
            await chat_client.grant_user_access("case-1", "nobody")

    @pytest.mark.asyncio
    async def test_delete_room(self, chat_client, mock_chat_app):
        await chat_client.create_chat_room("case-1")

        response = await chat_client.delete_chat_room("case-1")

        assert response == {"ok": True}
        assert f"{APP_ID}_case-1" not in mock_chat_app.state.mock.chats

    @pytest.mark.asyncio
    async def test_delete_missing_room_is_soft(self, chat_client):
        response = await chat_client.delete_chat_room("never-created")

        assert response == {"ok": False, "reason": "Chat room not found"}

    @pytest.mark.asyncio
    async def test_delete_room_other_errors_raise(self, chat_client, mock_chat_app):
        mock_chat_app.state.mock.failures.add("DELETE /chats", 500, "boom")

        with pytest.raises(httpx.HTTPStatusError):
            await chat_client.delete_chat_room("case-1")

    @pytest.mark.asyncio
    async def test_delete_users(self, chat_client, mock_chat_app):
        await chat_client.create_user("u1", {"lastName": "Lovelace"})

        response = await chat_client.delete_users(["u1"])

        assert response["deleted"] == [f"{APP_ID}_u1"]
        assert mock_chat_app.state.mock.users == {}

    @pytest.mark.asyncio
    async def test_update_and_get_users(self, chat_client):
        await chat_client.create_user("u1", {"firstName": "Ada", "lastName": "Lovelace"})

        await chat_client.update_users([{"xmppUsername": f"{APP_ID}_u1", "firstName": "Augusta"}])
        response = await chat_client.get_users(xmpp_username=f"{APP_ID}_u1")

        assert [u["firstName"] for u in response["items"]] == ["Augusta"]

    @pytest.mark.asyncio
    async def test_get_users_in_room(self, chat_client):
        await chat_client.create_user("u1", {"lastName": "Lovelace"})
        await chat_client.create_user("u2", {"lastName": "Babbage"})
        await chat_client.create_chat_room("case-1")
        await chat_client.grant_user_access("case-1", f"{APP_ID}_u2")

        response = await chat_client.get_users(chat_name=f"{APP_ID}_case-1")

        assert [u["xmppUsername"] for u in response["items"]] == [f"{APP_ID}_u2"]

    @pytest.mark.asyncio
    async def test_wrong_secret_is_unauthorized(self, settings, mock_transport):
        from casechat.core.tokens import TokenIssuer

        client = EthoraChatClient(settings, TokenIssuer(APP_ID, "wrong"), transport=mock_transport)
        try:
            with pytest.raises(httpx.HTTPStatusError) as exc_info:
                await client.create_chat_room("case-1")
        finally:
            await client.aclose()

        assert exc_info.value.response.status_code == 401
