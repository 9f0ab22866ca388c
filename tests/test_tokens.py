"""
Tests for JWT issuing and chat resource naming.
"""

import jwt
import pytest

from casechat.core.exceptions import UnauthorizedError
from casechat.core.naming import create_chat_name, derive_user_id, strip_jid_domain
from casechat.core.tokens import JWT_ALGORITHM, TokenIssuer

from conftest import APP_ID, APP_SECRET


class TestTokenIssuer:
    """Test server and client token shapes."""

    def test_server_token_claims(self, token_issuer):
        token = token_issuer.server_token()
        payload = jwt.decode(token, APP_SECRET, algorithms=[JWT_ALGORITHM])

        assert payload == {"data": {"appId": APP_ID, "type": "server"}}

    def test_client_token_claims(self, token_issuer):
        token = token_issuer.client_token("patient-42")
        payload = jwt.decode(token, APP_SECRET, algorithms=[JWT_ALGORITHM])

        assert payload["data"] == {
            "type": "client",
            "userId": "patient-42",
            "appId": APP_ID,
        }

    def test_tokens_use_hs256(self, token_issuer):
        header = jwt.get_unverified_header(token_issuer.server_token())

        assert header["alg"] == "HS256"

    def test_verify_round_trip(self, token_issuer):
        claims = token_issuer.verify_token(token_issuer.client_token("u1"))

        assert claims["data"]["userId"] == "u1"

    def test_verify_rejects_other_secret(self, token_issuer):
        foreign = TokenIssuer(APP_ID, "another-secret").server_token()

        with pytest.raises(UnauthorizedError) as exc_info:
            token_issuer.verify_token(foreign)

        assert exc_info.value.status_code == 401

    def test_verify_rejects_garbage(self, token_issuer):
        with pytest.raises(UnauthorizedError):
            token_issuer.verify_token("not-a-jwt")


class TestNaming:
    """Test room and user identifiers."""

    def test_full_room_jid(self):
        assert create_chat_name("app", "case-1") == "app_case-1@conference.xmpp.ethoradev.com"

    def test_short_room_name(self):
        assert create_chat_name("app", "case-1", full=False) == "app_case-1"

    def test_custom_domain(self):
        assert create_chat_name("app", "c", domain="@rooms.example") == "app_c@rooms.example"

    @pytest.mark.parametrize("workspace_id", ["case-1", "42", "a_b-c"])
    def test_full_name_strips_to_short_name(self, workspace_id):
        full = create_chat_name(APP_ID, workspace_id, full=True)

        assert strip_jid_domain(full) == create_chat_name(APP_ID, workspace_id, full=False)

    def test_derive_user_id(self):
        assert derive_user_id("app", "u1") == "app_u1"

    def test_derive_user_id_already_prefixed(self):
        assert derive_user_id("app", "app_u1") == "app_u1"
