"""
JWT issuing for the Ethora chat service.

Two token shapes are signed with the application secret (HS256):
- server tokens, sent as `x-custom-token` on every server-to-server call
- client tokens, handed to front-ends so the chat component can log a user in
"""

import jwt

from casechat.core.exceptions import UnauthorizedError
from casechat.core.logging_config import get_logger

logger = get_logger(__name__)

JWT_ALGORITHM = "HS256"


class TokenIssuer:
    """Signs server and client tokens for one chat application."""

    def __init__(self, app_id: str, app_secret: str):
        self.app_id = app_id
        self._secret = app_secret

    def _sign(self, payload: dict) -> str:
        return jwt.encode(payload, self._secret, algorithm=JWT_ALGORITHM)

    def server_token(self) -> str:
        """Token identifying this backend to the chat API."""
        logger.debug("server_jwt_created", app_id=self.app_id)
        return self._sign({
            "data": {
                "appId": self.app_id,
                "type": "server",
            }
        })

    def client_token(self, user_id: str) -> str:
        """Token a front-end uses to authenticate `user_id` with the chat service."""
        token = self._sign({
            "data": {
                "type": "client",
                "userId": str(user_id),
                "appId": self.app_id,
            }
        })
        logger.info("client_jwt_created", user_id=user_id)
        return token

    def verify_token(self, token: str) -> dict:
        """
        Decode a token signed with the application secret.

        Raises:
            UnauthorizedError: Signature or format invalid
        """
        try:
            return jwt.decode(token, self._secret, algorithms=[JWT_ALGORITHM])
        except jwt.InvalidTokenError as e:
            logger.warning("jwt_verification_failed", error=str(e))
            raise UnauthorizedError("Invalid JWT token") from e
