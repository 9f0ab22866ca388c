from functools import lru_cache
from typing import List

from pydantic import ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from casechat.core.exceptions import ConfigurationError

REQUIRED_SETTINGS = (
    "ETHORA_CHAT_API_URL",
    "ETHORA_CHAT_APP_ID",
    "ETHORA_CHAT_APP_SECRET",
)


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="allow"  # Allow extra fields from .env
    )

    # Application
    APP_NAME: str = "Case Chat Backend"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    ENVIRONMENT: str = "development"  # development, staging, production

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 4000

    # ========== Ethora Chat API ==========
    ETHORA_CHAT_API_URL: str
    ETHORA_CHAT_APP_ID: str
    ETHORA_CHAT_APP_SECRET: str  # HS256 signing secret, shared with the chat service
    ETHORA_CHAT_BOT_JID: str = ""  # Optional: granted access to every case room
    ETHORA_JID_DOMAIN: str = "@conference.xmpp.ethoradev.com"
    ETHORA_API_TIMEOUT: float = 30.0
    ETHORA_API_CONNECT_TIMEOUT: float = 5.0

    # Logging
    LOG_LEVEL: str = "INFO"  # DEBUG, INFO, WARNING, ERROR, CRITICAL
    LOG_DIR: str = ""  # When set, also write backend-YYYY-MM-DD.log here

    # CORS
    CORS_ORIGINS: List[str] = ["http://localhost:5173"]
    CORS_ALLOW_CREDENTIALS: bool = True
    CORS_ALLOW_METHODS: List[str] = ["GET", "POST", "PUT", "DELETE", "OPTIONS"]
    CORS_ALLOW_HEADERS: List[str] = ["Content-Type", "Authorization"]

    # API Documentation (Swagger UI / OpenAPI)
    ENABLE_DOCS: bool = True

    @field_validator(*REQUIRED_SETTINGS)
    @classmethod
    def not_empty(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("must not be empty")
        return value.strip()

    @field_validator("ETHORA_CHAT_API_URL")
    @classmethod
    def strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    @property
    def chatbot_enabled(self) -> bool:
        return bool(self.ETHORA_CHAT_BOT_JID)


def load_settings(**overrides) -> Settings:
    """
    Build Settings, turning validation failures into a ConfigurationError.

    The error message names every missing or empty required variable so the
    process can fail before serving any request.
    """
    try:
        return Settings(**overrides)
    except ValidationError as e:
        problems = []
        for error in e.errors():
            name = ".".join(str(part) for part in error["loc"])
            reason = "missing" if error["type"] == "missing" else error["msg"]
            problems.append(f"- {name}: {reason}")
        raise ConfigurationError(
            "Missing required Ethora configuration. "
            "Please set the following environment variables:\n" + "\n".join(problems)
        ) from e


@lru_cache
def get_settings() -> Settings:
    """One shared Settings instance per process."""
    return load_settings()
