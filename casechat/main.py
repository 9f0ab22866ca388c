from contextlib import asynccontextmanager
from typing import Optional

import httpx
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from casechat.config import Settings, get_settings
from casechat.core.logging_config import setup_logging, get_logger
from casechat.core.tokens import TokenIssuer
from casechat.middleware.access_log import AccessLogMiddleware
from casechat.routes import cases, chat, users, ops
from casechat.services.case_service import CaseService
from casechat.services.case_store import CaseStore
from casechat.services.chat_api_client import EthoraChatClient

logger = get_logger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None
) -> FastAPI:
    """
    Build the FastAPI application.

    Settings are loaded (and validated) here, so a missing ETHORA_* variable
    fails before the server starts. `transport` lets tests route chat service
    calls to an in-process mock.
    """
    settings = settings or get_settings()
    setup_logging(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan manager."""
        logger.info(
            "application_startup",
            app_name=settings.APP_NAME,
            version=settings.APP_VERSION,
            environment=settings.ENVIRONMENT,
            log_level=settings.LOG_LEVEL,
        )

        token_issuer = TokenIssuer(settings.ETHORA_CHAT_APP_ID, settings.ETHORA_CHAT_APP_SECRET)
        chat_client = EthoraChatClient(settings, token_issuer, transport=transport)
        case_store = CaseStore()

        app.state.settings = settings
        app.state.chat_client = chat_client
        app.state.case_store = case_store
        app.state.case_service = CaseService(chat_client, case_store, settings)

        logger.info(
            "chat_api_configured",
            chat_api_url=settings.ETHORA_CHAT_API_URL,
            app_id=settings.ETHORA_CHAT_APP_ID,
            chatbot_enabled=settings.chatbot_enabled
        )

        yield

        logger.info("application_shutdown")
        await chat_client.aclose()

    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        description="""
**Case chat backend for the Ethora chat service.**

Creates a chat room per case, provisions chat users for case participants,
grants them access, and issues client JWTs for the chat component.

- Case creation is idempotent and serialized per caseId
- "Already exists" answers from the chat service are treated as success
- Access grant failures are logged and never fail case creation
        """,
        docs_url="/docs" if settings.ENABLE_DOCS else None,
        redoc_url="/redoc" if settings.ENABLE_DOCS else None,
        openapi_url="/openapi.json" if settings.ENABLE_DOCS else None,
        lifespan=lifespan
    )

    # ========== Middleware Stack ==========
    # Executes in reverse order of registration: access log, then CORS

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=settings.CORS_ALLOW_CREDENTIALS,
        allow_methods=settings.CORS_ALLOW_METHODS,
        allow_headers=settings.CORS_ALLOW_HEADERS,
    )
    app.add_middleware(AccessLogMiddleware)

    app.include_router(ops.router, tags=["operations"])
    app.include_router(cases.router, tags=["cases"])
    app.include_router(chat.router, tags=["chat"])
    app.include_router(users.router, tags=["users"])

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "casechat.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower(),
        access_log=False,  # AccessLogMiddleware logs requests
    )
