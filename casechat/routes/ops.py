from datetime import datetime, timezone

from fastapi import APIRouter, Request

router = APIRouter()


@router.get("/health")
async def health_check(request: Request):
    """
    Liveness plus a summary of the chat service configuration.

    No call is made to the chat service.
    """
    settings = request.app.state.settings
    store = request.app.state.case_store

    return {
        "ok": True,
        "service": "case-chat-backend",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "app": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "checks": {
            "chat_api_url": settings.ETHORA_CHAT_API_URL,
            "app_id": settings.ETHORA_CHAT_APP_ID,
            "chatbot": "configured" if settings.chatbot_enabled else "not_configured",
            "cases": len(store.cases),
            "cases_in_progress": len(store.pending),
        }
    }


@router.get("/")
async def root(request: Request):
    """Root endpoint."""
    settings = request.app.state.settings
    return {
        "app": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "docs": "/docs" if settings.ENABLE_DOCS else None,
        "health": "/health",
    }
