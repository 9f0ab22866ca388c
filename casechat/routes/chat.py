from fastapi import APIRouter, Depends, status

from casechat.core.logging_config import get_logger
from casechat.dependencies import get_case_service
from casechat.schemas.case import ChatTokenResponse
from casechat.services.case_service import CaseService

router = APIRouter()
logger = get_logger(__name__)


@router.get(
    "/chat/token/{user_id}",
    response_model=ChatTokenResponse,
    status_code=status.HTTP_200_OK
)
async def get_chat_token(
    user_id: str,
    case_service: CaseService = Depends(get_case_service)
):
    """
    Client JWT for a user, for embedding in the chat component or snippet.
    """
    logger.info("api_issue_chat_token", user_id=user_id)
    return ChatTokenResponse(user_id=user_id, token=case_service.client_token(user_id))
