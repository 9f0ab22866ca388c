import httpx
from fastapi import APIRouter, Depends, status

from casechat.core.logging_config import get_logger
from casechat.dependencies import get_case_service
from casechat.routes.errors import external_error_response
from casechat.schemas.case import UsersDelete, UsersDeletedResponse
from casechat.services.case_service import CaseService

router = APIRouter()
logger = get_logger(__name__)


@router.delete(
    "/users",
    response_model=UsersDeletedResponse,
    status_code=status.HTTP_200_OK
)
async def delete_users(
    users: UsersDelete,
    case_service: CaseService = Depends(get_case_service)
):
    """Bulk delete chat users and drop them from the local participant cache."""
    logger.info("api_delete_users", user_ids=users.user_ids)

    try:
        deleted = await case_service.delete_users(users.user_ids)
    except httpx.HTTPError as e:
        logger.error("api_delete_users_failed", user_ids=users.user_ids, error=str(e))
        return external_error_response("Failed to delete users", e)
    except Exception as e:
        logger.exception("api_delete_users_unexpected_error", user_ids=users.user_ids)
        return external_error_response("Failed to delete users", e)

    return UsersDeletedResponse(deleted=deleted)
