import httpx
from fastapi import APIRouter, Depends, HTTPException, status

from casechat.core.logging_config import get_logger
from casechat.dependencies import get_case_service
from casechat.routes.errors import external_error_response
from casechat.schemas.case import (
    CaseCreate,
    CaseResponse,
    ParticipantAddedResponse,
    ParticipantIn,
    ParticipantOut,
    RoomDeletedResponse,
    RoomJidResponse,
)
from casechat.services.case_service import CaseService

router = APIRouter()
logger = get_logger(__name__)


@router.post(
    "/cases",
    response_model=CaseResponse,
    status_code=status.HTTP_200_OK
)
async def create_case(
    case_data: CaseCreate,
    case_service: CaseService = Depends(get_case_service)
):
    """
    Create a case and provision its chat room and participants.

    Idempotent per caseId: repeated or concurrent calls return the same room.
    Access grant failures do not fail the request.
    """
    logger.info(
        "api_create_case",
        case_id=case_data.case_id,
        participant_count=len(case_data.participants)
    )

    try:
        result = await case_service.create_case(
            case_data.case_id,
            [p.to_participant() for p in case_data.participants],
            case_data.metadata
        )
    except httpx.HTTPStatusError as e:
        logger.error(
            "api_create_case_failed",
            case_id=case_data.case_id,
            status_code=e.response.status_code,
            url=str(e.request.url),
            method=e.request.method
        )
        return external_error_response("Failed to create case", e, include_status=True)
    except httpx.RequestError as e:
        logger.error("api_create_case_failed", case_id=case_data.case_id, error=str(e))
        return external_error_response("Failed to create case", e)
    except Exception as e:
        logger.exception("api_create_case_unexpected_error", case_id=case_data.case_id)
        return external_error_response("Failed to create case", e)

    return CaseResponse(
        case_id=result.case_id,
        room_jid=result.room_jid,
        participants=[ParticipantOut.from_participant(p) for p in result.participants]
    )


@router.post(
    "/cases/{case_id}/users",
    response_model=ParticipantAddedResponse,
    status_code=status.HTTP_200_OK
)
async def add_participant(
    case_id: str,
    participant: ParticipantIn,
    case_service: CaseService = Depends(get_case_service)
):
    """Add a participant to an existing case. 404 if the case is unknown."""
    logger.info("api_add_participant", case_id=case_id, user_id=participant.user_id)

    try:
        case_id, user_id = await case_service.add_participant(
            case_id,
            participant.to_participant()
        )
    except HTTPException:
        raise
    except httpx.HTTPError as e:
        logger.error("api_add_participant_failed", case_id=case_id, error=str(e))
        return external_error_response("Failed to add participant", e)
    except Exception as e:
        logger.exception("api_add_participant_unexpected_error", case_id=case_id)
        return external_error_response("Failed to add participant", e)

    return ParticipantAddedResponse(case_id=case_id, user_id=user_id)


@router.get(
    "/cases/{case_id}/chat/jid",
    response_model=RoomJidResponse,
    status_code=status.HTTP_200_OK
)
async def get_room_jid(
    case_id: str,
    case_service: CaseService = Depends(get_case_service)
):
    """Full room JID for a case."""
    return RoomJidResponse(case_id=case_id, room_jid=case_service.room_jid(case_id))


@router.delete(
    "/cases/{case_id}/chat",
    response_model=RoomDeletedResponse,
    status_code=status.HTTP_200_OK
)
async def delete_case_room(
    case_id: str,
    case_service: CaseService = Depends(get_case_service)
):
    """
    Delete the chat room of a case.

    The local case record is kept. A room that is already gone answers
    `{"ok": false, "reason": "Chat room not found"}`.
    """
    logger.info("api_delete_case_room", case_id=case_id)

    try:
        response = await case_service.delete_case_room(case_id)
    except httpx.HTTPError as e:
        logger.error("api_delete_case_room_failed", case_id=case_id, error=str(e))
        return external_error_response("Failed to delete chat room", e)
    except Exception as e:
        logger.exception("api_delete_case_room_unexpected_error", case_id=case_id)
        return external_error_response("Failed to delete chat room", e)

    return RoomDeletedResponse(case_id=case_id, response=response)
