from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from casechat.models.case import Participant, Role


class CamelModel(BaseModel):
    """Accepts and emits camelCase field names."""
    model_config = ConfigDict(populate_by_name=True)


class ParticipantIn(CamelModel):
    """Schema for a participant in a case request."""
    user_id: str = Field(..., min_length=1, alias="userId")
    role: Role
    display_name: Optional[str] = Field(None, alias="displayName")
    email: Optional[str] = None
    first_name: Optional[str] = Field(None, alias="firstName")
    last_name: Optional[str] = Field(None, alias="lastName")
    password: Optional[str] = None

    def to_participant(self) -> Participant:
        return Participant(
            user_id=self.user_id,
            role=self.role,
            display_name=self.display_name,
            email=self.email,
            first_name=self.first_name,
            last_name=self.last_name,
            password=self.password
        )


class ParticipantOut(CamelModel):
    """Schema for a participant in a case response."""
    user_id: str = Field(..., alias="userId")
    role: Optional[Role] = None
    display_name: Optional[str] = Field(None, alias="displayName")

    @classmethod
    def from_participant(cls, participant: Participant) -> "ParticipantOut":
        return cls(
            user_id=participant.user_id,
            role=participant.role,
            display_name=participant.display_name
        )


class CaseCreate(CamelModel):
    """Schema for creating a case."""
    case_id: str = Field(..., min_length=1, alias="caseId")
    participants: List[ParticipantIn] = Field(default_factory=list)
    metadata: Optional[Dict[str, Any]] = None


class CaseResponse(CamelModel):
    """Schema for case creation response."""
    case_id: str = Field(..., alias="caseId")
    room_jid: str = Field(..., alias="roomJid")
    participants: List[ParticipantOut]


class ParticipantAddedResponse(CamelModel):
    case_id: str = Field(..., alias="caseId")
    user_id: str = Field(..., alias="userId")


class RoomJidResponse(CamelModel):
    case_id: str = Field(..., alias="caseId")
    room_jid: str = Field(..., alias="roomJid")


class RoomDeletedResponse(CamelModel):
    case_id: str = Field(..., alias="caseId")
    response: Any


class ChatTokenResponse(CamelModel):
    user_id: str = Field(..., alias="userId")
    token: str


class UsersDelete(CamelModel):
    """Schema for bulk user deletion."""
    user_ids: List[str] = Field(..., min_length=1, alias="userIds")


class UsersDeletedResponse(BaseModel):
    deleted: List[str]
