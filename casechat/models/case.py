from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Optional

Role = Literal["admin", "practitioner", "patient"]


@dataclass
class Participant:
    """
    A person taking part in a case chat.

    `external_id` is the chat service's identifier for the user, attached
    once the user has been created (or found to exist) there.
    """
    user_id: str
    role: Optional[Role]
    display_name: Optional[str] = None
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    password: Optional[str] = None
    external_id: Optional[str] = None


@dataclass
class CaseRecord:
    """A case and the ordered list of its participants' user IDs."""
    case_id: str
    participant_ids: List[str] = field(default_factory=list)
    metadata: Optional[Dict[str, Any]] = None


@dataclass
class CaseResult:
    """Outcome of case creation: the room JID and the participants."""
    case_id: str
    room_jid: str
    participants: List[Participant]
