"""
CaseService - case provisioning on the Ethora chat service

A case (a claim, a consultation) maps 1:1 to a chat room. Creating a case:
1. Ensure every participant exists as a chat user (sequential)
2. Ensure the case room exists
3. Grant every participant access to the room (sequential, failures skipped)
4. Commit the case record locally

Idempotency:
- A committed case is returned from local state without external calls
- "already exists" answers from the chat service count as success
- Failed runs commit nothing; a retry re-runs the whole workflow

Concurrency:
- One creation workflow per case_id at a time. The pending marker is
  registered before the first external call; concurrent callers wait on it
  and then re-check for the committed record.
"""

import random
import uuid
from dataclasses import replace
from typing import Any, Dict, List, Optional, Tuple

import httpx

from casechat.config import Settings
from casechat.core.exceptions import NotFoundError
from casechat.core.logging_config import get_logger, log_step, PerformanceLogger
from casechat.core.naming import derive_user_id
from casechat.models.case import CaseRecord, CaseResult, Participant
from casechat.services.case_store import CaseStore
from casechat.services.chat_api_client import EthoraChatClient, is_already_exists

logger = get_logger(__name__)

DEFAULT_LAST_NAME = "User"
MIN_LAST_NAME_LENGTH = 2  # Chat service rejects shorter last names

# Name pools for the fallback profile used when the chat service rejects the
# provided one
FALLBACK_NAMES: Dict[str, Dict[str, List[str]]] = {
    "admin": {
        "first_names": ["Sarah", "Michael", "Jennifer", "David", "Emily"],
        "last_names": ["Johnson", "Williams", "Brown", "Jones", "Garcia"],
    },
    "practitioner": {
        "first_names": ["Dr. James", "Dr. Maria", "Dr. Robert", "Dr. Lisa", "Dr. John"],
        "last_names": ["Smith", "Martinez", "Anderson", "Taylor", "Thomas"],
    },
    "patient": {
        "first_names": ["John", "Mary", "Robert", "Patricia", "William"],
        "last_names": ["Miller", "Davis", "Wilson", "Moore", "Jackson"],
    },
}


class CaseService:
    """
    Orchestrates users, rooms and access grants for cases.

    Usage:
        service = CaseService(chat_client, CaseStore(), settings)
        result = await service.create_case(
            "case-1",
            [Participant(user_id="u1", role="patient")]
        )
        print(result.room_jid)  # <appId>_case-1@conference.xmpp.ethoradev.com
    """

    def __init__(
        self,
        chat_client: EthoraChatClient,
        store: CaseStore,
        settings: Settings,
        rng: Optional[random.Random] = None
    ):
        self.chat_client = chat_client
        self.store = store
        self.app_id = settings.ETHORA_CHAT_APP_ID
        self.chatbot_enabled = settings.chatbot_enabled
        self.rng = rng or random.Random()

    # ========== Case creation ==========

    async def create_case(
        self,
        case_id: str,
        participants: List[Participant],
        metadata: Optional[Dict[str, Any]] = None
    ) -> CaseResult:
        """
        Provision the chat side of a case, at most once per case_id.

        Returns:
            CaseResult with the room JID and the resolved participants

        Raises:
            httpx.HTTPStatusError: User creation failed after the retry, or
                room creation failed for a reason other than "already exists"
        """
        while True:
            existing = self.store.get_case(case_id)
            if existing is not None:
                logger.info(
                    "case_already_exists",
                    case_id=case_id,
                    existing_participants=existing.participant_ids
                )
                return self._case_result(existing)

            marker = self.store.pending_creation(case_id)
            if marker is None:
                break

            logger.info("case_creation_in_progress_waiting", case_id=case_id)
            await marker.wait()

        # No await between the checks above and this registration
        self.store.begin_creation(case_id)
        try:
            with PerformanceLogger("create_case", logger, case_id=case_id):
                return await self._run_creation(case_id, participants, metadata)
        finally:
            self.store.finish_creation(case_id)

    async def _run_creation(
        self,
        case_id: str,
        participants: List[Participant],
        metadata: Optional[Dict[str, Any]]
    ) -> CaseResult:
        logger.info(
            "case_creation_started",
            case_id=case_id,
            participant_count=len(participants)
        )

        log_step(
            logger, 1, "create_users",
            case_id=case_id,
            participants=[{"user_id": p.user_id, "role": p.role} for p in participants]
        )
        resolved: List[Participant] = []
        for participant in participants:
            resolved.append(await self.ensure_user(participant))
        logger.info("users_ready", user_ids=[p.user_id for p in resolved])

        log_step(logger, 2, "create_chat_room", case_id=case_id)
        await self.ensure_room(case_id)

        log_step(
            logger, 3, "grant_user_access",
            case_id=case_id,
            user_ids=[p.user_id for p in resolved]
        )
        granted = 0
        for participant in resolved:
            if await self.grant_access(case_id, participant):
                granted += 1
        if self.chatbot_enabled:
            await self.grant_chatbot_access(case_id)
        logger.info(
            "access_grants_completed",
            case_id=case_id,
            granted=granted,
            failed=len(resolved) - granted
        )

        record = CaseRecord(
            case_id=case_id,
            participant_ids=list(dict.fromkeys(p.user_id for p in resolved)),
            metadata=metadata
        )
        self.store.save_case(record)

        room_jid = self.room_jid(case_id)
        logger.info(
            "case_created",
            case_id=case_id,
            room_jid=room_jid,
            participant_count=len(resolved)
        )
        return CaseResult(case_id=case_id, room_jid=room_jid, participants=resolved)

    # ========== Participants ==========

    async def add_participant(self, case_id: str, participant: Participant) -> Tuple[str, str]:
        """
        Add a participant to an existing case.

        Raises:
            NotFoundError: Case unknown
        """
        record = self.store.get_case(case_id)
        if record is None:
            raise NotFoundError("Case not found")

        resolved = await self.ensure_user(participant)
        await self.grant_access(case_id, resolved)

        if not self._is_recorded(record, resolved):
            record.participant_ids.append(resolved.user_id)

        logger.info("participant_added", case_id=case_id, user_id=resolved.user_id)
        return case_id, resolved.user_id

    def _is_recorded(self, record: CaseRecord, participant: Participant) -> bool:
        if participant.user_id in record.participant_ids:
            return True
        for user_id in record.participant_ids:
            known = self.store.get_participant(user_id)
            if known is not None and participant.external_id and known.external_id == participant.external_id:
                return True
        return False

    async def ensure_user(self, participant: Participant) -> Participant:
        """
        Make sure `participant` exists as a chat user and return it with its
        external ID attached.

        Cached participants with a resolved external ID are reused without a
        call. An "already exists" answer counts as success. Any other HTTP
        error triggers exactly one retry with a fallback profile.
        """
        cached = self.store.get_participant(participant.user_id)
        if cached is not None and cached.external_id:
            logger.debug(
                "participant_cache_hit",
                user_id=participant.user_id,
                external_id=cached.external_id
            )
            return cached

        profile, user_data = self._build_profile(participant)
        logger.info(
            "creating_chat_user",
            user_id=participant.user_id,
            role=participant.role,
            display_name=profile.display_name
        )

        try:
            response = await self.chat_client.create_user(participant.user_id, user_data)
        except httpx.HTTPStatusError as e:
            if is_already_exists(e):
                logger.warning("chat_user_already_exists", user_id=participant.user_id)
                return self._remember(profile, self._known_external_id(cached, participant))

            logger.warning(
                "chat_user_creation_failed_retrying",
                user_id=participant.user_id,
                status_code=e.response.status_code,
                response=e.response.text
            )
            return await self._retry_with_fallback_profile(participant, profile, cached)

        external_id = self._external_id_from_response(response, participant.user_id)
        logger.info(
            "chat_user_created",
            user_id=participant.user_id,
            external_id=external_id,
            role=participant.role
        )
        return self._remember(profile, external_id)

    async def _retry_with_fallback_profile(
        self,
        participant: Participant,
        profile: Participant,
        cached: Optional[Participant]
    ) -> Participant:
        fallback = self._fallback_profile(participant.role)
        fallback_profile = replace(
            participant,
            first_name=fallback["firstName"],
            last_name=fallback["lastName"],
            email=fallback["email"],
            display_name=fallback["displayName"]
        )
        logger.info(
            "retrying_chat_user_with_fallback_profile",
            user_id=participant.user_id,
            display_name=fallback["displayName"]
        )

        try:
            response = await self.chat_client.create_user(participant.user_id, fallback)
        except httpx.HTTPStatusError as e:
            if is_already_exists(e):
                logger.warning("chat_user_already_exists", user_id=participant.user_id)
                return self._remember(profile, self._known_external_id(cached, participant))

            logger.error(
                "chat_user_creation_failed",
                user_id=participant.user_id,
                status_code=e.response.status_code,
                response=e.response.text
            )
            raise

        external_id = self._external_id_from_response(response, participant.user_id)
        logger.info(
            "chat_user_created_with_fallback_profile",
            user_id=participant.user_id,
            external_id=external_id
        )
        return self._remember(fallback_profile, external_id)

    def _build_profile(self, participant: Participant) -> Tuple[Participant, dict]:
        """
        Best-available profile for the chat service.

        Missing names are derived from the display name (or the role); a last
        name shorter than two characters is replaced with a default.
        """
        name_parts = (participant.display_name or "").split()

        first_name = participant.first_name
        if not first_name:
            first_name = name_parts[0] if name_parts else participant.role.title()

        last_name = participant.last_name
        if last_name and len(last_name) < MIN_LAST_NAME_LENGTH:
            logger.warning(
                "last_name_too_short",
                user_id=participant.user_id,
                original_last_name=last_name,
                replacement=DEFAULT_LAST_NAME
            )
            last_name = DEFAULT_LAST_NAME
        elif not last_name:
            derived = " ".join(name_parts[1:])
            last_name = derived if len(derived) >= MIN_LAST_NAME_LENGTH else DEFAULT_LAST_NAME

        display_name = participant.display_name or f"{first_name} {last_name}"

        profile = replace(
            participant,
            first_name=first_name,
            last_name=last_name,
            display_name=display_name
        )

        user_data = {
            "role": participant.role,
            "firstName": first_name,
            "lastName": last_name,
            "displayName": display_name,
        }
        if participant.email:
            user_data["email"] = participant.email
        if participant.password:
            user_data["password"] = participant.password

        return profile, user_data

    def _fallback_profile(self, role: str) -> dict:
        names = FALLBACK_NAMES.get(role, FALLBACK_NAMES["patient"])
        first_name = self.rng.choice(names["first_names"])
        last_name = self.rng.choice(names["last_names"])
        return {
            "firstName": first_name,
            "lastName": last_name,
            "email": f"{uuid.uuid4()}@example.com",
            "displayName": f"{first_name} {last_name}",
        }

    def _known_external_id(self, cached: Optional[Participant], participant: Participant) -> str:
        if cached is not None and cached.external_id:
            return cached.external_id
        return derive_user_id(self.app_id, participant.user_id)

    def _external_id_from_response(self, response: Any, user_id: str) -> str:
        """The chat service's username for the new user, else the derived one."""
        if isinstance(response, dict):
            user = response.get("user") if isinstance(response.get("user"), dict) else response
            external_id = user.get("xmppUsername")
            if external_id:
                return str(external_id)
        return derive_user_id(self.app_id, user_id)

    def _remember(self, participant: Participant, external_id: str) -> Participant:
        resolved = replace(participant, external_id=external_id)
        self.store.save_participant(resolved)
        return resolved

    # ========== Rooms and access ==========

    async def ensure_room(self, case_id: str) -> None:
        """
        Create the case room; an existing room counts as success.

        Raises:
            httpx.HTTPStatusError: Any other chat service rejection
        """
        try:
            result = await self.chat_client.create_chat_room(
                case_id,
                {
                    "title": f"Case {case_id}",
                    "uuid": case_id,
                    "type": "group",
                }
            )
        except httpx.HTTPStatusError as e:
            if is_already_exists(e):
                logger.warning("chat_room_already_exists", case_id=case_id)
                return
            logger.error(
                "chat_room_creation_failed",
                case_id=case_id,
                status_code=e.response.status_code,
                response=e.response.text
            )
            raise

        logger.info("chat_room_created", case_id=case_id, result=result)

    async def grant_access(self, case_id: str, participant: Participant) -> bool:
        """
        Grant one participant access to the case room.

        Failures are logged and reported as False; they never abort the caller.
        """
        user_id = participant.external_id or participant.user_id
        try:
            await self.chat_client.grant_user_access(case_id, user_id)
        except Exception as e:
            status_code = e.response.status_code if isinstance(e, httpx.HTTPStatusError) else None
            logger.warning(
                "grant_access_failed_continuing",
                case_id=case_id,
                user_id=participant.user_id,
                external_id=user_id,
                status_code=status_code,
                error_type=type(e).__name__,
                error=str(e)
            )
            return False

        logger.debug("access_granted", case_id=case_id, user_id=participant.user_id)
        return True

    async def grant_chatbot_access(self, case_id: str) -> bool:
        try:
            await self.chat_client.grant_chatbot_access(case_id)
        except Exception as e:
            logger.warning(
                "chatbot_grant_failed_continuing",
                case_id=case_id,
                error_type=type(e).__name__,
                error=str(e)
            )
            return False
        logger.info("chatbot_access_granted", case_id=case_id)
        return True

    # ========== Lookups and cleanup ==========

    def room_jid(self, case_id: str) -> str:
        return self.chat_client.create_chat_name(case_id, full=True)

    def client_token(self, user_id: str) -> str:
        return self.chat_client.create_user_token(user_id)

    async def delete_case_room(self, case_id: str) -> Any:
        """Delete the case room. The local case record is kept."""
        return await self.chat_client.delete_chat_room(case_id)

    async def delete_users(self, user_ids: List[str]) -> List[str]:
        await self.chat_client.delete_users(user_ids)
        self.store.forget_participants(user_ids)
        logger.info("users_deleted", user_ids=user_ids)
        return user_ids

    def _case_result(self, record: CaseRecord) -> CaseResult:
        participants = [
            self.store.get_participant(user_id) or Participant(user_id=user_id, role=None)
            for user_id in record.participant_ids
        ]
        return CaseResult(
            case_id=record.case_id,
            room_jid=self.room_jid(record.case_id),
            participants=participants
        )
