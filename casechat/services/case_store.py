"""
CaseStore - process-local state for case provisioning

Holds three maps, all living for the lifetime of the process:
- cases: case_id -> CaseRecord
- participants: user_id -> Participant (profile plus resolved external ID)
- pending: case_id -> asyncio.Event for an in-flight case creation

The store is not locked. Mutations happen between await points on a single
event loop, and the pending map serializes creation per case_id.
"""

import asyncio
from typing import Dict, Iterable, Optional

from casechat.models.case import CaseRecord, Participant


class CaseStore:
    """In-memory case, participant and creation-lock maps."""

    def __init__(self):
        self.cases: Dict[str, CaseRecord] = {}
        self.participants: Dict[str, Participant] = {}
        self.pending: Dict[str, asyncio.Event] = {}

    def get_case(self, case_id: str) -> Optional[CaseRecord]:
        return self.cases.get(case_id)

    def save_case(self, record: CaseRecord) -> None:
        self.cases[record.case_id] = record

    def get_participant(self, user_id: str) -> Optional[Participant]:
        return self.participants.get(user_id)

    def save_participant(self, participant: Participant) -> None:
        self.participants[participant.user_id] = participant

    def forget_participants(self, user_ids: Iterable[str]) -> None:
        for user_id in user_ids:
            self.participants.pop(user_id, None)

    def pending_creation(self, case_id: str) -> Optional[asyncio.Event]:
        return self.pending.get(case_id)

    def begin_creation(self, case_id: str) -> asyncio.Event:
        """
        Register the creation marker for `case_id`.

        Must be called before the first await of a creation workflow.
        """
        if case_id in self.pending:
            raise RuntimeError(f"Case {case_id} creation already in progress")
        marker = asyncio.Event()
        self.pending[case_id] = marker
        return marker

    def finish_creation(self, case_id: str) -> None:
        """Release the marker and wake every waiter."""
        marker = self.pending.pop(case_id, None)
        if marker is not None:
            marker.set()
