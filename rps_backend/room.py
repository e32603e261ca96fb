from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from .constants import MAX_PARTICIPANTS, Choice
from .delivery import broadcast, send_json

# NOTE: ``Room`` only holds live state. The durable record lives behind
# ``rps_backend.directory.RoomDirectory`` and is kept in step by the handler.


@dataclass(eq=False)
class Participant:
    """Per-connection context for one client attached to a room.

    Pending choices are keyed by ``token`` rather than by the transport object,
    so the round logic never depends on websocket identity.
    """

    websocket: Any
    room: "Room"
    address: Optional[str] = None
    token: str = field(default_factory=lambda: uuid.uuid4().hex)
    detached: bool = False

    async def send(self, payload: Dict[str, Any]) -> bool:
        return await send_json(self.websocket, payload, room_id=self.room.room_id)


class Room:
    """Runtime state for one two-player game session."""

    def __init__(self, room_id: str):
        self.room_id = room_id
        # join order; index 0 is the first participant
        self.participants: List[Participant] = []
        # participant token -> choice for the round in progress
        self.pending_choices: Dict[str, Choice] = {}
        # Set once the room has been evicted from the registry
        self.closed: bool = False
        # join, choice recording and disconnect cleanup all hold this lock
        self.lock = asyncio.Lock()

    # -------------------- Participant management -------------------- #

    @property
    def is_full(self) -> bool:
        return len(self.participants) >= MAX_PARTICIPANTS

    @property
    def is_empty(self) -> bool:
        return not self.participants

    def add_participant(self, websocket: Any, address: Optional[str] = None) -> Participant:
        if self.closed:
            raise RuntimeError(f"Room {self.room_id} has been closed")
        if self.is_full:
            raise RuntimeError(f"Room {self.room_id} is full")
        participant = Participant(websocket=websocket, room=self, address=address)
        self.participants.append(participant)
        return participant

    def remove_participant(self, participant: Participant) -> bool:
        """Detach *participant* and drop its pending choice. Returns *False* if it was not attached."""
        self.pending_choices.pop(participant.token, None)
        participant.detached = True
        if participant in self.participants:
            self.participants.remove(participant)
            return True
        return False

    def opponent_of(self, participant: Participant) -> Optional[Participant]:
        for other in self.participants:
            if other is not participant:
                return other
        return None

    # -------------------- Round bookkeeping -------------------- #

    def has_chosen(self, participant: Participant) -> bool:
        return participant.token in self.pending_choices

    def record_choice(self, participant: Participant, choice: Choice) -> None:
        if self.has_chosen(participant):
            raise ValueError("Participant already chose this round")
        self.pending_choices[participant.token] = Choice(choice)

    def round_complete(self) -> bool:
        return len(self.pending_choices) == MAX_PARTICIPANTS

    def take_choices(self) -> List[Tuple[Participant, Choice]]:
        """Return ``[(participant, choice), ...]`` in insertion order and clear the round."""
        by_token = {p.token: p for p in self.participants}
        pairs = [(by_token[token], choice) for token, choice in self.pending_choices.items() if token in by_token]
        self.pending_choices.clear()
        return pairs

    # -------------------- Broadcasting helpers -------------------- #

    async def broadcast(self, payload: Dict[str, Any]) -> int:
        """Broadcast *payload* to every participant in the room."""
        return await broadcast([p.websocket for p in self.participants], payload, room_id=self.room_id)

    def __repr__(self) -> str:
        return (
            f"Room(room_id={self.room_id!r}, participants={len(self.participants)}, "
            f"pending={len(self.pending_choices)}, closed={self.closed})"
        )


__all__ = ["Participant", "Room"]
