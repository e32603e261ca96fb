"""Centralised in-memory runtime state.

The session registry is the authoritative live view of which rooms exist and
who is connected to them. It is an injectable service so that the protocol
code never touches a module-level dict directly.
"""
from __future__ import annotations

import abc
import asyncio
import logging
from typing import Dict, List, Optional, Set

from .room import Room

logger = logging.getLogger(__name__)


class SessionRegistry(abc.ABC):
    """Interface the connection handler uses to find live rooms."""

    @abc.abstractmethod
    async def get_or_create(self, room_id: str) -> Optional[Room]:
        """Return the live Room for *room_id*, creating it on first use.

        At most one Room object exists per id; concurrent first joiners all
        observe the same instance. Returns ``None`` once *room_id* has been
        evicted: an emptied room is never recreated.
        """

    @abc.abstractmethod
    async def evict(self, room_id: str, room: Optional[Room] = None) -> bool:
        """Drop an empty Room and retire its id. Returns *True* if something was removed."""

    @abc.abstractmethod
    def get(self, room_id: str) -> Optional[Room]:
        ...

    @abc.abstractmethod
    def rooms(self) -> List[Room]:
        """Snapshot of every live Room."""

    def __len__(self) -> int:
        return len(self.rooms())


class InMemorySessionRegistry(SessionRegistry):
    def __init__(self) -> None:
        self._rooms: Dict[str, Room] = {}
        self._retired: Set[str] = set()
        self._lock = asyncio.Lock()

    async def get_or_create(self, room_id: str) -> Optional[Room]:
        async with self._lock:
            if room_id in self._retired:
                return None
            room = self._rooms.get(room_id)
            if room is None:
                logger.info("Initializing in-memory state for game %s", room_id)
                room = Room(room_id)
                self._rooms[room_id] = room
            return room

    async def evict(self, room_id: str, room: Optional[Room] = None) -> bool:
        async with self._lock:
            current = self._rooms.get(room_id)
            if current is None:
                return False
            # Only the Room the caller holds may be evicted.
            if room is not None and current is not room:
                return False
            if current.participants:
                raise RuntimeError(f"Refusing to evict game {room_id} with connected participants")
            current.closed = True
            del self._rooms[room_id]
            self._retired.add(room_id)
            logger.info("Game %s removed from memory", room_id)
            return True

    def get(self, room_id: str) -> Optional[Room]:
        return self._rooms.get(room_id)

    def rooms(self) -> List[Room]:
        return list(self._rooms.values())

    def __len__(self) -> int:
        return len(self._rooms)


__all__ = ["SessionRegistry", "InMemorySessionRegistry"]
