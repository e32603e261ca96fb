"""Durable room directory and the fire-and-forget status mirror.

The live protocol never waits on the database. Lookups happen once per join
attempt; every status change afterwards goes through :class:`StatusMirror`,
which schedules the write as a background task and only logs failures.
"""
from __future__ import annotations

import abc
import asyncio
import logging
import uuid
from datetime import datetime, timezone
from typing import Dict, Optional, Set

from tortoise.exceptions import IntegrityError

from .constants import GAME_ID_LENGTH, GameStatus
from .models import Game
from .schemas import GameRecord

logger = logging.getLogger(__name__)

# Sentinel for "leave this column alone" in ``update``.
UNCHANGED = object()


def generate_game_id() -> str:
    """Short URL-safe room identifier, e.g. ``"a1b2c3d4"``."""
    return uuid.uuid4().hex[:GAME_ID_LENGTH]


class GameIdCollision(Exception):
    """Raised by ``create`` when the generated id is already taken."""


class RoomDirectory(abc.ABC):
    """Interface the coordinator needs from the durable store."""

    @abc.abstractmethod
    async def get(self, game_id: str) -> Optional[GameRecord]:
        """Return the record for *game_id* or ``None`` if it does not exist."""

    @abc.abstractmethod
    async def create(self, game_id: str, player1_ip: Optional[str]) -> GameRecord:
        """Insert a new ``waiting`` record. Raises :class:`GameIdCollision` on duplicates."""

    @abc.abstractmethod
    async def update(self, game_id: str, status: Optional[GameStatus] = None, player2_ip=UNCHANGED) -> None:
        """Change the status and/or the second participant address of a record."""

    async def close(self) -> None:
        """Release the underlying store. Default: nothing to release."""

    async def create_game(self, player1_ip: Optional[str], attempts: int = 10) -> GameRecord:
        """Create a record under a freshly generated id, retrying on collisions."""
        for _ in range(attempts):
            try:
                return await self.create(generate_game_id(), player1_ip)
            except GameIdCollision:
                logger.warning("Generated game id collided, retrying")
        raise GameIdCollision("Unable to allocate a game id")


class InMemoryRoomDirectory(RoomDirectory):
    """Process-local directory; used by tests and database-less deployments."""

    def __init__(self) -> None:
        self.records: Dict[str, GameRecord] = {}
        self.closed = False

    def _check_open(self) -> None:
        if self.closed:
            raise RuntimeError("Room directory is closed")

    async def get(self, game_id: str) -> Optional[GameRecord]:
        self._check_open()
        record = self.records.get(game_id)
        return record.model_copy() if record else None

    async def create(self, game_id: str, player1_ip: Optional[str]) -> GameRecord:
        self._check_open()
        if game_id in self.records:
            raise GameIdCollision(game_id)
        record = GameRecord(
            game_id=game_id,
            player1_ip=player1_ip,
            created_at=datetime.now(timezone.utc),
            status=GameStatus.WAITING,
        )
        self.records[game_id] = record
        return record.model_copy()

    async def update(self, game_id: str, status: Optional[GameStatus] = None, player2_ip=UNCHANGED) -> None:
        self._check_open()
        record = self.records.get(game_id)
        if record is None:
            logger.warning("Update for unknown game %s ignored", game_id)
            return
        if status is not None:
            record.status = GameStatus(status)
        if player2_ip is not UNCHANGED:
            record.player2_ip = player2_ip

    async def close(self) -> None:
        self.closed = True


class TortoiseRoomDirectory(RoomDirectory):
    """Directory backed by the Tortoise ORM ``Game`` model."""

    async def get(self, game_id: str) -> Optional[GameRecord]:
        game = await Game.get_or_none(game_id=game_id)
        if game is None:
            return None
        return GameRecord(
            game_id=game.game_id,
            player1_ip=game.player1_ip,
            player2_ip=game.player2_ip,
            created_at=game.created_at,
            status=game.status,
        )

    async def create(self, game_id: str, player1_ip: Optional[str]) -> GameRecord:
        if await Game.exists(game_id=game_id):
            raise GameIdCollision(game_id)
        try:
            game = await Game.create(game_id=game_id, player1_ip=player1_ip, status=GameStatus.WAITING)
        except IntegrityError as exc:
            raise GameIdCollision(game_id) from exc
        return GameRecord(
            game_id=game.game_id,
            player1_ip=game.player1_ip,
            created_at=game.created_at,
            status=game.status,
        )

    async def update(self, game_id: str, status: Optional[GameStatus] = None, player2_ip=UNCHANGED) -> None:
        changes = {}
        if status is not None:
            changes["status"] = GameStatus(status)
        if player2_ip is not UNCHANGED:
            changes["player2_ip"] = player2_ip
        if not changes:
            return
        updated = await Game.filter(game_id=game_id).update(**changes)
        if not updated:
            logger.warning("Update for unknown game %s matched no rows", game_id)


# ---------------------------------------------------------------------------
# Fire-and-forget status writes
# ---------------------------------------------------------------------------


class StatusMirror:
    """Keeps the durable record in step with live rooms without blocking them."""

    def __init__(self, directory: RoomDirectory):
        self.directory = directory
        self._tasks: Set[asyncio.Task] = set()
        self._closed = False

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def set_status(self, game_id: str, status: GameStatus, **kwargs) -> Optional[asyncio.Task]:
        """Schedule a status write; returns the task (or ``None`` once closed)."""
        if self._closed:
            logger.warning("Dropping status write %s -> %s after shutdown", game_id, status.value)
            return None
        task = asyncio.create_task(self._write(game_id, status, **kwargs))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _write(self, game_id: str, status: GameStatus, **kwargs) -> None:
        try:
            await self.directory.update(game_id, status=status, **kwargs)
        except Exception:
            logger.exception("Failed to set game %s to %s", game_id, status.value)
        else:
            logger.debug("Game %s status set to %s", game_id, status.value)

    async def drain(self) -> None:
        """Wait for every scheduled write to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def close(self) -> None:
        """Refuse new writes and flush the ones already scheduled."""
        self._closed = True
        await self.drain()


__all__ = [
    "UNCHANGED",
    "generate_game_id",
    "GameIdCollision",
    "RoomDirectory",
    "InMemoryRoomDirectory",
    "TortoiseRoomDirectory",
    "StatusMirror",
]
