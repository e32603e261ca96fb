"""Per-connection game protocol.

One :class:`ConnectionHandler` is shared by the whole application; every live
websocket gets its own :class:`~rps_backend.room.Participant` context from
:meth:`ConnectionHandler.join` and then feeds inbound frames through
:meth:`ConnectionHandler.handle_message` until the receive loop ends, at which
point :meth:`ConnectionHandler.disconnect` runs exactly once.

All mutations of a Room (join, choice recording, disconnect cleanup) happen
while holding ``room.lock``. Durable status changes are handed to the
:class:`~rps_backend.directory.StatusMirror` and never awaited here.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional, Set

from pydantic import ValidationError

from . import config
from .constants import (
    CLOSE_NOT_FOUND,
    CLOSE_POLICY_VIOLATION,
    CLOSE_SERVICE_RESTART,
    ENDED_STATUSES,
    GAME_ID_PATTERN,
    MAX_PARTICIPANTS,
    MSG_ALREADY_CHOSE,
    MSG_CHOICE_RECEIVED,
    MSG_ENDED,
    MSG_FULL,
    MSG_INVALID_PATH,
    MSG_NEXT_CHOICE,
    MSG_NOT_FOUND,
    MSG_OPPONENT_CONNECTED,
    MSG_OPPONENT_DISCONNECTED,
    MSG_OPPONENT_MOVED,
    MSG_SERVER_RESTARTING,
    MSG_STILL_WAITING,
    MSG_WAITING_FOR_OPPONENT,
    GameStatus,
)
from .delivery import close_quietly, send_json
from .directory import RoomDirectory, StatusMirror
from .game_logic import resolve
from .room import Participant, Room
from .schemas import (
    ChoiceMessage,
    ErrorMessage,
    GameRecord,
    PlayerCountMessage,
    RoundResultMessage,
    StatusMessage,
    dump,
)
from .state import SessionRegistry

logger = logging.getLogger(__name__)


class InvalidMessage(ValueError):
    """Inbound frame that is not a valid ``{"choice": ...}`` payload."""


def parse_choice(raw: Any) -> ChoiceMessage:
    """Validate one inbound frame, raising :class:`InvalidMessage` with a readable reason."""
    try:
        if isinstance(raw, (str, bytes, bytearray)):
            return ChoiceMessage.model_validate_json(raw)
        return ChoiceMessage.model_validate(raw)
    except ValidationError as exc:
        reasons = []
        for err in exc.errors():
            loc = ".".join(str(part) for part in err.get("loc", ()))
            reasons.append(f"{loc}: {err['msg']}" if loc else err["msg"])
        raise InvalidMessage("; ".join(reasons) or "Invalid message format or choice.") from exc


def normalize_game_id(raw: str) -> Optional[str]:
    """Return the canonical (lower case) id, or ``None`` if *raw* is malformed."""
    if not isinstance(raw, str) or not GAME_ID_PATTERN.match(raw):
        return None
    return raw.lower()


class ConnectionHandler:
    def __init__(
        self,
        registry: SessionRegistry,
        directory: RoomDirectory,
        mirror: Optional[StatusMirror] = None,
        next_round_delay: float = config.NEXT_ROUND_DELAY,
    ):
        self.registry = registry
        self.directory = directory
        self.mirror = mirror or StatusMirror(directory)
        self.next_round_delay = next_round_delay
        self.accepting = True
        self._prompts: Set[asyncio.Task] = set()

    # ---------------------------------------------------------------------
    # Join protocol
    # ---------------------------------------------------------------------

    async def join(self, websocket: Any, raw_game_id: str, address: Optional[str] = None) -> Optional[Participant]:
        """Attach *websocket* to the room named *raw_game_id*.

        Returns the participant context, or ``None`` if the connection was
        rejected (an error payload has been sent and the socket closed).
        """
        if not self.accepting:
            await self._reject(websocket, MSG_SERVER_RESTARTING, CLOSE_SERVICE_RESTART, "Server is restarting")
            return None

        game_id = normalize_game_id(raw_game_id)
        if game_id is None:
            logger.info("Connection attempt with invalid game id %r", raw_game_id)
            await self._reject(websocket, MSG_INVALID_PATH, CLOSE_POLICY_VIOLATION, "Invalid connection path")
            return None

        logger.info("Connection attempt for game %s", game_id)
        record = await self._lookup(game_id)
        if record is None:
            await self._reject(websocket, MSG_NOT_FOUND, CLOSE_NOT_FOUND, "Game not found")
            return None
        if record.status in ENDED_STATUSES:
            logger.info("Rejecting connection: game %s is already %s", game_id, record.status.value)
            await self._reject(
                websocket, MSG_ENDED.format(status=record.status.value), CLOSE_POLICY_VIOLATION, "Game ended"
            )
            return None

        abandoned = (MSG_ENDED.format(status=GameStatus.ABANDONED.value), "Game ended")
        room = await self.registry.get_or_create(game_id)
        if room is None:
            # The last player left after the lookup above; the id is retired.
            logger.info("Rejecting connection: game %s was abandoned during join", game_id)
            await self._reject(websocket, abandoned[0], CLOSE_POLICY_VIOLATION, abandoned[1])
            return None

        async with room.lock:
            if room.closed:
                # Evicted between get_or_create and the lock.
                rejection = abandoned
            elif room.is_full:
                logger.info("Rejecting connection: game %s is full", game_id)
                rejection = (MSG_FULL, "Game full")
            else:
                participant = room.add_participant(websocket, address)
                logger.info("Player joined game %s. Total players: %d", game_id, len(room.participants))
                await self._announce_join(room, participant, record)
                return participant

        await self._reject(websocket, rejection[0], CLOSE_POLICY_VIOLATION, rejection[1])
        return None

    async def _lookup(self, game_id: str) -> Optional[GameRecord]:
        try:
            record = await self.directory.get(game_id)
        except Exception:
            logger.exception("DB error checking game %s", game_id)
            return None
        if record is None:
            logger.info("Game %s not found in directory", game_id)
        return record

    async def _announce_join(self, room: Room, participant: Participant, record: GameRecord) -> None:
        count = len(room.participants)
        if count == 1:
            if record.status != GameStatus.WAITING:
                self.mirror.set_status(room.room_id, GameStatus.WAITING)
            await participant.send(dump(PlayerCountMessage(player_count=1, message=MSG_WAITING_FOR_OPPONENT)))
        elif count == MAX_PARTICIPANTS:
            logger.info("Game %s is now active with 2 players", room.room_id)
            self.mirror.set_status(room.room_id, GameStatus.ACTIVE, player2_ip=participant.address)
            await room.broadcast(dump(PlayerCountMessage(player_count=2, message=MSG_OPPONENT_CONNECTED)))

    async def _reject(self, websocket: Any, error: str, code: int, reason: str) -> None:
        await send_json(websocket, dump(ErrorMessage(error=error)))
        await close_quietly(websocket, code, reason)

    # ---------------------------------------------------------------------
    # Round protocol
    # ---------------------------------------------------------------------

    async def handle_message(self, participant: Participant, raw: Any) -> None:
        room = participant.room
        async with room.lock:
            if participant.detached:
                logger.warning("Message for detached participant in game %s ignored", room.room_id)
                return
            if len(room.participants) < MAX_PARTICIPANTS:
                await participant.send(dump(StatusMessage(message=MSG_STILL_WAITING)))
                return

            try:
                message = parse_choice(raw)
            except InvalidMessage as exc:
                logger.warning("Invalid message received for game %s: %r (%s)", room.room_id, raw, exc)
                await participant.send(dump(ErrorMessage(error=f"Invalid message: {exc}")))
                return

            if room.has_chosen(participant):
                logger.info("Player in game %s tried to choose again", room.room_id)
                await participant.send(dump(StatusMessage(message=MSG_ALREADY_CHOSE)))
                return

            opponent = room.opponent_of(participant)
            opponent_waiting = opponent is not None and not room.has_chosen(opponent)
            room.record_choice(participant, message.choice)
            logger.info("Received choice %r from player in game %s", message.choice.value, room.room_id)
            await participant.send(dump(StatusMessage(message=MSG_CHOICE_RECEIVED)))
            if opponent_waiting:
                await opponent.send(dump(StatusMessage(message=MSG_OPPONENT_MOVED)))

            if room.round_complete():
                await self._resolve_round(room)

    async def _resolve_round(self, room: Room) -> None:
        # Caller holds room.lock; the choices are cleared before any result goes out.
        pairs = room.take_choices()
        if len(pairs) != MAX_PARTICIPANTS:
            logger.warning("Round completion check failed for game %s; choices cleared", room.room_id)
            return
        (first, first_choice), (second, second_choice) = pairs
        outcome = resolve(first_choice, second_choice)
        logger.info(
            "Game %s round: %s vs %s -> %s",
            room.room_id,
            first_choice.value,
            second_choice.value,
            "tie" if outcome.is_tie else f"player {outcome.winner}",
        )
        await first.send(dump(RoundResultMessage(your_choice=first_choice, opponent_choice=second_choice)))
        await second.send(dump(RoundResultMessage(your_choice=second_choice, opponent_choice=first_choice)))
        self._schedule_next_round_prompt(room)

    def _schedule_next_round_prompt(self, room: Room) -> None:
        task = asyncio.create_task(self._prompt_next_round(room))
        self._prompts.add(task)
        task.add_done_callback(self._prompts.discard)

    async def _prompt_next_round(self, room: Room) -> None:
        await asyncio.sleep(self.next_round_delay)
        async with room.lock:
            # Someone may have left during the pause.
            if room.closed or len(room.participants) != MAX_PARTICIPANTS:
                return
            await room.broadcast(dump(StatusMessage(message=MSG_NEXT_CHOICE)))

    # ---------------------------------------------------------------------
    # Disconnect protocol
    # ---------------------------------------------------------------------

    async def disconnect(self, participant: Participant) -> None:
        """Detach *participant*; safe to call more than once."""
        room = participant.room
        async with room.lock:
            if not room.remove_participant(participant):
                return
            # An interrupted round never resolves; the survivor starts fresh.
            room.pending_choices.clear()
            remaining = len(room.participants)
            logger.info("Player removed from game %s. Remaining: %d", room.room_id, remaining)

            if remaining == 0:
                await self.registry.evict(room.room_id, room)
                self.mirror.set_status(room.room_id, GameStatus.ABANDONED)
            elif remaining == 1:
                survivor = room.participants[0]
                self.mirror.set_status(room.room_id, GameStatus.WAITING, player2_ip=None)
                await survivor.send(dump(PlayerCountMessage(player_count=1, message=MSG_OPPONENT_DISCONNECTED)))

    # ---------------------------------------------------------------------
    # Shutdown
    # ---------------------------------------------------------------------

    async def shutdown(self, grace: float = config.SHUTDOWN_GRACE) -> None:
        """Stop accepting, close every live connection with 1012 and flush durable writes."""
        self.accepting = False
        for task in list(self._prompts):
            task.cancel()

        participants = [p for room in self.registry.rooms() for p in list(room.participants)]
        logger.info("Closing %d websocket connections...", len(participants))
        for participant in participants:
            await close_quietly(participant.websocket, CLOSE_SERVICE_RESTART, MSG_SERVER_RESTARTING)

        # Give receive loops a moment to run their disconnect cleanup.
        try:
            await asyncio.wait_for(self._wait_for_empty_registry(), timeout=grace)
        except asyncio.TimeoutError:
            logger.warning("%d rooms still live after shutdown grace period", len(self.registry))

        await self.mirror.close()

    async def _wait_for_empty_registry(self) -> None:
        while len(self.registry):
            await asyncio.sleep(0.05)


__all__ = ["InvalidMessage", "parse_choice", "normalize_game_id", "ConnectionHandler"]
