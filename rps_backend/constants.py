import re
from enum import Enum


class Choice(str, Enum):
    ROCK = "rock"
    PAPER = "paper"
    SCISSORS = "scissors"


class GameStatus(str, Enum):
    WAITING = "waiting"
    ACTIVE = "active"
    FINISHED = "finished"
    ABANDONED = "abandoned"


# Statuses from which a room can never be rejoined.
ENDED_STATUSES = {GameStatus.FINISHED, GameStatus.ABANDONED}

MAX_PARTICIPANTS = 2

# 8 lowercase hex characters, e.g. "a1b2c3d4". Matched case-insensitively.
GAME_ID_LENGTH = 8
GAME_ID_PATTERN = re.compile(r"^[a-f0-9]{8}$", re.IGNORECASE)

# WebSocket close codes
CLOSE_NORMAL = 1000
CLOSE_POLICY_VIOLATION = 1008
CLOSE_SERVICE_RESTART = 1012
CLOSE_NOT_FOUND = 4004

# Client facing texts. Clients look for "full", "not found" and "ended" in
# error payloads to decide whether the error is fatal.
MSG_INVALID_PATH = "Invalid connection path format."
MSG_NOT_FOUND = "Game not found or has expired."
MSG_FULL = "This game session is already full."
MSG_ENDED = "This game has already ended ({status})."
MSG_WAITING_FOR_OPPONENT = "Waiting for opponent to join..."
MSG_OPPONENT_CONNECTED = "Opponent connected! Make your choice."
MSG_STILL_WAITING = "Still waiting for opponent..."
MSG_ALREADY_CHOSE = "You already chose. Waiting for opponent..."
MSG_CHOICE_RECEIVED = "Choice received. Waiting..."
MSG_OPPONENT_MOVED = "Your opponent has made their move!"
MSG_NEXT_CHOICE = "Make your next choice!"
MSG_OPPONENT_DISCONNECTED = "Your opponent has disconnected. Waiting..."
MSG_SERVER_RESTARTING = "Server is restarting"

__all__ = [
    "Choice",
    "GameStatus",
    "ENDED_STATUSES",
    "MAX_PARTICIPANTS",
    "GAME_ID_LENGTH",
    "GAME_ID_PATTERN",
    "CLOSE_NORMAL",
    "CLOSE_POLICY_VIOLATION",
    "CLOSE_SERVICE_RESTART",
    "CLOSE_NOT_FOUND",
    "MSG_INVALID_PATH",
    "MSG_NOT_FOUND",
    "MSG_FULL",
    "MSG_ENDED",
    "MSG_WAITING_FOR_OPPONENT",
    "MSG_OPPONENT_CONNECTED",
    "MSG_STILL_WAITING",
    "MSG_ALREADY_CHOSE",
    "MSG_CHOICE_RECEIVED",
    "MSG_OPPONENT_MOVED",
    "MSG_NEXT_CHOICE",
    "MSG_OPPONENT_DISCONNECTED",
    "MSG_SERVER_RESTARTING",
]
