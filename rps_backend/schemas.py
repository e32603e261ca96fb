"""Pydantic data schemas used across the backend service.

Wire names are camelCase (``playerCount``, ``yourChoice`` ...) because that is
what the browser client expects; the Python side uses snake_case attributes and
serialises through :func:`dump`.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from .constants import Choice, GameStatus

# -----------------------------
# Durable records
# -----------------------------


class GameRecord(BaseModel):
    """Storage independent view of a durable room record."""

    game_id: str
    player1_ip: Optional[str] = None
    player2_ip: Optional[str] = None
    created_at: Optional[datetime] = None
    status: GameStatus = GameStatus.WAITING


# -----------------------------
# WebSocket messages
# -----------------------------


class ChoiceMessage(BaseModel):
    """The only message a client is allowed to send: ``{"choice": ...}``."""

    model_config = ConfigDict(extra="forbid")

    choice: Choice


class PlayerCountMessage(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    player_count: Literal[1, 2] = Field(alias="playerCount")
    message: Optional[str] = None


class StatusMessage(BaseModel):
    message: str


class RoundResultMessage(BaseModel):
    """Personalised round result; each side works out win/lose/tie itself."""

    model_config = ConfigDict(populate_by_name=True)

    your_choice: Choice = Field(alias="yourChoice")
    opponent_choice: Choice = Field(alias="opponentChoice")


class ErrorMessage(BaseModel):
    error: str


def dump(message: BaseModel) -> Dict[str, Any]:
    """Serialise an outbound message the way clients expect it on the wire."""
    return message.model_dump(mode="json", by_alias=True, exclude_none=True)


# -----------------------------
# REST request / response models
# -----------------------------


class CreateGameResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    game_id: str = Field(alias="gameId")
    link: str


class GameSummary(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    game_id: str = Field(alias="gameId")
    status: GameStatus
    player_count: int = Field(alias="playerCount")
    created_at: Optional[datetime] = Field(default=None, alias="createdAt")


__all__ = [
    "GameRecord",
    "ChoiceMessage",
    "PlayerCountMessage",
    "StatusMessage",
    "RoundResultMessage",
    "ErrorMessage",
    "dump",
    "CreateGameResponse",
    "GameSummary",
]
