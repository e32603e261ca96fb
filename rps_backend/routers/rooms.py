from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException, Request, status

from ..directory import GameIdCollision
from ..handler import normalize_game_id
from ..http_utils import client_address, resolve_base_url
from ..schemas import CreateGameResponse, GameSummary

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["rooms"])


@router.post("/create-game", response_model=CreateGameResponse, status_code=status.HTTP_201_CREATED)
async def create_game(request: Request):
    directory = request.app.state.directory
    address = client_address(request)
    logger.info("Creating game for %s", address)
    try:
        record = await directory.create_game(address)
    except GameIdCollision:
        logger.error("Could not allocate a unique game id")
        raise HTTPException(status_code=500, detail="Failed to create game room.")
    except Exception:
        logger.exception("Game creation error")
        raise HTTPException(status_code=500, detail="Failed to create game room.")

    link = f"{resolve_base_url(request)}/game/{record.game_id}"
    logger.info("Game %s created", record.game_id)
    return CreateGameResponse(game_id=record.game_id, link=link)


@router.get("/games/{game_id}", response_model=GameSummary)
async def inspect_game(game_id: str, request: Request):
    normalized = normalize_game_id(game_id)
    if normalized is None:
        raise HTTPException(status_code=400, detail="Invalid game id.")
    try:
        record = await request.app.state.directory.get(normalized)
    except Exception:
        logger.exception("DB error fetching game %s", normalized)
        raise HTTPException(status_code=500, detail="Error checking game status.")
    if record is None:
        raise HTTPException(status_code=404, detail="Game not found or has expired.")

    room = request.app.state.registry.get(normalized)
    return GameSummary(
        game_id=record.game_id,
        status=record.status,
        player_count=len(room.participants) if room else 0,
        created_at=record.created_at,
    )
