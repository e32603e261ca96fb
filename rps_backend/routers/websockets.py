from __future__ import annotations

import logging

from fastapi import APIRouter, WebSocket

from ..handler import ConnectionHandler
from ..http_utils import client_address

logger = logging.getLogger(__name__)

router = APIRouter(prefix="", tags=["ws"])


@router.websocket("/ws/{game_id}")
async def game_ws_endpoint(ws: WebSocket, game_id: str):
    handler: ConnectionHandler = ws.app.state.handler
    # Accept first so rejections can carry an error payload.
    await ws.accept()
    participant = await handler.join(ws, game_id, client_address(ws))
    if participant is None:
        return

    try:
        while True:
            message = await ws.receive()
            if message["type"] == "websocket.disconnect":
                logger.info(
                    "Player disconnected from game %s. Code: %s", participant.room.room_id, message.get("code")
                )
                break
            raw = message.get("text")
            if raw is None:
                raw = message.get("bytes") or b""
            await handler.handle_message(participant, raw)
    except Exception:
        # Transport errors end up in the same cleanup as a clean close.
        logger.exception("WebSocket error for player in game %s", participant.room.room_id)
    finally:
        await handler.disconnect(participant)
