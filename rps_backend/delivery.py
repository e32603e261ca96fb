"""Best-effort message delivery to room connections.

Sends never raise into the protocol code: a connection that is already
half-closed simply misses the message, and its own receive loop will run the
disconnect cleanup.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, Optional

from fastapi import WebSocketDisconnect
from starlette.websockets import WebSocketState

logger = logging.getLogger(__name__)

# What a dead or closing socket may raise from ``send_json`` / ``close``.
SEND_ERRORS = (RuntimeError, WebSocketDisconnect, ConnectionError, OSError)


def is_open(ws: Any) -> bool:
    """Return *False* once either side of *ws* is known to be closed."""
    for attr in ("client_state", "application_state"):
        state = getattr(ws, attr, None)
        if state is not None and state == WebSocketState.DISCONNECTED:
            return False
    return True


async def send_json(ws: Any, payload: Dict[str, Any], room_id: Optional[str] = None) -> bool:
    """Send *payload* to one connection. Returns *True* if it was handed to the transport."""
    if not is_open(ws):
        logger.debug("Skipping send to closed connection in game %s", room_id)
        return False
    try:
        await ws.send_json(payload)
    except SEND_ERRORS as exc:
        logger.warning("Error sending message to client in game %s: %r", room_id, exc)
        return False
    return True


async def broadcast(connections: Iterable[Any], payload: Dict[str, Any], room_id: Optional[str] = None) -> int:
    """Push *payload* to every connection; returns how many sends succeeded."""
    delivered = 0
    for ws in list(connections):
        if await send_json(ws, payload, room_id=room_id):
            delivered += 1
    return delivered


async def close_quietly(ws: Any, code: int, reason: Optional[str] = None) -> None:
    """Close *ws* with *code*, ignoring sockets that are already gone."""
    if not is_open(ws):
        return
    try:
        await ws.close(code=code, reason=reason)
    except SEND_ERRORS as exc:
        logger.debug("Close with code %s failed: %r", code, exc)


__all__ = ["SEND_ERRORS", "is_open", "send_json", "broadcast", "close_quietly"]
