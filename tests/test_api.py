"""End-to-end tests for the HTTP and websocket interface."""

from __future__ import annotations

import asyncio
import re

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from rps_backend.app import create_app
from rps_backend.constants import (
    CLOSE_NOT_FOUND,
    CLOSE_POLICY_VIOLATION,
    MSG_CHOICE_RECEIVED,
    MSG_FULL,
    MSG_NEXT_CHOICE,
    MSG_NOT_FOUND,
    MSG_OPPONENT_CONNECTED,
    MSG_OPPONENT_DISCONNECTED,
    MSG_OPPONENT_MOVED,
    MSG_WAITING_FOR_OPPONENT,
    GameStatus,
)
from rps_backend.directory import InMemoryRoomDirectory

GAME_ID = "a1b2c3d4"


@pytest.fixture
def directory():
    directory = InMemoryRoomDirectory()
    asyncio.run(directory.create(GAME_ID, "10.0.0.1"))
    return directory


@pytest.fixture
def client(directory):
    app = create_app(directory=directory, next_round_delay=0.0)
    # Entering the client shares one event loop between all websocket sessions.
    with TestClient(app) as test_client:
        yield test_client


def expect_rejection(client, path, code):
    with client.websocket_connect(path) as ws:
        payload = ws.receive_json()
        with pytest.raises(WebSocketDisconnect) as closed:
            ws.receive_json()
    assert closed.value.code == code
    return payload


def test_create_game_returns_id_and_link(client, directory):
    origin = "https://rps.example"
    response = client.post("/api/create-game", headers={"origin": origin})
    assert response.status_code == 201
    payload = response.json()
    game_id = payload["gameId"]
    assert re.fullmatch(r"[a-f0-9]{8}", game_id)
    assert payload["link"] == f"{origin}/game/{game_id}"
    assert directory.records[game_id].status == GameStatus.WAITING


def test_create_game_link_respects_forwarded_headers(client, directory):
    response = client.post(
        "/api/create-game",
        headers={
            "x-forwarded-host": "rps.example:8443",
            "x-forwarded-proto": "https",
            "x-forwarded-for": "203.0.113.7, 10.0.0.1",
        },
    )
    assert response.status_code == 201
    payload = response.json()
    assert payload["link"].startswith("https://rps.example:8443/game/")
    assert directory.records[payload["gameId"]].player1_ip == "203.0.113.7"


def test_create_game_failure_returns_structured_error():
    class ReadOnlyDirectory(InMemoryRoomDirectory):
        async def create(self, game_id, player1_ip):
            raise ConnectionError("attempt to write a readonly database")

    app = create_app(directory=ReadOnlyDirectory(), next_round_delay=0.0)
    with TestClient(app) as broken:
        response = broken.post("/api/create-game")
    assert response.status_code == 500
    assert response.json() == {"error": "Failed to create game room."}


def test_inspect_game(client):
    response = client.get(f"/api/games/{GAME_ID}")
    assert response.status_code == 200
    details = response.json()
    assert details["gameId"] == GAME_ID
    assert details["status"] == "waiting"
    assert details["playerCount"] == 0

    assert client.get("/api/games/ffffffff").status_code == 404
    bad = client.get("/api/games/nope")
    assert bad.status_code == 400
    assert "error" in bad.json()


def test_healthz(client):
    response = client.get("/healthz")
    assert response.status_code == 200
    assert response.json() == {"status": "ok", "rooms": 0}


def test_example_scenario(client, directory):
    with client.websocket_connect(f"/ws/{GAME_ID}") as a:
        assert a.receive_json() == {"playerCount": 1, "message": MSG_WAITING_FOR_OPPONENT}

        with client.websocket_connect(f"/ws/{GAME_ID}") as b:
            joined = {"playerCount": 2, "message": MSG_OPPONENT_CONNECTED}
            assert a.receive_json() == joined
            assert b.receive_json() == joined
            assert client.get(f"/api/games/{GAME_ID}").json()["playerCount"] == 2
            assert directory.records[GAME_ID].status == GameStatus.ACTIVE

            a.send_json({"choice": "rock"})
            assert a.receive_json() == {"message": MSG_CHOICE_RECEIVED}
            assert b.receive_json() == {"message": MSG_OPPONENT_MOVED}

            b.send_json({"choice": "scissors"})
            assert b.receive_json() == {"message": MSG_CHOICE_RECEIVED}
            assert a.receive_json() == {"yourChoice": "rock", "opponentChoice": "scissors"}
            assert b.receive_json() == {"yourChoice": "scissors", "opponentChoice": "rock"}

            assert a.receive_json() == {"message": MSG_NEXT_CHOICE}
            assert b.receive_json() == {"message": MSG_NEXT_CHOICE}

            # Next round works the same way.
            b.send_json({"choice": "paper"})
            assert b.receive_json() == {"message": MSG_CHOICE_RECEIVED}
            assert a.receive_json() == {"message": MSG_OPPONENT_MOVED}
            a.send_json({"choice": "paper"})
            assert a.receive_json() == {"message": MSG_CHOICE_RECEIVED}
            assert b.receive_json() == {"yourChoice": "paper", "opponentChoice": "paper"}
            assert a.receive_json() == {"yourChoice": "paper", "opponentChoice": "paper"}
            assert a.receive_json() == {"message": MSG_NEXT_CHOICE}
            assert b.receive_json() == {"message": MSG_NEXT_CHOICE}

        assert a.receive_json() == {"playerCount": 1, "message": MSG_OPPONENT_DISCONNECTED}
        details = client.get(f"/api/games/{GAME_ID}").json()
        assert details["status"] == "waiting"
        assert details["playerCount"] == 1

    assert client.get("/healthz").json()["rooms"] == 0
    assert client.get(f"/api/games/{GAME_ID}").json()["status"] == "abandoned"


def test_invalid_payload_is_recoverable(client):
    with client.websocket_connect(f"/ws/{GAME_ID}") as a:
        a.receive_json()
        with client.websocket_connect(f"/ws/{GAME_ID}") as b:
            a.receive_json()
            b.receive_json()
            a.send_text("definitely not json")
            error = a.receive_json()
            assert error["error"].startswith("Invalid message")
            a.send_json({"choice": "spock"})
            assert "error" in a.receive_json()
            # Still usable afterwards.
            a.send_json({"choice": "rock"})
            assert a.receive_json() == {"message": MSG_CHOICE_RECEIVED}


def test_third_connection_rejected_as_full(client):
    with client.websocket_connect(f"/ws/{GAME_ID}") as a:
        a.receive_json()
        with client.websocket_connect(f"/ws/{GAME_ID}") as b:
            a.receive_json()
            b.receive_json()

            payload = expect_rejection(client, f"/ws/{GAME_ID}", CLOSE_POLICY_VIOLATION)
            assert payload == {"error": MSG_FULL}

            # The two players carry on unaffected.
            a.send_json({"choice": "paper"})
            assert a.receive_json() == {"message": MSG_CHOICE_RECEIVED}
            assert b.receive_json() == {"message": MSG_OPPONENT_MOVED}


def test_unknown_and_malformed_rooms_rejected(client):
    payload = expect_rejection(client, "/ws/ffffffff", CLOSE_NOT_FOUND)
    assert payload == {"error": MSG_NOT_FOUND}

    payload = expect_rejection(client, "/ws/not-a-room", CLOSE_POLICY_VIOLATION)
    assert "Invalid" in payload["error"]


def test_abandoned_room_cannot_be_rejoined(client):
    with client.websocket_connect(f"/ws/{GAME_ID}") as a:
        a.receive_json()
    # Leaving the context waits for the server side cleanup to finish.
    assert client.get(f"/api/games/{GAME_ID}").json()["status"] == "abandoned"
    payload = expect_rejection(client, f"/ws/{GAME_ID}", CLOSE_POLICY_VIOLATION)
    assert "ended" in payload["error"]


def test_receive_loop_error_still_cleans_up(client, monkeypatch):
    async def broken_handle_message(participant, raw):
        raise OSError("connection reset by peer")

    monkeypatch.setattr(client.app.state.handler, "handle_message", broken_handle_message)
    with client.websocket_connect(f"/ws/{GAME_ID}") as a:
        a.receive_json()
        assert client.get("/healthz").json()["rooms"] == 1
        a.send_text("boom")

    assert client.get("/healthz").json()["rooms"] == 0
    assert client.get(f"/api/games/{GAME_ID}").json()["status"] == "abandoned"


def test_unknown_route_uses_error_shape(client):
    response = client.get("/api/nothing-here")
    assert response.status_code == 404
    assert response.json() == {"error": "Not Found"}

    response = client.get("/api/create-game")
    assert response.status_code == 405
    assert response.json() == {"error": "Method Not Allowed"}
