"""Runtime configuration read from the environment.

Every value has a sensible development default so the server can be started
with no environment at all (``python -m rps_backend``).
"""
from __future__ import annotations

import logging
import os
from typing import List

# -----------------------------
# Server
# -----------------------------

HOST: str = os.environ.get("RPS_HOST", "0.0.0.0")
PORT: int = int(os.environ.get("RPS_PORT", "3000"))

# Comma separated list; "*" allows every origin (development default).
CORS_ORIGINS: List[str] = [
    origin.strip() for origin in os.environ.get("RPS_CORS_ORIGINS", "*").split(",") if origin.strip()
]

# -----------------------------
# Database (Tortoise ORM)
# -----------------------------

DB_URL: str = os.environ.get("RPS_DB_URL", "sqlite://games.db")
DB_MODULES = {"models": ["rps_backend.models"]}

# -----------------------------
# Game protocol
# -----------------------------

# Pause between a round result and the "make your next choice" prompt.
NEXT_ROUND_DELAY: float = float(os.environ.get("RPS_NEXT_ROUND_DELAY", "0.1"))

# How long shutdown waits for closed connections to finish their cleanup.
SHUTDOWN_GRACE: float = float(os.environ.get("RPS_SHUTDOWN_GRACE", "1.5"))

# -----------------------------
# Logging
# -----------------------------

LOG_LEVEL: str = os.environ.get("RPS_LOG_LEVEL", "INFO").upper()
LOG_FORMAT = "%(asctime)s %(levelname)-8s [%(name)s] %(message)s"


def configure_logging(level: str = LOG_LEVEL) -> None:
    """Install the root handler once; later calls only adjust the level."""
    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(level=level, format=LOG_FORMAT)
    root.setLevel(level)


__all__ = [
    "HOST",
    "PORT",
    "CORS_ORIGINS",
    "DB_URL",
    "DB_MODULES",
    "NEXT_ROUND_DELAY",
    "SHUTDOWN_GRACE",
    "LOG_LEVEL",
    "configure_logging",
]
