"""Entry point for running the server via ``python -m rps_backend``."""

from __future__ import annotations

import uvicorn

from . import config


def main() -> None:
    """Start the FastAPI game server."""

    uvicorn.run(
        "rps_backend.app:app",
        host=config.HOST,
        port=config.PORT,
        log_level=config.LOG_LEVEL.lower(),
        reload=False,
    )


if __name__ == "__main__":
    main()
