"""
forgeguard - server entry point.

    python -m forgeguard.main

Configuration comes from the environment / .env (see forgeguard.config).
Set BOOTSTRAP_ADMIN_USERNAME and BOOTSTRAP_ADMIN_PASSWORD to create the
first admin account on startup.
"""

from __future__ import annotations

import logging

import uvicorn

from forgeguard.api.app import create_app
from forgeguard.config import get_settings

logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def main() -> None:
    settings = get_settings()
    configure_logging(settings.log_level)
    logger.info(f"Running server on {settings.api_host}:{settings.api_port}")
    uvicorn.run(create_app(settings), host=settings.api_host, port=settings.api_port)


if __name__ == "__main__":
    main()
