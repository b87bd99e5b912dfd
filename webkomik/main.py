"""
WebKomik API - Main entry point.

Runs the catalog API under uvicorn. uvicorn handles SIGINT/SIGTERM and
lets in-flight requests finish before the lifespan closes storage.
"""

from __future__ import annotations

import logging

import uvicorn

from webkomik.config import get_settings


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def main():
    """Main entry point."""
    settings = get_settings()
    configure_logging(settings.log_level)

    uvicorn.run(
        "webkomik.api.app:create_app",
        factory=True,
        host=settings.api_host,
        port=settings.api_port,
        log_level=settings.log_level.lower(),
        timeout_graceful_shutdown=10,
    )


if __name__ == "__main__":
    main()
