"""Run the users API under uvicorn."""

from __future__ import annotations

import uvicorn

from app.core.config import get_settings
from app.core.logging import configure_logging

GRACEFUL_SHUTDOWN_SECONDS = 10


def main() -> None:
    """Configure logging and serve the application until signalled."""
    settings = get_settings()
    configure_logging(settings.log_level)
    uvicorn.run(
        "app.main:app",
        host=settings.host,
        port=settings.port,
        log_config=None,
        timeout_graceful_shutdown=GRACEFUL_SHUTDOWN_SECONDS,
    )


if __name__ == "__main__":
    main()
