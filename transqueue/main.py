"""
Translation service - main entry point.

Runs the HTTP API; the task consumer runs inside the same process, started
by the application lifespan.
"""

from __future__ import annotations

import uvicorn

from transqueue.config import get_settings


def main():
    """Main entry point."""
    settings = get_settings()
    uvicorn.run(
        "transqueue.api.app:app",
        host=settings.api_host,
        port=settings.api_port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
