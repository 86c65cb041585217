"""Entry point for the open bank service.

Usage::

    python -m open_bank_service
"""

from __future__ import annotations

import uvicorn

from open_bank_service.config import get_settings


def main() -> None:
    settings = get_settings()
    uvicorn.run(
        "open_bank_service.app:create_app",
        factory=True,
        host=settings.server.host,
        port=settings.server.port,
        log_level=settings.server.log_level,
    )


if __name__ == "__main__":
    main()
