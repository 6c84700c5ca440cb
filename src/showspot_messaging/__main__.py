"""Entrypoint: python -m showspot_messaging"""
from __future__ import annotations

import uvicorn

from showspot_messaging.config import settings
from showspot_messaging.log import configure_logging


def main() -> None:
    configure_logging(settings.LOG_LEVEL)
    uvicorn.run(
        "showspot_messaging.app:create_app",
        factory=True,
        host="0.0.0.0",
        port=8000,
        log_level=settings.LOG_LEVEL.lower(),
        log_config=None,
    )


if __name__ == "__main__":
    main()
