"""Start the realtime server: ``python -m crowdflash``."""

from __future__ import annotations

import logging

import uvicorn

from crowdflash.core.config import settings


def main() -> None:
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logging.getLogger(__name__).info(
        "Starting %s %s on %s:%d", settings.app_name, settings.app_version, settings.host, settings.port,
    )
    uvicorn.run(
        "crowdflash.main:asgi_app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
