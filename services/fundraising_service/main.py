"""
Fundraising Service Main Application

Process entrypoint: configure logging, bind the configured transport and
serve until interrupted.
"""

import asyncio
import sys

import structlog

from services.fundraising_service.server import FundraisingServer
from shared.config import Settings, get_settings
from shared.domain.exceptions import ServerStartupError
from shared.logging_config import configure_logging

logger = structlog.get_logger(__name__)


async def serve(settings: Settings) -> None:
    """Run the server until cancelled."""
    server = FundraisingServer(settings)
    await server.serve_forever()


def main() -> int:
    """Console entrypoint; returns the process exit status."""
    settings = get_settings()
    configure_logging("DEBUG" if settings.debug else settings.log_level, settings.log_format)

    logger.info(
        "Starting Fundraising Service",
        environment=settings.environment,
        transport=settings.transport,
    )

    try:
        asyncio.run(serve(settings))
    except ServerStartupError as e:
        logger.error("Server startup failed", **e.to_dict())
        return 1
    except KeyboardInterrupt:
        logger.info("Fundraising Service shutdown complete")

    return 0


if __name__ == "__main__":
    sys.exit(main())
