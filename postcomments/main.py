"""
Posts & Comments Service - GraphQL API over the storage backends.

Main entry point. All initialization logic is in app/factory.py.
"""
import logging

import uvicorn

from postcomments.app import create_app
from postcomments.config import Config
from postcomments.dependencies.services import ServiceContainer

logger = logging.getLogger(__name__)


def main() -> None:
    config = Config.from_env()
    app = create_app(ServiceContainer(config))

    server = uvicorn.Server(uvicorn.Config(
        app,
        host="0.0.0.0",
        port=config.service_port,
        log_level=config.log_level.lower(),
        access_log=True,
        timeout_keep_alive=30,
        timeout_graceful_shutdown=30,
    ))
    try:
        server.run()
    except KeyboardInterrupt:
        logger.info("Received keyboard interrupt, shutting down...")
    finally:
        logger.info("Service stopped")


if __name__ == "__main__":
    main()
