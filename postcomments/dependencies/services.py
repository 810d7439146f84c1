"""
Service container for dependency injection.
Centralizes service initialization and provides access to all services.
"""
import logging
from typing import Optional

from postcomments.config import Config
from postcomments.services.comment_events import CommentBroker
from postcomments.storage import StorageInterface, create_storage

logger = logging.getLogger(__name__)

# Global service instance
_service_instance: Optional['ServiceContainer'] = None


class ServiceContainer:
    """Container for all application services."""

    def __init__(self, config: Optional[Config] = None, storage: Optional[StorageInterface] = None):
        self.config = config or Config.from_env()
        self.storage = storage if storage is not None else create_storage(self.config)
        self.broker = CommentBroker()
        logger.info(f"Services initialized with {type(self.storage).__name__}")

    def close(self) -> None:
        self.storage.close()


def get_services() -> ServiceContainer:
    """Get the global service container instance."""
    global _service_instance
    if _service_instance is None:
        _service_instance = ServiceContainer()
    return _service_instance


def set_services(container: Optional[ServiceContainer]) -> None:
    """Replace the global service container (None resets it)."""
    global _service_instance
    _service_instance = container
