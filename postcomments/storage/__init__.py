"""
Storage abstraction layer.
Provides a clean interface for data persistence that can be swapped out.
"""
import logging

from postcomments.config import Config, STORAGE_POSTGRES, STORAGE_SQLITE
from postcomments.db_adapter import DatabaseType, get_database_adapter
from .interface import StorageInterface
from .memory_storage import MemoryStorage
from .sql_storage import SQLStorage

logger = logging.getLogger(__name__)


def create_storage(config: Config) -> StorageInterface:
    """
    Build the backend selected by configuration.

    Args:
        config: Service configuration

    Returns:
        A ready-to-use StorageInterface implementation

    Raises:
        StorageUnavailableError: If the persistent backend cannot be reached
    """
    if config.storage_type == STORAGE_POSTGRES:
        adapter = get_database_adapter(
            config.postgres.dsn(connect_timeout=config.query_timeout),
            db_type=DatabaseType.POSTGRESQL,
            timeout=config.query_timeout,
            pool_size=config.postgres.pool_size,
        )
        logger.info(f"Using PostgreSQL storage at {config.postgres.host}:{config.postgres.port}/{config.postgres.dbname}")
        return SQLStorage(adapter)
    if config.storage_type == STORAGE_SQLITE:
        adapter = get_database_adapter(
            config.sqlite_path,
            db_type=DatabaseType.SQLITE,
            timeout=config.query_timeout,
        )
        logger.info(f"Using SQLite storage at {config.sqlite_path}")
        return SQLStorage(adapter)
    logger.info("Using in-memory storage")
    return MemoryStorage()


__all__ = ['StorageInterface', 'MemoryStorage', 'SQLStorage', 'create_storage']
