"""
Environment-based configuration for the posts/comments service.
"""
import os
import logging
from dataclasses import dataclass, field
from typing import Mapping, Optional

logger = logging.getLogger(__name__)

STORAGE_MEMORY = "memory"
STORAGE_POSTGRES = "postgres"
STORAGE_SQLITE = "sqlite"

_STORAGE_ALIASES = {
    "": STORAGE_MEMORY,
    "memory": STORAGE_MEMORY,
    "inmemory": STORAGE_MEMORY,
    "postgres": STORAGE_POSTGRES,
    "postgresql": STORAGE_POSTGRES,
    "sqlite": STORAGE_SQLITE,
}


class ConfigError(ValueError):
    """Raised when an environment setting cannot be parsed."""


@dataclass
class PostgresConfig:
    """Connection parameters for the PostgreSQL backend."""
    host: str = "localhost"
    port: int = 5432
    user: str = "postgres"
    password: str = "pass"
    dbname: str = "postgres"
    pool_size: int = 10

    def dsn(self, connect_timeout: Optional[float] = None) -> str:
        """Build a libpq connection string."""
        parts = [
            f"host={self.host}",
            f"port={self.port}",
            f"dbname={self.dbname}",
            f"user={self.user}",
        ]
        if self.password:
            parts.append(f"password={self.password}")
        if connect_timeout is not None:
            # libpq only accepts whole seconds, minimum 2
            parts.append(f"connect_timeout={max(2, int(round(connect_timeout)))}")
        return " ".join(parts)


@dataclass
class Config:
    """Service configuration."""
    storage_type: str = STORAGE_MEMORY
    postgres: PostgresConfig = field(default_factory=PostgresConfig)
    sqlite_path: str = "data/posts.db"
    query_timeout: float = 3.0
    log_level: str = "INFO"
    service_port: int = 8080

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Config":
        """
        Load configuration from environment variables.

        Args:
            environ: Mapping to read from (defaults to os.environ)

        Returns:
            Populated Config

        Raises:
            ConfigError: If a setting has an unusable value
        """
        env = os.environ if environ is None else environ

        def get(key: str, default: str) -> str:
            value = env.get(key)
            return default if value is None or value == "" else value

        raw_type = get("STORAGE_TYPE", STORAGE_MEMORY).strip().lower().replace("-", "").replace("_", "")
        if raw_type not in _STORAGE_ALIASES:
            raise ConfigError(
                f"Unknown STORAGE_TYPE '{env.get('STORAGE_TYPE')}'. "
                f"Expected one of: memory, postgres, sqlite"
            )

        config = cls(
            storage_type=_STORAGE_ALIASES[raw_type],
            postgres=PostgresConfig(
                host=get("POSTGRES_HOST", "localhost"),
                port=_parse_int("POSTGRES_PORT", get("POSTGRES_PORT", "5432")),
                user=get("POSTGRES_USER", "postgres"),
                password=get("POSTGRES_PASSWORD", "pass"),
                dbname=get("POSTGRES_DB", "postgres"),
                pool_size=_parse_int("POSTGRES_POOL_SIZE", get("POSTGRES_POOL_SIZE", "10")),
            ),
            sqlite_path=_parse_sqlite_path(get("SQLITE_PATH", "data/posts.db")),
            query_timeout=_parse_float("STORAGE_QUERY_TIMEOUT", get("STORAGE_QUERY_TIMEOUT", "3.0")),
            log_level=get("LOG_LEVEL", "INFO").upper(),
            service_port=_parse_int("SERVICE_PORT", get("SERVICE_PORT", "8080")),
        )
        logger.debug(
            "Loaded configuration",
            extra={"storage_type": config.storage_type, "query_timeout": config.query_timeout},
        )
        return config


def _parse_sqlite_path(value: str) -> str:
    # Every operation opens its own connection, so an in-memory database would
    # be a fresh, empty one each time
    if value.strip() == ":memory:":
        raise ConfigError(
            f"SQLITE_PATH must be a file, got '{value}'. Use STORAGE_TYPE=memory for a non-persistent store"
        )
    return value


def _parse_int(key: str, value: str) -> int:
    try:
        parsed = int(value)
    except ValueError:
        raise ConfigError(f"{key} must be an integer, got '{value}'")
    if parsed <= 0:
        raise ConfigError(f"{key} must be positive, got {parsed}")
    return parsed


def _parse_float(key: str, value: str) -> float:
    try:
        parsed = float(value)
    except ValueError:
        raise ConfigError(f"{key} must be a number, got '{value}'")
    if parsed <= 0:
        raise ConfigError(f"{key} must be positive, got {parsed}")
    return parsed
