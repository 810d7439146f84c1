"""
Database adapters for the persistent storage backend.

Queries are written once, with `?` placeholders and PostgreSQL column types,
and each adapter rewrites them for its engine:

    SQLiteAdapter       stdlib sqlite3, one connection per operation
    PostgreSQLAdapter   psycopg2 ThreadedConnectionPool
"""
import logging
import os
import re
import sqlite3
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Iterable, Optional, Tuple

import psycopg2
import psycopg2.extras
import psycopg2.pool

logger = logging.getLogger(__name__)


class DatabaseType(Enum):
    """Supported relational engines."""
    SQLITE = "sqlite"
    POSTGRESQL = "postgresql"


class BaseDatabaseAdapter:
    """Common behaviour for database adapters."""

    db_type: DatabaseType
    # Driver exceptions that mean "storage unavailable"
    errors: Tuple[type, ...] = ()
    # Driver exception raised on constraint violations
    integrity_error: type = Exception

    def __init__(self, conn_string: str, timeout: float = 3.0):
        self.conn_string = conn_string
        self.timeout = timeout

    def connect(self):
        raise NotImplementedError

    def close(self, conn) -> None:
        raise NotImplementedError

    def cursor(self, conn):
        return conn.cursor()

    def begin(self, cursor, write: bool = True) -> None:
        """Start an explicit transaction on the cursor's connection."""
        return None

    def rollback(self, conn) -> None:
        try:
            conn.rollback()
        except self.errors:
            logger.warning("Rollback failed; connection will be discarded", exc_info=True)

    def normalize_query(self, query: str) -> str:
        return query

    def encode_value(self, value: Any) -> Any:
        if isinstance(value, uuid.UUID):
            return str(value)
        return value

    def encode_params(self, params: Optional[Iterable[Any]]) -> Optional[Tuple[Any, ...]]:
        if params is None:
            return None
        return tuple(self.encode_value(value) for value in params)

    def execute(self, cursor, query: str, params: Optional[Iterable[Any]] = None):
        query = self.normalize_query(query)
        encoded = self.encode_params(params)
        if encoded is None:
            return cursor.execute(query)
        return cursor.execute(query, encoded)

    def shutdown(self) -> None:
        """Release pooled resources."""
        return None


class SQLiteAdapter(BaseDatabaseAdapter):
    """Adapter for SQLite files."""

    db_type = DatabaseType.SQLITE
    errors = (sqlite3.Error,)
    integrity_error = sqlite3.IntegrityError

    _TYPE_REWRITES = (
        (re.compile(r"\bTIMESTAMPTZ\b", re.IGNORECASE), "TEXT"),
        (re.compile(r"\bUUID\b"), "TEXT"),
    )

    def __init__(self, conn_string: str, timeout: float = 3.0):
        super().__init__(conn_string, timeout)
        db_dir = os.path.dirname(os.path.abspath(conn_string))
        if db_dir:
            os.makedirs(db_dir, exist_ok=True)

    def connect(self):
        # isolation_level=None: statements autocommit unless begin() opened a transaction
        conn = sqlite3.connect(
            self.conn_string,
            timeout=self.timeout,
            isolation_level=None,
            check_same_thread=False,
        )
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    def close(self, conn) -> None:
        conn.close()

    def begin(self, cursor, write: bool = True) -> None:
        # IMMEDIATE takes the write lock up front so validate-then-write cannot interleave
        cursor.execute("BEGIN IMMEDIATE" if write else "BEGIN")

    def rollback(self, conn) -> None:
        if conn.in_transaction:
            super().rollback(conn)

    def normalize_query(self, query: str) -> str:
        for pattern, replacement in self._TYPE_REWRITES:
            query = pattern.sub(replacement, query)
        return query

    def encode_value(self, value: Any) -> Any:
        if isinstance(value, datetime):
            # Fixed-width UTC text keeps lexicographic and chronological order identical
            if value.tzinfo is None:
                value = value.replace(tzinfo=timezone.utc)
            return value.astimezone(timezone.utc).isoformat(timespec="microseconds")
        return super().encode_value(value)


class PostgreSQLAdapter(BaseDatabaseAdapter):
    """Adapter for PostgreSQL backed by a thread-safe connection pool."""

    db_type = DatabaseType.POSTGRESQL
    errors = (psycopg2.Error, psycopg2.pool.PoolError)
    integrity_error = psycopg2.IntegrityError

    def __init__(self, conn_string: str, timeout: float = 3.0, pool_size: int = 10):
        super().__init__(conn_string, timeout)
        self.pool_size = pool_size
        self._pool: Optional[psycopg2.pool.ThreadedConnectionPool] = None

    def _get_pool(self) -> psycopg2.pool.ThreadedConnectionPool:
        if self._pool is None:
            statement_timeout_ms = int(self.timeout * 1000)
            self._pool = psycopg2.pool.ThreadedConnectionPool(
                1,
                self.pool_size,
                self.conn_string,
                options=f"-c statement_timeout={statement_timeout_ms}",
            )
            logger.info(
                "PostgreSQL connection pool created",
                extra={"max_connections": self.pool_size, "statement_timeout_ms": statement_timeout_ms},
            )
        return self._pool

    def connect(self):
        # Raises PoolError immediately when exhausted instead of blocking
        return self._get_pool().getconn()

    def close(self, conn) -> None:
        if self._pool is not None:
            self._pool.putconn(conn)
        else:
            conn.close()

    def cursor(self, conn):
        return conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor)

    def normalize_query(self, query: str) -> str:
        return query.replace("?", "%s")

    def shutdown(self) -> None:
        if self._pool is not None:
            self._pool.closeall()
            self._pool = None
            logger.info("PostgreSQL connection pool closed")


def detect_database_type(conn_string: str) -> DatabaseType:
    """Guess the engine from a connection string."""
    lowered = conn_string.strip().lower()
    if lowered.startswith(("postgres://", "postgresql://")) or "host=" in lowered or "dbname=" in lowered:
        return DatabaseType.POSTGRESQL
    return DatabaseType.SQLITE


def get_database_adapter(
    conn_string: str,
    db_type: Optional[DatabaseType] = None,
    timeout: float = 3.0,
    pool_size: int = 10,
) -> BaseDatabaseAdapter:
    """
    Create the adapter for a connection string.

    Args:
        conn_string: SQLite file path or libpq connection string
        db_type: Force an engine instead of detecting it
        timeout: Per-operation timeout in seconds
        pool_size: Maximum pooled connections (PostgreSQL only)
    """
    db_type = db_type or detect_database_type(conn_string)
    if db_type == DatabaseType.POSTGRESQL:
        return PostgreSQLAdapter(conn_string, timeout=timeout, pool_size=pool_size)
    return SQLiteAdapter(conn_string, timeout=timeout)
