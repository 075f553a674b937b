"""
Pooled PostgreSQL access shared between repositories.

A Database wraps one psycopg2 pool. The ConnectionManager hands out one
Database per configured database URL and counts its holders, so the pool is
closed only when the last holder releases it.
"""

import logging
import threading
from contextlib import contextmanager
from typing import Dict, Generator, Optional

from psycopg2 import pool
from psycopg2.extras import RealDictCursor

from correlation_repository.config import Config, get_config

logger = logging.getLogger(__name__)


class DatabaseClosedError(RuntimeError):
    """Raised when a query is issued on a Database whose pool was closed."""
    pass


class Database:
    """
    One psycopg2 ThreadedConnectionPool for a database URL.

    Repository calls run in worker threads, so every query checks out its
    own connection. Once closed, a Database stays closed; callers acquire a
    fresh one from the ConnectionManager.
    """

    def __init__(self, config: Optional[Config] = None):
        config = config or get_config()
        self.database_url = config.DATABASE_URL
        self.max_connections = config.DATABASE_POOL_SIZE + config.DATABASE_MAX_OVERFLOW
        self._pool: Optional[pool.ThreadedConnectionPool] = None

    @property
    def is_initialized(self) -> bool:
        return self._pool is not None

    def initialize(self) -> None:
        """Open the connection pool."""
        if self._pool is not None:
            return

        logger.info("Opening connection pool (max %d connections)", self.max_connections)
        try:
            self._pool = pool.ThreadedConnectionPool(
                minconn=1,
                maxconn=self.max_connections,
                dsn=self.database_url,
            )
        except Exception as e:
            logger.error(f"Failed to open connection pool: {e}")
            raise

    def close(self) -> None:
        """Close all connections in the pool."""
        if self._pool is not None:
            logger.info("Closing connection pool")
            self._pool.closeall()
            self._pool = None

    @contextmanager
    def get_cursor(self) -> Generator:
        """
        Check out a connection and yield a dict-row cursor on it.

        Commits when the block exits cleanly, rolls back otherwise.

        Usage:
            with db.get_cursor() as cur:
                cur.execute("CREATE TABLE ...")
                cur.execute("CREATE INDEX ...")
        """
        if self._pool is None:
            raise DatabaseClosedError(f"Connection pool for {self.database_url} is not open")

        conn = self._pool.getconn()
        try:
            cursor = conn.cursor(cursor_factory=RealDictCursor)
            try:
                yield cursor
                conn.commit()
            except Exception:
                conn.rollback()
                raise
            finally:
                cursor.close()
        finally:
            self._pool.putconn(conn)

    def execute(self, query: str, params: tuple = None) -> list:
        """Run a statement; return all rows, or [] for statements without a result set."""
        with self.get_cursor() as cur:
            cur.execute(query, params)
            if cur.description:
                return cur.fetchall()
            return []

    def execute_one(self, query: str, params: tuple = None) -> Optional[dict]:
        """Run a statement and return its first row, if any."""
        with self.get_cursor() as cur:
            cur.execute(query, params)
            if cur.description:
                return cur.fetchone()
            return None

    def health_check(self) -> bool:
        try:
            result = self.execute_one("SELECT 1 as healthy")
            return result is not None and result.get("healthy") == 1
        except Exception as e:
            logger.error(f"Database health check failed: {e}")
            return False


class ConnectionManager:
    """
    Shares one Database per configured database URL.

    get_connection() returns the already open Database for a URL when there
    is one and counts the caller as a holder. destroy_connection() drops one
    holder and closes the pool when none remain; releasing a URL with no
    holders is a no-op.
    """

    def __init__(self):
        self._connections: Dict[str, Database] = {}
        self._holders: Dict[str, int] = {}
        self._lock = threading.Lock()

    @staticmethod
    def _key(config: Config) -> str:
        return config.DATABASE_URL

    def get_connection(self, config: Config) -> Database:
        """Return the shared Database for config, opening it on first use."""
        key = self._key(config)
        with self._lock:
            db = self._connections.get(key)
            if db is None:
                db = Database(config)
                db.initialize()
                self._connections[key] = db
            self._holders[key] = self._holders.get(key, 0) + 1
            return db

    def destroy_connection(self, config: Config) -> None:
        """Release one hold on the Database for config; close it on the last release."""
        key = self._key(config)
        with self._lock:
            if key not in self._connections:
                return
            self._holders[key] -= 1
            if self._holders[key] > 0:
                return
            del self._holders[key]
            db = self._connections.pop(key)
        db.close()

    def close_all(self) -> None:
        """Close every pool this manager has opened, regardless of holders."""
        with self._lock:
            connections = list(self._connections.values())
            self._connections.clear()
            self._holders.clear()
        for db in connections:
            db.close()


# Global connection manager instance
_connection_manager: Optional[ConnectionManager] = None


def get_connection_manager() -> ConnectionManager:
    """Get the global connection manager instance."""
    global _connection_manager
    if _connection_manager is None:
        _connection_manager = ConnectionManager()
    return _connection_manager


def set_connection_manager(manager: Optional[ConnectionManager]) -> None:
    """Set the global connection manager instance (useful for testing)."""
    global _connection_manager
    _connection_manager = manager
