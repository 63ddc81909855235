"""
Database connection management.

A ConnectionManager owns the process's single psycopg connection pool and
its lifecycle state. Callers borrow connections with
``manager.connection()``; the pool is opened lazily on first use.

The process-wide manager is created with init() (or lazily by
get_manager()) and torn down with shutdown(). Dependents such as
RecordStore receive the manager by reference.

For testing, use set_connection_override() to inject a connection
that will be used instead of pooled ones. This enables
transaction rollback between tests.
"""

import atexit
import threading
import time
from contextlib import contextmanager
from enum import Enum
from typing import Any

import psycopg
from psycopg.rows import dict_row
from psycopg_pool import ConnectionPool

from soilstore import errors
from soilstore.config import config
from soilstore.logger import elapsed_ms, get_logger

logger = get_logger(__name__)


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DEGRADED = "degraded"


class ConnectionManager:
    """
    Owns one connection pool and exposes its readiness.

    connect() and disconnect() are idempotent; health_check() never raises.
    All state transitions happen under a lock.
    """

    def __init__(self, database_url: str = None):
        self.database_url = database_url or config.database_url
        self.state = ConnectionState.DISCONNECTED
        self._pool: ConnectionPool | None = None
        self._lock = threading.RLock()
        self._connection_override: psycopg.Connection | None = None

    # =========================================================================
    # Connection Override (for testing)
    # =========================================================================

    def set_connection_override(self, conn: psycopg.Connection) -> None:
        """
        Set a connection to use instead of pooled ones.

        Used by test fixtures to ensure all database operations run
        within a single transaction that can be rolled back.
        """
        self._connection_override = conn

    def clear_connection_override(self) -> None:
        """Clear the connection override, restoring normal behavior."""
        self._connection_override = None

    # =========================================================================
    # Lifecycle
    # =========================================================================

    @property
    def is_connected(self) -> bool:
        return self.state in (ConnectionState.CONNECTED, ConnectionState.DEGRADED)

    def _log_event(self, event: str, started: float, detail: str, level: str = "info"):
        duration_ms = elapsed_ms(started)
        getattr(logger, level)(
            f"[{event}] {detail} ({duration_ms}ms)",
            extra={"event": event, "duration_ms": duration_ms, "detail": detail},
        )

    def connect(self) -> None:
        """
        Open the pool. No-op when already connected.

        Raises:
            errors.ConnectionError: If the database is unreachable. The state
                stays DISCONNECTED.
        """
        with self._lock:
            if self.is_connected:
                return

            started = time.perf_counter()
            self.state = ConnectionState.CONNECTING
            pool = None
            try:
                pool = ConnectionPool(
                    self.database_url,
                    min_size=config.pool_min_size,
                    max_size=config.pool_max_size,
                    open=False,
                    name="soilstore",
                )
                pool.open(wait=True, timeout=config.connect_timeout)
            except Exception as e:
                self.state = ConnectionState.DISCONNECTED
                if pool is not None:
                    pool.close()
                self._log_event("error", started, f"Failed to connect to database: {e}", "error")
                raise errors.ConnectionError("Failed to connect to database") from e

            self._pool = pool
            self.state = ConnectionState.CONNECTED
            self._log_event("connect", started, "Successfully connected to database")

    def disconnect(self) -> None:
        """
        Close the pool. No-op when already disconnected.

        Raises:
            errors.ConnectionError: If closing fails. The state is
                DISCONNECTED regardless.
        """
        with self._lock:
            if self.state == ConnectionState.DISCONNECTED:
                return

            started = time.perf_counter()
            pool, self._pool = self._pool, None
            try:
                if pool is not None:
                    pool.close()
            except Exception as e:
                self._log_event("error", started, f"Error disconnecting from database: {e}", "error")
                raise errors.ConnectionError("Error disconnecting from database") from e
            finally:
                self.state = ConnectionState.DISCONNECTED

            self._log_event("disconnect", started, "Successfully disconnected from database")

    def health_check(self) -> bool:
        """
        Run a trivial round trip against the database.

        Connects first if needed. A failed probe moves a connected manager to
        DEGRADED; a successful one moves it back to CONNECTED.

        Returns:
            True if the database answered, False otherwise. Never raises.
        """
        started = time.perf_counter()
        try:
            with self.connection() as conn:
                conn.execute("SELECT 1")
        except Exception as e:
            with self._lock:
                if self.state == ConnectionState.CONNECTED:
                    self.state = ConnectionState.DEGRADED
            self._log_event("warn", started, f"Database health check failed: {e}", "warning")
            return False

        with self._lock:
            if self.state == ConnectionState.DEGRADED:
                self.state = ConnectionState.CONNECTED
        self._log_event("health", started, "Database health check passed", "debug")
        return True

    # =========================================================================
    # Connection Access
    # =========================================================================

    @contextmanager
    def connection(self):
        """
        Context manager for a pooled database connection.

        In normal operation:
            - Connects the pool if needed
            - Borrows a connection
            - Commits on successful exit
            - Rolls back on exception
            - Returns the connection to the pool

        With override set (testing):
            - Returns the override connection
            - Does NOT commit, rollback, or close
            - Caller (test fixture) manages the transaction

        Usage:
            with manager.connection() as conn:
                with conn.cursor() as cur:
                    cur.execute("SELECT ...")
        """
        if self._connection_override is not None:
            yield self._connection_override
            return

        if not self.is_connected:
            self.connect()
        pool = self._pool
        if pool is None:
            raise errors.ConnectionError("Database connection is closed")

        with pool.connection(timeout=config.connect_timeout) as conn:
            try:
                yield conn
                conn.commit()
            except Exception:
                conn.rollback()
                raise


# =============================================================================
# Query Helpers
# =============================================================================


def execute(conn: psycopg.Connection, query: str, params: tuple = None) -> int:
    """
    Execute a statement on a borrowed connection.

    Use for UPDATE and DELETE when you only need to know how many rows changed.

    Returns:
        Number of affected rows
    """
    with conn.cursor() as cur:
        cur.execute(query, params)
        return cur.rowcount


def fetch_one(conn: psycopg.Connection, query: str, params: tuple = None) -> dict[str, Any] | None:
    """
    Execute a query and return a single row as dict.

    Args:
        conn: Connection borrowed from ConnectionManager.connection()
        query: SQL query with %s placeholders
        params: Tuple of parameter values

    Returns:
        Dict of column names to values, or None if no row found
    """
    with conn.cursor(row_factory=dict_row) as cur:
        cur.execute(query, params)
        return cur.fetchone()


def fetch_all(conn: psycopg.Connection, query: str, params: tuple = None) -> list[dict[str, Any]]:
    """Execute a query and return all rows as dicts."""
    with conn.cursor(row_factory=dict_row) as cur:
        cur.execute(query, params)
        return cur.fetchall()


# =============================================================================
# Process Lifecycle
# =============================================================================

_manager: ConnectionManager | None = None
_manager_lock = threading.Lock()


def init(database_url: str = None) -> ConnectionManager:
    """
    Create the process-wide ConnectionManager if it does not exist yet.

    Safe under concurrent first access. The pool itself is opened lazily.
    shutdown() is registered to run at interpreter exit.
    """
    global _manager
    with _manager_lock:
        if _manager is None:
            _manager = ConnectionManager(database_url)
            atexit.register(shutdown)
        return _manager


def get_manager() -> ConnectionManager:
    """Return the process-wide manager, creating it on first use."""
    if _manager is not None:
        return _manager
    return init()


def shutdown() -> None:
    """
    Disconnect and drop the process-wide manager.

    Tolerates being called more than once or before init().
    """
    global _manager
    with _manager_lock:
        manager, _manager = _manager, None
    if manager is not None:
        manager.disconnect()
