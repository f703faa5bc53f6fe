# ============================================================================
# CONNECTION POOL MANAGER
# ============================================================================
# STATUS: Infrastructure - bounded connection pool for all store work
# PURPOSE: Single admission control for concurrent per-patch tasks
# EXPORTS: ConnectionPoolManager
# DEPENDENCIES: psycopg_pool, psycopg, config.database_config
# ============================================================================
"""
Connection Pool Manager.

================================================================================
ARCHITECTURE
================================================================================

Every store-touching task holds exactly one pooled connection for its whole
duration. The fan-out runs up to threads_per_connection threads per pooled
connection, so the pool's max_size is the bound on concurrent store work:

    patch tasks (<= 4K threads) ──► ConnectionPool(max_size=K) ──► PostgreSQL
                                      K <= maximum_number_connections

Threads beyond K block in get_connection() until a connection is returned.
There is no retry or backoff; failing to open the pool is fatal.

================================================================================
USAGE
================================================================================

    pool = ConnectionPoolManager(config.database)
    pool.open()

    with pool.get_connection() as conn:
        conn.execute("SELECT 1")

    stats = pool.get_pool_stats()
    # {'max_size': 30, 'in_use': 0, 'peak_in_use': 12, ...}

    pool.close()

The connection context commits when the block exits normally and rolls back
when it raises (psycopg_pool semantics).
"""

import threading
from typing import Any, Callable, Dict, Optional
from contextlib import contextmanager

import psycopg
from psycopg.rows import dict_row
from psycopg_pool import ConnectionPool, PoolTimeout

from config.database_config import DatabaseConfig
from exceptions import DatabaseConnectionError, DatabaseError
from util_logger import LoggerFactory, ComponentType

logger = LoggerFactory.create_logger(ComponentType.ADAPTER, "ConnectionPoolManager")


# =============================================================================
# CONNECTION POOL CONFIGURATION
# =============================================================================

# Timeout for draining connections on pool close (seconds)
POOL_CLOSE_TIMEOUT = 30.0


# =============================================================================
# CONNECTION POOL MANAGER
# =============================================================================

class ConnectionPoolManager:
    """
    Bounded connection pool with in-use accounting.

    Args:
        database_config: Connection string and pool bound
        pool_factory: Callable building the pool, ConnectionPool by default.
            Receives the same keyword arguments as ConnectionPool.

    Usage:
        with ConnectionPoolManager(config.database) as pool:
            with pool.get_connection() as conn:
                ...
    """

    def __init__(
        self,
        database_config: DatabaseConfig,
        pool_factory: Callable[..., Any] = ConnectionPool
    ):
        self._config = database_config
        self._pool_factory = pool_factory
        self._pool = None
        self._pool_lock = threading.Lock()

        # In-use accounting
        self._counter_lock = threading.Lock()
        self._in_use = 0
        self._peak_in_use = 0
        self._acquired_total = 0

    @staticmethod
    def _configure_connection(conn) -> None:
        """
        Configure a connection after it's created by the pool.

        Called by the pool for each new connection.
        """
        # Set row factory to return dicts
        conn.row_factory = dict_row

    @property
    def max_size(self) -> int:
        return self._config.maximum_number_connections

    @property
    def is_open(self) -> bool:
        return self._pool is not None

    def open(self) -> "ConnectionPoolManager":
        """
        Create the pool and wait until min_size connections are ready.

        Raises:
            DatabaseConnectionError: Pool did not become ready in time
        """
        with self._pool_lock:
            if self._pool is not None:
                return self

            logger.info(
                f"Creating connection pool: min={self._config.min_connections}, "
                f"max={self._config.maximum_number_connections}",
                extra={'custom_dimensions': self._config.debug_dict()}
            )

            pool = self._pool_factory(
                conninfo=self._config.connection_string,
                min_size=self._config.min_connections,
                max_size=self._config.maximum_number_connections,
                timeout=self._config.acquire_timeout_seconds,
                configure=self._configure_connection,
                open=False,
            )
            try:
                pool.open(wait=True, timeout=self._config.connection_timeout_seconds)
            except PoolTimeout as e:
                pool.close()
                raise DatabaseConnectionError(
                    f"Connection pool not ready after {self._config.connection_timeout_seconds}s: {e}"
                ) from e

            self._pool = pool
            logger.info("Connection pool created successfully")
            return self

    @contextmanager
    def get_connection(self):
        """
        Get a connection from the pool, blocking until one is free.

        Usage:
            with pool.get_connection() as conn:
                cursor = conn.cursor()
                cursor.execute("SELECT 1")

        The connection is automatically returned to the pool when the
        context exits.

        Raises:
            RuntimeError: Pool not opened
            PoolTimeout: No connection within acquire_timeout_seconds
            DatabaseError: Commit or rollback failed when the context exited
        """
        if self._pool is None:
            raise RuntimeError(
                "ConnectionPoolManager.get_connection() called before open()."
            )

        try:
            with self._pool.connection(timeout=self._config.acquire_timeout_seconds) as conn:
                with self._counter_lock:
                    self._in_use += 1
                    self._acquired_total += 1
                    if self._in_use > self._peak_in_use:
                        self._peak_in_use = self._in_use
                try:
                    yield conn
                finally:
                    with self._counter_lock:
                        self._in_use -= 1
        except psycopg.Error as e:
            # Commit or rollback on context exit
            logger.error(f"Connection context failed: {type(e).__name__}: {e}")
            raise DatabaseError(f"Transaction failed: {e}") from e

    def close(self) -> None:
        """
        Gracefully close the pool, waiting for connections to be returned.
        """
        with self._pool_lock:
            if self._pool is None:
                return
            logger.info("Shutting down connection pool...")
            try:
                self._pool.close(timeout=POOL_CLOSE_TIMEOUT)
                logger.info(
                    "Connection pool shutdown complete",
                    extra={'custom_dimensions': self.get_pool_stats()}
                )
            finally:
                self._pool = None

    def get_pool_stats(self) -> Dict[str, Any]:
        """
        Get connection pool statistics.

        Returns:
            dict with keys:
                - open: whether the pool is open
                - max_size: configured pool bound
                - in_use: connections currently handed out
                - peak_in_use: highest simultaneous in_use so far
                - acquired_total: connections handed out so far
                - pool_size, pool_available, requests_waiting: psycopg_pool
                  statistics when available
        """
        with self._counter_lock:
            stats: Dict[str, Any] = {
                'open': self._pool is not None,
                'max_size': self._config.maximum_number_connections,
                'in_use': self._in_use,
                'peak_in_use': self._peak_in_use,
                'acquired_total': self._acquired_total,
            }

        pool = self._pool
        if pool is not None and hasattr(pool, 'get_stats'):
            pool_stats = pool.get_stats()
            for key in ('pool_size', 'pool_available', 'requests_waiting'):
                if key in pool_stats:
                    stats[key] = pool_stats[key]
        return stats

    def __enter__(self) -> "ConnectionPoolManager":
        return self.open()

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"ConnectionPoolManager(max_size={self.max_size}, open={self.is_open})"
