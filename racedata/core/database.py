import logging
from pathlib import Path
from typing import Optional, Any

import psycopg2
from psycopg2 import pool

from racedata.core.config import DB_URL, DB_POOL_MIN, DB_POOL_MAX, SCHEMA_PATH

logger = logging.getLogger(__name__)


class DatabaseManager:
    """
    Owns the psycopg2 connection pool. One instance is built at startup and
    handed to the repositories and the ingestion service.
    """

    def __init__(self, db_url: Optional[str] = DB_URL,
                 min_size: int = DB_POOL_MIN, max_size: int = DB_POOL_MAX) -> None:
        self.db_url = db_url
        self.min_size = min_size
        self.max_size = max_size
        self._pool: Optional[psycopg2.pool.ThreadedConnectionPool] = None

    def initialize_pool(self) -> None:
        if self._pool is None:
            if not self.db_url:
                raise ValueError("DB_URL environment variable is not set")
            self._pool = psycopg2.pool.ThreadedConnectionPool(self.min_size, self.max_size, self.db_url)
            logger.info("Connection pool ready (min=%d, max=%d)", self.min_size, self.max_size)

    def get_connection(self) -> Any:
        """
        Retrieves a connection from the pool.
        """
        if self._pool is None:
            self.initialize_pool()

        if self._pool is None:
            raise RuntimeError("Database pool failed to initialize correctly.")

        return self._pool.getconn()

    def release_connection(self, conn: Any) -> None:
        """
        Returns a connection to the pool.
        """
        if self._pool and conn:
            self._pool.putconn(conn)

    def close_pool(self) -> None:
        """
        Closes all connections in the pool.
        """
        if self._pool:
            self._pool.closeall()
            self._pool = None

    def ping(self) -> bool:
        """Cheap liveness probe used by the health check."""
        conn = None
        try:
            conn = self.get_connection()
            with conn.cursor() as cursor:
                cursor.execute("SELECT 1")
                cursor.fetchone()
            return True
        except (psycopg2.Error, ValueError, RuntimeError) as exc:
            logger.warning(f"Database ping failed: {exc}")
            return False
        finally:
            if conn is not None:
                # Leave no transaction open on a pooled connection
                conn.rollback()
                self.release_connection(conn)

    def init_schema(self, schema_path: Path = SCHEMA_PATH) -> None:
        """Applies the idempotent DDL for tracks, races, entries and winners."""
        ddl = Path(schema_path).read_text(encoding="utf-8")
        conn = self.get_connection()
        try:
            with conn:
                with conn.cursor() as cursor:
                    cursor.execute(ddl)
            logger.info("Schema applied from %s", schema_path)
        finally:
            self.release_connection(conn)
