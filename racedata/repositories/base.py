"""
Shared plumbing for the repositories.

Every repository method accepts an optional ``conn``. With it, statements
run on the caller's open transaction and are left uncommitted so several
repository calls can form one atomic unit. Without it, a pooled connection
is borrowed for the single call, committed and handed back.
"""
import logging
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional

import psycopg2
import psycopg2.extras

from racedata.core.database import DatabaseManager
from racedata.core.exceptions import DatabaseError


class BaseRepository:

    def __init__(self, db_manager: DatabaseManager) -> None:
        self.db_manager = db_manager
        self.logger = logging.getLogger(self.__class__.__name__)

    @contextmanager
    def _cursor(self, conn: Any = None) -> Iterator[Any]:
        if conn is not None:
            with conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cursor:
                yield cursor
            return

        pooled = self.db_manager.get_connection()
        try:
            with pooled:
                with pooled.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cursor:
                    yield cursor
        finally:
            self.db_manager.release_connection(pooled)

    def _fail(self, action: str, exc: Exception) -> DatabaseError:
        self.logger.error(f"Error {action}: {exc}")
        return DatabaseError(f"Error {action}: {exc}")

    def _fetch_one(self, query: str, params: Any, conn: Any = None,
                   action: str = "running query") -> Optional[Dict[str, Any]]:
        try:
            with self._cursor(conn) as cursor:
                cursor.execute(query, params)
                row = cursor.fetchone()
                return dict(row) if row else None
        except psycopg2.Error as exc:
            raise self._fail(action, exc) from exc

    def _fetch_all(self, query: str, params: Any, conn: Any = None,
                   action: str = "running query") -> List[Dict[str, Any]]:
        try:
            with self._cursor(conn) as cursor:
                cursor.execute(query, params)
                return [dict(row) for row in cursor.fetchall()]
        except psycopg2.Error as exc:
            raise self._fail(action, exc) from exc

    def _execute(self, query: str, params: Any, conn: Any = None,
                 action: str = "running query") -> int:
        """Runs a statement without a result set and returns the affected row count."""
        try:
            with self._cursor(conn) as cursor:
                cursor.execute(query, params)
                return cursor.rowcount
        except psycopg2.Error as exc:
            raise self._fail(action, exc) from exc


@contextmanager
def savepoint(conn: Any, name: str) -> Iterator[None]:
    """
    Nested unit of work inside an open transaction. A failure rolls back to
    the savepoint and re-raises; the enclosing transaction stays usable.
    """
    with conn.cursor() as cursor:
        cursor.execute(f"SAVEPOINT {name}")
    try:
        yield
    except Exception:
        with conn.cursor() as cursor:
            cursor.execute(f"ROLLBACK TO SAVEPOINT {name}")
        raise
    with conn.cursor() as cursor:
        cursor.execute(f"RELEASE SAVEPOINT {name}")
