"""
MySQL access for netdot2cacti.

Both Netdot and Cacti keep their data in MySQL. This wrapper owns one
lazily opened connection and returns rows as dictionaries.
"""

from typing import Any, Dict, List, Optional, Sequence, Type

import pymysql
from pymysql.cursors import DictCursor

from .errors import SyncError
from .logger import get_logger

logger = get_logger("netdot2cacti.db")


class Database:
    """
    A MySQL connection with dictionary rows and autocommit.

    Failures are re-raised as `error_class`, so the Netdot side reports
    SourceError and the Cacti side CactiClientError.
    """

    def __init__(self, host: str, user: str, password: str, database: str,
                 port: int = 3306, error_class: Type[SyncError] = SyncError):
        self.host = host
        self.user = user
        self.password = password
        self.database = database
        self.port = port
        self.error_class = error_class
        self._conn: Optional[pymysql.connections.Connection] = None

    def _get_connection(self) -> pymysql.connections.Connection:
        """Get or create database connection."""
        if self._conn is None:
            try:
                self._conn = pymysql.connect(
                    host=self.host,
                    port=self.port,
                    user=self.user,
                    password=self.password,
                    database=self.database,
                    cursorclass=DictCursor,
                    autocommit=True,
                    charset="utf8mb4",
                )
            except pymysql.MySQLError as e:
                raise self.error_class(
                    f"Connect to {self.database}@{self.host} failed: {e}"
                ) from e
            logger.debug(f"Connected to {self.database}@{self.host}")
        return self._conn

    def close(self):
        """Close database connection."""
        if self._conn:
            self._conn.close()
            self._conn = None

    def fetch_all(self, sql: str, params: Optional[Sequence[Any]] = None) -> List[Dict[str, Any]]:
        try:
            with self._get_connection().cursor() as cursor:
                cursor.execute(sql, params)
                return list(cursor.fetchall())
        except pymysql.MySQLError as e:
            raise self.error_class(f"DB Error: {e}") from e

    def fetch_one(self, sql: str, params: Optional[Sequence[Any]] = None) -> Optional[Dict[str, Any]]:
        try:
            with self._get_connection().cursor() as cursor:
                cursor.execute(sql, params)
                return cursor.fetchone()
        except pymysql.MySQLError as e:
            raise self.error_class(f"DB Error: {e}") from e

    def execute(self, sql: str, params: Optional[Sequence[Any]] = None) -> int:
        """
        Run a write statement.

        Returns:
            The auto-increment id of an INSERT, 0 otherwise.
        """
        try:
            with self._get_connection().cursor() as cursor:
                cursor.execute(sql, params)
                return cursor.lastrowid or 0
        except pymysql.MySQLError as e:
            raise self.error_class(f"DB Error: {e}") from e

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
