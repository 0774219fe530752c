"""
Store accessor: the single owner of the database connection

One StoreAccessor holds at most one read-only aiosqlite connection.
Opening a new path closes the previous connection first. Opening, closing
and every statement run under one asyncio.Lock, so a statement never sees a
handle that is being swapped or closed.
"""

import asyncio
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Set

import aiosqlite

from .errors import DatabaseConnectionError, QueryError

logger = logging.getLogger(__name__)

SQLITE_HEADER = b"SQLite format 3\x00"

REQUIRED_TABLES = ("message", "chat", "chat_message_join")
OPTIONAL_TABLES = ("handle", "chat_handle_join", "attachment", "message_attachment_join")

PERMISSION_HINT = (
    "This is likely a macOS permission issue.\n\n"
    "Solutions:\n"
    "1. Grant Full Disk Access to your Terminal:\n"
    "   System Settings → Privacy & Security → Full Disk Access\n"
    "   Add your terminal app and restart it\n\n"
    "2. Copy database to accessible location:\n"
    "   cp ~/Library/Messages/chat.db ~/Desktop/chat.db\n"
    "   Then use: --db-path ~/Desktop/chat.db"
)


@dataclass
class SchemaInfo:
    """Tables and columns present in the opened database"""
    tables: Dict[str, Set[str]] = field(default_factory=dict)

    def has_table(self, table: str) -> bool:
        return table in self.tables

    def has_column(self, table: str, column: str) -> bool:
        return column in self.tables.get(table, set())

    def column(self, alias: str, table: str, column: str) -> str:
        """Qualified column reference, or NULL when this schema version lacks it"""
        if self.has_column(table, column):
            return f"{alias}.{column}"
        return "NULL"


class StoreAccessor:
    """Read-only, serialized access to a Messages database"""

    def __init__(self):
        self._conn: Optional[aiosqlite.Connection] = None
        self._path: Optional[str] = None
        self._lock = asyncio.Lock()
        self.schema = SchemaInfo()

    @property
    def is_connected(self) -> bool:
        return self._conn is not None

    @property
    def path(self) -> Optional[str]:
        return self._path

    async def open(self, path: str) -> None:
        """
        Open a database file read-only, replacing any open connection.

        Raises:
            DatabaseConnectionError: If the file is missing, unreadable, not a
                SQLite database, or lacks the Messages tables. The accessor is
                left disconnected.
        """
        async with self._lock:
            await self._open_locked(path)

    async def _open_locked(self, path: str) -> None:
        await self._close_locked()

        db_path = os.path.abspath(os.path.expanduser(path))
        logger.info("Opening database at %s", db_path)

        if not os.path.exists(db_path):
            raise DatabaseConnectionError(f"Database not found: {db_path}", path=db_path)

        try:
            with open(db_path, "rb") as handle:
                header = handle.read(len(SQLITE_HEADER))
        except PermissionError as exc:
            raise DatabaseConnectionError(
                f"Unable to access database: {db_path}\n{PERMISSION_HINT}\n\nOriginal error: {exc}",
                path=db_path,
            ) from exc
        except OSError as exc:
            raise DatabaseConnectionError(f"Unable to read database {db_path}: {exc}", path=db_path) from exc

        if header != SQLITE_HEADER:
            raise DatabaseConnectionError(f"File is not a SQLite database: {db_path}", path=db_path)

        uri = Path(db_path).as_uri() + "?mode=ro"
        conn = None
        try:
            conn = await aiosqlite.connect(uri, uri=True)
            conn.row_factory = aiosqlite.Row
            schema = await self._load_schema(conn)
        except aiosqlite.Error as exc:
            if conn is not None:
                await conn.close()
            message = f"Failed to open database {db_path}: {exc}"
            if "unable to open" in str(exc).lower():
                message = f"Unable to access database: {db_path}\n{PERMISSION_HINT}\n\nOriginal error: {exc}"
            raise DatabaseConnectionError(message, path=db_path) from exc

        missing = [table for table in REQUIRED_TABLES if not schema.has_table(table)]
        if missing:
            await conn.close()
            raise DatabaseConnectionError(
                f"Not a Messages database (missing tables: {', '.join(missing)}): {db_path}",
                path=db_path,
            )

        self._conn = conn
        self._path = db_path
        self.schema = schema
        logger.info("Connected to database: %s", db_path)

    async def close(self) -> None:
        async with self._lock:
            await self._close_locked()

    async def _close_locked(self) -> None:
        conn = self._conn
        self._conn = None
        self._path = None
        self.schema = SchemaInfo()
        if conn is not None:
            await conn.close()
            logger.debug("Database closed")

    async def __aenter__(self) -> "StoreAccessor":
        return self

    async def __aexit__(self, *args) -> None:
        await self.close()

    async def query(self, sql: str, params: Sequence[Any] = ()) -> List[aiosqlite.Row]:
        """
        Execute one parametrized statement and return all rows.

        Raises:
            QueryError: If no database is open or the engine rejects the statement
        """
        async with self._lock:
            if self._conn is None:
                raise QueryError("Database is not open", sql=sql, params=params)

            logger.debug("Executing query: %s with params: %r", " ".join(sql.split())[:200], list(params))
            try:
                async with self._conn.execute(sql, tuple(params)) as cursor:
                    rows = await cursor.fetchall()
            except aiosqlite.Error as exc:
                raise QueryError(f"Query failed: {exc}", sql=sql, params=params) from exc

        logger.debug("Query returned %d rows", len(rows))
        return list(rows)

    async def scalar(self, sql: str, params: Sequence[Any] = (), default: Any = None) -> Any:
        rows = await self.query(sql, params)
        if not rows or rows[0][0] is None:
            return default
        return rows[0][0]

    @staticmethod
    async def _load_schema(conn: aiosqlite.Connection) -> SchemaInfo:
        async with conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'") as cursor:
            names = {row[0] for row in await cursor.fetchall()}

        tables = {}
        for table in REQUIRED_TABLES + OPTIONAL_TABLES:
            if table not in names:
                continue
            async with conn.execute(f"PRAGMA table_info({table})") as cursor:
                tables[table] = {row[1] for row in await cursor.fetchall()}
        return SchemaInfo(tables)
