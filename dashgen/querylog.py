from __future__ import annotations

import logging
import sqlite3
from pathlib import Path
from typing import List, Optional, Protocol

from .types import QueryLogEntry

logger = logging.getLogger(__name__)


class QueryLog(Protocol):
    """Audit collaborator; writes are fire-and-forget from the pipeline's view."""

    def log(self, entry: QueryLogEntry) -> None:
        ...


class NullQueryLog:
    def log(self, entry: QueryLogEntry) -> None:
        logger.debug("Query log disabled; dropping entry for %s", entry.user_id)


class SqliteQueryLog:
    """Append-only SQLite table of delivered queries."""

    def __init__(self, path: str = "query_log.db"):
        self.path = Path(path)
        self._ensure_tables()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.path)
        conn.row_factory = sqlite3.Row
        return conn

    def _ensure_tables(self) -> None:
        conn = self._connect()
        try:
            conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS query_log (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id TEXT NOT NULL,
                    query TEXT NOT NULL,
                    response_type TEXT NOT NULL,
                    title TEXT DEFAULT '',
                    created_at TEXT NOT NULL
                );
                CREATE INDEX IF NOT EXISTS idx_query_log_user ON query_log (user_id);
                """
            )
            conn.commit()
        finally:
            conn.close()

    def log(self, entry: QueryLogEntry) -> None:
        logger.debug("Logging query for %s (%s)", entry.user_id, entry.response_type)
        conn = self._connect()
        try:
            conn.execute(
                """
                INSERT INTO query_log (user_id, query, response_type, title, created_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (
                    entry.user_id,
                    entry.query,
                    entry.response_type,
                    entry.title,
                    entry.timestamp.isoformat(),
                ),
            )
            conn.commit()
        finally:
            conn.close()

    def list_entries(self, user_id: Optional[str] = None, limit: int = 50) -> List[QueryLogEntry]:
        conn = self._connect()
        try:
            if user_id:
                rows = conn.execute(
                    "SELECT * FROM query_log WHERE user_id = ? ORDER BY id DESC LIMIT ?",
                    (user_id, limit),
                ).fetchall()
            else:
                rows = conn.execute(
                    "SELECT * FROM query_log ORDER BY id DESC LIMIT ?",
                    (limit,),
                ).fetchall()
        finally:
            conn.close()
        return [
            QueryLogEntry(
                user_id=row["user_id"],
                query=row["query"],
                response_type=row["response_type"],
                title=row["title"] or "",
                timestamp=row["created_at"],
            )
            for row in rows
        ]
