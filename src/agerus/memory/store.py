"""SQLite-backed storage for named chat sessions."""

import asyncio
import logging
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel

from ..llm.base import ChatMessage, MessageRole, Transcript
from ..utils.config import DEFAULT_HOME

logger = logging.getLogger(__name__)


class SessionInfo(BaseModel):
    """Summary row for a stored session."""
    name: str
    message_count: int
    updated_at: datetime


class SessionStore:
    """Saves and restores transcripts by session name."""

    def __init__(self, db_path: Optional[Path] = None):
        self.db_path = Path(db_path) if db_path else DEFAULT_HOME / "sessions.db"
        self._connection: Optional[sqlite3.Connection] = None
        self._lock = asyncio.Lock()

    def _connect(self) -> sqlite3.Connection:
        if self._connection is None:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self._connection = sqlite3.connect(str(self.db_path))
            self._connection.row_factory = sqlite3.Row
            self._create_tables()
        return self._connection

    def _create_tables(self) -> None:
        cursor = self._connection.cursor()

        cursor.execute('''
            CREATE TABLE IF NOT EXISTS sessions (
                name TEXT PRIMARY KEY,
                updated_at TEXT NOT NULL
            )
        ''')

        cursor.execute('''
            CREATE TABLE IF NOT EXISTS messages (
                session TEXT NOT NULL REFERENCES sessions(name) ON DELETE CASCADE,
                position INTEGER NOT NULL,
                role TEXT NOT NULL,
                content TEXT NOT NULL,
                collapsed INTEGER NOT NULL DEFAULT 0,
                PRIMARY KEY (session, position)
            )
        ''')

        self._connection.commit()

    async def save_session(self, name: str, messages: Transcript) -> None:
        """Replace the stored transcript for ``name`` in one transaction."""
        async with self._lock:
            connection = self._connect()
            rows = [
                (name, position, message.role.value, message.content, int(message.collapsed))
                for position, message in enumerate(messages)
            ]
            with connection:
                connection.execute("DELETE FROM messages WHERE session = ?", (name,))
                connection.execute(
                    "INSERT OR REPLACE INTO sessions (name, updated_at) VALUES (?, ?)",
                    (name, datetime.now().isoformat()),
                )
                connection.executemany(
                    "INSERT INTO messages (session, position, role, content, collapsed) VALUES (?, ?, ?, ?, ?)",
                    rows,
                )
            logger.debug("Saved session %s (%d messages)", name, len(rows))

    async def load_session(self, name: str) -> Transcript:
        """Return the messages of ``name`` in saved order (empty if unknown)."""
        async with self._lock:
            cursor = self._connect().execute(
                "SELECT role, content, collapsed FROM messages WHERE session = ? ORDER BY position",
                (name,),
            )
            return [
                ChatMessage(role=MessageRole(row["role"]), content=row["content"], collapsed=bool(row["collapsed"]))
                for row in cursor.fetchall()
            ]

    async def list_sessions(self) -> List[SessionInfo]:
        """List sessions, most recently saved first."""
        async with self._lock:
            cursor = self._connect().execute('''
                SELECT s.name, s.updated_at, COUNT(m.position) AS message_count
                FROM sessions s LEFT JOIN messages m ON m.session = s.name
                GROUP BY s.name
                ORDER BY s.updated_at DESC, s.rowid DESC
            ''')
            return [
                SessionInfo(
                    name=row["name"],
                    message_count=row["message_count"],
                    updated_at=datetime.fromisoformat(row["updated_at"]),
                )
                for row in cursor.fetchall()
            ]

    async def delete_session(self, name: str) -> bool:
        async with self._lock:
            connection = self._connect()
            with connection:
                connection.execute("DELETE FROM messages WHERE session = ?", (name,))
                cursor = connection.execute("DELETE FROM sessions WHERE name = ?", (name,))
            return cursor.rowcount > 0

    async def close(self) -> None:
        """Close database connection."""
        if self._connection:
            self._connection.close()
            self._connection = None
