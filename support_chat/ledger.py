"""
Message ledger: durable, append-only per-session history in SQLite.
"""
import logging
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import List, Optional

import aiosqlite

from support_chat.database import PathLike, get_db, init_database
from support_chat.errors import PersistenceError
from support_chat.models import Message, Role

logger = logging.getLogger(__name__)

_MESSAGE_COLUMNS = "id, session_id, role, content, created_at"


class Ledger:
    """Session and message rows, read newest-first with an exclusive cursor.

    Every store failure is raised as ``PersistenceError``.
    """

    def __init__(self, database_path: PathLike):
        self.database_path = database_path

    async def init(self):
        await init_database(self.database_path)

    @asynccontextmanager
    async def _db(self):
        try:
            async with get_db(self.database_path) as db:
                yield db
        except aiosqlite.Error as e:
            logger.exception("Ledger operation failed")
            raise PersistenceError(str(e)) from e

    async def count_messages(self, session_id: str) -> int:
        async with self._db() as db:
            cursor = await db.execute(
                "SELECT COUNT(*) FROM messages WHERE session_id = ?",
                (session_id,)
            )
            row = await cursor.fetchone()
            return row[0]

    async def upsert_session(self, session_id: str):
        """Create the session row if it does not exist yet."""
        async with self._db() as db:
            await db.execute(
                "INSERT OR IGNORE INTO sessions (id) VALUES (?)",
                (session_id,)
            )
            await db.commit()

    async def create_message(self, session_id: str, role: Role, content: str) -> Message:
        message = Message(
            id=str(uuid.uuid4()),
            session_id=session_id,
            role=role,
            content=content,
            created_at=datetime.now(timezone.utc),
        )
        async with self._db() as db:
            await db.execute(
                "INSERT INTO messages (id, session_id, role, content, created_at) "
                "VALUES (?, ?, ?, ?, ?)",
                (
                    message.id,
                    message.session_id,
                    message.role,
                    message.content,
                    message.created_at.isoformat(timespec="microseconds"),
                )
            )
            await db.commit()
        return message

    async def find_messages(
        self,
        session_id: str,
        limit: int,
        cursor: Optional[str] = None,
    ) -> List[Message]:
        """Return up to *limit* messages newest-first.

        With a *cursor* only messages strictly older than the cursor message
        are returned. A cursor that does not name a message of this session
        yields an empty list.
        """
        async with self._db() as db:
            if cursor is None:
                rows = await db.execute_fetchall(
                    f"SELECT {_MESSAGE_COLUMNS} FROM messages "
                    "WHERE session_id = ? "
                    "ORDER BY created_at DESC, seq DESC LIMIT ?",
                    (session_id, limit)
                )
            else:
                rows = await db.execute_fetchall(
                    f"SELECT {_MESSAGE_COLUMNS} FROM messages "
                    "WHERE session_id = ? AND (created_at, seq) < ("
                    "    SELECT created_at, seq FROM messages "
                    "    WHERE id = ? AND session_id = ?"
                    ") "
                    "ORDER BY created_at DESC, seq DESC LIMIT ?",
                    (session_id, cursor, session_id, limit)
                )

        return [Message(**dict(row)) for row in rows]
