"""
SQLite database initialization and connection management.
"""
import aiosqlite
from pathlib import Path
from typing import Union

PathLike = Union[str, Path]


def get_db(database_path: PathLike):
    """Get database connection as an async context manager."""
    # Rows come back as aiosqlite.Row and foreign keys are enforced per
    # connection, so both are set right after connecting
    class DBConnection:
        async def __aenter__(self):
            self.conn = await aiosqlite.connect(database_path)
            self.conn.row_factory = aiosqlite.Row
            try:
                await self.conn.execute("PRAGMA foreign_keys = ON")
            except aiosqlite.Error:
                await self.conn.close()
                raise
            return self.conn

        async def __aexit__(self, exc_type, exc_val, exc_tb):
            await self.conn.close()

    return DBConnection()


async def init_database(database_path: PathLike):
    """Initialize database with required tables and indexes."""
    Path(database_path).parent.mkdir(parents=True, exist_ok=True)

    async with aiosqlite.connect(database_path) as db:
        await db.execute("""
            CREATE TABLE IF NOT EXISTS sessions (
                id TEXT PRIMARY KEY,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)

        # seq is the insertion order; it breaks created_at ties
        await db.execute("""
            CREATE TABLE IF NOT EXISTS messages (
                seq INTEGER PRIMARY KEY AUTOINCREMENT,
                id TEXT NOT NULL UNIQUE,
                session_id TEXT NOT NULL,
                role TEXT NOT NULL CHECK (role IN ('user', 'ai')),
                content TEXT NOT NULL,
                created_at TEXT NOT NULL,
                FOREIGN KEY (session_id) REFERENCES sessions(id) ON DELETE CASCADE
            )
        """)

        await db.execute("""
            CREATE INDEX IF NOT EXISTS idx_messages_session_order
            ON messages(session_id, created_at, seq)
        """)

        await db.commit()
