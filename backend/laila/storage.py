"""Storage layer - SQLite with in-memory cache"""
import aiosqlite
import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional
from laila.models import ChatMessage, ChatSession, SessionSummary
from laila.config import settings

logger = logging.getLogger(__name__)

TITLE_MAX_LENGTH = 40

def generate_session_title(first_user_message: str) -> str:
    """Derive a session title from the first user message"""
    text = first_user_message.strip()
    if len(text) > TITLE_MAX_LENGTH:
        return text[:TITLE_MAX_LENGTH] + "..."
    return text

class Storage:
    """Hybrid storage with SQLite persistence and in-memory cache"""

    def __init__(self, db_path: Optional[str] = None, mode: Optional[str] = None):
        self.db_path = db_path or settings.db_path
        self.mode = mode or settings.storage_mode

        # In-memory cache
        self.sessions: Dict[str, ChatSession] = {}
        self.settings_cache: Dict[str, Any] = {}

    async def _connect(self) -> aiosqlite.Connection:
        db = await aiosqlite.connect(self.db_path)
        await db.execute("PRAGMA foreign_keys = ON")
        return db

    async def init_db(self):
        """Initialize SQLite database and warm the cache"""
        if self.mode != "sqlite":
            return

        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        db = await self._connect()
        try:
            await db.execute("PRAGMA journal_mode = WAL")

            # Sessions table
            await db.execute("""
                CREATE TABLE IF NOT EXISTS chat_sessions (
                    id TEXT PRIMARY KEY,
                    title TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)

            # Messages table
            await db.execute("""
                CREATE TABLE IF NOT EXISTS messages (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    session_id TEXT NOT NULL,
                    role TEXT NOT NULL CHECK(role IN ('user', 'assistant')),
                    content TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    FOREIGN KEY (session_id) REFERENCES chat_sessions(id) ON DELETE CASCADE
                )
            """)
            await db.execute(
                "CREATE INDEX IF NOT EXISTS idx_messages_session ON messages(session_id)"
            )

            # Settings table
            await db.execute("""
                CREATE TABLE IF NOT EXISTS settings (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                )
            """)

            await db.commit()
        finally:
            await db.close()

        await self.load_settings()
        await self.load_sessions()
        logger.info("Storage ready at %s (%d sessions)", self.db_path, len(self.sessions))

    async def load_settings(self):
        """Load settings from database"""
        if self.mode != "sqlite":
            return

        async with aiosqlite.connect(self.db_path) as db:
            async with db.execute("SELECT key, value FROM settings") as cursor:
                async for key, value in cursor:
                    try:
                        self.settings_cache[key] = json.loads(value)
                    except json.JSONDecodeError:
                        self.settings_cache[key] = value

    async def load_sessions(self):
        """Load chat sessions and their messages from database"""
        if self.mode != "sqlite":
            return

        async with aiosqlite.connect(self.db_path) as db:
            async with db.execute(
                "SELECT id, title, created_at, updated_at FROM chat_sessions"
            ) as cursor:
                async for session_id, title, created_at, updated_at in cursor:
                    self.sessions[session_id] = ChatSession(
                        id=session_id,
                        title=title,
                        created_at=datetime.fromisoformat(created_at),
                        updated_at=datetime.fromisoformat(updated_at),
                    )
            async with db.execute(
                "SELECT session_id, role, content FROM messages ORDER BY id ASC"
            ) as cursor:
                async for session_id, role, content in cursor:
                    session = self.sessions.get(session_id)
                    if session:
                        session.messages.append(ChatMessage(role=role, content=content))

    async def save_setting(self, key: str, value: Any):
        """Save a setting"""
        self.settings_cache[key] = value

        if self.mode == "sqlite":
            async with aiosqlite.connect(self.db_path) as db:
                await db.execute(
                    "INSERT OR REPLACE INTO settings (key, value) VALUES (?, ?)",
                    (key, json.dumps(value))
                )
                await db.commit()

    async def get_setting(self, key: str, default: Any = None) -> Any:
        """Get a setting"""
        return self.settings_cache.get(key, default)

    async def delete_setting(self, key: str):
        self.settings_cache.pop(key, None)

        if self.mode == "sqlite":
            async with aiosqlite.connect(self.db_path) as db:
                await db.execute("DELETE FROM settings WHERE key = ?", (key,))
                await db.commit()

    async def list_sessions(self) -> List[SessionSummary]:
        """List sessions, most recently updated first"""
        ordered = sorted(self.sessions.values(), key=lambda s: s.updated_at, reverse=True)
        return [
            SessionSummary(id=s.id, title=s.title, created_at=s.created_at, updated_at=s.updated_at)
            for s in ordered
        ]

    async def get_session(self, session_id: str) -> Optional[ChatSession]:
        """Get session with its messages"""
        return self.sessions.get(session_id)

    async def create_session(self, session_id: str, title: str) -> ChatSession:
        """Create session"""
        session = ChatSession(id=session_id, title=title)
        self.sessions[session.id] = session

        if self.mode == "sqlite":
            async with aiosqlite.connect(self.db_path) as db:
                await db.execute(
                    """INSERT OR REPLACE INTO chat_sessions
                    (id, title, created_at, updated_at) VALUES (?, ?, ?, ?)""",
                    (
                        session.id,
                        session.title,
                        session.created_at.isoformat(),
                        session.updated_at.isoformat()
                    )
                )
                await db.commit()

        return session

    async def replace_messages(self, session_id: str, messages: List[ChatMessage]):
        """Replace the whole transcript of a session"""
        session = self.sessions.get(session_id)
        if not session:
            raise KeyError(session_id)

        now = datetime.now(timezone.utc)
        session.messages = list(messages)
        session.updated_at = now

        if self.mode == "sqlite":
            db = await self._connect()
            try:
                await db.execute("DELETE FROM messages WHERE session_id = ?", (session_id,))
                await db.executemany(
                    """INSERT INTO messages (session_id, role, content, created_at)
                    VALUES (?, ?, ?, ?)""",
                    [(session_id, m.role, m.content, now.isoformat()) for m in messages]
                )
                await db.execute(
                    "UPDATE chat_sessions SET updated_at = ? WHERE id = ?",
                    (now.isoformat(), session_id)
                )
                await db.commit()
            finally:
                await db.close()

    async def rename_session(self, session_id: str, title: str):
        """Rename session"""
        session = self.sessions.get(session_id)
        if not session:
            raise KeyError(session_id)

        session.title = title
        session.updated_at = datetime.now(timezone.utc)

        if self.mode == "sqlite":
            async with aiosqlite.connect(self.db_path) as db:
                await db.execute(
                    "UPDATE chat_sessions SET title = ?, updated_at = ? WHERE id = ?",
                    (title, session.updated_at.isoformat(), session_id)
                )
                await db.commit()

    async def delete_session(self, session_id: str):
        """Delete session and, by cascade, its messages"""
        self.sessions.pop(session_id, None)

        if self.mode == "sqlite":
            db = await self._connect()
            try:
                await db.execute("DELETE FROM chat_sessions WHERE id = ?", (session_id,))
                await db.commit()
            finally:
                await db.close()

    async def clear_sessions(self):
        """Delete every session"""
        self.sessions.clear()

        if self.mode == "sqlite":
            async with aiosqlite.connect(self.db_path) as db:
                await db.execute("DELETE FROM messages")
                await db.execute("DELETE FROM chat_sessions")
                await db.commit()
