"""SQLite storage for conversational memory.

Holds chat messages, the rolling long-term memory of each chat and user
profiles. Implements the MemoryStore protocol; the coroutine methods run the
queries inline since every statement is a single indexed lookup.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from datetime import datetime, timezone
from pathlib import Path

from core.models.query import ChatTurn, LongTermMemory, MemoryUpdate, UserProfile

logger = logging.getLogger(__name__)

# Only the last N facts of a single update are accepted
DEFAULT_MAX_NEW_FACTS = 20


class SQLiteMemoryStore:
    """Chat history + long-term memory + profiles in one SQLite file.

    Pass ":memory:" as the path for a throwaway database.
    """

    def __init__(self, db_path: str | Path, max_new_facts: int = DEFAULT_MAX_NEW_FACTS) -> None:
        self._db_path = str(db_path)
        self._max_new_facts = max_new_facts
        self._db: sqlite3.Connection | None = None
        self._init_sqlite()

    @property
    def name(self) -> str:
        return "sqlite"

    # ------------------------------------------------------------------
    # SQLite
    # ------------------------------------------------------------------

    def _init_sqlite(self) -> None:
        """Open the database and create tables if needed."""
        if self._db_path != ":memory:":
            Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)
        self._db = sqlite3.connect(self._db_path)
        self._db.row_factory = sqlite3.Row
        if self._db_path != ":memory:":
            self._db.execute("PRAGMA journal_mode=WAL")

        self._db.executescript("""
            CREATE TABLE IF NOT EXISTS chat_messages (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                chat_id TEXT NOT NULL,
                role TEXT NOT NULL,
                content TEXT NOT NULL,
                created_at TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_chat_messages_chat
                ON chat_messages(chat_id, id);

            CREATE TABLE IF NOT EXISTS chat_memories (
                chat_id TEXT PRIMARY KEY,
                summary TEXT NOT NULL DEFAULT '',
                facts TEXT NOT NULL DEFAULT '[]',
                tags TEXT NOT NULL DEFAULT '[]',
                updated_at TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS user_profiles (
                user_id TEXT PRIMARY KEY,
                experience_level TEXT NOT NULL DEFAULT 'beginner',
                preferences TEXT NOT NULL DEFAULT '{}'
            );
        """)
        self._db.commit()
        logger.info("Memory store initialized at %s", self._db_path)

    @property
    def db(self) -> sqlite3.Connection:
        if self._db is None:
            raise RuntimeError("Store not initialized")
        return self._db

    async def close(self) -> None:
        if self._db:
            self._db.close()
            self._db = None

    # ------------------------------------------------------------------
    # Chat messages
    # ------------------------------------------------------------------

    async def append_message(self, chat_id: str, role: str, content: str) -> None:
        """Append one chat message to the thread."""
        self.db.execute(
            """INSERT INTO chat_messages (chat_id, role, content, created_at)
               VALUES (?, ?, ?, ?)""",
            (chat_id, role, content, datetime.now(timezone.utc).isoformat()),
        )
        self.db.commit()

    async def get_recent(self, chat_id: str, limit: int) -> list[ChatTurn]:
        rows = self.db.execute(
            """SELECT role, content, created_at FROM chat_messages
               WHERE chat_id = ?
               ORDER BY id DESC LIMIT ?""",
            (chat_id, limit),
        ).fetchall()

        return [
            ChatTurn(
                role=row["role"],
                content=row["content"],
                timestamp=datetime.fromisoformat(row["created_at"]),
            )
            for row in reversed(rows)
        ]

    # ------------------------------------------------------------------
    # Long-term memory
    # ------------------------------------------------------------------

    async def get_long_term(self, chat_id: str) -> LongTermMemory:
        row = self.db.execute(
            "SELECT summary, facts, tags FROM chat_memories WHERE chat_id = ?",
            (chat_id,),
        ).fetchone()
        if row is None:
            return LongTermMemory()
        return LongTermMemory(
            summary=row["summary"],
            facts=json.loads(row["facts"]),
            tags=json.loads(row["tags"]),
        )

    async def upsert_long_term(self, chat_id: str, update: MemoryUpdate) -> None:
        """Merge an update into the chat's long-term memory.

        A non-empty summary replaces the stored one. Tags are replaced by
        the update's de-duplicated tag set. Facts are merged as an ordered
        set, and at most the last `max_new_facts` facts of the update are
        taken.
        """
        current = await self.get_long_term(chat_id)

        summary = update.summary.strip() or current.summary
        tags = list(dict.fromkeys(update.tags))

        new_facts = [f.strip() for f in update.facts if f.strip()]
        if self._max_new_facts:
            new_facts = new_facts[-self._max_new_facts:]
        else:
            new_facts = []
        facts = list(dict.fromkeys([*current.facts, *new_facts]))

        self.db.execute(
            """INSERT INTO chat_memories (chat_id, summary, facts, tags, updated_at)
               VALUES (?, ?, ?, ?, ?)
               ON CONFLICT(chat_id) DO UPDATE SET
                   summary = excluded.summary,
                   facts = excluded.facts,
                   tags = excluded.tags,
                   updated_at = excluded.updated_at""",
            (
                chat_id,
                summary,
                json.dumps(facts),
                json.dumps(tags),
                datetime.now(timezone.utc).isoformat(),
            ),
        )
        self.db.commit()
        logger.debug(
            "Updated long-term memory for chat %s (%d facts, %d tags)",
            chat_id, len(facts), len(tags),
        )

    # ------------------------------------------------------------------
    # Profiles
    # ------------------------------------------------------------------

    async def get_profile(self, user_id: str) -> UserProfile:
        row = self.db.execute(
            "SELECT experience_level, preferences FROM user_profiles WHERE user_id = ?",
            (user_id,),
        ).fetchone()
        if row is None:
            return UserProfile()
        return UserProfile(
            experience_level=row["experience_level"],
            preferences=json.loads(row["preferences"]),
        )

    async def upsert_profile(self, user_id: str, profile: UserProfile) -> None:
        self.db.execute(
            """INSERT OR REPLACE INTO user_profiles (user_id, experience_level, preferences)
               VALUES (?, ?, ?)""",
            (user_id, profile.experience_level, json.dumps(profile.preferences)),
        )
        self.db.commit()
