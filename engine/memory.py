"""Memory context -- reads conversational memory for a single request."""

from __future__ import annotations

import logging

from core.models.query import ChatTurn, LongTermMemory, MemoryContext, Query, UserProfile
from core.protocols import MemoryStore

logger = logging.getLogger(__name__)

# Window searched when looking up earlier user questions
_HISTORY_SCAN_LIMIT = 50

_TAG_SYMBOLS = ("btc", "bitcoin", "eth", "ethereum", "sol", "solana", "ada", "cardano")


def derive_tags(text: str) -> list[str]:
    """Topic tags for long-term memory, derived from the user's query."""
    lowered = (text or "").lower()
    tags = [s.upper() for s in _TAG_SYMBOLS if s in lowered]

    if "price" in lowered:
        tags.append("price")
    if "technical" in lowered or "analysis" in lowered:
        tags.append("technical-analysis")
    if "news" in lowered:
        tags.append("news")
    if "prediction" in lowered:
        tags.append("prediction")
    return tags


class MemoryContextBuilder:
    """Assembles MemoryContext from the memory store.

    Strictly read-only. A store that errors degrades to empty context
    rather than failing the request.
    """

    def __init__(self, store: MemoryStore | None, recent_limit: int = 12) -> None:
        self._store = store
        self._recent_limit = recent_limit

    @property
    def has_store(self) -> bool:
        return self._store is not None

    async def build(self, query: Query) -> MemoryContext:
        if self._store is None or not query.chat_id:
            return MemoryContext()

        recent = await self._read_recent(query.chat_id, self._recent_limit)
        long_term = await self._read_long_term(query.chat_id)
        profile = await self._read_profile(query.user_id) if query.user_id else UserProfile()

        return MemoryContext(
            recent_turns=recent,
            long_term_summary=long_term.summary,
            long_term_facts=list(dict.fromkeys(long_term.facts)),
            long_term_tags=list(long_term.tags),
            user_profile=profile,
        )

    async def previous_user_message(self, chat_id: str) -> str | None:
        """Second most recent user message of the chat.

        The most recent one is the question being asked right now.
        """
        turns = await self._read_recent(chat_id, _HISTORY_SCAN_LIMIT)
        user_turns = [t for t in reversed(turns) if t.role == "user"]
        if len(user_turns) < 2:
            return None
        return user_turns[1].content

    async def _read_recent(self, chat_id: str, limit: int) -> list[ChatTurn]:
        try:
            return list(await self._store.get_recent(chat_id, limit))
        except Exception:
            logger.exception("Failed to load recent messages for chat %s", chat_id)
            return []

    async def _read_long_term(self, chat_id: str) -> LongTermMemory:
        try:
            return await self._store.get_long_term(chat_id)
        except Exception:
            logger.exception("Failed to load long-term memory for chat %s", chat_id)
            return LongTermMemory()

    async def _read_profile(self, user_id: str) -> UserProfile:
        try:
            return await self._store.get_profile(user_id)
        except Exception:
            logger.exception("Failed to load profile for user %s", user_id)
            return UserProfile()
