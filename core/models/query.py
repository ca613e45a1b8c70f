"""Request and conversational-memory models."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class Query(BaseModel):
    """A single user question. Never mutated after creation."""

    model_config = ConfigDict(frozen=True)

    text: str
    chat_id: str | None = None
    user_id: str | None = None


class ChatTurn(BaseModel):
    """One message of a chat thread, as returned by the memory store."""

    model_config = ConfigDict(frozen=True)

    role: Literal["user", "assistant"]
    content: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class UserProfile(BaseModel):
    model_config = ConfigDict(frozen=True)

    experience_level: str = "beginner"
    preferences: dict = Field(default_factory=dict)


class LongTermMemory(BaseModel):
    """Rolling per-chat memory: summary, accumulated facts, topic tags."""

    summary: str = ""
    facts: list[str] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)


class MemoryContext(BaseModel):
    """Short- and long-term context assembled for one request.

    Built fresh per request and read-only while planning and aggregating.
    """

    model_config = ConfigDict(frozen=True)

    recent_turns: list[ChatTurn] = Field(default_factory=list)
    long_term_summary: str = ""
    long_term_facts: list[str] = Field(default_factory=list)
    long_term_tags: list[str] = Field(default_factory=list)
    user_profile: UserProfile = Field(default_factory=UserProfile)

    @property
    def has_history(self) -> bool:
        return len(self.recent_turns) > 0

    def prior_turns(self, current_text: str) -> list[ChatTurn]:
        """Recent turns minus a trailing user turn holding the current question.

        Callers may store the question before handling it, so the newest turn
        can be the request itself rather than history.
        """
        turns = list(self.recent_turns)
        if turns and turns[-1].role == "user" and turns[-1].content == current_text:
            turns.pop()
        return turns

    def format_recent(self) -> str:
        """Render recent turns as 'ROLE: content' lines, oldest first."""
        return "\n".join(f"{t.role.upper()}: {t.content}" for t in self.recent_turns)


class MemoryUpdate(BaseModel):
    """Long-term memory changes produced by one answered request.

    The engine only emits this value; applying it is the store's job.
    """

    chat_id: str
    summary: str = ""
    facts: list[str] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
