"""Core protocols -- the extension points of the analysis engine.

The engine imports these protocols. Plugins implement them.
The engine NEVER imports concrete implementations.

All protocols use Python's structural subtyping (typing.Protocol):
if your class has the right methods, it implements the protocol.
No inheritance required.
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from core.models.market import BackupQuote, LivePrice, ProviderEnvelope
from core.models.query import (
    ChatTurn,
    LongTermMemory,
    MemoryContext,
    MemoryUpdate,
    Query,
    UserProfile,
)
from core.models.results import AggregatedData


# ---------------------------------------------------------------------------
# 1. LLMProvider -- call language model APIs
# ---------------------------------------------------------------------------

@runtime_checkable
class LLMProvider(Protocol):
    """Abstracts chat-completion calls.

    Implementations call LLM APIs via httpx (no SDK required).
    """

    @property
    def name(self) -> str:
        """Provider name, e.g. 'openrouter', 'openai'."""
        ...

    async def complete(self, messages: list[dict], **kwargs: Any) -> str:
        """Send messages to the model and return the text response."""
        ...


# ---------------------------------------------------------------------------
# 2. MarketDataProvider -- the primary market API
# ---------------------------------------------------------------------------

@runtime_checkable
class MarketDataProvider(Protocol):
    """Typed calls against the primary derivatives market API.

    Every call returns a ProviderEnvelope; a non-zero `code` is an
    application-level failure. Transport problems are raised.
    """

    @property
    def name(self) -> str:
        ...

    async def get_kline(self, symbol: str, interval: str, limit: int) -> ProviderEnvelope:
        """Candles for the symbol. `data` holds Candle objects, oldest first."""
        ...

    async def get_tickers(self, symbol: str) -> ProviderEnvelope:
        ...

    async def get_funding_rate_history(self, symbol: str, limit: int) -> ProviderEnvelope:
        ...

    async def get_long_short_ratio(self, symbol: str, period: str, limit: int) -> ProviderEnvelope:
        ...


# ---------------------------------------------------------------------------
# 3. FallbackProvider -- backup ticker source used by the fallback pool
# ---------------------------------------------------------------------------

@runtime_checkable
class FallbackProvider(Protocol):
    """Alternate exchange consulted only when the primary ticker fetch fails."""

    @property
    def name(self) -> str:
        ...

    @property
    def priority(self) -> int:
        """Lower is tried first."""
        ...

    def map_symbol(self, symbol: str) -> str | None:
        """Provider-specific symbol for a canonical pair, or None if unsupported."""
        ...

    async def probe(self) -> bool:
        """Lightweight reachability check run once when the pool is built."""
        ...

    async def fetch_ticker(self, provider_symbol: str) -> BackupQuote | None:
        ...


# ---------------------------------------------------------------------------
# 4. LivePriceSource -- real-time spot price lookup
# ---------------------------------------------------------------------------

@runtime_checkable
class LivePriceSource(Protocol):

    @property
    def name(self) -> str:
        ...

    async def fetch_live_price(self, symbol: str) -> LivePrice | None:
        """Spot USD price for a base symbol such as 'BTC', or None."""
        ...


# ---------------------------------------------------------------------------
# 5. WebSearchProvider -- search + summarize the web
# ---------------------------------------------------------------------------

@runtime_checkable
class WebSearchProvider(Protocol):

    @property
    def name(self) -> str:
        ...

    async def search(
        self,
        query: str,
        depth: str = "basic",
        max_results: int = 5,
        topic: str | None = None,
    ) -> str | None:
        """Condensed text context for the query, or None when nothing was found."""
        ...


# ---------------------------------------------------------------------------
# 6. MemoryStore -- conversational memory persistence
# ---------------------------------------------------------------------------

@runtime_checkable
class MemoryStore(Protocol):
    """Where chat turns, long-term memory and profiles live.

    The engine only reads from it during a request. Writes happen after
    the request, driven by the MemoryUpdate the orchestrator emits.
    """

    @property
    def name(self) -> str:
        ...

    async def get_recent(self, chat_id: str, limit: int) -> list[ChatTurn]:
        """Most recent turns of the chat, oldest first."""
        ...

    async def get_long_term(self, chat_id: str) -> LongTermMemory:
        ...

    async def get_profile(self, user_id: str) -> UserProfile:
        ...

    async def upsert_long_term(self, chat_id: str, update: MemoryUpdate) -> None:
        ...


# ---------------------------------------------------------------------------
# 7. PlanningOracle -- decides what data a query needs
# ---------------------------------------------------------------------------

@runtime_checkable
class PlanningOracle(Protocol):
    """Returns the raw plan object for a query.

    The result is untrusted: the planner validates it and falls back to
    deterministic planning on any mismatch, error or timeout.
    """

    async def plan(self, query: Query, memory: MemoryContext) -> dict:
        ...


# ---------------------------------------------------------------------------
# 8. SummarizationOracle -- natural-language generation
# ---------------------------------------------------------------------------

@runtime_checkable
class SummarizationOracle(Protocol):

    async def answer(
        self,
        query: Query,
        memory: MemoryContext,
        aggregated: AggregatedData,
        confidence: int | None = None,
    ) -> str:
        """Final user-facing answer built from the aggregated data."""
        ...

    async def summarize_conversation(self, turns: list[ChatTurn], final_text: str) -> str:
        ...

    async def extract_facts(self, turns: list[ChatTurn], final_text: str) -> list[str]:
        ...
