"""Source fetchers -- one external call each, normalized into SourceResults.

These are the catch boundary for provider errors. Transport exceptions,
timeouts and non-zero provider codes all come back as failed results;
only cancellation propagates.
"""

from __future__ import annotations

import asyncio
import logging
import re

from core.models.plan import MarketDataType, MarketParams
from core.models.results import SourceResult
from core.protocols import LivePriceSource, MarketDataProvider, WebSearchProvider

logger = logging.getLogger(__name__)

# Base symbols recognised in free text for the live price lookup
_SYMBOL_ALIASES = {
    "BTC": "BTC",
    "BITCOIN": "BTC",
    "ETH": "ETH",
    "ETHEREUM": "ETH",
    "SOL": "SOL",
    "SOLANA": "SOL",
}
_SYMBOL_RE = re.compile(r"\b(" + "|".join(_SYMBOL_ALIASES) + r")\b")
_QUOTE_SUFFIXES = ("USDT", "USDC", "USD")

_NEWS_TOPIC_RE = re.compile(r"news|market|performance|sentiment", re.IGNORECASE)


def describe_error(exc: BaseException) -> str:
    """Readable one-line message, including for exceptions with empty str()."""
    if isinstance(exc, (asyncio.TimeoutError, TimeoutError)):
        return "Request timed out"
    text = str(exc).strip()
    return text or type(exc).__name__


def base_symbol(pair: str) -> str:
    """'BTCUSDT' -> 'BTC'."""
    upper = pair.upper()
    for suffix in _QUOTE_SUFFIXES:
        if upper.endswith(suffix) and len(upper) > len(suffix):
            return upper[: -len(suffix)]
    return upper


def extract_base_symbol(text: str) -> str | None:
    """First known coin mentioned in the text, as its base symbol."""
    match = _SYMBOL_RE.search(text.upper())
    if not match:
        return None
    return _SYMBOL_ALIASES[match.group(1)]


class MarketFetcher:
    """Wraps the primary market data provider."""

    def __init__(self, provider: MarketDataProvider, timeout: float = 5.0) -> None:
        self._provider = provider
        self._timeout = timeout

    async def fetch(self, data_type: MarketDataType, params: MarketParams) -> SourceResult:
        resource = data_type.value
        try:
            envelope = await asyncio.wait_for(self._call(data_type, params), timeout=self._timeout)
        except Exception as e:
            logger.error("%s %s fetch failed: %s", self._provider.name, resource, describe_error(e))
            return SourceResult.failed("market", resource, describe_error(e))

        if not envelope.ok:
            message = (
                f"{self._provider.name} API error for {resource}: "
                f"{envelope.message or 'unknown error'} (code {envelope.code})"
            )
            logger.error("%s", message)
            return SourceResult.failed("market", resource, message)

        return SourceResult.success("market", resource, envelope.data)

    async def _call(self, data_type: MarketDataType, params: MarketParams):
        provider = self._provider
        if data_type is MarketDataType.KLINE:
            return await provider.get_kline(params.symbol, params.interval, params.limit)
        if data_type is MarketDataType.TICKERS:
            return await provider.get_tickers(params.symbol)
        if data_type is MarketDataType.FUNDING_RATE_HISTORY:
            return await provider.get_funding_rate_history(params.symbol, params.limit)
        if data_type is MarketDataType.LONG_SHORT_RATIO:
            return await provider.get_long_short_ratio(params.symbol, params.period, params.limit)
        raise ValueError(f"Unsupported market data type: {data_type}")


class LivePriceFetcher:
    """Cross-exchange live price lookup for the coin a query talks about."""

    RESOURCE = "live_price_api"

    def __init__(self, source: LivePriceSource, timeout: float = 5.0) -> None:
        self._source = source
        self._timeout = timeout

    @staticmethod
    def resolve_symbol(query_text: str, hint_pair: str | None = None) -> str | None:
        symbol = extract_base_symbol(query_text)
        if symbol is None and hint_pair:
            symbol = base_symbol(hint_pair)
        return symbol

    async def fetch(self, query_text: str, hint_pair: str | None = None) -> SourceResult:
        symbol = self.resolve_symbol(query_text, hint_pair)
        if symbol is None:
            return SourceResult.failed("live_price", self.RESOURCE, "No symbol found in query")

        try:
            price = await asyncio.wait_for(
                self._source.fetch_live_price(symbol), timeout=self._timeout
            )
        except Exception as e:
            logger.warning("Live price fetch failed for %s: %s", symbol, describe_error(e))
            return SourceResult.failed("live_price", self.RESOURCE, describe_error(e))

        if price is None:
            logger.warning("No live price available for %s", symbol)
            return SourceResult.failed(
                "live_price", self.RESOURCE, f"No price data available for {symbol}"
            )

        return SourceResult.success("live_price", self.RESOURCE, price)


class WebSearchFetcher:
    """One web search per query string."""

    def __init__(
        self,
        provider: WebSearchProvider,
        timeout: float = 12.0,
        depth: str = "basic",
        max_results: int = 5,
    ) -> None:
        self._provider = provider
        self._timeout = timeout
        self._depth = depth
        self._max_results = max_results

    async def fetch(self, query: str) -> SourceResult:
        topic = "news" if _NEWS_TOPIC_RE.search(query) else "general"
        try:
            content = await asyncio.wait_for(
                self._provider.search(
                    query,
                    depth=self._depth,
                    max_results=self._max_results,
                    topic=topic,
                ),
                timeout=self._timeout,
            )
        except Exception as e:
            logger.error("Web search failed for %r: %s", query, describe_error(e))
            return SourceResult.failed("web", query, describe_error(e))

        if not content or not content.strip():
            return SourceResult.failed("web", query, "No web results found")

        return SourceResult.success("web", query, content.strip())
