"""Planner -- classifies a query and decides what data it needs.

Order of decisions:
1. Pure greetings with no chat history are answered without the oracle.
2. Otherwise the planning oracle is asked for a plan, which must match one
   of the two accepted shapes exactly.
3. Anything else (oracle error, timeout, malformed plan) goes to the
   deterministic keyword planner, which needs no external calls.

The "what did I ask" shortcut is detected here but answered by the
orchestrator, since it needs the memory store rather than a plan.
"""

from __future__ import annotations

import asyncio
import logging
import re
from typing import Any

from pydantic import ValidationError

from core.errors import PlanValidationError
from core.models.plan import (
    DataPlan,
    IndicatorSpec,
    MarketDataType,
    MarketParams,
    OracleCasualPlan,
    OracleDataPlan,
)
from core.models.query import MemoryContext, Query
from core.protocols import PlanningOracle

logger = logging.getLogger(__name__)

CASUAL_PHRASES = frozenset({
    "hi",
    "hello",
    "hey",
    "thanks",
    "thank you",
    "good morning",
    "good evening",
})

LAST_QUESTION_PHRASES = frozenset({
    "what did i ask just now",
    "what did i ask",
    "what was my last question",
    "last question",
    "what was my previous question",
    "my last question",
})

GREETING_RESPONSE = (
    "Hello! I'm Sally, your crypto analysis assistant. I can answer market "
    "questions by deciding which data sources and indicators to use. "
    "What would you like to know?"
)

DEFAULT_SYMBOL = "BTCUSDT"

# Checked in order; first substring hit wins
FALLBACK_SYMBOLS = (
    ("btc", "BTCUSDT"),
    ("bitcoin", "BTCUSDT"),
    ("eth", "ETHUSDT"),
    ("ethereum", "ETHUSDT"),
    ("sol", "SOLUSDT"),
    ("solana", "SOLUSDT"),
)

FALLBACK_INDICATORS = ("SMA20", "RSI14", "MACD")

_TRAILING_PUNCT_RE = re.compile(r"[\s!?.]+$")


def _normalize(text: str) -> str:
    collapsed = " ".join((text or "").lower().split())
    return _TRAILING_PUNCT_RE.sub("", collapsed)


def is_casual_only(text: str) -> bool:
    """True when the query is nothing but a greeting or a thank-you."""
    return _normalize(text) in CASUAL_PHRASES


def is_last_question_query(text: str) -> bool:
    return _normalize(text) in LAST_QUESTION_PHRASES


def detect_symbol(text: str) -> str:
    lowered = (text or "").lower()
    for keyword, symbol in FALLBACK_SYMBOLS:
        if keyword in lowered:
            return symbol
    return DEFAULT_SYMBOL


def fallback_plan(text: str) -> DataPlan:
    """Keyword-driven plan used whenever the oracle can't be trusted."""
    lowered = (text or "").lower()
    symbol = detect_symbol(text)

    market: dict[MarketDataType, MarketParams] = {}
    queries: list[str] = []
    indicators: list[IndicatorSpec] = []
    wants_live_price = False

    if "price" in lowered or "cost" in lowered:
        market[MarketDataType.TICKERS] = MarketParams(symbol=symbol)
        wants_live_price = True
        queries.append(f"{symbol} current price")
    elif "analysis" in lowered or "technical" in lowered:
        market[MarketDataType.KLINE] = MarketParams(symbol=symbol, interval="D", limit=50)
        market[MarketDataType.TICKERS] = MarketParams(symbol=symbol)
        indicators = [IndicatorSpec.parse(name) for name in FALLBACK_INDICATORS]
        queries.append(f"{symbol} technical analysis")
    else:
        queries.append(f"{text.strip()} cryptocurrency")
        market[MarketDataType.TICKERS] = MarketParams(symbol=symbol)

    return DataPlan(
        is_casual=False,
        required_market=market,
        wants_live_price=wants_live_price,
        web_search_queries=queries,
        requested_indicators=indicators,
    )


def parse_oracle_plan(raw: Any) -> DataPlan:
    """Validate oracle output against the two accepted shapes.

    Raises PlanValidationError for anything else; no partial plans.
    """
    if not isinstance(raw, dict):
        raise PlanValidationError(f"Plan must be an object, got {type(raw).__name__}")

    flag = raw.get("isCasual")
    try:
        if flag is True:
            return OracleCasualPlan.model_validate(raw).to_data_plan()
        if flag is False:
            return OracleDataPlan.model_validate(raw).to_data_plan()
    except ValidationError as e:
        raise PlanValidationError(f"Invalid plan: {e.error_count()} validation error(s)") from e
    raise PlanValidationError("Plan is missing a boolean 'isCasual'")


class Planner:
    """Turns a query plus memory into a DataPlan. Never fails on oracle trouble."""

    def __init__(self, oracle: PlanningOracle | None = None, timeout: float = 45.0) -> None:
        self._oracle = oracle
        self._timeout = timeout

    async def plan(self, query: Query, memory: MemoryContext) -> DataPlan:
        if is_casual_only(query.text) and not memory.prior_turns(query.text):
            return DataPlan.casual(GREETING_RESPONSE)

        if self._oracle is None:
            logger.info("No planning oracle configured, using fallback plan")
            return fallback_plan(query.text)

        try:
            raw = await asyncio.wait_for(self._oracle.plan(query, memory), timeout=self._timeout)
            plan = parse_oracle_plan(raw)
        except PlanValidationError as e:
            logger.warning("Oracle plan rejected, using fallback plan: %s", e)
            return fallback_plan(query.text)
        except Exception as e:
            logger.warning(
                "Oracle planning failed (%s), using fallback plan: %s", type(e).__name__, e
            )
            return fallback_plan(query.text)

        logger.info(
            "Oracle plan: casual=%s market=%s live_price=%s web=%d indicators=%s",
            plan.is_casual,
            [t.value for t in plan.required_market],
            plan.wants_live_price,
            len(plan.web_search_queries),
            [s.key for s in plan.requested_indicators],
        )
        return plan
