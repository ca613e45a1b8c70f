"""LLM-backed planning and summarization oracles.

Both wrap an LLMProvider. The planning oracle only extracts a JSON object
from the reply; validating it is the planner's job.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any

from core.errors import OracleError
from core.models.query import ChatTurn, MemoryContext, Query
from core.models.results import AggregatedData
from core.protocols import LLMProvider

logger = logging.getLogger(__name__)

PLANNING_PROMPT = """You are Sally, an expert cryptocurrency analysis AI.

ANALYSIS REQUEST: "{query}"

RECENT CONTEXT (most recent last):
{recent}

LONG-TERM SUMMARY: {summary}

KNOWN FACTS ABOUT THE USER:
{facts}

USER PROFILE: Experience Level: {experience}

Return EXACTLY one of these two JSON objects and nothing else:

FORMAT 1 - casual or educational questions (greetings, help, concepts, general advice):
{{
  "isCasual": true,
  "response": "Your helpful response here"
}}

FORMAT 2 - data-driven questions (prices, technical analysis, market data, news):
{{
  "isCasual": false,
  "requiredData": {{
    "market": {{
      "kline": {{"symbol": "BTCUSDT", "interval": "D", "limit": 90}},
      "tickers": {{"symbol": "BTCUSDT"}}
    }},
    "livePrice": true,
    "webSearch": ["specific search query 1", "specific search query 2"],
    "technicalIndicators": ["SMA20", "RSI14", "MACD"]
  }}
}}

AVAILABLE DATA:
- market: kline (candles), tickers (current prices), fundingRateHistory, longShortRatio.
  Symbols are USDT pairs such as BTCUSDT, ETHUSDT, SOLUSDT, XRPUSDT, DOGEUSDT.
  Intervals: "1", "5", "15", "60", "240", "D", "W".
- livePrice: real-time price from several exchanges.
- webSearch: news, sentiment, regulation, educational content.
- technicalIndicators: only SMA<n>, EMA<n>, RSI<n>, HMA<n>, MACD, VWAP, BOLLINGER<n>.
  Indicators need a kline request.

Use the recent context to resolve follow-up questions such as "and ETH?".
Do not add any keys beyond those shown."""

ANSWER_PROMPT = """You are Sally, an expert cryptocurrency analyst.

USER QUERY: "{query}"

RECENT CONTEXT (most recent last):
{recent}

LONG-TERM SUMMARY: {summary}

USER PROFILE: Experience Level: {experience}

CONFIDENCE SCORE: {confidence}/100

AVAILABLE DATA:
{data}

Answer the query using the data above. Quote concrete prices and indicator
levels when they are available, say plainly when a source failed, explain
concepts at the user's experience level, and end with a short disclaimer
that this is not financial advice."""

SUMMARY_PROMPT = """Summarize this conversation in 3-5 sentences, focusing on the user's goals, constraints and key decisions.

Conversation:
{conversation}

Latest assistant response:
{final_text}

Return only the summary."""

FACTS_PROMPT = """Extract 5-10 short facts or preferences the user stated explicitly that will be useful in future conversations (investment preferences, risk tolerance, coins of interest, experience level, goals).

Conversation:
{conversation}

Latest assistant response:
{final_text}

Return a JSON array of strings."""

_OBJECT_RE = re.compile(r"\{[\s\S]*\}")
_ARRAY_RE = re.compile(r"\[[\s\S]*\]")


def _format_turns(turns: list[ChatTurn]) -> str:
    return "\n".join(f"{t.role.upper()}: {t.content}" for t in turns) or "(none)"


def _strip_fences(text: str) -> str:
    cleaned = text.strip()
    if cleaned.startswith("```"):
        lines = cleaned.split("\n")
        cleaned = "\n".join(lines[1:-1])
    return cleaned


def extract_json_object(text: str) -> dict:
    """First-to-last brace span of the reply, parsed as JSON."""
    match = _OBJECT_RE.search(_strip_fences(text))
    if not match:
        raise OracleError("No JSON object found in model response")
    try:
        data = json.loads(match.group(0))
    except json.JSONDecodeError as e:
        raise OracleError(f"Malformed JSON in model response: {e}") from e
    if not isinstance(data, dict):
        raise OracleError("Model response is not a JSON object")
    return data


class LLMPlanningOracle:
    """Asks the LLM which data a query needs. Implements PlanningOracle."""

    def __init__(self, llm: LLMProvider) -> None:
        self._llm = llm

    def build_prompt(self, query: Query, memory: MemoryContext) -> str:
        return PLANNING_PROMPT.format(
            query=query.text,
            recent=memory.format_recent() or "(none)",
            summary=memory.long_term_summary[:1000] or "(none)",
            facts="\n".join(f"- {f}" for f in memory.long_term_facts) or "(none)",
            experience=memory.user_profile.experience_level,
        )

    async def plan(self, query: Query, memory: MemoryContext) -> dict:
        messages = [{"role": "user", "content": self.build_prompt(query, memory)}]
        response = await self._llm.complete(messages, temperature=0.0)
        if not response or not response.strip():
            raise OracleError(f"Empty planning response from {self._llm.name}")
        return extract_json_object(response)


class LLMSummarizer:
    """Final answers, conversation summaries and fact extraction.

    Implements SummarizationOracle. Summary and fact extraction degrade to
    empty results; the final answer raises so the caller can fall back.
    """

    def __init__(self, llm: LLMProvider) -> None:
        self._llm = llm

    async def answer(
        self,
        query: Query,
        memory: MemoryContext,
        aggregated: AggregatedData,
        confidence: int | None = None,
    ) -> str:
        prompt = ANSWER_PROMPT.format(
            query=query.text,
            recent=memory.format_recent() or "(none)",
            summary=memory.long_term_summary[:1000] or "(none)",
            experience=memory.user_profile.experience_level,
            confidence=confidence if confidence is not None else "n/a",
            data=json.dumps(aggregated.to_prompt_dict(), indent=2, default=str),
        )
        response = await self._llm.complete([{"role": "user", "content": prompt}])
        if not response or not response.strip():
            raise OracleError(f"Empty answer from {self._llm.name}")
        return response.strip()

    async def summarize_conversation(self, turns: list[ChatTurn], final_text: str) -> str:
        if not turns:
            return ""
        prompt = SUMMARY_PROMPT.format(conversation=_format_turns(turns), final_text=final_text)
        try:
            return (await self._llm.complete([{"role": "user", "content": prompt}])).strip()
        except Exception as e:
            logger.warning("Failed to generate conversation summary: %s", e)
            return ""

    async def extract_facts(self, turns: list[ChatTurn], final_text: str) -> list[str]:
        if not turns:
            return []
        prompt = FACTS_PROMPT.format(conversation=_format_turns(turns), final_text=final_text)
        try:
            raw = await self._llm.complete([{"role": "user", "content": prompt}])
        except Exception as e:
            logger.warning("Failed to extract facts: %s", e)
            return []
        return _parse_facts(raw)


def _parse_facts(raw: str) -> list[str]:
    match = _ARRAY_RE.search(raw or "")
    if not match:
        return []
    try:
        items: Any = json.loads(match.group(0))
    except json.JSONDecodeError:
        logger.warning("Fact extraction returned malformed JSON")
        return []
    if not isinstance(items, list):
        return []
    return [str(i).strip() for i in items if isinstance(i, (str, int, float)) and str(i).strip()]
