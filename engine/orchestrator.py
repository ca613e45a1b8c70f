"""Orchestrator -- answers one market question end to end.

For each query the orchestrator:
1. Short-circuits "what did I ask" questions from chat history
2. Builds the memory context (read-only)
3. Plans the data the query needs
4. Aggregates market, live price, web and indicator data
5. Scores confidence
6. Generates the final answer through the summarization oracle
7. Emits a MemoryUpdate for the caller to apply
"""

from __future__ import annotations

import asyncio
import logging

from core.models.query import MemoryContext, MemoryUpdate, Query
from core.models.results import AggregatedData, AnalysisResult, SourceResult
from core.protocols import SummarizationOracle
from engine.aggregator import DataAggregator
from engine.confidence import confidence_score
from engine.fetchers import describe_error
from engine.memory import MemoryContextBuilder, derive_tags
from engine.planner import Planner, is_last_question_query

logger = logging.getLogger(__name__)

NO_PREVIOUS_QUESTION = "No previous question found in this chat."

AGGREGATION_FAILED_RESPONSE = (
    "I couldn't gather market data for that question right now. "
    "Please try again in a moment."
)


class AnalysisOrchestrator:
    """Sequences memory, planning, aggregation, scoring and summarization."""

    def __init__(
        self,
        memory: MemoryContextBuilder,
        planner: Planner,
        aggregator: DataAggregator,
        summarizer: SummarizationOracle | None = None,
        oracle_timeout: float = 45.0,
    ) -> None:
        self._memory = memory
        self._planner = planner
        self._aggregator = aggregator
        self._summarizer = summarizer
        self._oracle_timeout = oracle_timeout

    async def handle(self, query: Query) -> tuple[AnalysisResult, MemoryUpdate | None]:
        """Answer a query.

        Returns the result and, for analysis answers in a chat, the
        long-term memory update to apply. Casual answers return None.
        """
        # Step 1: "what did I ask" is answered from history, no planning
        if is_last_question_query(query.text) and query.chat_id and self._memory.has_store:
            previous = await self._memory.previous_user_message(query.chat_id)
            response = (
                f'Your previous question was: "{previous}"' if previous else NO_PREVIOUS_QUESTION
            )
            return AnalysisResult(is_analysis=False, response=response), None

        # Step 2: memory context
        memory = await self._memory.build(query)

        # Step 3: plan
        plan = await self._planner.plan(query, memory)
        if plan.is_casual:
            logger.info("Handling as casual conversation")
            return AnalysisResult(is_analysis=False, response=plan.casual_response or ""), None

        # Step 4: aggregate
        try:
            aggregated = await self._aggregator.aggregate(plan, query)
        except Exception as e:
            logger.exception("Aggregation failed")
            return self._failure_result(e), None

        # Step 5: confidence
        score = confidence_score(aggregated)
        logger.info("Confidence score: %d", score)

        # Step 6: final answer
        response = await self._answer(query, memory, aggregated, score)

        # Step 7: memory update
        update = None
        if query.chat_id:
            update = await self._memory_update(query, memory, response)

        result = AnalysisResult(
            is_analysis=True,
            response=response,
            data_sources=list(aggregated.results),
            confidence_score=score,
            has_live_price=aggregated.live_price is not None,
        )
        return result, update

    async def _answer(
        self,
        query: Query,
        memory: MemoryContext,
        aggregated: AggregatedData,
        score: int,
    ) -> str:
        if self._summarizer is None:
            return render_digest(aggregated, score)
        try:
            return await asyncio.wait_for(
                self._summarizer.answer(query, memory, aggregated, confidence=score),
                timeout=self._oracle_timeout,
            )
        except Exception:
            logger.exception("Final answer generation failed, returning data digest")
            return render_digest(aggregated, score)

    async def _memory_update(
        self, query: Query, memory: MemoryContext, response: str
    ) -> MemoryUpdate:
        summary = ""
        facts: list[str] = []
        if self._summarizer is not None:
            summary_result, facts_result = await asyncio.gather(
                asyncio.wait_for(
                    self._summarizer.summarize_conversation(memory.recent_turns, response),
                    timeout=self._oracle_timeout,
                ),
                asyncio.wait_for(
                    self._summarizer.extract_facts(memory.recent_turns, response),
                    timeout=self._oracle_timeout,
                ),
                return_exceptions=True,
            )
            if isinstance(summary_result, BaseException):
                logger.warning("Conversation summary failed: %s", describe_error(summary_result))
            else:
                summary = summary_result
            if isinstance(facts_result, BaseException):
                logger.warning("Fact extraction failed: %s", describe_error(facts_result))
            else:
                facts = facts_result

        return MemoryUpdate(
            chat_id=query.chat_id,
            summary=summary,
            facts=facts,
            tags=derive_tags(query.text),
        )

    @staticmethod
    def _failure_result(error: Exception) -> AnalysisResult:
        failed = SourceResult.failed("calculation", "aggregation", describe_error(error))
        score = confidence_score(AggregatedData(results=[failed]))
        return AnalysisResult(
            is_analysis=True,
            response=AGGREGATION_FAILED_RESPONSE,
            data_sources=[failed],
            confidence_score=score,
        )


def render_digest(aggregated: AggregatedData, score: int) -> str:
    """Plain-text answer used when no summarization oracle is available."""
    lines = [f"Here's what I could gather (confidence {score}/100):"]

    if aggregated.live_price is not None:
        lp = aggregated.live_price
        lines.append(f"- Live price: {lp.symbol} ${lp.price:,.2f} (via {lp.provider_id})")
    if aggregated.fallback_ticker is not None:
        ft = aggregated.fallback_ticker
        lines.append(
            f"- Backup ticker: {ft.symbol} ${ft.last_price:,.2f} (via {ft.provider_id})"
        )
    if aggregated.price_series:
        last = aggregated.price_series[-1]
        lines.append(f"- Last close: {last.close:,.2f} over {len(aggregated.price_series)} candles")
    for name, value in (aggregated.indicator_values or {}).items():
        lines.append(f"- {name}: {_format_indicator(value)}")
    for item in aggregated.web_content or []:
        snippet = item.content.strip().splitlines()[0][:200] if item.content.strip() else ""
        lines.append(f"- {item.query}: {snippet}")

    failed = [r for r in aggregated.results if not r.ok]
    if failed:
        lines.append("Unavailable sources: " + ", ".join(f"{r.source_type}:{r.resource}" for r in failed))
    if len(lines) == 1:
        lines.append("- No data sources returned results.")
    return "\n".join(lines)


def _format_indicator(value) -> str:
    if value is None:
        return "insufficient data"
    if isinstance(value, float):
        return f"{value:,.2f}"
    if isinstance(value, list):
        latest = next((v for v in reversed(value) if v is not None), None)
        return f"{latest:,.2f} (latest)" if latest is not None else "insufficient data"
    if hasattr(value, "model_dump"):
        parts = []
        for k, v in value.model_dump().items():
            parts.append(f"{k}={v:,.2f}" if isinstance(v, float) else f"{k}={v}")
        return ", ".join(parts)
    return str(value)
