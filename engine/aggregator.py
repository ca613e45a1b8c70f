"""Data aggregator -- executes a DataPlan against the source fetchers.

Market, live price and web fetches are independent, so they run together
in one task group bounded by a semaphore. A failed tickers fetch is
followed by a compensating fetch from the fallback pool for the same
symbol. Indicators are computed once the price series is in.

No individual failure aborts the batch: every attempt leaves a
SourceResult behind, recorded in plan order.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from core.models.market import Candle
from core.models.plan import DataPlan, IndicatorSpec, MarketDataType, MarketParams
from core.models.query import Query
from core.models.results import AggregatedData, SourceResult, WebContent
from engine.fallback_pool import ProviderPool
from engine.fetchers import LivePriceFetcher, MarketFetcher, WebSearchFetcher, describe_error
from engine.indicators import compute_indicator

logger = logging.getLogger(__name__)

INDICATORS_RESOURCE = "technical_indicators"


class DataAggregator:
    """Runs plans against whichever fetchers are configured.

    Any fetcher may be None; requests that need it are recorded as failed.
    """

    def __init__(
        self,
        market: MarketFetcher | None = None,
        fallback_pool: ProviderPool | None = None,
        live_price: LivePriceFetcher | None = None,
        web_search: WebSearchFetcher | None = None,
        max_concurrency: int = 4,
    ) -> None:
        self._market = market
        self._pool = fallback_pool
        self._live_price = live_price
        self._web = web_search
        self._max_concurrency = max(1, max_concurrency)

    async def aggregate(self, plan: DataPlan, query: Query) -> AggregatedData:
        data = AggregatedData()
        if plan.is_casual:
            return data

        market_items = list(plan.required_market.items())
        semaphore = asyncio.Semaphore(self._max_concurrency)

        async with asyncio.TaskGroup() as tg:
            market_tasks = [
                tg.create_task(self._fetch_market(data_type, params, semaphore))
                for data_type, params in market_items
            ]
            live_task = (
                tg.create_task(self._fetch_live_price(plan, query, semaphore))
                if plan.wants_live_price
                else None
            )
            web_tasks = [
                tg.create_task(self._fetch_web(q, semaphore))
                for q in plan.web_search_queries
            ]

        for (data_type, _), task in zip(market_items, market_tasks):
            primary, fallback = task.result()
            data.record(primary)
            if primary.ok:
                self._store_market_payload(data, data_type, primary.payload)
            if fallback is not None:
                data.record(fallback)
                if fallback.ok:
                    data.fallback_ticker = fallback.payload

        if live_task is not None:
            result = live_task.result()
            data.record(result)
            if result.ok:
                data.live_price = result.payload

        if web_tasks:
            data.web_content = []
            for task in web_tasks:
                result = task.result()
                data.record(result)
                if result.ok:
                    data.web_content.append(WebContent(query=result.resource, content=result.payload))

        if plan.requested_indicators:
            self._compute_indicators(data, plan.requested_indicators)

        logger.info(
            "Aggregated %d/%d sources successfully", data.success_count, data.total_count
        )
        return data

    # ------------------------------------------------------------------
    # Fetch steps (each contained: never raises except on cancellation)
    # ------------------------------------------------------------------

    async def _fetch_market(
        self,
        data_type: MarketDataType,
        params: MarketParams,
        semaphore: asyncio.Semaphore,
    ) -> tuple[SourceResult, SourceResult | None]:
        if self._market is None:
            primary = SourceResult.failed(
                "market", data_type.value, "No market data provider configured"
            )
        else:
            async with semaphore:
                primary = await self._contained(
                    self._market.fetch(data_type, params), "market", data_type.value
                )

        fallback = None
        if not primary.ok and data_type is MarketDataType.TICKERS:
            async with semaphore:
                fallback = await self._fetch_fallback(params.symbol)
        return primary, fallback

    async def _fetch_fallback(self, symbol: str) -> SourceResult:
        if self._pool is None:
            return SourceResult.failed("fallback", "universal_fallback", "No fallback providers configured")
        try:
            ticker = await self._pool.get_data(symbol)
        except Exception as e:
            logger.exception("Fallback pool raised for %s", symbol)
            return SourceResult.failed("fallback", "universal_fallback", describe_error(e))

        if ticker is None:
            return SourceResult.failed(
                "fallback", "universal_fallback", f"No backup data available for {symbol}"
            )
        return SourceResult.success("fallback", f"{ticker.provider_id}_ticker", ticker)

    async def _fetch_live_price(
        self, plan: DataPlan, query: Query, semaphore: asyncio.Semaphore
    ) -> SourceResult:
        if self._live_price is None:
            return SourceResult.failed(
                "live_price", LivePriceFetcher.RESOURCE, "No live price source configured"
            )
        async with semaphore:
            return await self._contained(
                self._live_price.fetch(query.text, plan.primary_symbol),
                "live_price",
                LivePriceFetcher.RESOURCE,
            )

    async def _fetch_web(self, search_query: str, semaphore: asyncio.Semaphore) -> SourceResult:
        if self._web is None:
            return SourceResult.failed("web", search_query, "No web search provider configured")
        async with semaphore:
            return await self._contained(self._web.fetch(search_query), "web", search_query)

    @staticmethod
    async def _contained(coro, source_type, resource: str) -> SourceResult:
        try:
            return await coro
        except Exception as e:
            logger.exception("Unexpected error fetching %s %s", source_type, resource)
            return SourceResult.failed(source_type, resource, describe_error(e))

    # ------------------------------------------------------------------
    # Result assembly
    # ------------------------------------------------------------------

    @staticmethod
    def _store_market_payload(data: AggregatedData, data_type: MarketDataType, payload: Any) -> None:
        if data_type is MarketDataType.KLINE:
            data.price_series = [c for c in (payload or []) if isinstance(c, Candle)]
        else:
            data.market_data[data_type.value] = payload

    @staticmethod
    def _compute_indicators(data: AggregatedData, specs: list[IndicatorSpec]) -> None:
        if not data.price_series:
            logger.warning("Indicators requested but no price series was fetched")
            data.indicator_values = {}
            return

        values: dict[str, Any] = {}
        failed: list[str] = []
        for spec in specs:
            try:
                values[spec.key] = compute_indicator(spec, data.price_series)
            except Exception:
                logger.exception("Failed to calculate %s", spec.key)
                failed.append(spec.key)

        data.indicator_values = values
        if values:
            data.record(SourceResult.success("calculation", INDICATORS_RESOURCE, list(values)))
        else:
            data.record(SourceResult.failed(
                "calculation", INDICATORS_RESOURCE, f"All indicators failed: {', '.join(failed)}"
            ))
