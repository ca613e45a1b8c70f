"""Provider fallback pool -- backup tickers when the primary market API fails.

Activation is decided once, when the pool is probed. The pool is then
immutable and safe to share between concurrent requests; re-probing is
an explicit `refresh()` that returns a new pool.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Sequence

from pydantic import BaseModel, ConfigDict

from core.models.market import FallbackTicker
from core.protocols import FallbackProvider

logger = logging.getLogger(__name__)


class ProviderRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    priority: int
    is_active: bool


class ProviderPool:
    """Priority-ordered set of fallback providers with fixed activation state.

    Usage:
        pool = await ProviderPool.probe([binance, coinbase, coingecko])
        ticker = await pool.get_data("BTCUSDT")  # FallbackTicker | None
    """

    def __init__(
        self,
        providers: Sequence[FallbackProvider],
        active: dict[str, bool],
        fetch_timeout: float = 5.0,
        probe_timeout: float = 5.0,
    ) -> None:
        ordered = sorted(providers, key=lambda p: p.priority)
        self._providers: dict[str, FallbackProvider] = {p.name: p for p in ordered}
        self._records: tuple[ProviderRecord, ...] = tuple(
            ProviderRecord(id=p.name, priority=p.priority, is_active=bool(active.get(p.name)))
            for p in ordered
        )
        self._fetch_timeout = fetch_timeout
        self._probe_timeout = probe_timeout

    @classmethod
    async def probe(
        cls,
        providers: Sequence[FallbackProvider],
        probe_timeout: float = 5.0,
        fetch_timeout: float = 5.0,
    ) -> ProviderPool:
        """Run every provider's reachability check concurrently and build the pool."""

        async def _check(provider: FallbackProvider) -> bool:
            try:
                return bool(await asyncio.wait_for(provider.probe(), timeout=probe_timeout))
            except Exception as e:
                logger.warning("Fallback provider %s failed to initialize: %s", provider.name, e)
                return False

        results = await asyncio.gather(*(_check(p) for p in providers))
        active = {p.name: ok for p, ok in zip(providers, results)}

        count = sum(1 for ok in active.values() if ok)
        logger.info("Fallback pool ready with %d/%d providers", count, len(providers))
        return cls(providers, active, fetch_timeout=fetch_timeout, probe_timeout=probe_timeout)

    async def refresh(self) -> ProviderPool:
        """Re-probe all providers. Returns a new pool; this one is unchanged."""
        return await ProviderPool.probe(
            list(self._providers.values()),
            probe_timeout=self._probe_timeout,
            fetch_timeout=self._fetch_timeout,
        )

    @property
    def records(self) -> tuple[ProviderRecord, ...]:
        return self._records

    @property
    def active_ids(self) -> list[str]:
        return [r.id for r in self._records if r.is_active]

    async def get_data(self, symbol: str) -> FallbackTicker | None:
        """Ticker from the first active provider that returns one.

        Providers without a mapping for the symbol are skipped. A provider
        error or timeout just moves on to the next one.
        """
        symbol = symbol.upper()
        for record in self._records:
            if not record.is_active:
                continue
            provider = self._providers[record.id]
            provider_symbol = provider.map_symbol(symbol)
            if provider_symbol is None:
                continue

            try:
                quote = await asyncio.wait_for(
                    provider.fetch_ticker(provider_symbol), timeout=self._fetch_timeout
                )
            except Exception as e:
                logger.warning("Fallback provider %s failed for %s: %s", record.id, symbol, e)
                continue

            if quote is not None:
                logger.info("Fallback success: got %s from %s", symbol, record.id)
                return FallbackTicker.from_quote(symbol, quote)

        logger.warning("Fallback failed: no backup data available for %s", symbol)
        return None
