"""Coinbase Exchange tickers -- second choice of the fallback pool."""

from __future__ import annotations

import logging

import httpx

from core.models.market import BackupQuote

logger = logging.getLogger(__name__)

_BASE_URL = "https://api.exchange.coinbase.com"

_SYMBOL_MAP = {
    "BTCUSDT": "BTC-USD",
    "ETHUSDT": "ETH-USD",
    "SOLUSDT": "SOL-USD",
}


class CoinbaseFallback:
    """Implements the FallbackProvider protocol with Coinbase Exchange's public API.

    The ticker endpoint carries no 24h change, so quotes report 0.
    """

    def __init__(
        self,
        priority: int = 2,
        base_url: str = _BASE_URL,
        timeout: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._priority = priority
        self._client = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            headers={"User-Agent": "Sally/0.1"},
            transport=transport,
        )

    @property
    def name(self) -> str:
        return "coinbase"

    @property
    def priority(self) -> int:
        return self._priority

    def map_symbol(self, symbol: str) -> str | None:
        return _SYMBOL_MAP.get(symbol.upper())

    async def probe(self) -> bool:
        response = await self._client.get("/products")
        response.raise_for_status()
        return True

    async def fetch_ticker(self, provider_symbol: str) -> BackupQuote | None:
        response = await self._client.get(f"/products/{provider_symbol}/ticker")
        response.raise_for_status()
        data = response.json()

        if "price" not in data:
            return None
        return BackupQuote(
            provider_id=self.name,
            price=float(data["price"]),
            volume_24h=float(data.get("volume") or 0),
        )

    async def close(self) -> None:
        await self._client.aclose()
