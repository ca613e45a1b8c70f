"""Binance spot tickers -- first choice of the fallback pool."""

from __future__ import annotations

import logging

import httpx

from core.models.market import BackupQuote

logger = logging.getLogger(__name__)

_BASE_URL = "https://api.binance.com"

_SYMBOL_MAP = {
    "BTCUSDT": "BTCUSDT",
    "ETHUSDT": "ETHUSDT",
    "SOLUSDT": "SOLUSDT",
}


class BinanceFallback:
    """Implements the FallbackProvider protocol with Binance's public API."""

    def __init__(
        self,
        priority: int = 1,
        base_url: str = _BASE_URL,
        timeout: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._priority = priority
        self._client = httpx.AsyncClient(base_url=base_url, timeout=timeout, transport=transport)

    @property
    def name(self) -> str:
        return "binance"

    @property
    def priority(self) -> int:
        return self._priority

    def map_symbol(self, symbol: str) -> str | None:
        return _SYMBOL_MAP.get(symbol.upper())

    async def probe(self) -> bool:
        response = await self._client.get("/api/v3/ping")
        response.raise_for_status()
        return True

    async def fetch_ticker(self, provider_symbol: str) -> BackupQuote | None:
        response = await self._client.get("/api/v3/ticker/24hr", params={"symbol": provider_symbol})
        response.raise_for_status()
        data = response.json()

        if "lastPrice" not in data:
            return None
        return BackupQuote(
            provider_id=self.name,
            price=float(data["lastPrice"]),
            volume_24h=float(data.get("volume") or 0),
            # priceChangePercent is in percent, quotes carry fractions
            change_24h=float(data.get("priceChangePercent") or 0) / 100,
        )

    async def close(self) -> None:
        await self._client.aclose()
