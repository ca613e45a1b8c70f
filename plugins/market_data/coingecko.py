"""CoinGecko simple price -- last resort of the fallback pool."""

from __future__ import annotations

import logging

import httpx

from core.models.market import BackupQuote

logger = logging.getLogger(__name__)

_BASE_URL = "https://api.coingecko.com"

_SYMBOL_MAP = {
    "BTCUSDT": "bitcoin",
    "ETHUSDT": "ethereum",
    "SOLUSDT": "solana",
}


class CoinGeckoFallback:
    """Implements the FallbackProvider protocol with CoinGecko's free API."""

    def __init__(
        self,
        priority: int = 3,
        base_url: str = _BASE_URL,
        timeout: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._priority = priority
        self._client = httpx.AsyncClient(base_url=base_url, timeout=timeout, transport=transport)

    @property
    def name(self) -> str:
        return "coingecko"

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
        response = await self._client.get(
            "/api/v3/simple/price",
            params={
                "ids": provider_symbol,
                "vs_currencies": "usd",
                "include_24hr_vol": "true",
                "include_24hr_change": "true",
            },
        )
        response.raise_for_status()
        coin = response.json().get(provider_symbol)

        if not coin or coin.get("usd") is None:
            return None
        return BackupQuote(
            provider_id=self.name,
            price=float(coin["usd"]),
            volume_24h=float(coin.get("usd_24h_vol") or 0),
            change_24h=float(coin.get("usd_24h_change") or 0) / 100,
        )

    async def close(self) -> None:
        await self._client.aclose()
