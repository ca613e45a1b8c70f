"""Bybit v5 market data provider -- public derivatives endpoints via httpx.

Covers candles, tickers, funding rate history and the long/short account
ratio for USDT perpetuals (`category=linear` by default). Bybit wraps every
response in {retCode, retMsg, result}; that maps onto ProviderEnvelope.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

import httpx

from core.models.market import Candle, ProviderEnvelope

logger = logging.getLogger(__name__)

MAINNET_URL = "https://api.bybit.com"
TESTNET_URL = "https://api-testnet.bybit.com"


def _parse_candle(row: list) -> Candle:
    """Bybit kline row: [startTime, open, high, low, close, volume, turnover]."""
    return Candle(
        start_time=datetime.fromtimestamp(int(row[0]) / 1000, tz=timezone.utc),
        open=float(row[1]),
        high=float(row[2]),
        low=float(row[3]),
        close=float(row[4]),
        volume=float(row[5]) if len(row) > 5 else 0.0,
    )


class BybitProvider:
    """Implements the MarketDataProvider protocol against Bybit's v5 REST API."""

    def __init__(
        self,
        testnet: bool = False,
        category: str = "linear",
        base_url: str = "",
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._category = category
        self._client = httpx.AsyncClient(
            base_url=base_url or (TESTNET_URL if testnet else MAINNET_URL),
            timeout=timeout,
            headers={"User-Agent": "Sally/0.1"},
            transport=transport,
        )

    @property
    def name(self) -> str:
        return "bybit"

    async def get_kline(self, symbol: str, interval: str, limit: int) -> ProviderEnvelope:
        envelope = await self._request(
            "/v5/market/kline", {"symbol": symbol, "interval": interval, "limit": limit}
        )
        if not envelope.ok:
            return envelope

        candles = []
        for row in envelope.data:
            try:
                candles.append(_parse_candle(row))
            except (TypeError, ValueError, IndexError):
                logger.debug("Skipping malformed kline row for %s: %r", symbol, row)
        # Bybit returns newest first
        candles.sort(key=lambda c: c.start_time)
        logger.debug("Fetched %d %s candles for %s", len(candles), interval, symbol)
        return envelope.model_copy(update={"data": candles})

    async def get_tickers(self, symbol: str) -> ProviderEnvelope:
        return await self._request("/v5/market/tickers", {"symbol": symbol})

    async def get_funding_rate_history(self, symbol: str, limit: int) -> ProviderEnvelope:
        return await self._request("/v5/market/funding/history", {"symbol": symbol, "limit": limit})

    async def get_long_short_ratio(self, symbol: str, period: str, limit: int) -> ProviderEnvelope:
        return await self._request(
            "/v5/market/account-ratio", {"symbol": symbol, "period": period, "limit": limit}
        )

    async def _request(self, path: str, params: dict[str, Any]) -> ProviderEnvelope:
        """GET a public endpoint. HTTP errors raise; retCode errors come back in the envelope."""
        response = await self._client.get(path, params={"category": self._category, **params})
        response.raise_for_status()
        body = response.json()

        result = body.get("result") or {}
        if isinstance(result, dict) and "list" in result:
            rows = result["list"] or []
        elif result:
            rows = [result]
        else:
            rows = []

        return ProviderEnvelope(
            code=int(body.get("retCode", 0)),
            message=str(body.get("retMsg", "")),
            data=rows,
        )

    async def close(self) -> None:
        await self._client.aclose()
