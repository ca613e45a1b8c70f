"""Cross-exchange live spot price -- Coinbase, then CoinGecko, then Binance.

The first exchange that returns a positive USD price wins. One exchange
failing only moves the lookup on to the next.
"""

from __future__ import annotations

import logging
from typing import Any, Callable

import httpx

from core.models.market import LivePrice

logger = logging.getLogger(__name__)

COINBASE_RATES_URL = "https://api.coinbase.com/v2/exchange-rates"
COINGECKO_PRICE_URL = "https://api.coingecko.com/api/v3/simple/price"
BINANCE_PRICE_URL = "https://api.binance.com/api/v3/ticker/price"

_COINGECKO_IDS = {"BTC": "bitcoin", "ETH": "ethereum", "SOL": "solana"}


class MultiExchangeLivePrice:
    """Implements the LivePriceSource protocol."""

    def __init__(
        self,
        timeout: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)
        self._sources: list[tuple[str, Callable[[str], Any]]] = [
            ("coinbase", self._coinbase),
            ("coingecko", self._coingecko),
            ("binance", self._binance),
        ]

    @property
    def name(self) -> str:
        return "multi_exchange"

    async def fetch_live_price(self, symbol: str) -> LivePrice | None:
        symbol = symbol.upper()
        for source_name, fetch in self._sources:
            try:
                price = await fetch(symbol)
            except (httpx.HTTPError, ValueError, KeyError, TypeError) as e:
                logger.warning("%s live price failed for %s: %s", source_name, symbol, e)
                continue
            if price is not None and price > 0:
                logger.info("Live price: %s = $%s from %s", symbol, price, source_name)
                return LivePrice(symbol=symbol, price=price, provider_id=source_name)

        logger.error("No live price available for %s", symbol)
        return None

    async def _coinbase(self, symbol: str) -> float | None:
        response = await self._client.get(COINBASE_RATES_URL, params={"currency": symbol})
        response.raise_for_status()
        usd = (response.json().get("data") or {}).get("rates", {}).get("USD")
        return float(usd) if usd else None

    async def _coingecko(self, symbol: str) -> float | None:
        coin_id = _COINGECKO_IDS.get(symbol, symbol.lower())
        response = await self._client.get(
            COINGECKO_PRICE_URL, params={"ids": coin_id, "vs_currencies": "usd"}
        )
        response.raise_for_status()
        usd = (response.json().get(coin_id) or {}).get("usd")
        return float(usd) if usd else None

    async def _binance(self, symbol: str) -> float | None:
        response = await self._client.get(BINANCE_PRICE_URL, params={"symbol": f"{symbol}USDT"})
        response.raise_for_status()
        price = response.json().get("price")
        return float(price) if price else None

    async def close(self) -> None:
        await self._client.aclose()
