"""Market data models -- candles, provider envelopes, live and backup prices."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class Candle(BaseModel):
    """A single OHLCV bar. Series of candles are kept oldest first."""

    model_config = ConfigDict(frozen=True)

    start_time: datetime
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0

    @property
    def typical_price(self) -> float:
        return (self.high + self.low + self.close) / 3


class ProviderEnvelope(BaseModel):
    """Success/failure envelope returned by market data providers.

    `code` is the provider's machine-readable status; 0 means success.
    For kline requests `data` holds Candle objects, otherwise raw rows.
    """

    code: int = 0
    message: str = ""
    data: list[Any] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.code == 0


class LivePrice(BaseModel):
    """A real-time spot price from one of the cross-exchange price sources."""

    symbol: str
    price: float
    provider_id: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    is_live: bool = True


class BackupQuote(BaseModel):
    """Raw ticker returned by a single fallback provider."""

    provider_id: str
    price: float
    volume_24h: float = 0.0
    change_24h: float = 0.0


class FallbackTicker(BaseModel):
    """Ticker served by the fallback pool when the primary ticker fetch fails."""

    symbol: str
    last_price: float
    change_24h: float = 0.0
    volume_24h: float = 0.0
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    data_quality: str = "BACKUP_PROVIDER"
    provider_id: str

    @classmethod
    def from_quote(cls, symbol: str, quote: BackupQuote) -> FallbackTicker:
        return cls(
            symbol=symbol,
            last_price=quote.price,
            change_24h=quote.change_24h,
            volume_24h=quote.volume_24h,
            provider_id=quote.provider_id,
        )
