"""Technical indicators over chronologically ordered price series.

All functions are pure: they never mutate their input and return None
("insufficient data") instead of raising when the series is too short,
so a caller can skip one indicator without aborting a batch.
"""

from __future__ import annotations

import math
from typing import Any, Sequence

from core.models.indicators import BollingerResult, MACDResult
from core.models.market import Candle
from core.models.plan import IndicatorKind, IndicatorSpec


def sma(values: Sequence[float], period: int) -> float | None:
    """Mean of the last `period` values."""
    if period < 1 or len(values) < period:
        return None
    return sum(values[-period:]) / period


def ema_series(values: Sequence[float], period: int) -> list[float]:
    """Running EMA at every index, seeded with the first value."""
    if not values:
        return []
    k = 2 / (period + 1)
    out = [values[0]]
    current = values[0]
    for v in values[1:]:
        current = v * k + current * (1 - k)
        out.append(current)
    return out


def ema(values: Sequence[float], period: int) -> float | None:
    """Exponential moving average with k = 2 / (period + 1)."""
    if period < 1 or len(values) < period:
        return None
    return ema_series(values, period)[-1]


def rsi(closes: Sequence[float], period: int = 14) -> float | None:
    """RSI from simple average gains and losses over the trailing window.

    Needs period + 1 closes to form `period` deltas. A window with no
    losses is 100.
    """
    if period < 1 or len(closes) < period + 1:
        return None

    gains = 0.0
    losses = 0.0
    for i in range(len(closes) - period, len(closes)):
        change = closes[i] - closes[i - 1]
        if change > 0:
            gains += change
        else:
            losses -= change

    avg_gain = gains / period
    avg_loss = losses / period
    if avg_loss == 0:
        return 100.0
    rs = avg_gain / avg_loss
    return 100 - (100 / (1 + rs))


def macd(
    closes: Sequence[float],
    fast: int = 12,
    slow: int = 26,
    signal: int = 9,
) -> MACDResult | None:
    """MACD line, signal line and histogram.

    The signal line is the EMA of the MACD-line series taken at every index
    from `slow - 1` onward. Because each EMA is seeded at the first close,
    the running EMAs give the same values as recomputing every prefix.
    """
    if len(closes) < slow + signal:
        return None

    fast_series = ema_series(closes, fast)
    slow_series = ema_series(closes, slow)
    macd_values = [f - s for f, s in zip(fast_series, slow_series)][slow - 1:]

    signal_line = ema(macd_values, signal)
    if signal_line is None:
        return None

    macd_line = macd_values[-1]
    return MACDResult(
        macd_line=macd_line,
        signal_line=signal_line,
        histogram=macd_line - signal_line,
        crossover_direction="bullish" if macd_line > signal_line else "bearish",
    )


def vwap(candles: Sequence[Candle]) -> list[float | None] | None:
    """Cumulative VWAP, one value per candle.

    Entries stay None until some volume has traded.
    """
    if not candles:
        return None

    cum_volume = 0.0
    cum_price_volume = 0.0
    out: list[float | None] = []
    for candle in candles:
        cum_volume += candle.volume
        cum_price_volume += candle.typical_price * candle.volume
        out.append(cum_price_volume / cum_volume if cum_volume > 0 else None)
    return out


def bollinger_bands(
    closes: Sequence[float],
    period: int = 20,
    k: float = 2,
) -> BollingerResult | None:
    middle = sma(closes, period)
    if middle is None:
        return None

    window = closes[-period:]
    stddev = math.sqrt(sum((v - middle) ** 2 for v in window) / period)
    return BollingerResult(
        upper=middle + k * stddev,
        middle=middle,
        lower=middle - k * stddev,
        squeeze=stddev < middle * 0.1,
    )


def wma(values: Sequence[float], period: int) -> float | None:
    """Linearly weighted average of the last `period` values, newest heaviest."""
    if period < 1 or len(values) < period:
        return None
    window = values[-period:]
    weight_sum = period * (period + 1) / 2
    return sum(v * (i + 1) for i, v in enumerate(window)) / weight_sum


def hma(values: Sequence[float], period: int) -> float | None:
    """Hull moving average: WMA(2*WMA(n/2) - WMA(n), sqrt(n)).

    The inner series only has points where a full `period` window exists,
    so the input needs period + floor(sqrt(period)) - 1 values.
    """
    if period < 1:
        return None
    half = max(period // 2, 1)
    root = max(int(math.sqrt(period)), 1)
    if len(values) < period + root - 1:
        return None

    raw: list[float] = []
    for end in range(period, len(values) + 1):
        prefix = values[:end]
        raw.append(2 * wma(prefix, half) - wma(prefix, period))
    return wma(raw, root)


def compute_indicator(spec: IndicatorSpec, candles: Sequence[Candle]) -> Any:
    """Evaluate one requested indicator against a candle series."""
    closes = [c.close for c in candles]
    kind = spec.kind

    if kind is IndicatorKind.SMA:
        return sma(closes, spec.period)
    if kind is IndicatorKind.EMA:
        return ema(closes, spec.period)
    if kind is IndicatorKind.RSI:
        return rsi(closes, spec.period)
    if kind is IndicatorKind.MACD:
        return macd(closes)
    if kind is IndicatorKind.VWAP:
        return vwap(candles)
    if kind is IndicatorKind.BOLLINGER:
        return bollinger_bands(closes, spec.period)
    if kind is IndicatorKind.HMA:
        return hma(closes, spec.period)
    raise ValueError(f"Unhandled indicator kind: {kind}")
