"""Structured indicator outputs."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel


class MACDResult(BaseModel):
    macd_line: float
    signal_line: float
    histogram: float
    crossover_direction: Literal["bullish", "bearish"]


class BollingerResult(BaseModel):
    upper: float
    middle: float
    lower: float
    squeeze: bool
