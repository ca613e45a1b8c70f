"""Data plan models -- what a query needs fetched and computed.

Two layers live here:
- DataPlan, the validated plan the aggregator executes.
- OracleCasualPlan / OracleDataPlan, the only two JSON shapes accepted
  from the planning oracle. Anything else is rejected outright.
"""

from __future__ import annotations

import re
from enum import Enum
from typing import Any, Literal

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)


class MarketDataType(str, Enum):
    """Market API resources. Values are the provider's wire names."""

    KLINE = "kline"
    TICKERS = "tickers"
    FUNDING_RATE_HISTORY = "fundingRateHistory"
    LONG_SHORT_RATIO = "longShortRatio"


class MarketParams(BaseModel):
    """Parameters for one market API call. Unused keys are ignored."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    symbol: str
    interval: str = "D"
    limit: int = Field(default=50, ge=1, le=1000)
    period: str = "1d"

    @field_validator("symbol")
    @classmethod
    def _upper_symbol(cls, v: str) -> str:
        v = v.strip().upper()
        if not v:
            raise ValueError("symbol must not be empty")
        return v


class IndicatorKind(str, Enum):
    SMA = "SMA"
    EMA = "EMA"
    RSI = "RSI"
    MACD = "MACD"
    VWAP = "VWAP"
    BOLLINGER = "BOLLINGER"
    HMA = "HMA"


_DEFAULT_PERIODS = {
    IndicatorKind.SMA: 20,
    IndicatorKind.EMA: 12,
    IndicatorKind.RSI: 14,
    IndicatorKind.BOLLINGER: 20,
    IndicatorKind.HMA: 9,
}

_NAME_RE = re.compile(r"^(SMA|EMA|RSI|HMA|MACD|VWAP|BOLLINGERBANDS|BOLLINGER|BB)(\d+)?$")


class IndicatorSpec(BaseModel):
    """One requested indicator: a closed kind plus its period, if it takes one.

    Accepts free-form names such as "SMA20", "rsi", "Bollinger Bands" and
    rejects anything outside the known kinds.
    """

    model_config = ConfigDict(frozen=True)

    kind: IndicatorKind
    period: int | None = Field(default=None, ge=1)

    @model_validator(mode="before")
    @classmethod
    def _normalize(cls, data: Any) -> Any:
        if isinstance(data, str):
            data = cls._parse_name(data)
        if not isinstance(data, dict) or "kind" not in data:
            return data

        data = dict(data)
        kind = IndicatorKind(data["kind"])
        if kind in _DEFAULT_PERIODS:
            if data.get("period") is None:
                data["period"] = _DEFAULT_PERIODS[kind]
        else:
            # MACD and VWAP take fixed parameters
            data["period"] = None
        data["kind"] = kind
        return data

    @staticmethod
    def _parse_name(name: str) -> dict:
        compact = re.sub(r"[\s_\-]+", "", name).upper()
        match = _NAME_RE.match(compact)
        if not match:
            raise ValueError(f"Unknown indicator: {name!r}")
        word, digits = match.group(1), match.group(2)
        if word in ("BOLLINGERBANDS", "BB"):
            word = "BOLLINGER"
        return {"kind": word, "period": int(digits) if digits else None}

    @classmethod
    def parse(cls, name: str) -> IndicatorSpec:
        return cls.model_validate(name)

    @property
    def key(self) -> str:
        """Name used in the indicator_values mapping, e.g. 'sma20', 'macd'."""
        if self.period is None:
            return self.kind.value.lower()
        return f"{self.kind.value.lower()}{self.period}"


def _unique(items: list) -> list:
    return list(dict.fromkeys(items))


class DataPlan(BaseModel):
    """Structured description of the data one query needs.

    When `is_casual` is true every fetch field is ignored and
    `casual_response` is the answer.
    """

    model_config = ConfigDict(frozen=True)

    is_casual: bool = False
    casual_response: str | None = None
    required_market: dict[MarketDataType, MarketParams] = Field(default_factory=dict)
    wants_live_price: bool = False
    web_search_queries: list[str] = Field(default_factory=list)
    requested_indicators: list[IndicatorSpec] = Field(default_factory=list)

    @field_validator("web_search_queries")
    @classmethod
    def _clean_queries(cls, v: list[str]) -> list[str]:
        return _unique([q.strip() for q in v if q and q.strip()])

    @field_validator("requested_indicators")
    @classmethod
    def _dedupe_indicators(cls, v: list[IndicatorSpec]) -> list[IndicatorSpec]:
        return _unique(v)

    @classmethod
    def casual(cls, response: str) -> DataPlan:
        return cls(is_casual=True, casual_response=response)

    @property
    def primary_symbol(self) -> str | None:
        """Symbol of the first market request, used as a live-price hint."""
        for params in self.required_market.values():
            return params.symbol
        return None


# ---------------------------------------------------------------------------
# Planning oracle wire schema
# ---------------------------------------------------------------------------

class OracleRequiredData(BaseModel):
    model_config = ConfigDict(extra="forbid")

    market: dict[MarketDataType, MarketParams] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("market", "bybit"),
    )
    live_price: bool = Field(
        default=False, validation_alias=AliasChoices("livePrice", "live_price")
    )
    web_search: list[str] = Field(
        default_factory=list, validation_alias=AliasChoices("webSearch", "web_search")
    )
    technical_indicators: list[IndicatorSpec] = Field(
        default_factory=list,
        validation_alias=AliasChoices("technicalIndicators", "technical_indicators"),
    )


class OracleCasualPlan(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    is_casual: Literal[True] = Field(alias="isCasual")
    response: str = Field(min_length=1)

    def to_data_plan(self) -> DataPlan:
        return DataPlan.casual(self.response)


class OracleDataPlan(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    is_casual: Literal[False] = Field(alias="isCasual")
    required_data: OracleRequiredData = Field(alias="requiredData")

    def to_data_plan(self) -> DataPlan:
        data = self.required_data
        return DataPlan(
            is_casual=False,
            required_market=data.market,
            wants_live_price=data.live_price,
            web_search_queries=data.web_search,
            requested_indicators=data.technical_indicators,
        )
