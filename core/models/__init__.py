"""Pydantic data models shared across all components."""

from core.models.indicators import BollingerResult, MACDResult
from core.models.market import BackupQuote, Candle, FallbackTicker, LivePrice, ProviderEnvelope
from core.models.plan import DataPlan, IndicatorKind, IndicatorSpec, MarketDataType, MarketParams
from core.models.query import ChatTurn, LongTermMemory, MemoryContext, MemoryUpdate, Query, UserProfile
from core.models.results import AggregatedData, AnalysisResult, SourceResult, WebContent

__all__ = [
    "AggregatedData",
    "AnalysisResult",
    "BackupQuote",
    "BollingerResult",
    "Candle",
    "ChatTurn",
    "DataPlan",
    "FallbackTicker",
    "IndicatorKind",
    "IndicatorSpec",
    "LivePrice",
    "LongTermMemory",
    "MACDResult",
    "MarketDataType",
    "MarketParams",
    "MemoryContext",
    "MemoryUpdate",
    "ProviderEnvelope",
    "Query",
    "SourceResult",
    "UserProfile",
    "WebContent",
]
