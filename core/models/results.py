"""Aggregation results -- per-fetch outcomes, the aggregated bundle, final answer."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from core.models.market import Candle, FallbackTicker, LivePrice

SourceType = Literal["market", "live_price", "web", "fallback", "calculation"]


class SourceResult(BaseModel):
    """Outcome of one attempted fetch or computation."""

    model_config = ConfigDict(frozen=True)

    source_type: SourceType
    resource: str
    status: Literal["success", "failed"]
    payload: Any = None
    error: str | None = None

    @classmethod
    def success(cls, source_type: SourceType, resource: str, payload: Any = None) -> SourceResult:
        return cls(source_type=source_type, resource=resource, status="success", payload=payload)

    @classmethod
    def failed(cls, source_type: SourceType, resource: str, error: str) -> SourceResult:
        return cls(source_type=source_type, resource=resource, status="failed", error=error)

    @property
    def ok(self) -> bool:
        return self.status == "success"


class WebContent(BaseModel):
    query: str
    content: str


class AggregatedData(BaseModel):
    """Everything fetched and computed for one plan.

    Filled in by the aggregator as fetches complete; owned by a single
    request and treated as read-only once handed back.
    """

    results: list[SourceResult] = Field(default_factory=list)
    market_data: dict[str, Any] = Field(default_factory=dict)
    price_series: list[Candle] | None = None
    live_price: LivePrice | None = None
    web_content: list[WebContent] | None = None
    indicator_values: dict[str, Any] | None = None
    fallback_ticker: FallbackTicker | None = None

    def record(self, result: SourceResult) -> None:
        self.results.append(result)

    @property
    def success_count(self) -> int:
        return sum(1 for r in self.results if r.ok)

    @property
    def total_count(self) -> int:
        return len(self.results)

    def to_prompt_dict(self) -> dict[str, Any]:
        """JSON-safe view handed to the summarization oracle."""
        data = self.model_dump(mode="json", exclude={"results"})
        data["sources"] = [
            r.model_dump(mode="json", exclude={"payload"}) for r in self.results
        ]
        return data


class AnalysisResult(BaseModel):
    """What the orchestrator returns to its caller."""

    is_analysis: bool
    response: str
    data_sources: list[SourceResult] = Field(default_factory=list)
    confidence_score: int | None = None
    has_live_price: bool = False
