"""Confidence score -- how much of a plan was actually satisfied."""

from __future__ import annotations

import math

from core.models.results import AggregatedData

BASE_SCORE = 50
SOURCE_WEIGHT = 30
LIVE_PRICE_BONUS = 10
INDICATOR_BONUS = 10
WEB_BONUS = 5


def confidence_score(data: AggregatedData) -> int:
    """Integer score in [0, 100]. Depends only on `data`."""
    score = float(BASE_SCORE)

    total = data.total_count
    if total > 0:
        score += SOURCE_WEIGHT * (data.success_count / total)
    if data.live_price is not None:
        score += LIVE_PRICE_BONUS
    if data.indicator_values:
        score += INDICATOR_BONUS
    if data.web_content:
        score += WEB_BONUS

    # half-up, not Python's banker's rounding
    rounded = math.floor(score + 0.5)
    return max(0, min(100, rounded))
