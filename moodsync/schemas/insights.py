"""
Range summary schemas — the bounded, prompt-safe mood aggregates.

Three shapes, one per compaction stage:
  RangeSummary      day | week | month  → per-entry `samples`
  YearSummary       year                → `monthlyAverages`, never samples
  QuarterlySummary  year over budget    → `quarterlyAverages`, no months

InsightResult wraps one of them with the generated text and the
remaining daily allowance.

Sample keys are single letters (d / m / n) to keep prompts small.
"""
from __future__ import annotations

from typing import Any, Literal, Optional

from pydantic import Field

from moodsync.schemas.common import CamelModel

Range = Literal["day", "week", "month", "year"]
TimeBucket = Literal["morning", "afternoon", "evening", "night"]


class MoodSample(CamelModel):
    day: str = Field(alias="d")
    sentiment: float = Field(alias="m")
    note: str = Field(default="", alias="n")


class MonthlyAverage(CamelModel):
    month: str = Field(examples=["2026-02"])
    avg: float
    count: int


class QuarterlyAverage(CamelModel):
    quarter: str = Field(examples=["2026-Q1"])
    avg: float
    count: int


class _SummaryBase(CamelModel):
    range: Range
    entry_count: int = 0
    overall_average: float = 0.0
    stability_score: int = 100
    instability_index: float = 0.0
    negative_days: int = 0
    positive_days: int = 0
    common_negative_time: Optional[TimeBucket] = None


class RangeSummary(_SummaryBase):
    samples: list[MoodSample] = Field(default_factory=list)


class YearSummary(_SummaryBase):
    range: Literal["year"] = "year"
    yearly_average: float = 0.0
    monthly_averages: list[MonthlyAverage] = Field(default_factory=list)


class QuarterlySummary(_SummaryBase):
    range: Literal["year"] = "year"
    yearly_average: float = 0.0
    quarterly_averages: list[QuarterlyAverage] = Field(default_factory=list)


class TokenEstimate(CamelModel):
    tokens: int


# ---------------------------------------------------------------------------
# Insight generation
# ---------------------------------------------------------------------------

class InsightRequest(CamelModel):
    range: Optional[Range] = None


class InsightResult(CamelModel):
    insight: str
    selected_range_used: Range
    emotional_summary: dict[str, Any]
    limit_remaining: int
    source: Literal["ai", "fallback"] = "ai"
