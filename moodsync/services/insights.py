"""
Range Summary Compactor and insight generation.

Turns raw mood entries into a bounded, prompt-safe aggregate:

  day | week | month  -> RangeSummary with one {d, m, n} sample per entry
  year               -> YearSummary with monthly averages (never samples)
  year over budget   -> QuarterlySummary (monthly averages dropped)

Sentiment per entry is (mood - 3) / 2. An entry's moment is its date at
the slot's wall-clock hour; windows are measured back from `now`.

The budget is measured on the whole prompt envelope
{selectedRange, emotionalSummary, userProfile}, not on the summary alone.

Public API
----------
get_mood_data_by_range(entries, range, now)            -> RangeSummary | YearSummary
compress_year_to_quarterly(year_summary)               -> QuarterlySummary
estimate_payload_tokens(payload)                       -> int
build_insight_payload(entries, range, budget, now, user_profile)
                                                       -> RangeSummary | YearSummary | QuarterlySummary
generate_insight(ctx, client, range, budget, daily_limit) -> InsightResult
"""
from __future__ import annotations

import logging
import math
from collections import defaultdict
from datetime import datetime, timedelta
from statistics import fmean
from typing import Any, Optional, Sequence, Union

from pydantic import BaseModel

from moodsync.core.errors import DailyLimitReachedError, SummarizationError
from moodsync.core.normalize import (
    clamp,
    compact_text,
    json_dumps,
    round2,
    round_half_up,
    to_number,
    today_key,
)
from moodsync.schemas.insights import (
    InsightResult,
    MonthlyAverage,
    MoodSample,
    QuarterlyAverage,
    QuarterlySummary,
    Range,
    RangeSummary,
    YearSummary,
)
from moodsync.schemas.mood import SLOTS, MoodEntry
from moodsync.schemas.profile import Profile
from moodsync.services.local_store import local_key
from moodsync.services.mood_entries import get_entries
from moodsync.services.profile import get_profile
from moodsync.services.summarizer import TextCompletionClient
from moodsync.services.sync import SyncContext

logger = logging.getLogger(__name__)

RANGES = ("day", "week", "month", "year")
WINDOW_DAYS = {"week": 7, "month": 30, "year": 365}
DEFAULT_TOKEN_BUDGET = 1200
DAILY_INSIGHT_LIMIT = 50
SAMPLE_NOTE_CHARS = 80

Summary = Union[RangeSummary, YearSummary, QuarterlySummary]


def to_sentiment(mood: int) -> float:
    return (mood - 3) / 2


# ---------------------------------------------------------------------------
# Stability
# ---------------------------------------------------------------------------

def instability_index(values: Sequence[float]) -> float:
    """Mean absolute difference between consecutive values; 0 for <= 1 value."""
    if len(values) <= 1:
        return 0.0
    diffs = [abs(b - a) for a, b in zip(values, values[1:])]
    return round2(sum(diffs) / len(diffs))


def stability_score(instability: float) -> int:
    return int(clamp(round_half_up(100 * (1 - instability), 0), 0, 100))


# ---------------------------------------------------------------------------
# Aggregation
# ---------------------------------------------------------------------------

def _filter_range(entries: Sequence[MoodEntry], range_: str, now: datetime) -> list[MoodEntry]:
    if range_ == "day":
        today = now.date().isoformat()
        return [e for e in entries if e.date == today]
    window = timedelta(days=WINDOW_DAYS[range_])
    return [e for e in entries if now - e.moment <= window]


def _aggregate(entries: Sequence[MoodEntry], range_: Range) -> dict[str, Any]:
    ordered = sorted(entries, key=lambda e: e.moment)
    sentiments = [to_sentiment(e.mood) for e in ordered]
    instability = instability_index(sentiments)

    by_day: dict[str, list[float]] = defaultdict(list)
    negative_buckets = {slot: 0 for slot in SLOTS}
    for entry, value in zip(ordered, sentiments):
        by_day[entry.date].append(value)
        if value < 0:
            negative_buckets[entry.slot] += 1

    day_means = [fmean(values) for values in by_day.values()]
    worst = max(negative_buckets, key=negative_buckets.get)

    return {
        "range": range_,
        "entry_count": len(ordered),
        "overall_average": round2(fmean(sentiments)) if sentiments else 0.0,
        "stability_score": stability_score(instability),
        "instability_index": instability,
        "negative_days": sum(1 for mean in day_means if mean < 0),
        "positive_days": sum(1 for mean in day_means if mean > 0),
        "common_negative_time": worst if negative_buckets[worst] > 0 else None,
        "ordered": ordered,
        "sentiments": sentiments,
    }


def _range_summary(entries: Sequence[MoodEntry], range_: Range) -> RangeSummary:
    stats = _aggregate(entries, range_)
    ordered, sentiments = stats.pop("ordered"), stats.pop("sentiments")
    samples = [
        MoodSample(day=e.date, sentiment=round2(v), note=compact_text(e.note, SAMPLE_NOTE_CHARS))
        for e, v in zip(ordered, sentiments)
    ]
    return RangeSummary(**stats, samples=samples)


def _year_summary(entries: Sequence[MoodEntry]) -> YearSummary:
    stats = _aggregate(entries, "year")
    ordered, sentiments = stats.pop("ordered"), stats.pop("sentiments")

    by_month: dict[str, list[float]] = defaultdict(list)
    for entry, value in zip(ordered, sentiments):
        by_month[entry.date[:7]].append(value)

    monthly = [
        MonthlyAverage(month=month, avg=round2(fmean(values)), count=len(values))
        for month, values in sorted(by_month.items())
    ]
    return YearSummary(**stats, yearly_average=stats["overall_average"], monthly_averages=monthly)


def get_mood_data_by_range(
    entries: Sequence[MoodEntry],
    range_: Range,
    now: Optional[datetime] = None,
) -> Union[RangeSummary, YearSummary]:
    now = now or datetime.now()
    in_range = _filter_range(entries, range_, now)
    if range_ == "year":
        return _year_summary(in_range)
    return _range_summary(in_range, range_)


# ---------------------------------------------------------------------------
# Token budget
# ---------------------------------------------------------------------------

def compress_year_to_quarterly(year_summary: YearSummary) -> QuarterlySummary:
    """Collapse monthly buckets into count-weighted quarters."""
    totals: dict[str, list[float]] = defaultdict(lambda: [0.0, 0])
    for month in year_summary.monthly_averages:
        year, month_number = month.month.split("-")
        key = f"{year}-Q{math.ceil(int(month_number) / 3)}"
        totals[key][0] += month.avg * month.count
        totals[key][1] += month.count

    quarterly = [
        QuarterlyAverage(quarter=key, avg=round2(weighted / max(count, 1)), count=int(count))
        for key, (weighted, count) in sorted(totals.items())
    ]
    base = year_summary.model_dump(exclude={"monthly_averages"})
    return QuarterlySummary(**base, quarterly_averages=quarterly)


def estimate_payload_tokens(payload: Union[BaseModel, Any]) -> int:
    """ceil(len(compact JSON) / 4), measured on the wire (camelCase) form."""
    if isinstance(payload, BaseModel):
        payload = payload.model_dump(mode="json", by_alias=True)
    return math.ceil(len(json_dumps(payload)) / 4)


def insight_envelope(summary: Summary, range_: Range, user_profile: Optional[dict[str, Any]] = None) -> dict[str, Any]:
    """The object a prompt builder serializes; the token budget is measured on it."""
    return {
        "selectedRange": range_,
        "emotionalSummary": summary.to_json_dict(),
        "userProfile": user_profile or {},
    }


def build_insight_payload(
    entries: Sequence[MoodEntry],
    range_: Range,
    token_budget: int = DEFAULT_TOKEN_BUDGET,
    now: Optional[datetime] = None,
    user_profile: Optional[dict[str, Any]] = None,
) -> Summary:
    summary = get_mood_data_by_range(entries, range_, now=now)
    if isinstance(summary, YearSummary):
        tokens = estimate_payload_tokens(insight_envelope(summary, range_, user_profile))
        if tokens > token_budget:
            logger.debug("year summary is %d tokens (budget %d); using quarters", tokens, token_budget)
            return compress_year_to_quarterly(summary)
    return summary


# ---------------------------------------------------------------------------
# Insight generation
# ---------------------------------------------------------------------------

def compact_user_profile(profile: Profile, user_id: Optional[str] = None) -> dict[str, Any]:
    return {
        "uid": user_id or "",
        "displayName": profile.name[:50],
        "personalDetails": {
            "name": profile.name,
            "age": profile.age,
            "profession": profile.profession,
            "weight": profile.weight,
            "height": profile.height,
            "gender": profile.gender,
            "about": profile.about,
        },
        "preferences": {
            "stressLevel": profile.stress_level,
            "sleepAverage": profile.sleep_average,
            "energyPattern": profile.energy_pattern,
            "emotionalSensitivity": profile.emotional_sensitivity,
            "aiTone": profile.ai_tone,
            "suggestionDepth": profile.suggestion_depth,
            "defaultInsightRange": profile.default_insight_range,
            "allowLongTermAnalysis": profile.allow_long_term_analysis,
            "showProfessionalSupportSuggestions": profile.show_professional_support_suggestions,
        },
    }


def preferred_range(profile: Profile) -> Range:
    value = profile.default_insight_range.strip().lower()
    return value if value in RANGES else "week"


_TONE = {
    "Direct": "Be clear and concise, avoid emotional language.",
    "Motivational": "Be uplifting and action-oriented with encouraging language.",
}
_RANGE_FOCUS = {
    "day": "Focus on short-term support for today.",
    "week": "Analyze trend and pattern shifts across the week.",
    "month": "Analyze behavioral patterns and emotional stability across the month.",
    "year": "Provide deep reflection and long-term advice based on yearly patterns.",
}


def build_insight_prompt(profile: Profile, envelope: dict[str, Any]) -> str:
    tone = _TONE.get(profile.ai_tone, "Respond softly and empathetically.")
    if profile.suggestion_depth == "Quick":
        depth, word_limit = "Keep it brief and practical.", 120
    else:
        depth, word_limit = "Provide slightly more context and explanation while staying concise.", 180
    if profile.allow_long_term_analysis:
        privacy = "Long-term analysis is allowed if helpful."
    else:
        privacy = "Do not provide long-term analysis, keep recommendations within the selected range only."
    if profile.show_professional_support_suggestions:
        support = "If risk appears elevated, you may suggest seeking professional support in a gentle way."
    else:
        support = "Do not include professional support suggestions."

    return "\n".join([
        "You are a personal emotional wellness assistant.",
        tone,
        depth,
        "Avoid clinical phrasing.",
        "Write as a supportive personal companion.",
        privacy,
        support,
        "",
        _RANGE_FOCUS[envelope["selectedRange"]],
        "",
        "Analyze the following emotional summary:",
        json_dumps(envelope),
        "",
        "Provide:",
        "1. Emotional trend insight",
        "2. Risk signals",
        "3. Habit improvement suggestion",
        "4. One reflective question",
        "",
        "Do not diagnose medical conditions.",
        "Write in short sections with these exact headings:",
        "WHAT IM NOTICING:",
        "WATCH FOR:",
        "TRY THIS TOMORROW:",
        "REFLECTION:",
        "Under TRY THIS TOMORROW provide 2-3 concrete bullet points.",
        "Do not mention token, payload, or technical metrics.",
        f"Limit response to {word_limit} words.",
    ])


def fallback_insight(summary: Summary) -> str:
    """Plain-rules insight with the same four headings as the model's."""
    if summary.entry_count == 0:
        noticing = "There are no mood check-ins in this range yet."
    else:
        if summary.overall_average > 0.25:
            tone = "mostly positive"
        elif summary.overall_average < -0.25:
            tone = "mostly low"
        else:
            tone = "fairly balanced"
        noticing = (
            f"Across {summary.entry_count} check-ins your mood has been {tone}, "
            f"with a stability score of {summary.stability_score}/100."
        )

    low_time = summary.common_negative_time
    watch = f"Low moments tend to show up in the {low_time}." if low_time else "No recurring low point stands out."
    if summary.entry_count and summary.stability_score < 50:
        watch += " Your mood has been swinging more than usual."

    tips = ["- Add a short note to each check-in.", "- Keep a steady sleep and wake time."]
    if low_time:
        tips.append(f"- Plan something restful for the {low_time}.")

    return "\n".join([
        "WHAT IM NOTICING:", noticing,
        "WATCH FOR:", watch,
        "TRY THIS TOMORROW:", *tips,
        "REFLECTION:", "What helped most on your better days?",
    ])


async def get_usage_count(ctx: SyncContext, day: Optional[str] = None) -> int:
    raw = await ctx.local.get(local_key(ctx.user_id, f"ai_usage_{day or today_key()}"))
    return max(0, int(to_number(raw, 0)))


async def increment_usage_count(ctx: SyncContext, day: Optional[str] = None) -> int:
    day = day or today_key()
    count = await get_usage_count(ctx, day) + 1
    await ctx.local.set(local_key(ctx.user_id, f"ai_usage_{day}"), str(count))
    return count


async def generate_insight(
    ctx: SyncContext,
    client: Optional[TextCompletionClient],
    range_: Optional[Range] = None,
    token_budget: int = DEFAULT_TOKEN_BUDGET,
    daily_limit: int = DAILY_INSIGHT_LIMIT,
    now: Optional[datetime] = None,
) -> InsightResult:
    """
    Generate a written insight for `range_` (the profile's default range
    when omitted).

    Only model-written insights count against the daily limit. When the
    model is absent, fails or answers with nothing, a rule-based insight is
    returned instead.
    """
    usage = await get_usage_count(ctx)
    if usage >= daily_limit:
        raise DailyLimitReachedError(daily_limit)

    profile = await get_profile(ctx)
    effective = range_ or preferred_range(profile)
    user_profile = compact_user_profile(profile, ctx.user_id)
    entries = await get_entries(ctx)
    summary = build_insight_payload(entries, effective, token_budget, now=now, user_profile=user_profile)

    text, source = "", "fallback"
    if client is not None:
        prompt = build_insight_prompt(profile, insight_envelope(summary, effective, user_profile))
        try:
            text = (await client.complete(prompt, temperature=0.7, json_output=False)).strip()
        except SummarizationError as exc:
            logger.warning("insight generation fell back to rules: %s", exc.message)
    if text:
        source = "ai"
        usage = await increment_usage_count(ctx)
    else:
        text = fallback_insight(summary)

    return InsightResult(
        insight=text,
        selected_range_used=effective,
        emotional_summary=summary.to_json_dict(),
        limit_remaining=max(0, daily_limit - usage),
        source=source,
    )
