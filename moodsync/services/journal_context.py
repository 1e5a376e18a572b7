"""
Journal context builder.

Gathers compact signals (profile, 7-day mood trend, memory, recent chat)
for the journal analysis prompt, and derives the rolling context that is
fully replaced after every journal exchange.

Public API
----------
build_profile_summary(profile)                -> str
build_mood_summary(entries, now)              -> tuple[str, str]
build_journal_context(ctx, history)           -> JournalContext
build_rolling_context(context, session, analysis) -> RollingContextUpdate
"""
from __future__ import annotations

from datetime import datetime, timedelta
from statistics import fmean
from typing import Optional, Sequence

from moodsync.core.normalize import compact_text
from moodsync.schemas.journal import JournalAnalysis, JournalContext, JournalMessage, JournalSession
from moodsync.schemas.memory import LongTermSummary, RollingContext, RollingContextUpdate
from moodsync.schemas.mood import MoodEntry
from moodsync.schemas.profile import Profile
from moodsync.services.journal import mood_trend
from moodsync.services.memory import get_memory_context
from moodsync.services.mood_entries import get_entries
from moodsync.services.profile import get_profile
from moodsync.services.sync import SyncContext

NO_RECENT_MOODS = "No recent mood entries in the last 7 days."
TREND_WINDOW = timedelta(days=7)


def build_profile_summary(profile: Profile) -> str:
    details = [
        ("Name", profile.name.strip() or "User"),
        ("Age", profile.age.strip()),
        ("Gender", profile.gender.strip()),
        ("Profession", profile.profession.strip()),
        ("Stress baseline", profile.stress_level.strip()),
        ("Energy pattern", profile.energy_pattern.strip()),
        ("Sensitivity", profile.emotional_sensitivity.strip()),
        ("Preferred tone", profile.ai_tone.strip()),
        ("Depth", profile.suggestion_depth.strip()),
        ("About", compact_text(profile.about, 180)),
    ]
    return compact_text(" | ".join(f"{label}: {value}" for label, value in details if value), 420)


def build_mood_summary(entries: Sequence[MoodEntry], now: Optional[datetime] = None) -> tuple[str, str]:
    """(trend text, highlights of the last 5 entries) over the past 7 days."""
    now = now or datetime.now()
    recent = [e for e in entries if timedelta(0) <= now - e.moment <= TREND_WINDOW][:20]
    if not recent:
        return NO_RECENT_MOODS, ""

    recent.sort(key=lambda e: e.moment)
    scores = [e.score for e in recent]
    trend = mood_trend(scores)
    trend_text = f"7d average mood score: {fmean(scores):.2f}. Trend: {trend}."

    highlights = []
    for entry in recent[-5:]:
        note = compact_text(entry.note, 64)
        label = f'"{note}"' if note else "no note"
        highlights.append(f"{entry.date} {entry.slot} mood:{entry.mood} {label}")

    return compact_text(trend_text, 180), compact_text(" | ".join(highlights), 420)


def _long_term_line(long_term: LongTermSummary) -> str:
    parts = [
        compact_text(long_term.profile_summary, 120),
        compact_text(long_term.emotional_baseline_summary, 120),
        compact_text(long_term.personality_pattern, 120),
        compact_text(long_term.stress_baseline, 100),
    ]
    return compact_text(" | ".join(p for p in parts if p), 420)


def _rolling_line(rolling: RollingContext) -> str:
    parts = [
        compact_text(rolling.recent_mood_trend_7d, 120),
        compact_text(rolling.recent_entries_summary, 120),
        compact_text(rolling.session_summary, 120),
        compact_text(rolling.active_focus, 90),
    ]
    return compact_text(" | ".join(p for p in parts if p), 420)


def _history_line(history: Sequence[JournalMessage]) -> str:
    lines = [
        f"{m.role}: {compact_text(m.text, 90)}" for m in list(history)[-6:] if m.text.strip()
    ]
    return compact_text(" | ".join(lines), 520)


async def build_journal_context(
    ctx: SyncContext,
    history: Sequence[JournalMessage] = (),
) -> JournalContext:
    profile = await get_profile(ctx)
    entries = await get_entries(ctx)
    memory = await get_memory_context(ctx)

    trend, highlights = build_mood_summary(entries)
    tags = [
        f"{compact_text(t.label, 24)}: {compact_text(t.name, 32)}"
        for t in memory.long_term_summary.manual_tags[:20]
    ]
    return JournalContext(
        profile_summary=build_profile_summary(profile),
        recent_mood_trend=trend,
        recent_entries_summary=highlights,
        long_term_summary=_long_term_line(memory.long_term_summary),
        rolling_summary=_rolling_line(memory.rolling_context),
        recent_chat_history_summary=_history_line(history),
        manual_tags_summary=compact_text(" | ".join(tags), 520),
    )


def build_rolling_context(
    context: JournalContext,
    session: JournalSession,
    analysis: JournalAnalysis,
) -> RollingContextUpdate:
    """Every field is set: the rolling context is replaced, not merged."""
    return RollingContextUpdate(
        recent_mood_trend_7d=context.recent_mood_trend,
        recent_entries_summary=context.recent_entries_summary,
        session_summary=compact_text(session.summary, 220),
        active_focus=compact_text(analysis.follow_up_question, 160),
    )
