"""
Memory service: long-term summary, rolling context, and the compression
scheduler that regenerates the long-term summary from recent history.

Rules:
- A field whose override flag is set is only ever changed by a manual
  edit. AI updates skip it silently.
- Compression is best-effort: any failure (service absent, HTTP error,
  malformed output) leaves the stored summary untouched and returns False.
- One compression per process at a time; a concurrent request is a no-op.

Public API
----------
LONG_TERM_SUMMARY / ROLLING_CONTEXT                 SyncedCollection
merge_update(current, partial, source, now)         -> LongTermSummary
get_memory_context(ctx)                             -> MemoryContext
save_long_term_summary(ctx, partial, source)        -> LongTermSummary
save_rolling_context(ctx, partial)                  -> RollingContext
ensure_memory_scaffold(ctx)                         -> None
should_compress(long_term, journal_count, mood_count, force, now) -> bool
build_compression_prompt(profile, long_term, journal_entries, mood_entries) -> str
parse_compression_payload(raw)                      -> LongTermSummaryUpdate
CompressionScheduler(client).maybe_refresh(ctx, ...) -> bool
"""
from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Optional, Sequence

from pydantic import ValidationError
from pydantic.alias_generators import to_camel

from moodsync.core.errors import MalformedSummaryError, SummarizationError
from moodsync.core.normalize import (
    compact_text,
    json_dumps,
    parse_model_json,
    utc_now,
)
from moodsync.schemas.journal import JournalEntry
from moodsync.schemas.memory import (
    CORE_NARRATIVE_FIELDS,
    EDITABLE_FIELDS,
    LIST_FIELDS,
    TEXT_FIELDS,
    CompressionPayload,
    LongTermSummary,
    LongTermSummaryUpdate,
    MemoryContext,
    RollingContext,
    RollingContextUpdate,
    UpdateSource,
)
from moodsync.schemas.mood import MoodEntry, entry_sort_key
from moodsync.schemas.profile import Profile
from moodsync.services.journal import get_all_journal_entries
from moodsync.services.mood_entries import get_entries
from moodsync.services.profile import get_profile
from moodsync.services.summarizer import TextCompletionClient
from moodsync.services.sync import CollectionSpec, SyncContext, SyncedCollection

logger = logging.getLogger(__name__)

LONG_TERM_SUMMARY: SyncedCollection[LongTermSummary] = SyncedCollection(
    CollectionSpec(
        name="long_term_summary",
        remote_path="memory/longTermSummary",
        model=LongTermSummary,
    )
)
ROLLING_CONTEXT: SyncedCollection[RollingContext] = SyncedCollection(
    CollectionSpec(
        name="rolling_context",
        remote_path="memory/rollingContext",
        model=RollingContext,
    )
)

JOURNAL_THRESHOLD = 10
MOOD_THRESHOLD = 10
REFRESH_INTERVAL = timedelta(hours=24)
RECENT_RECORD_LIMIT = 30


# ---------------------------------------------------------------------------
# Field-override merge
# ---------------------------------------------------------------------------

def merge_update(
    current: LongTermSummary,
    partial: LongTermSummaryUpdate,
    source: UpdateSource = "manual",
    now: Optional[datetime] = None,
) -> LongTermSummary:
    """
    Apply the fields set on `partial` to `current`.

    manual: every editable field present is applied and marked overridden.
    ai:     editable fields already overridden keep their current value.
    Bookkeeping fields (lastCompressedAt, processed counts) always apply.
    """
    merged = current.model_dump()
    overrides = dict(current.user_overrides)

    for name, value in partial.model_dump(exclude_unset=True).items():
        if name in EDITABLE_FIELDS:
            if source == "manual":
                overrides[to_camel(name)] = True
            elif current.is_overridden(name):
                continue
        merged[name] = value

    merged["user_overrides"] = overrides
    merged["updated_at"] = (now or utc_now()).isoformat()
    return LongTermSummary.model_validate(merged)


# ---------------------------------------------------------------------------
# Persistence
# ---------------------------------------------------------------------------

async def _current_long_term(ctx: SyncContext) -> LongTermSummary:
    result = await LONG_TERM_SUMMARY.reconcile(ctx)
    return result.items[0] if result.items else LongTermSummary()


async def _current_rolling(ctx: SyncContext) -> RollingContext:
    result = await ROLLING_CONTEXT.reconcile(ctx)
    return result.items[0] if result.items else RollingContext()


async def get_memory_context(ctx: SyncContext) -> MemoryContext:
    return MemoryContext(
        long_term_summary=await _current_long_term(ctx),
        rolling_context=await _current_rolling(ctx),
    )


async def save_long_term_summary(
    ctx: SyncContext,
    partial: LongTermSummaryUpdate,
    source: UpdateSource = "manual",
) -> LongTermSummary:
    current = await _current_long_term(ctx)
    merged = merge_update(current, partial, source)
    saved = await LONG_TERM_SUMMARY.persist(ctx, [merged])
    return saved[0]


async def save_rolling_context(ctx: SyncContext, partial: RollingContextUpdate) -> RollingContext:
    current = await _current_rolling(ctx)
    merged = current.model_copy(
        update={
            **partial.model_dump(exclude_unset=True),
            "updated_at": utc_now().isoformat(),
        }
    )
    saved = await ROLLING_CONTEXT.persist(ctx, [merged])
    return saved[0]


async def ensure_memory_scaffold(ctx: SyncContext) -> None:
    """Create empty remote memory documents for a user who has none yet."""
    stamp = utc_now().isoformat()
    await LONG_TERM_SUMMARY.ensure_remote(ctx, LongTermSummary(updated_at=stamp))
    await ROLLING_CONTEXT.ensure_remote(ctx, RollingContext(updated_at=stamp))


# ---------------------------------------------------------------------------
# Compression decision
# ---------------------------------------------------------------------------

def _compressed_at(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        stamp = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    return stamp if stamp.tzinfo else stamp.replace(tzinfo=timezone.utc)


def should_compress(
    long_term: LongTermSummary,
    journal_count: int,
    mood_count: int,
    force: bool = False,
    now: Optional[datetime] = None,
    journal_threshold: int = JOURNAL_THRESHOLD,
    mood_threshold: int = MOOD_THRESHOLD,
    refresh_interval: timedelta = REFRESH_INTERVAL,
) -> bool:
    if force:
        return True

    if any(not getattr(long_term, name).strip() for name in CORE_NARRATIVE_FIELDS):
        return True

    new_journal = max(0, journal_count - long_term.last_processed_journal_entry_count)
    new_mood = max(0, mood_count - long_term.last_processed_mood_entry_count)
    if new_journal >= journal_threshold or new_mood >= mood_threshold:
        return True

    last = _compressed_at(long_term.last_compressed_at)
    is_stale = last is None or (now or utc_now()) - last >= refresh_interval
    return is_stale and (new_journal > 0 or new_mood > 0)


# ---------------------------------------------------------------------------
# Compression request / response
# ---------------------------------------------------------------------------

def _compact_profile(profile: Profile) -> dict[str, str]:
    budgets = {
        "name": 80,
        "age": 12,
        "profession": 80,
        "gender": 24,
        "about": 180,
        "stress_level": 24,
        "sleep_average": 12,
        "energy_pattern": 24,
        "emotional_sensitivity": 24,
        "ai_tone": 24,
    }
    return {to_camel(name): compact_text(getattr(profile, name), limit) for name, limit in budgets.items()}


def _compact_long_term(long_term: LongTermSummary) -> dict[str, Any]:
    data = long_term.to_json_dict()
    return {
        key: data[key]
        for key in (
            "profileSummary",
            "emotionalBaselineSummary",
            "personalityPattern",
            "stressBaseline",
            "emotionalTriggers",
            "supportPatterns",
            "recurringThemes",
            "relationshipPatterns",
        )
    }


def _recent_journal(entries: Sequence[JournalEntry]) -> list[dict[str, Any]]:
    recent = sorted(entries, key=lambda e: e.date)[-RECENT_RECORD_LIMIT:]
    return [
        {
            "text": compact_text(e.text, 140),
            "moodTag": compact_text(e.mood_tag, 20),
            "sentimentScore": e.sentiment_score,
            "date": e.date,
        }
        for e in recent
    ]


def _recent_moods(entries: Sequence[MoodEntry]) -> list[dict[str, Any]]:
    recent = sorted(entries, key=entry_sort_key)[-RECENT_RECORD_LIMIT:]
    return [
        {
            "date": e.date,
            "slot": compact_text(e.slot, 12),
            "mood": e.mood,
            "score": e.score,
            "note": compact_text(e.note, 100),
        }
        for e in recent
    ]


def build_compression_prompt(
    profile: Profile,
    long_term: LongTermSummary,
    journal_entries: Sequence[JournalEntry],
    mood_entries: Sequence[MoodEntry],
) -> str:
    """Bounded request: compacted profile, current memory, 30 + 30 recent records."""
    shape = {to_camel(name): "..." for name in TEXT_FIELDS}
    shape.update({to_camel(name): ["..."] for name in LIST_FIELDS})
    return "\n\n".join(
        [
            "Update the long-term emotional memory profile for a personal mood companion. "
            "Summarize stable patterns supportively; do not diagnose.",
            "Return strict JSON only with exactly these keys:\n"
            + json_dumps(shape),
            "Current profile:\n" + json_dumps(_compact_profile(profile)),
            "Existing long-term memory:\n" + json_dumps(_compact_long_term(long_term)),
            "Recent journal entries:\n" + json_dumps(_recent_journal(journal_entries)),
            "Recent mood entries:\n" + json_dumps(_recent_moods(mood_entries)),
        ]
    )


def parse_compression_payload(raw: Optional[str]) -> LongTermSummaryUpdate:
    """Strict check of the service response; raises MalformedSummaryError."""
    parsed = parse_model_json(raw)
    if not isinstance(parsed, dict):
        raise MalformedSummaryError("Summary response is not a JSON object.", raw=raw)
    try:
        payload = CompressionPayload.model_validate(parsed)
    except ValidationError as exc:
        raise MalformedSummaryError(
            f"Summary response has the wrong shape ({exc.error_count()} errors).", raw=raw
        ) from exc
    return payload.normalized()


# ---------------------------------------------------------------------------
# Scheduler
# ---------------------------------------------------------------------------

class CompressionScheduler:
    """Owns the single in-flight flag for long-term compression."""

    def __init__(
        self,
        client: Optional[TextCompletionClient],
        journal_threshold: int = JOURNAL_THRESHOLD,
        mood_threshold: int = MOOD_THRESHOLD,
        refresh_interval: timedelta = REFRESH_INTERVAL,
    ):
        self.client = client
        self.journal_threshold = journal_threshold
        self.mood_threshold = mood_threshold
        self.refresh_interval = refresh_interval
        self._in_flight = False

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    def reset(self) -> None:
        self._in_flight = False

    async def maybe_refresh(
        self,
        ctx: SyncContext,
        journal_entries: Optional[Sequence[JournalEntry]] = None,
        mood_entries: Optional[Sequence[MoodEntry]] = None,
        force: bool = False,
    ) -> bool:
        """Returns True only when a new summary was generated and saved."""
        if self._in_flight:
            logger.debug("compression already in flight; skipping")
            return False

        self._in_flight = True
        try:
            return await self._refresh(ctx, journal_entries, mood_entries, force)
        finally:
            self._in_flight = False

    async def _refresh(
        self,
        ctx: SyncContext,
        journal_entries: Optional[Sequence[JournalEntry]],
        mood_entries: Optional[Sequence[MoodEntry]],
        force: bool,
    ) -> bool:
        profile = await get_profile(ctx)
        long_term = await _current_long_term(ctx)
        journal_list = list(journal_entries) if journal_entries is not None else await get_all_journal_entries(ctx)
        mood_list = list(mood_entries) if mood_entries is not None else await get_entries(ctx)

        due = should_compress(
            long_term,
            journal_count=len(journal_list),
            mood_count=len(mood_list),
            force=force,
            journal_threshold=self.journal_threshold,
            mood_threshold=self.mood_threshold,
            refresh_interval=self.refresh_interval,
        )
        if not due:
            logger.debug("long-term summary not due (journal=%d mood=%d)", len(journal_list), len(mood_list))
            return False
        if self.client is None:
            logger.warning("long-term compression skipped: no text-completion client")
            return False

        prompt = build_compression_prompt(profile, long_term, journal_list, mood_list)
        try:
            raw = await self.client.complete(prompt, temperature=0.2)
            generated = parse_compression_payload(raw)
        except SummarizationError as exc:
            logger.warning("long-term compression aborted: %s", exc.message)
            return False

        update = LongTermSummaryUpdate(
            **generated.model_dump(exclude_unset=True),
            last_compressed_at=utc_now().isoformat(),
            last_processed_journal_entry_count=len(journal_list),
            last_processed_mood_entry_count=len(mood_list),
        )
        await save_long_term_summary(ctx, update, source="ai")
        logger.info(
            "long-term summary regenerated (journal=%d mood=%d)", len(journal_list), len(mood_list)
        )
        return True
