"""
Tests for long-term memory: override-aware merging, the compression
decision, payload validation and the compression scheduler.
"""
import asyncio
import json
from datetime import datetime, timedelta, timezone

import pytest

from conftest import VALID_SUMMARY, FakeTextClient, SlowTextClient, remote_doc, run
from moodsync.core.errors import MalformedSummaryError
from moodsync.schemas.journal import JournalEntry
from moodsync.schemas.memory import (
    LongTermSummary,
    LongTermSummaryUpdate,
    RollingContextUpdate,
)
from moodsync.schemas.mood import MoodEntry
from moodsync.schemas.profile import Profile
from moodsync.services.memory import (
    CompressionScheduler,
    build_compression_prompt,
    ensure_memory_scaffold,
    get_memory_context,
    merge_update,
    parse_compression_payload,
    save_long_term_summary,
    save_rolling_context,
    should_compress,
)
from moodsync.services.profile import save_profile

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _filled(**overrides):
    data = {
        "profile_summary": "Steady designer.",
        "emotional_baseline_summary": "Mostly calm.",
        "last_processed_journal_entry_count": 5,
        "last_processed_mood_entry_count": 5,
        "last_compressed_at": (NOW - timedelta(hours=1)).isoformat(),
    }
    data.update(overrides)
    return LongTermSummary(**data)


def _journal(count):
    start = datetime(2026, 1, 1, 8, 0)
    return [
        JournalEntry(text=f"journal-{i:02d}", date=(start + timedelta(hours=i)).isoformat(), sentiment_score=0.1)
        for i in range(count)
    ]


def _moods(count):
    return [MoodEntry(date=f"2026-01-{(i % 28) + 1:02d}", slot="morning", mood=3) for i in range(count)]


# ---------------------------------------------------------------------------
# merge_update
# ---------------------------------------------------------------------------

class TestMergeUpdate:
    def test_manual_edit_sets_value_and_override(self):
        merged = merge_update(LongTermSummary(), LongTermSummaryUpdate(profile_summary="Mine"), "manual", now=NOW)
        assert merged.profile_summary == "Mine"
        assert merged.is_overridden("profile_summary")
        assert merged.user_overrides["profileSummary"] is True
        assert merged.updated_at == NOW.isoformat()

    def test_ai_update_skips_overridden_field(self):
        current = merge_update(LongTermSummary(), LongTermSummaryUpdate(profile_summary="Mine"), "manual")
        merged = merge_update(
            current,
            LongTermSummaryUpdate(profile_summary="Generated", personality_pattern="Curious"),
            "ai",
        )
        assert merged.profile_summary == "Mine"
        assert merged.personality_pattern == "Curious"
        assert not merged.is_overridden("personality_pattern")

    def test_manual_edit_wins_over_previous_override(self):
        current = merge_update(LongTermSummary(), LongTermSummaryUpdate(recurring_themes=["a"]), "manual")
        merged = merge_update(current, LongTermSummaryUpdate(recurring_themes=["b"]), "manual")
        assert merged.recurring_themes == ["b"]

    def test_bookkeeping_always_applies(self):
        current = merge_update(LongTermSummary(), LongTermSummaryUpdate(profile_summary="Mine"), "manual")
        merged = merge_update(
            current,
            LongTermSummaryUpdate(last_processed_journal_entry_count=12, last_compressed_at=NOW.isoformat()),
            "ai",
        )
        assert merged.last_processed_journal_entry_count == 12
        assert merged.last_compressed_at == NOW.isoformat()

    def test_unset_fields_are_left_alone(self):
        current = LongTermSummary(stress_baseline="Moderate")
        merged = merge_update(current, LongTermSummaryUpdate(personality_pattern="Curious"), "ai")
        assert merged.stress_baseline == "Moderate"

    def test_manual_tags_are_editable(self):
        merged = merge_update(
            LongTermSummary(),
            LongTermSummaryUpdate(manual_tags=[{"label": "Sister", "name": "Ana"}]),
            "manual",
        )
        assert merged.manual_tags[0].name == "Ana"
        assert merged.is_overridden("manual_tags")


class TestLongTermNormalization:
    def test_text_and_lists_are_capped(self):
        summary = LongTermSummary.model_validate({
            "profileSummary": "word " * 100,
            "stressBaseline": "x" * 300,
            "emotionalTriggers": [f"t{i}" for i in range(12)] + ["t1", " ", 3],
            "manualTags": [{"label": "Friend", "name": "Jo"}, {"label": "", "name": "X"}, "bad"],
        })
        assert len(summary.profile_summary) == 220
        assert summary.profile_summary.endswith("...")
        assert len(summary.stress_baseline) == 160
        assert summary.emotional_triggers == [f"t{i}" for i in range(8)]
        assert [t.name for t in summary.manual_tags] == ["Jo"]

    def test_overrides_have_one_flag_per_editable_field(self):
        summary = LongTermSummary.model_validate({"userOverrides": {"profileSummary": 1, "bogus": True}})
        assert summary.user_overrides["profileSummary"] is True
        assert summary.user_overrides["manualTags"] is False
        assert "bogus" not in summary.user_overrides
        assert len(summary.user_overrides) == 9


# ---------------------------------------------------------------------------
# should_compress
# ---------------------------------------------------------------------------

class TestShouldCompress:
    def test_force(self):
        assert should_compress(_filled(), 5, 5, force=True, now=NOW)

    @pytest.mark.parametrize("field", ["profile_summary", "emotional_baseline_summary"])
    def test_empty_core_narrative(self, field):
        assert should_compress(_filled(**{field: "  "}), 5, 5, now=NOW)

    def test_journal_threshold(self):
        assert should_compress(_filled(), 15, 5, now=NOW)
        assert not should_compress(_filled(), 14, 5, now=NOW)

    def test_mood_threshold(self):
        assert should_compress(_filled(), 5, 15, now=NOW)

    def test_fresh_summary_with_few_new_records(self):
        assert not should_compress(_filled(), 6, 5, now=NOW)

    def test_stale_summary_with_new_records(self):
        stale = _filled(last_compressed_at=(NOW - timedelta(hours=25)).isoformat())
        assert should_compress(stale, 6, 5, now=NOW)

    def test_stale_summary_without_new_records(self):
        stale = _filled(last_compressed_at=(NOW - timedelta(days=3)).isoformat())
        assert not should_compress(stale, 5, 5, now=NOW)

    def test_never_compressed_with_new_records(self):
        assert should_compress(_filled(last_compressed_at=None), 5, 6, now=NOW)

    def test_naive_timestamp_is_utc(self):
        naive = _filled(last_compressed_at="2026-03-01T11:00:00")
        assert not should_compress(naive, 6, 5, now=NOW)

    def test_fewer_records_than_processed(self):
        assert not should_compress(_filled(), 0, 0, now=NOW)


# ---------------------------------------------------------------------------
# Request / response
# ---------------------------------------------------------------------------

class TestCompressionPayload:
    def test_valid_payload(self):
        update = parse_compression_payload(json.dumps(VALID_SUMMARY))
        assert update.profile_summary == VALID_SUMMARY["profileSummary"]
        assert update.emotional_triggers == ["deadlines", "poor sleep"]

    def test_code_fences_are_tolerated(self):
        update = parse_compression_payload("```json\n" + json.dumps(VALID_SUMMARY) + "\n```")
        assert update.stress_baseline == VALID_SUMMARY["stressBaseline"]

    def test_lists_are_normalized(self):
        payload = dict(VALID_SUMMARY, supportPatterns=["walks", "walks", " ", "x" * 80])
        update = parse_compression_payload(json.dumps(payload))
        assert update.support_patterns == ["walks", "x" * 57 + "..."]

    @pytest.mark.parametrize(
        "raw",
        [
            None,
            "",
            "not json",
            "[1, 2]",
            json.dumps({"profileSummary": "only one key"}),
            json.dumps(dict(VALID_SUMMARY, emotionalTriggers="deadlines")),
            json.dumps(dict(VALID_SUMMARY, stressBaseline=3)),
            json.dumps(dict(VALID_SUMMARY, recurringThemes=["ok", 7])),
        ],
    )
    def test_malformed_payload(self, raw):
        with pytest.raises(MalformedSummaryError):
            parse_compression_payload(raw)

    def test_prompt_is_bounded_to_recent_records(self):
        prompt = build_compression_prompt(Profile(name="Sam"), LongTermSummary(), _journal(40), _moods(5))
        assert "long-term emotional memory" in prompt
        assert "journal-39" in prompt
        assert "journal-10" in prompt
        assert "journal-09" not in prompt
        assert '"profileSummary":"..."' in prompt
        assert '"emotionalTriggers":["..."]' in prompt


# ---------------------------------------------------------------------------
# Persistence
# ---------------------------------------------------------------------------

class TestMemoryPersistence:
    def test_empty_context_reads_as_defaults(self, ctx):
        memory = run(get_memory_context(ctx))
        assert memory.long_term_summary.profile_summary == ""
        assert memory.rolling_context.active_focus == ""

    def test_manual_save_round_trip(self, ctx, remote, user_id):
        run(save_long_term_summary(ctx, LongTermSummaryUpdate(profile_summary="Mine"), "manual"))
        memory = run(get_memory_context(ctx))
        assert memory.long_term_summary.profile_summary == "Mine"
        doc = remote_doc(remote, user_id, "memory/longTermSummary")
        assert doc.data["userOverrides"]["profileSummary"] is True

    def test_rolling_context_partial_update(self, ctx):
        run(save_rolling_context(ctx, RollingContextUpdate(active_focus="sleep")))
        rolling = run(save_rolling_context(ctx, RollingContextUpdate(session_summary="Talked about work.")))
        assert rolling.active_focus == "sleep"
        assert rolling.session_summary == "Talked about work."
        assert rolling.updated_at

    def test_scaffold_creates_missing_documents_only(self, ctx, remote, user_id):
        run(remote.set_doc(f"users/{user_id}/memory/rollingContext", {"activeFocus": "keep me"}))
        run(ensure_memory_scaffold(ctx))
        assert remote_doc(remote, user_id, "memory/longTermSummary").exists
        assert remote_doc(remote, user_id, "memory/rollingContext").data == {"activeFocus": "keep me"}


# ---------------------------------------------------------------------------
# Scheduler
# ---------------------------------------------------------------------------

class TestCompressionScheduler:
    def test_successful_refresh(self, ctx, text_client):
        scheduler = CompressionScheduler(text_client)
        assert run(scheduler.maybe_refresh(ctx, _journal(3), _moods(2))) is True

        summary = run(get_memory_context(ctx)).long_term_summary
        assert summary.profile_summary == VALID_SUMMARY["profileSummary"]
        assert summary.last_processed_journal_entry_count == 3
        assert summary.last_processed_mood_entry_count == 2
        assert summary.last_compressed_at
        assert not summary.is_overridden("profile_summary")
        assert len(text_client.prompts) == 1

    def test_records_are_loaded_when_not_passed(self, ctx, text_client):
        scheduler = CompressionScheduler(text_client)
        assert run(scheduler.maybe_refresh(ctx)) is True
        summary = run(get_memory_context(ctx)).long_term_summary
        assert summary.last_processed_journal_entry_count == 0

    def test_overridden_field_survives_refresh(self, ctx, text_client):
        run(save_long_term_summary(ctx, LongTermSummaryUpdate(profile_summary="Written by me"), "manual"))
        scheduler = CompressionScheduler(text_client)

        assert run(scheduler.maybe_refresh(ctx, _journal(1), [], force=True)) is True

        summary = run(get_memory_context(ctx)).long_term_summary
        assert summary.profile_summary == "Written by me"
        assert summary.personality_pattern == VALID_SUMMARY["personalityPattern"]

    def test_service_failure_leaves_summary_untouched(self, ctx, failing_text_client):
        run(save_long_term_summary(ctx, LongTermSummaryUpdate(stress_baseline="Low"), "manual"))
        before = run(get_memory_context(ctx)).long_term_summary

        scheduler = CompressionScheduler(failing_text_client)
        assert run(scheduler.maybe_refresh(ctx, [], [], force=True)) is False

        assert run(get_memory_context(ctx)).long_term_summary == before
        assert scheduler.in_flight is False

    @pytest.mark.parametrize(
        "response",
        ["definitely not json", json.dumps({"profileSummary": "partial"})],
    )
    def test_malformed_output_is_rejected(self, ctx, response):
        scheduler = CompressionScheduler(FakeTextClient(responses=[response]))
        assert run(scheduler.maybe_refresh(ctx, [], [], force=True)) is False
        assert run(get_memory_context(ctx)).long_term_summary.profile_summary == ""

    def test_not_due_skips_the_service(self, ctx, text_client):
        run(save_long_term_summary(ctx, LongTermSummaryUpdate(**{
            "profile_summary": "x",
            "emotional_baseline_summary": "y",
            "last_compressed_at": datetime.now(timezone.utc).isoformat(),
        }), "ai"))
        scheduler = CompressionScheduler(text_client)
        assert run(scheduler.maybe_refresh(ctx, _journal(1), [])) is False
        assert text_client.prompts == []

    def test_forced_refresh_ignores_analysis_preference(self, ctx, text_client):
        run(save_profile(ctx, {"allowLongTermAnalysis": False}))
        scheduler = CompressionScheduler(text_client)
        assert run(scheduler.maybe_refresh(ctx, [], [], force=True)) is True
        assert len(text_client.prompts) == 1
        assert run(get_memory_context(ctx)).long_term_summary.profile_summary == VALID_SUMMARY["profileSummary"]

    def test_without_client(self, ctx):
        assert run(CompressionScheduler(None).maybe_refresh(ctx, [], [], force=True)) is False

    def test_concurrent_request_is_noop(self, ctx):
        slow = SlowTextClient()
        scheduler = CompressionScheduler(slow)

        async def scenario():
            first = asyncio.create_task(scheduler.maybe_refresh(ctx, [], [], force=True))
            await slow.started.wait()
            in_flight = scheduler.in_flight
            second = await scheduler.maybe_refresh(ctx, [], [], force=True)
            slow.release.set()
            return in_flight, second, await first

        in_flight, second, first = run(scenario())

        assert in_flight is True
        assert second is False
        assert first is True
        assert len(slow.prompts) == 1
        assert scheduler.in_flight is False

    def test_flag_cleared_after_error(self, ctx):
        scheduler = CompressionScheduler(FakeTextClient(error=RuntimeError("boom")))
        with pytest.raises(RuntimeError):
            run(scheduler.maybe_refresh(ctx, [], [], force=True))
        assert scheduler.in_flight is False
