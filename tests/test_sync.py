"""
Tests for the synced collection: reconciliation rules, best-effort remote
writes, round-trip and idempotence, and the conflict policy.
"""
import pytest

from conftest import FailingRemoteStore, WriteFailingRemoteStore, remote_doc, run
from moodsync.schemas.mood import MoodEntry
from moodsync.services.local_store import local_key
from moodsync.services.memory import LONG_TERM_SUMMARY
from moodsync.services.mood_entries import MOOD_ENTRIES
from moodsync.services.profile import PROFILE
from moodsync.services.sync import LongerListWins, Source, SyncContext


def _entries(*days):
    return [{"date": d, "slot": "evening", "mood": 4, "note": f"note {d}"} for d in days]


# ---------------------------------------------------------------------------
# Conflict policy
# ---------------------------------------------------------------------------

class TestLongerListWins:
    @pytest.mark.parametrize(
        "local_count,remote_count,expected",
        [
            (3, 1, Source.LOCAL),
            (1, 0, Source.LOCAL),
            (2, 2, Source.REMOTE),
            (1, 3, Source.REMOTE),
            (0, 0, Source.REMOTE),
        ],
    )
    def test_choose(self, local_count, remote_count, expected):
        assert LongerListWins().choose(local_count, remote_count) is expected


class CountingPolicy:
    def __init__(self):
        self.calls = []

    def choose(self, local_count, remote_count):
        self.calls.append((local_count, remote_count))
        return Source.REMOTE


# ---------------------------------------------------------------------------
# Reconcile
# ---------------------------------------------------------------------------

class TestReconcile:
    def test_local_only_without_user(self, local_ctx):
        run(MOOD_ENTRIES.persist(local_ctx, _entries("2026-02-01")))
        result = run(MOOD_ENTRIES.reconcile(local_ctx))
        assert result.source is Source.LOCAL
        assert [e.date for e in result.items] == ["2026-02-01"]

    def test_missing_remote_is_bootstrapped_from_local(self, ctx, remote, user_id):
        local_only = SyncContext(local=ctx.local, remote=None, user_id=user_id)
        run(MOOD_ENTRIES.persist(local_only, _entries("2026-02-01", "2026-02-02")))

        result = run(MOOD_ENTRIES.reconcile(ctx))

        assert result.source is Source.LOCAL
        doc = remote_doc(remote, user_id, "appData/moodEntries")
        assert doc.exists
        assert len(doc.data["entries"]) == 2
        assert "updatedAt" in doc.data

    def test_missing_remote_and_empty_local_returns_empty(self, ctx, remote, user_id):
        result = run(MOOD_ENTRIES.reconcile(ctx))
        assert result.items == []
        assert not remote_doc(remote, user_id, "appData/moodEntries").exists

    def test_longer_local_wins_and_is_pushed(self, ctx, remote, user_id):
        run(remote.set_doc(f"users/{user_id}/appData/moodEntries", {"entries": _entries("2026-01-01")}))
        local_only = SyncContext(local=ctx.local, remote=None, user_id=user_id)
        run(MOOD_ENTRIES.persist(local_only, _entries("2026-02-01", "2026-02-02")))

        result = run(MOOD_ENTRIES.reconcile(ctx))

        assert result.source is Source.LOCAL
        assert {e.date for e in result.items} == {"2026-02-01", "2026-02-02"}
        pushed = remote_doc(remote, user_id, "appData/moodEntries").data["entries"]
        assert {e["date"] for e in pushed} == {"2026-02-01", "2026-02-02"}

    def test_equal_counts_adopt_remote_and_mirror_locally(self, ctx, remote, user_id):
        run(remote.set_doc(f"users/{user_id}/appData/moodEntries", {"entries": _entries("2026-01-05")}))
        local_only = SyncContext(local=ctx.local, remote=None, user_id=user_id)
        run(MOOD_ENTRIES.persist(local_only, _entries("2026-02-01")))

        result = run(MOOD_ENTRIES.reconcile(ctx))

        assert result.source is Source.REMOTE
        assert [e.date for e in result.items] == ["2026-01-05"]
        mirrored = run(MOOD_ENTRIES.read_local(local_only))
        assert [e.date for e in mirrored] == ["2026-01-05"]

    def test_remote_records_are_normalized(self, ctx, remote, user_id):
        run(remote.set_doc(
            f"users/{user_id}/appData/moodEntries",
            {"entries": [{"date": "2026-02-03", "slot": "morning", "mood": 9}, "junk", 42]},
        ))
        result = run(MOOD_ENTRIES.reconcile(ctx))
        assert len(result.items) == 1
        entry = result.items[0]
        assert entry.mood == 5
        assert entry.score == 1.0
        assert entry.id == "2026-02-03_morning"

    def test_unreadable_remote_returns_local(self, local, user_id):
        failing = FailingRemoteStore()
        ctx = SyncContext(local=local, remote=failing, user_id=user_id)
        run(MOOD_ENTRIES.persist(ctx, _entries("2026-02-01")))

        result = run(MOOD_ENTRIES.reconcile(ctx))

        assert result.source is Source.LOCAL
        assert [e.date for e in result.items] == ["2026-02-01"]

    def test_unparseable_local_reads_empty(self, local_ctx, local):
        run(local.set(local_key(None, "entries"), "{not json"))
        assert run(MOOD_ENTRIES.reconcile(local_ctx)).items == []

    def test_wrong_local_shape_reads_empty(self, local_ctx, local):
        run(local.set(local_key(None, "entries"), '{"entries": []}'))
        assert run(MOOD_ENTRIES.reconcile(local_ctx)).items == []

    def test_non_finite_local_mood_reads_as_neutral(self, local_ctx, local):
        run(local.set(
            local_key(None, "entries"),
            '[{"date": "2026-02-01", "slot": "evening", "mood": Infinity}]',
        ))
        result = run(MOOD_ENTRIES.reconcile(local_ctx))
        assert [(e.date, e.mood, e.score) for e in result.items] == [("2026-02-01", 3, 0.0)]

    @pytest.mark.parametrize("mood", [float("inf"), float("-inf"), float("nan")])
    def test_non_finite_remote_mood_reads_as_neutral(self, ctx, remote, user_id, mood):
        run(remote.set_doc(
            f"users/{user_id}/appData/moodEntries",
            {"entries": [{"date": "2026-02-01", "slot": "evening", "mood": mood}]},
        ))
        result = run(MOOD_ENTRIES.reconcile(ctx))
        assert result.source is Source.REMOTE
        assert [e.mood for e in result.items] == [3]

    def test_policy_is_replaceable(self, ctx, remote, user_id):
        from moodsync.services.sync import CollectionSpec, SyncedCollection

        policy = CountingPolicy()
        collection = SyncedCollection(MOOD_ENTRIES.spec, policy=policy)
        run(remote.set_doc(f"users/{user_id}/appData/moodEntries", {"entries": []}))
        local_only = SyncContext(local=ctx.local, remote=None, user_id=user_id)
        run(collection.persist(local_only, _entries("2026-02-01")))

        result = run(collection.reconcile(ctx))

        assert policy.calls == [(1, 0)]
        assert result.source is Source.REMOTE
        assert result.items == []
        assert isinstance(collection.spec, CollectionSpec)


# ---------------------------------------------------------------------------
# Persist
# ---------------------------------------------------------------------------

class TestPersist:
    def test_round_trip(self, ctx):
        saved = run(MOOD_ENTRIES.persist(ctx, _entries("2026-02-02", "2026-02-01")))
        assert run(MOOD_ENTRIES.reconcile(ctx)).items == saved

    def test_reconcile_is_idempotent(self, ctx):
        run(MOOD_ENTRIES.persist(ctx, _entries("2026-02-01", "2026-02-02")))
        first = run(MOOD_ENTRIES.reconcile(ctx)).items
        second = run(MOOD_ENTRIES.reconcile(ctx)).items
        assert first == second

    def test_sorted_newest_first(self, ctx):
        saved = run(MOOD_ENTRIES.persist(ctx, _entries("2026-02-01", "2026-02-03", "2026-02-02")))
        assert [e.date for e in saved] == ["2026-02-03", "2026-02-02", "2026-02-01"]

    def test_remote_write_failure_does_not_fail_caller(self, local, user_id):
        ctx = SyncContext(local=local, remote=FailingRemoteStore(), user_id=user_id)
        saved = run(MOOD_ENTRIES.persist(ctx, _entries("2026-02-01")))
        assert len(saved) == 1
        local_only = SyncContext(local=local, remote=None, user_id=user_id)
        assert len(run(MOOD_ENTRIES.read_local(local_only))) == 1

    def test_bootstrap_write_failure_still_returns_local(self, local, user_id):
        remote = WriteFailingRemoteStore()
        local_only = SyncContext(local=local, remote=None, user_id=user_id)
        run(MOOD_ENTRIES.persist(local_only, _entries("2026-02-01")))

        result = run(MOOD_ENTRIES.reconcile(SyncContext(local=local, remote=remote, user_id=user_id)))

        assert [e.date for e in result.items] == ["2026-02-01"]
        assert remote.documents == {}

    def test_owners_do_not_share_local_records(self, local):
        alice = SyncContext(local=local, user_id="alice")
        bob = SyncContext(local=local, user_id="bob")
        run(MOOD_ENTRIES.persist(alice, _entries("2026-02-01")))
        assert run(MOOD_ENTRIES.reconcile(bob)).items == []

    def test_persist_accepts_models(self, ctx):
        entry = MoodEntry(date="2026-02-01", slot="night", mood=2)
        saved = run(MOOD_ENTRIES.persist(ctx, [entry]))
        assert saved[0].id == "2026-02-01_night"


# ---------------------------------------------------------------------------
# Single-document collections
# ---------------------------------------------------------------------------

class TestSingleDocument:
    def test_empty_reads_as_no_record(self, local_ctx):
        assert run(PROFILE.reconcile(local_ctx)).items == []

    def test_remote_document_wins_over_local(self, ctx, remote, user_id):
        local_only = SyncContext(local=ctx.local, remote=None, user_id=user_id)
        run(PROFILE.persist(local_only, [{"name": "Local Name"}]))
        run(remote.set_doc(f"users/{user_id}/appData/profile", {"name": "Remote Name"}))

        result = run(PROFILE.reconcile(ctx))

        assert result.source is Source.REMOTE
        assert result.items[0].name == "Remote Name"

    def test_document_is_stored_as_the_record(self, ctx, remote, user_id):
        run(LONG_TERM_SUMMARY.persist(ctx, [{"profileSummary": "Calm mornings."}]))
        doc = remote_doc(remote, user_id, "memory/longTermSummary")
        assert doc.data["profileSummary"] == "Calm mornings."
        assert "userOverrides" in doc.data

    def test_ensure_remote_creates_only_when_missing(self, ctx, remote, user_id):
        path = f"users/{user_id}/appData/profile"
        run(remote.set_doc(path, {"name": "Existing"}))
        run(PROFILE.ensure_remote(ctx, PROFILE.spec.model(name="Default")))
        assert remote.documents[path]["name"] == "Existing"
