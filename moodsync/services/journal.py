"""
Journal session service.

Sessions only grow: an exchange appends a user/assistant message pair and
one JournalEntry, then recomputes the session's derived fields
(title, averageMood, moodTrend, tags, summary). Sessions are listed most
recently updated first.

Public API
----------
JOURNAL_SESSIONS                                      SyncedCollection[JournalSession]
get_journal_sessions(ctx)                             -> list[JournalSession]
get_journal_session(ctx, session_id)                  -> JournalSession
create_journal_session(ctx, title)                    -> JournalSession
add_journal_exchange(ctx, session_id, user_text, analysis) -> JournalExchangeResult
get_all_journal_entries(ctx)                          -> list[FlatJournalEntry]
"""
from __future__ import annotations

import logging
from statistics import fmean
from typing import Optional, Sequence

from moodsync.core.errors import SessionNotFoundError
from moodsync.core.normalize import compact_text, unique_strings, utc_now_iso
from moodsync.schemas.journal import (
    MAX_SESSION_TAGS,
    FlatJournalEntry,
    JournalAnalysis,
    JournalEntry,
    JournalExchangeResult,
    JournalMessage,
    JournalSession,
)
from moodsync.services.sync import CollectionSpec, SyncContext, SyncedCollection

logger = logging.getLogger(__name__)

JOURNAL_SESSIONS: SyncedCollection[JournalSession] = SyncedCollection(
    CollectionSpec(
        name="journal_sessions",
        remote_path="appData/journalSessions",
        model=JournalSession,
        list_field="sessions",
        sort_key=lambda session: session.updated_at,
        reverse=True,
    )
)

DEFAULT_TITLE = "New reflection"
TITLE_CHARS = 48
SUMMARY_CHARS = 220
TREND_DELTA = 0.12


# ---------------------------------------------------------------------------
# Derived session fields
# ---------------------------------------------------------------------------

def _mean(values: Sequence[float]) -> float:
    return fmean(values) if values else 0.0


def mood_trend(sentiments: Sequence[float]) -> str:
    """Second-half mean minus first-half mean, in chronological order."""
    if len(sentiments) < 2:
        return "stable"
    pivot = len(sentiments) // 2
    delta = _mean(sentiments[pivot:]) - _mean(sentiments[:pivot])
    if delta >= TREND_DELTA:
        return "improving"
    if delta <= -TREND_DELTA:
        return "declining"
    return "stable"


def _session_summary(messages: Sequence[JournalMessage], analysis: JournalAnalysis) -> str:
    if analysis.summary.strip():
        return compact_text(analysis.summary, SUMMARY_CHARS)
    user_texts = [m.text for m in messages if m.role == "user"][-3:]
    return compact_text(" ".join(user_texts), SUMMARY_CHARS)


def _assistant_text(analysis: JournalAnalysis) -> str:
    questions = analysis.suggested_questions or (
        [analysis.follow_up_question] if analysis.follow_up_question else []
    )
    numbered = "\n".join(f"{i}. {q}" for i, q in enumerate(questions, start=1))
    return f"{analysis.reflection}\n\n{numbered}".strip()


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------

async def get_journal_sessions(ctx: SyncContext) -> list[JournalSession]:
    result = await JOURNAL_SESSIONS.reconcile(ctx)
    return result.items


async def get_journal_session(ctx: SyncContext, session_id: str) -> JournalSession:
    for session in await get_journal_sessions(ctx):
        if session.id == session_id:
            return session
    raise SessionNotFoundError(session_id)


async def get_all_journal_entries(ctx: SyncContext) -> list[FlatJournalEntry]:
    """Every journal entry across sessions, newest first."""
    flat = [
        FlatJournalEntry(
            **{**entry.model_dump(), "session_id": session.id, "session_title": session.title}
        )
        for session in await get_journal_sessions(ctx)
        for entry in session.entries
    ]
    flat.sort(key=lambda entry: entry.date, reverse=True)
    return flat


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------

async def create_journal_session(ctx: SyncContext, title: str = DEFAULT_TITLE) -> JournalSession:
    sessions = await get_journal_sessions(ctx)
    session = JournalSession(title=title or DEFAULT_TITLE)
    await JOURNAL_SESSIONS.persist(ctx, [session, *sessions])
    return session


async def add_journal_exchange(
    ctx: SyncContext,
    session_id: Optional[str],
    user_text: str,
    analysis: JournalAnalysis,
) -> JournalExchangeResult:
    """
    Append one exchange. An unknown or missing session id starts a new
    session, titled from the first user text.
    """
    sessions = await get_journal_sessions(ctx)
    index = next((i for i, s in enumerate(sessions) if s.id == session_id), None)
    if index is None:
        sessions.insert(0, JournalSession(title=DEFAULT_TITLE))
        index = 0
        logger.debug("journal exchange for unknown session %r; started %s", session_id, sessions[0].id)

    session = sessions[index]
    now_iso = utc_now_iso()

    user_message = JournalMessage(role="user", text=user_text, created_at=now_iso)
    assistant_message = JournalMessage(role="assistant", text=_assistant_text(analysis))
    journal_entry = JournalEntry(
        text=user_text,
        date=now_iso,
        sentiment_score=analysis.sentiment,
        mood_tag=analysis.mood_tag,
        session_id=session.id,
    )

    messages = [*session.messages, user_message, assistant_message]
    entries = [*session.entries, journal_entry]
    sentiments = [entry.sentiment_score for entry in entries]

    sessions[index] = session.model_copy(
        update={
            "title": session.title if session.messages else (user_text[:TITLE_CHARS] or DEFAULT_TITLE),
            "updated_at": utc_now_iso(),
            "messages": messages,
            "entries": entries,
            "average_mood": _mean(sentiments),
            "mood_trend": mood_trend(sentiments),
            "tags": unique_strings(
                [entry.mood_tag for entry in entries] + analysis.tags,
                limit=MAX_SESSION_TAGS,
            ),
            "summary": _session_summary(messages, analysis),
        }
    )

    saved = await JOURNAL_SESSIONS.persist(ctx, sessions)
    return JournalExchangeResult(
        sessions=saved,
        session_id=session.id,
        assistant_message=assistant_message,
        journal_entry=journal_entry,
    )
