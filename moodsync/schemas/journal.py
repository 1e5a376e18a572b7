"""
Journal session records and request schemas.

A session is owned by one user and only grows: each exchange appends a
user/assistant message pair plus one derived JournalEntry.
"""
from __future__ import annotations

from typing import Any, Literal, Optional

from pydantic import Field, field_validator, model_validator

from moodsync.core.normalize import (
    clamp,
    make_id,
    round2,
    to_number,
    unique_strings,
    utc_now_iso,
)
from moodsync.schemas.common import CamelModel

MAX_SESSION_TAGS = 6
MoodTrend = Literal["improving", "declining", "stable"]


def _records(value: Any) -> list[dict]:
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, dict)]


class JournalMessage(CamelModel):
    id: str = ""
    role: Literal["user", "assistant"] = "user"
    text: str = ""
    created_at: str = ""

    @field_validator("role", mode="before")
    @classmethod
    def _role(cls, v) -> str:
        return "assistant" if v == "assistant" else "user"

    @field_validator("text", "id", "created_at", mode="before")
    @classmethod
    def _text(cls, v) -> str:
        return "" if v is None else str(v)

    @model_validator(mode="after")
    def _defaults(self) -> "JournalMessage":
        self.id = self.id or make_id("msg")
        self.created_at = self.created_at or utc_now_iso()
        return self


class JournalEntry(CamelModel):
    id: str = ""
    text: str = ""
    date: str = ""
    sentiment_score: float = 0.0
    mood_tag: str = "neutral"
    session_id: str = ""

    @field_validator("sentiment_score", mode="before")
    @classmethod
    def _sentiment(cls, v) -> float:
        return clamp(to_number(v, 0.0), -1.0, 1.0)

    @field_validator("mood_tag", mode="before")
    @classmethod
    def _tag(cls, v) -> str:
        return str(v or "neutral").strip().lower() or "neutral"

    @field_validator("text", "id", "date", "session_id", mode="before")
    @classmethod
    def _text(cls, v) -> str:
        return "" if v is None else str(v)

    @model_validator(mode="after")
    def _defaults(self) -> "JournalEntry":
        self.id = self.id or make_id("entry")
        self.date = self.date or utc_now_iso()
        return self


class JournalSession(CamelModel):
    id: str = ""
    title: str = "Untitled chat"
    created_at: str = ""
    updated_at: str = ""
    summary: str = ""
    tags: list[str] = Field(default_factory=list)
    mood_trend: MoodTrend = "stable"
    average_mood: float = 0.0
    messages: list[JournalMessage] = Field(default_factory=list)
    entries: list[JournalEntry] = Field(default_factory=list)

    @field_validator("messages", "entries", mode="before")
    @classmethod
    def _only_objects(cls, v) -> list[dict]:
        return _records(v)

    @field_validator("tags", mode="before")
    @classmethod
    def _tags(cls, v) -> list[str]:
        return unique_strings(v, limit=MAX_SESSION_TAGS)

    @field_validator("mood_trend", mode="before")
    @classmethod
    def _trend(cls, v) -> str:
        return v if v in ("improving", "declining", "stable") else "stable"

    @field_validator("average_mood", mode="before")
    @classmethod
    def _average(cls, v) -> float:
        return round2(clamp(to_number(v, 0.0), -1.0, 1.0))

    @field_validator("title", mode="before")
    @classmethod
    def _title(cls, v) -> str:
        return str(v).strip() if v else "Untitled chat"

    @field_validator("summary", "id", "created_at", "updated_at", mode="before")
    @classmethod
    def _text(cls, v) -> str:
        return "" if v is None else str(v)

    @model_validator(mode="after")
    def _defaults(self) -> "JournalSession":
        now_iso = utc_now_iso()
        self.id = self.id or make_id("session")
        self.created_at = self.created_at or now_iso
        self.updated_at = self.updated_at or now_iso
        return self


class FlatJournalEntry(JournalEntry):
    """A journal entry listed outside its session."""
    session_title: str = ""


# ---------------------------------------------------------------------------
# Analysis of one journal exchange
# ---------------------------------------------------------------------------

class JournalAnalysis(CamelModel):
    reflection: str = ""
    mood_tag: str = "neutral"
    sentiment: float = 0.0
    follow_up_question: str = ""
    suggested_questions: list[str] = Field(default_factory=list)
    summary: str = ""
    tags: list[str] = Field(default_factory=list)

    @field_validator("sentiment", mode="before")
    @classmethod
    def _sentiment(cls, v) -> float:
        return clamp(to_number(v, 0.0), -1.0, 1.0)

    @field_validator("suggested_questions", mode="before")
    @classmethod
    def _questions(cls, v) -> list[str]:
        return unique_strings(v, limit=4)

    @field_validator("tags", mode="before")
    @classmethod
    def _tags(cls, v) -> list[str]:
        return unique_strings(v, limit=MAX_SESSION_TAGS)


# ---------------------------------------------------------------------------
# Requests / responses
# ---------------------------------------------------------------------------

class CreateSessionRequest(CamelModel):
    title: str = Field(default="New reflection", max_length=120)


class JournalExchangeRequest(CamelModel):
    session_id: Optional[str] = Field(
        default=None,
        description="Existing session id. Unknown or missing ids start a new session.",
    )
    user_text: str = Field(min_length=1, max_length=10_000)
    analysis: Optional[JournalAnalysis] = Field(
        default=None,
        description="Pre-computed analysis. When omitted the core analyzes the text.",
    )

    @field_validator("user_text", mode="before")
    @classmethod
    def strip_and_check_empty(cls, v):
        stripped = v.strip() if isinstance(v, str) else v
        if not stripped:
            raise ValueError("userText must not be empty after stripping whitespace")
        return stripped


class JournalExchangeResult(CamelModel):
    sessions: list[JournalSession]
    session_id: str
    assistant_message: Optional[JournalMessage] = None
    journal_entry: Optional[JournalEntry] = None


class NameExtractionRequest(CamelModel):
    text: str = Field(default="", max_length=10_000)


class NameExtractionResponse(CamelModel):
    names: list[str]


class JournalContext(CamelModel):
    """Compact signals handed to the journal analysis prompt."""
    profile_summary: str = ""
    recent_mood_trend: str = ""
    recent_entries_summary: str = ""
    long_term_summary: str = ""
    rolling_summary: str = ""
    recent_chat_history_summary: str = ""
    manual_tags_summary: str = ""
