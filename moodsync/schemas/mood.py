"""
Mood entry record and request schemas.

Identity: one entry per (date, slot); the id defaults to "<date>_<slot>".
`score` is always derived from `mood`: (mood - 3) / 2, rounded to 2 places.
"""
from __future__ import annotations

from datetime import date, datetime, time
from typing import Literal, Optional

from pydantic import Field, field_validator, model_validator

from moodsync.core.normalize import (
    clamp,
    parse_day_key,
    parse_timestamp,
    round2,
    to_number,
    today_key,
    utc_now_iso,
)
from moodsync.schemas.common import CamelModel

Slot = Literal["morning", "afternoon", "evening", "night"]

SLOTS: tuple[str, ...] = ("morning", "afternoon", "evening", "night")
SLOT_HOURS = {"morning": 9, "afternoon": 14, "evening": 19, "night": 23}
SLOT_ORDER = {"morning": 1, "afternoon": 2, "evening": 3, "night": 4}
DEFAULT_SLOT = "evening"


def slot_for_hour(hour: int) -> str:
    if 5 <= hour < 12:
        return "morning"
    if 12 <= hour < 17:
        return "afternoon"
    if 17 <= hour < 22:
        return "evening"
    return "night"


def clamp_mood(value) -> int:
    return int(clamp(round(to_number(value, 3)), 1, 5))


def mood_to_score(mood: int) -> float:
    return round2((mood - 3) / 2)


def slot_moment(day_key: str, slot: str) -> datetime:
    """Wall-clock moment a slot stands for on a given day."""
    return datetime.combine(
        date.fromisoformat(day_key), time(hour=SLOT_HOURS.get(slot, 12))
    )


# ---------------------------------------------------------------------------
# Persisted record
# ---------------------------------------------------------------------------

class MoodEntry(CamelModel):
    id: str = ""
    date: str = ""
    slot: Optional[Slot] = None
    mood: int = 3
    score: float = 0.0
    note: str = ""
    date_iso: str = Field(default="", alias="dateISO")
    logged_at_timestamp: str = ""
    is_backfilled: Optional[bool] = None
    created_at: str = ""
    updated_at: str = ""

    @field_validator("mood", mode="before")
    @classmethod
    def _clamp_mood(cls, v) -> int:
        return clamp_mood(v)

    @field_validator("date", mode="before")
    @classmethod
    def _valid_day(cls, v) -> str:
        return parse_day_key(v) or ""

    @field_validator("slot", mode="before")
    @classmethod
    def _known_slot(cls, v):
        return v if v in SLOTS else None

    @field_validator("note", "id", "logged_at_timestamp", "created_at", "updated_at", mode="before")
    @classmethod
    def _text(cls, v) -> str:
        return "" if v is None else str(v)

    @field_validator("is_backfilled", mode="before")
    @classmethod
    def _strict_bool(cls, v):
        return v if isinstance(v, bool) else None

    @field_validator("score", mode="before")
    @classmethod
    def _any_score(cls, v) -> float:
        return to_number(v, 0.0)

    @model_validator(mode="after")
    def _derive(self) -> "MoodEntry":
        now_iso = utc_now_iso()
        logged_at = parse_timestamp(self.logged_at_timestamp)

        if not self.date:
            self.date = logged_at.date().isoformat() if logged_at else today_key()
        if self.slot is None:
            self.slot = slot_for_hour(logged_at.hour) if logged_at else DEFAULT_SLOT
        if not self.id:
            self.id = f"{self.date}_{self.slot}"
        # score is a pure function of mood
        self.score = mood_to_score(self.mood)
        self.date_iso = slot_moment(self.date, self.slot).isoformat()
        if not self.logged_at_timestamp:
            self.logged_at_timestamp = self.updated_at or now_iso
        if self.is_backfilled is None:
            self.is_backfilled = self.date != today_key()
        self.created_at = self.created_at or now_iso
        self.updated_at = self.updated_at or now_iso
        return self

    @property
    def moment(self) -> datetime:
        return slot_moment(self.date, self.slot or DEFAULT_SLOT)


def entry_sort_key(entry: MoodEntry) -> tuple[str, int]:
    return entry.date, SLOT_ORDER.get(entry.slot or "", 0)


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------

class MoodEntryUpsert(CamelModel):
    """Partial mood entry; missing date/slot default to today / evening."""
    date: Optional[str] = Field(default=None, examples=["2026-02-20"])
    slot: Optional[Slot] = Field(default=None, examples=["evening"])
    mood: int = Field(default=3, description="1 (very low) to 5 (great); clamped.")
    note: str = Field(default="", max_length=2000)
    logged_at_timestamp: Optional[str] = None
    is_backfilled: Optional[bool] = None


class TodayMoodRequest(CamelModel):
    mood: int = 3
    note: str = Field(default="", max_length=2000)
