"""
Memory records: the slowly-changing long-term summary and the short-lived
rolling context, plus their partial-update types.

Normalization rules (applied on every read and write):
- free-text fields: whitespace collapsed, capped at 220 chars
  (`stressBaseline` at 160);
- string lists: trimmed, deduplicated, capped at 8;
- manualTags: entries missing `label` or `name` dropped, capped at 30;
- userOverrides: one boolean per editable field.
"""
from __future__ import annotations

from typing import Any, Literal, Optional

from pydantic import Field, field_validator
from pydantic.alias_generators import to_camel

from moodsync.core.normalize import compact_text, to_number, unique_strings
from moodsync.schemas.common import CamelModel

LONG_TEXT_CHARS = 220
SHORT_TEXT_CHARS = 160
LIST_LIMIT = 8
MANUAL_TAG_LIMIT = 30

TEXT_FIELDS: tuple[str, ...] = (
    "profile_summary",
    "emotional_baseline_summary",
    "personality_pattern",
    "stress_baseline",
)
LIST_FIELDS: tuple[str, ...] = (
    "emotional_triggers",
    "support_patterns",
    "recurring_themes",
    "relationship_patterns",
)
EDITABLE_FIELDS: tuple[str, ...] = TEXT_FIELDS + LIST_FIELDS + ("manual_tags",)
CORE_NARRATIVE_FIELDS: tuple[str, ...] = ("profile_summary", "emotional_baseline_summary")

UpdateSource = Literal["manual", "ai"]


def _text_limit(field_name: str) -> int:
    return SHORT_TEXT_CHARS if field_name == "stress_baseline" else LONG_TEXT_CHARS


def normalize_manual_tags(value: Any) -> list[dict[str, str]]:
    if not isinstance(value, list):
        return []
    tags = []
    for item in value:
        if not isinstance(item, dict):
            continue
        label = str(item.get("label") or "").strip()
        name = str(item.get("name") or "").strip()
        if label and name:
            tags.append({"label": label, "name": name})
    return tags[:MANUAL_TAG_LIMIT]


def normalize_overrides(value: Any) -> dict[str, bool]:
    """Keyed by the camelCase field name, as persisted."""
    source = value if isinstance(value, dict) else {}
    overrides = {}
    for name in EDITABLE_FIELDS:
        key = to_camel(name)
        overrides[key] = bool(source.get(key, source.get(name, False)))
    return overrides


def _count(value: Any) -> int:
    return max(0, int(to_number(value, 0)))


class ManualTag(CamelModel):
    label: str = ""
    name: str = ""


class LongTermSummary(CamelModel):
    profile_summary: str = ""
    emotional_baseline_summary: str = ""
    personality_pattern: str = ""
    stress_baseline: str = ""
    emotional_triggers: list[str] = Field(default_factory=list)
    support_patterns: list[str] = Field(default_factory=list)
    recurring_themes: list[str] = Field(default_factory=list)
    relationship_patterns: list[str] = Field(default_factory=list)
    manual_tags: list[ManualTag] = Field(default_factory=list)
    user_overrides: dict[str, bool] = Field(default_factory=dict, validate_default=True)
    last_compressed_at: Optional[str] = None
    last_processed_journal_entry_count: int = 0
    last_processed_mood_entry_count: int = 0
    updated_at: Optional[str] = None

    @field_validator(*TEXT_FIELDS, mode="before")
    @classmethod
    def _text(cls, v, info) -> str:
        return compact_text(v, _text_limit(info.field_name))

    @field_validator(*LIST_FIELDS, mode="before")
    @classmethod
    def _list(cls, v) -> list[str]:
        return unique_strings(v, limit=LIST_LIMIT)

    @field_validator("manual_tags", mode="before")
    @classmethod
    def _manual_tags(cls, v) -> list[dict[str, str]]:
        return normalize_manual_tags(v)

    @field_validator("user_overrides", mode="before")
    @classmethod
    def _overrides(cls, v) -> dict[str, bool]:
        return normalize_overrides(v)

    @field_validator(
        "last_processed_journal_entry_count",
        "last_processed_mood_entry_count",
        mode="before",
    )
    @classmethod
    def _counts(cls, v) -> int:
        return _count(v)

    @field_validator("last_compressed_at", "updated_at", mode="before")
    @classmethod
    def _optional_text(cls, v) -> Optional[str]:
        return str(v) if v else None

    def is_overridden(self, field_name: str) -> bool:
        return bool(self.user_overrides.get(to_camel(field_name)))


class LongTermSummaryUpdate(CamelModel):
    """Partial long-term update. Only fields that were set are applied."""
    profile_summary: Optional[str] = None
    emotional_baseline_summary: Optional[str] = None
    personality_pattern: Optional[str] = None
    stress_baseline: Optional[str] = None
    emotional_triggers: Optional[list[str]] = None
    support_patterns: Optional[list[str]] = None
    recurring_themes: Optional[list[str]] = None
    relationship_patterns: Optional[list[str]] = None
    manual_tags: Optional[list[ManualTag]] = None
    last_compressed_at: Optional[str] = None
    last_processed_journal_entry_count: Optional[int] = None
    last_processed_mood_entry_count: Optional[int] = None


class RollingContext(CamelModel):
    recent_mood_trend_7d: str = Field(default="", alias="recentMoodTrend7d")
    recent_entries_summary: str = ""
    session_summary: str = ""
    active_focus: str = ""
    updated_at: Optional[str] = None

    @field_validator(
        "recent_mood_trend_7d",
        "recent_entries_summary",
        "session_summary",
        "active_focus",
        mode="before",
    )
    @classmethod
    def _text(cls, v) -> str:
        return str(v or "").strip()

    @field_validator("updated_at", mode="before")
    @classmethod
    def _optional_text(cls, v) -> Optional[str]:
        return str(v) if v else None


class RollingContextUpdate(CamelModel):
    recent_mood_trend_7d: Optional[str] = Field(default=None, alias="recentMoodTrend7d")
    recent_entries_summary: Optional[str] = None
    session_summary: Optional[str] = None
    active_focus: Optional[str] = None


class MemoryContext(CamelModel):
    long_term_summary: LongTermSummary
    rolling_context: RollingContext


# ---------------------------------------------------------------------------
# Summarization service contract
# ---------------------------------------------------------------------------

class CompressionPayload(CamelModel):
    """
    Exact shape the summarization service must return.
    Strict: every field present, strings are strings, lists hold strings.
    """
    model_config = CamelModel.model_config | {"strict": True}

    profile_summary: str
    emotional_baseline_summary: str
    personality_pattern: str
    stress_baseline: str
    emotional_triggers: list[str]
    support_patterns: list[str]
    recurring_themes: list[str]
    relationship_patterns: list[str]

    def normalized(self) -> LongTermSummaryUpdate:
        """Apply the character and list budgets used for generated memory."""
        fields: dict[str, Any] = {
            name: compact_text(getattr(self, name), _text_limit(name))
            for name in TEXT_FIELDS
        }
        for name in LIST_FIELDS:
            fields[name] = unique_strings(getattr(self, name), limit=LIST_LIMIT, item_chars=60)
        return LongTermSummaryUpdate(**fields)


class RefreshRequest(CamelModel):
    force: bool = False


class RefreshResponse(CamelModel):
    ran: bool
