"""
User profile: preferences and personal details.

Numeric details (age, weight, height, sleepAverage) are kept as strings,
"" meaning "not provided". Validation lives in services/profile.py so the
messages stay human-readable.
"""
from __future__ import annotations

from typing import Any, Optional, Union

from pydantic import field_validator

from moodsync.schemas.common import CamelModel

OPTION_SETS: dict[str, tuple[str, ...]] = {
    "stress_level": ("Low", "Medium", "High"),
    "energy_pattern": ("Morning", "Night", "Mixed"),
    "emotional_sensitivity": ("Low", "Moderate", "High"),
    "ai_tone": ("Gentle", "Direct", "Motivational"),
    "suggestion_depth": ("Quick", "Detailed"),
    "default_insight_range": ("Day", "Week", "Month", "Year"),
    "gender": ("Female", "Male", "Non-binary", "Prefer not to say"),
}


class Profile(CamelModel):
    name: str = "You"
    age: str = ""
    profession: str = ""
    weight: str = ""
    height: str = ""
    gender: str = "Prefer not to say"
    about: str = ""
    stress_level: str = "Medium"
    sleep_average: str = "7"
    energy_pattern: str = "Mixed"
    emotional_sensitivity: str = "Moderate"
    ai_tone: str = "Gentle"
    suggestion_depth: str = "Detailed"
    default_insight_range: str = "Week"
    allow_long_term_analysis: bool = True
    show_professional_support_suggestions: bool = True
    updated_at: Optional[str] = None

    @field_validator(
        "name", "age", "profession", "weight", "height", "gender", "about",
        "stress_level", "sleep_average", "energy_pattern", "emotional_sensitivity",
        "ai_tone", "suggestion_depth", "default_insight_range",
        mode="before",
    )
    @classmethod
    def _as_text(cls, v: Any) -> str:
        return "" if v is None else str(v)

    @field_validator("allow_long_term_analysis", "show_professional_support_suggestions", mode="before")
    @classmethod
    def _as_bool(cls, v: Any) -> bool:
        return bool(v)


DEFAULT_PROFILE = Profile()


class ProfileUpdate(CamelModel):
    """Partial profile edit; numbers may arrive as numbers or strings."""
    name: Optional[str] = None
    age: Optional[Union[int, float, str]] = None
    profession: Optional[str] = None
    weight: Optional[Union[int, float, str]] = None
    height: Optional[Union[int, float, str]] = None
    gender: Optional[str] = None
    about: Optional[str] = None
    stress_level: Optional[str] = None
    sleep_average: Optional[Union[int, float, str]] = None
    energy_pattern: Optional[str] = None
    emotional_sensitivity: Optional[str] = None
    ai_tone: Optional[str] = None
    suggestion_depth: Optional[str] = None
    default_insight_range: Optional[str] = None
    allow_long_term_analysis: Optional[bool] = None
    show_professional_support_suggestions: Optional[bool] = None
