"""
Profile service.

Every persist goes through validate_profile(); a failure raises
ProfileValidationError with a message fit to show the user. Reads never
fail: a missing profile reads as the defaults.

Public API
----------
PROFILE                          SyncedCollection[Profile]
validate_profile(data)           -> Profile   (raises ProfileValidationError)
get_profile(ctx)                 -> Profile
save_profile(ctx, data)          -> Profile
update_profile(ctx, partial)     -> Profile
"""
from __future__ import annotations

from typing import Any, Optional

from pydantic.alias_generators import to_camel

from moodsync.core.errors import ProfileValidationError
from moodsync.core.normalize import round_half_up, to_number, utc_now_iso
from moodsync.schemas.profile import DEFAULT_PROFILE, OPTION_SETS, Profile, ProfileUpdate
from moodsync.services.sync import CollectionSpec, SyncContext, SyncedCollection

PROFILE: SyncedCollection[Profile] = SyncedCollection(
    CollectionSpec(name="profile", remote_path="appData/profile", model=Profile)
)

ABOUT_MAX_CHARS = 240

_OPTION_LABELS = {
    "stress_level": "Stress Level",
    "energy_pattern": "Energy Pattern",
    "emotional_sensitivity": "Emotional Sensitivity",
    "ai_tone": "AI Tone",
    "suggestion_depth": "Suggestion Depth",
    "default_insight_range": "Default Insight Range",
    "gender": "Gender",
}

# (field, min, max, label)
_OPTIONAL_NUMBERS = (
    ("age", 1, 120, "Age"),
    ("weight", 1, 500, "Weight"),
    ("height", 1, 300, "Height"),
)


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

def _format_number(number: float) -> str:
    """One decimal place at most: 7.0 -> "7", 7.25 -> "7.3"."""
    rounded = round_half_up(number, 1)
    return str(int(rounded)) if rounded == int(rounded) else str(rounded)


def _blank(value: Any) -> bool:
    return value is None or str(value).strip() == ""


def _sleep_average(value: Any) -> Optional[str]:
    number = 0.0 if _blank(value) else to_number(value, None)
    if number is None or not 0 <= number <= 24:
        return None
    return _format_number(number)


def _optional_number(value: Any, low: float, high: float) -> Optional[str]:
    if _blank(value):
        return ""
    number = to_number(value, None)
    if number is None or not low <= number <= high:
        return None
    return _format_number(number)


def validate_profile(data: dict[str, Any]) -> Profile:
    """
    Merge `data` over the defaults and check it.
    Accepts camelCase or snake_case keys. Returns the cleaned profile with
    updatedAt stamped.
    """
    candidate = Profile.model_validate(data)

    name = candidate.name.strip()
    if len(name) < 2:
        raise ProfileValidationError("Name must be at least 2 characters.", field="name")

    sleep_average = _sleep_average(candidate.sleep_average)
    if sleep_average is None:
        raise ProfileValidationError(
            "Sleep Average must be between 0 and 24 hours.", field="sleepAverage"
        )

    for field_name, options in OPTION_SETS.items():
        if getattr(candidate, field_name) not in options:
            raise ProfileValidationError(
                f"Invalid {_OPTION_LABELS[field_name]} value.",
                field=to_camel(field_name),
            )

    numbers: dict[str, str] = {}
    for field_name, low, high, label in _OPTIONAL_NUMBERS:
        cleaned = _optional_number(getattr(candidate, field_name), low, high)
        if cleaned is None:
            raise ProfileValidationError(
                f"{label} must be between {low} and {high}.", field=field_name
            )
        numbers[field_name] = cleaned

    return candidate.model_copy(
        update={
            "name": name,
            "profession": candidate.profession.strip(),
            "about": candidate.about.strip()[:ABOUT_MAX_CHARS],
            "sleep_average": sleep_average,
            "updated_at": utc_now_iso(),
            **numbers,
        }
    )


# ---------------------------------------------------------------------------
# Persistence
# ---------------------------------------------------------------------------

async def get_profile(ctx: SyncContext) -> Profile:
    result = await PROFILE.reconcile(ctx)
    return result.items[0] if result.items else DEFAULT_PROFILE.model_copy()


async def save_profile(ctx: SyncContext, data: dict[str, Any]) -> Profile:
    profile = validate_profile(data)
    saved = await PROFILE.persist(ctx, [profile])
    return saved[0]


async def update_profile(ctx: SyncContext, partial: ProfileUpdate) -> Profile:
    current = await get_profile(ctx)
    changes = partial.model_dump(exclude_unset=True)
    return await save_profile(ctx, {**current.model_dump(), **changes})
