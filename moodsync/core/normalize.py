"""
Shared normalization helpers.

Everything persisted or sent to a prompt builder passes through these:
they never raise on odd input, they coerce to a safe default instead.
"""
from __future__ import annotations

import json
import math
import re
import time
import uuid
from datetime import date, datetime, timezone
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from typing import Any, Iterable, Optional

_WS_RE = re.compile(r"\s+")
_FENCE_OPEN_RE = re.compile(r"^```(?:json)?\s*", re.IGNORECASE)
_FENCE_CLOSE_RE = re.compile(r"\s*```$")


# ---------------------------------------------------------------------------
# Time
# ---------------------------------------------------------------------------

def utc_now() -> datetime:
    return datetime.now(tz=timezone.utc)


def utc_now_iso() -> str:
    return utc_now().isoformat()


def today_key() -> str:
    """Calendar day key (YYYY-MM-DD) in the device's local time."""
    return date.today().isoformat()


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an ISO timestamp; aware values are converted to local wall time."""
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value.strip():
        try:
            parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            return None
    else:
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone().replace(tzinfo=None)
    return parsed


def parse_day_key(value: Any) -> Optional[str]:
    """Return a valid YYYY-MM-DD key or None."""
    if isinstance(value, date) and not isinstance(value, datetime):
        return value.isoformat()
    if not isinstance(value, str):
        return None
    try:
        return date.fromisoformat(value.strip()[:10]).isoformat()
    except ValueError:
        return None


# ---------------------------------------------------------------------------
# Numbers
# ---------------------------------------------------------------------------

def round_half_up(value: float, places: int = 2) -> float:
    quantum = Decimal(1).scaleb(-places)
    try:
        return float(Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP))
    except InvalidOperation:
        return 0.0


def round2(value: float) -> float:
    return round_half_up(value or 0.0, 2)


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def to_number(value: Any, default: float) -> float:
    if isinstance(value, bool):
        return default
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if not math.isfinite(number):
        return default
    return number


# ---------------------------------------------------------------------------
# Text
# ---------------------------------------------------------------------------

def compact_text(value: Any, max_chars: int = 220) -> str:
    """Collapse whitespace and cap at `max_chars` (ellipsis included)."""
    if value is None:
        return ""
    text = _WS_RE.sub(" ", str(value)).strip()
    if len(text) <= max_chars:
        return text
    return f"{text[: max_chars - 3]}..."


def unique_strings(
    values: Any,
    limit: int = 8,
    item_chars: Optional[int] = None,
) -> list[str]:
    """Trimmed, deduplicated (order kept), non-empty strings, capped at `limit`."""
    if not isinstance(values, (list, tuple)):
        return []
    cleaned: Iterable[str] = (
        compact_text(v, item_chars) if item_chars else v.strip()
        for v in values
        if isinstance(v, str)
    )
    return list(dict.fromkeys(v for v in cleaned if v))[:limit]


def make_id(prefix: str) -> str:
    return f"{prefix}_{int(time.time() * 1000)}_{uuid.uuid4().hex[:6]}"


# ---------------------------------------------------------------------------
# JSON
# ---------------------------------------------------------------------------

def json_dumps(payload: Any) -> str:
    """Compact JSON, the same shape a prompt builder would serialize."""
    return json.dumps(payload, ensure_ascii=False, separators=(",", ":"))


def json_loads_or(text: Optional[str], default: Any) -> Any:
    if not text:
        return default
    try:
        return json.loads(text)
    except (ValueError, TypeError):
        return default


def strip_code_fences(text: str) -> str:
    cleaned = _FENCE_OPEN_RE.sub("", str(text).strip())
    return _FENCE_CLOSE_RE.sub("", cleaned).strip()


def parse_model_json(text: Optional[str]) -> Any:
    """Parse model output that may be wrapped in ``` fences; None if invalid."""
    if not text:
        return None
    return json_loads_or(strip_code_fences(text), None)
