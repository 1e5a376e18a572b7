"""
Journal analysis and people-name extraction.

Both ask the text-completion service first and fall back to a
deterministic heuristic on any failure or malformed output, so callers
always get a usable result.

Public API
----------
fallback_analysis(text)                                  -> JournalAnalysis
analyze_journal_entry(client, text, context, history)   -> JournalAnalysis
fallback_extract_names(text)                             -> list[str]
extract_people_names(client, text)                       -> list[str]
"""
from __future__ import annotations

import logging
import re
from typing import Any, Optional, Sequence

from moodsync.core.errors import SummarizationError
from moodsync.core.normalize import (
    clamp,
    compact_text,
    json_dumps,
    parse_model_json,
    round2,
    to_number,
    unique_strings,
)
from moodsync.schemas.journal import JournalAnalysis, JournalContext, JournalMessage
from moodsync.services.summarizer import TextCompletionClient

logger = logging.getLogger(__name__)

ALLOWED_MOOD_TAGS = frozenset({
    "happy", "stressed", "calm", "neutral", "sad",
    "anxious", "angry", "grateful", "tired", "overwhelmed",
})
POSITIVE_WORDS = ("happy", "calm", "grateful", "relaxed", "good", "excited")
NEGATIVE_WORDS = ("stressed", "anxious", "sad", "angry", "tired", "overwhelmed")
KEYWORD_WEIGHT = 0.2

DEFAULT_FOLLOW_UP = "What feels most important to explore next?"
FALLBACK_REFLECTION = "Thanks for sharing. I can see meaningful emotional signals in what you wrote."
FALLBACK_FOLLOW_UP = "What part of this moment feels most important to you right now?"

_NAME_RE = re.compile(r"\b[A-Z][a-z]+\b")
_NAME_STOP_WORDS = frozenset({
    "I", "Today", "Yesterday",
    "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday",
})


def normalize_mood_tag(tag: Any) -> str:
    value = str(tag or "").strip().lower()
    if not value:
        return "neutral"
    if value in ALLOWED_MOOD_TAGS:
        return value
    if "stress" in value or "anxious" in value:
        return "stressed"
    if "calm" in value or "peace" in value:
        return "calm"
    if "happy" in value or "joy" in value:
        return "happy"
    return "neutral"


# ---------------------------------------------------------------------------
# Analysis
# ---------------------------------------------------------------------------

def fallback_analysis(text: str) -> JournalAnalysis:
    lower = text.lower()
    score = KEYWORD_WEIGHT * sum(word in lower for word in POSITIVE_WORDS)
    score -= KEYWORD_WEIGHT * sum(word in lower for word in NEGATIVE_WORDS)
    sentiment = clamp(round2(score), -1.0, 1.0)

    if sentiment >= 0.35:
        mood_tag = "happy"
    elif sentiment <= -0.35:
        mood_tag = "stressed"
    elif sentiment > 0.1:
        mood_tag = "calm"
    else:
        mood_tag = "neutral"

    return JournalAnalysis(
        reflection=FALLBACK_REFLECTION,
        mood_tag=mood_tag,
        sentiment=sentiment,
        follow_up_question=FALLBACK_FOLLOW_UP,
    )


def _validate_analysis(parsed: Any) -> Optional[JournalAnalysis]:
    if not isinstance(parsed, dict):
        return None
    reflection = parsed.get("reflection")
    if not isinstance(reflection, str) or not reflection.strip():
        return None

    questions = unique_strings(parsed.get("suggestedQuestions"), limit=4)
    follow_up = parsed.get("followUpQuestion")
    follow_up = compact_text(follow_up, 500) if isinstance(follow_up, str) else ""

    return JournalAnalysis(
        reflection=reflection.strip(),
        mood_tag=normalize_mood_tag(parsed.get("moodTag")),
        sentiment=clamp(to_number(parsed.get("sentiment"), 0.0), -1.0, 1.0),
        follow_up_question=follow_up or (questions[0] if questions else DEFAULT_FOLLOW_UP),
        suggested_questions=questions,
        summary=parsed.get("summary") if isinstance(parsed.get("summary"), str) else "",
        tags=parsed.get("tags"),
    )


def _analysis_prompt(
    text: str,
    context: Optional[JournalContext],
    history: Sequence[JournalMessage],
) -> str:
    recent = [{"role": m.role, "text": compact_text(m.text, 300)} for m in list(history)[-8:]]
    return "\n\n".join([
        "You are a supportive journaling companion. Reflect on the entry below.",
        'Return strict JSON: {"reflection": "...", "moodTag": "...", '
        '"sentiment": -1..1, "followUpQuestion": "..."}',
        "Context:\n" + json_dumps(context.to_json_dict() if context else {}),
        "Recent conversation:\n" + json_dumps(recent),
        "Entry:\n" + text,
    ])


async def analyze_journal_entry(
    client: Optional[TextCompletionClient],
    text: str,
    context: Optional[JournalContext] = None,
    history: Sequence[JournalMessage] = (),
) -> JournalAnalysis:
    if client is None:
        return fallback_analysis(text)
    try:
        raw = await client.complete(_analysis_prompt(text, context, history), temperature=0.25)
    except SummarizationError as exc:
        logger.warning("journal analysis fell back: %s", exc.message)
        return fallback_analysis(text)

    analysis = _validate_analysis(parse_model_json(raw))
    if analysis is None:
        logger.warning("journal analysis fell back: malformed response")
        return fallback_analysis(text)
    return analysis


# ---------------------------------------------------------------------------
# Names
# ---------------------------------------------------------------------------

def fallback_extract_names(text: str) -> list[str]:
    matches = _NAME_RE.findall(str(text))
    return list(dict.fromkeys(word for word in matches if word not in _NAME_STOP_WORDS))


def _validate_names(parsed: Any) -> Optional[list[str]]:
    if isinstance(parsed, dict):
        parsed = parsed.get("names")
    if not isinstance(parsed, list):
        return None
    return unique_strings(parsed, limit=len(parsed))


async def extract_people_names(client: Optional[TextCompletionClient], text: str) -> list[str]:
    if not str(text).strip():
        return []
    if client is None:
        return fallback_extract_names(text)

    prompt = (
        "List the names of people mentioned in this journal text. "
        'Return strict JSON: {"names": ["..."]}\n\n' + text
    )
    try:
        raw = await client.complete(prompt, temperature=0.0)
    except SummarizationError as exc:
        logger.warning("name extraction fell back: %s", exc.message)
        return fallback_extract_names(text)

    names = _validate_names(parse_model_json(raw))
    return names if names is not None else fallback_extract_names(text)
