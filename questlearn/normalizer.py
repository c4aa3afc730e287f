"""Turn raw model completions into strictly typed results.

Models are asked for bare JSON but routinely wrap it in code fences, prefix
it with chatter, truncate it or get field types wrong. The pipeline here is:

  1. Coerce the raw completion to text (None → "").
  2. Strip leading/trailing code fences and whitespace.
  3. Locate the JSON object: strict parse of the whole text, then a
     string-aware scan of outermost balanced {...} spans, then the greedy
     first-{ to last-} span. Embedded objects must carry a payload field.
  4. Parse. A story that fails to parse is recovered by treating the text as
     the story itself; a review that fails to parse gets the fixed fallback.
  5. Decide the kind (review if choiceAnalysis/overallReview is present) and
     coerce field by field into StoryResult / ReviewResult.

The normalize_* functions never raise.
"""

from __future__ import annotations

import json
import logging
import math
import re
from typing import Any

from questlearn.models import (
    Choice,
    ChoiceAnalysis,
    ProgressMetrics,
    ReviewResult,
    StoryResult,
)

logger = logging.getLogger(__name__)

REVIEW_KEYS = ("choiceAnalysis", "overallReview")
STORY_KEYS = ("story", "choices", "progressMetrics", "metrics")
PAYLOAD_KEYS = STORY_KEYS + REVIEW_KEYS + ("rating", "suggestedTopics")

FALLBACK_RATING = 3

# Offered when the completion was prose instead of JSON
RECOVERY_CHOICES: tuple[tuple[str, str], ...] = (
    ("Continue", "Progress the story"),
    ("Ask for clarification", "Get more details"),
)

RESTART_CHOICE = ("Start Over", "Begin a new learning adventure")


def recovered_story(text: str) -> StoryResult:
    """Best-effort story when the completion held no usable JSON."""
    return StoryResult(
        story=text,
        choices=[Choice(text=t, expected_outcome=o) for t, o in RECOVERY_CHOICES],
    )


def restart_story(text: str) -> StoryResult:
    """Story with the single restart option."""
    label, outcome = RESTART_CHOICE
    return StoryResult(story=text, choices=[Choice(text=label, expected_outcome=outcome)])


def fallback_review() -> ReviewResult:
    return ReviewResult(
        choice_analysis=[],
        overall_review="Unable to generate review.",
        rating=FALLBACK_RATING,
        suggested_topics=[],
    )


# ── Text cleanup + JSON location ─────────────────────────

_LEADING_FENCE = re.compile(r"^```[\w+-]*[ \t]*\n?")
_TRAILING_FENCE = re.compile(r"\n?[ \t]*```$")


def strip_code_fences(text: str) -> str:
    """Remove a leading ```lang marker, a trailing ``` marker and outer whitespace."""
    cleaned = text.strip()
    cleaned = _LEADING_FENCE.sub("", cleaned, count=1)
    cleaned = _TRAILING_FENCE.sub("", cleaned, count=1)
    return cleaned.strip()


def _balanced_spans(text: str):
    """Yield each outermost {...} span whose braces balance, skipping braces
    inside strings.

    Scanning resumes after a span closes, so objects nested in a closed span
    are never yielded on their own. An opening brace that never closes is
    skipped and the scan moves on to the next one.
    """
    start = text.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        end = None
        for i in range(start, len(text)):
            ch = text[i]
            if in_string:
                if escaped:
                    escaped = False
                elif ch == "\\":
                    escaped = True
                elif ch == '"':
                    in_string = False
                continue
            if ch == '"':
                in_string = True
            elif ch == "{":
                depth += 1
            elif ch == "}":
                depth -= 1
                if depth == 0:
                    end = i
                    break
        if end is None:
            start = text.find("{", start + 1)
        else:
            yield text[start:end + 1]
            start = text.find("{", end + 1)


def _loads_object(candidate: str) -> dict | None:
    try:
        # strict=False: models emit raw newlines inside string values
        data = json.loads(candidate, strict=False)
    except json.JSONDecodeError:
        return None
    return data if isinstance(data, dict) else None


def extract_json(text: str) -> dict | None:
    """Find the JSON object in a completion, or None.

    Tries the whole text first, then every balanced {...} span from left to
    right, then the greedy span from the first { to the last }. An embedded
    span only counts when it carries a story or review field: a truncated
    completion often still holds complete inner objects (a finished choice,
    the metrics block) that must not pass for the whole payload.
    """
    data = _loads_object(text)
    if data is not None:
        return data

    for span in _balanced_spans(text):
        data = _loads_object(span)
        if data is not None and _is_payload(data):
            return data

    first, last = text.find("{"), text.rfind("}")
    if first != -1 and last > first:
        data = _loads_object(text[first:last + 1])
        if data is not None and _is_payload(data):
            return data
    return None


def _is_payload(data: dict) -> bool:
    return any(key in data for key in PAYLOAD_KEYS)


def _parse(raw: Any) -> tuple[str, dict | None]:
    if raw is None:
        text = ""
    elif isinstance(raw, str):
        text = raw
    else:
        text = str(raw)
    logger.debug("normalizer raw completion: %r", text)

    cleaned = strip_code_fences(text)
    logger.debug("normalizer cleaned text: %r", cleaned)

    data = extract_json(cleaned)
    if data is None:
        logger.warning("Completion is not valid JSON (len=%d)", len(cleaned))
    else:
        logger.debug("normalizer parsed payload: %r", data)
    return cleaned, data


# ── Field coercion ───────────────────────────────────────


def _str(value: Any) -> str:
    return value if isinstance(value, str) else ""


def _list(value: Any) -> list:
    return value if isinstance(value, list) else []


def _is_number(value: Any) -> bool:
    """Finite int or float; bools, NaN and infinities don't count."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return isinstance(value, int) or math.isfinite(value)


def _str_list(value: Any) -> list[str]:
    return [item for item in _list(value) if isinstance(item, str)]


def _coerce_choice(item: Any) -> Choice | None:
    if isinstance(item, str):
        return Choice(text=item)
    if isinstance(item, dict):
        return Choice(
            text=_str(item.get("text")),
            expected_outcome=_str(item.get("expectedOutcome")),
        )
    return None


def _coerce_metrics(value: Any) -> ProgressMetrics:
    if not isinstance(value, dict):
        return ProgressMetrics()
    level = value.get("comprehensionLevel")
    return ProgressMetrics(
        comprehension_level=level if _is_number(level) else 0,
        topics_covered=_str_list(value.get("topicsCovered")),
        suggested_focus=_str(value.get("suggestedFocus")),
    )


def coerce_story(data: dict) -> StoryResult:
    """Build a StoryResult from a parsed payload of unknown shape."""
    choices = [c for c in map(_coerce_choice, _list(data.get("choices"))) if c is not None]
    metrics = data.get("progressMetrics", data.get("metrics"))
    return StoryResult(
        story=_str(data.get("story")),
        choices=choices,
        metrics=_coerce_metrics(metrics),
    )


def _coerce_analysis(item: Any) -> ChoiceAnalysis | None:
    if isinstance(item, str):
        return ChoiceAnalysis(explanation=item)
    if isinstance(item, dict):
        return ChoiceAnalysis(
            choice=_str(item.get("choice")),
            explanation=_str(item.get("explanation")),
        )
    return None


def _coerce_rating(value: Any) -> int:
    if not _is_number(value):
        return FALLBACK_RATING
    return min(5, max(1, round(value)))


def coerce_review(data: dict) -> ReviewResult:
    """Build a ReviewResult from a parsed payload of unknown shape."""
    analysis = [
        a for a in map(_coerce_analysis, _list(data.get("choiceAnalysis"))) if a is not None
    ]
    return ReviewResult(
        choice_analysis=analysis,
        overall_review=_str(data.get("overallReview")),
        rating=_coerce_rating(data.get("rating")),
        suggested_topics=_str_list(data.get("suggestedTopics")),
    )


def is_review(data: dict) -> bool:
    return any(key in data for key in REVIEW_KEYS)


# ── Public entry points ──────────────────────────────────


def normalize_response(raw: Any) -> StoryResult | ReviewResult:
    """Normalize a completion of either kind, deciding the kind from its fields."""
    try:
        cleaned, data = _parse(raw)
        if data is None:
            return recovered_story(cleaned)
        if is_review(data):
            return coerce_review(data)
        return coerce_story(data)
    except Exception:
        logger.exception("Unexpected error while normalizing completion")
        return recovered_story("")


def normalize_story_response(raw: Any) -> StoryResult:
    """Normalize a continue-story completion. Never raises."""
    result = normalize_response(raw)
    if isinstance(result, ReviewResult):
        logger.warning("Story request answered with a review payload")
        return restart_story(result.overall_review)
    return result


def normalize_review_response(raw: Any) -> ReviewResult:
    """Normalize an end-of-journey review completion. Never raises."""
    try:
        _, data = _parse(raw)
        if data is None:
            return fallback_review()
        if not is_review(data):
            logger.warning("Review request answered without review fields")
            return fallback_review()
        return coerce_review(data)
    except Exception:
        logger.exception("Unexpected error while normalizing review")
        return fallback_review()
