"""Game service: the two entry points the HTTP layer calls.

Flow for both: build prompt → dispatch to the chosen backend → normalize.
Upstream failures (LLMError) are logged and replaced with fixed, user-safe
fallbacks; nothing is retried. An unsupported provider is a caller error and
propagates.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

from questlearn import llm
from questlearn.config import Settings
from questlearn.models import Provider, ReviewResult, StoryResult, Turn
from questlearn.normalizer import (
    fallback_review,
    normalize_review_response,
    normalize_story_response,
    restart_story,
)
from questlearn.prompts import build_review_prompt, build_story_prompt

logger = logging.getLogger(__name__)

STORY_ERROR_TEXT = "There was an error generating the story. Please try again."


def story_fallback() -> StoryResult:
    return restart_story(STORY_ERROR_TEXT)


async def continue_story(
    topic: str,
    user_input: str,
    history: Sequence[Turn],
    provider: Provider | str,
    api_key: str,
    settings: Settings | None = None,
) -> StoryResult:
    """Produce the next story segment and choices for the learner."""
    prompt = build_story_prompt(topic, user_input, history)
    try:
        raw = await llm.dispatch(provider, api_key, prompt, history=history, settings=settings)
    except llm.LLMError as e:
        logger.error("Story generation failed: %s", e)
        return story_fallback()
    return normalize_story_response(raw)


async def final_review(
    topic: str,
    history: Sequence[Turn],
    provider: Provider | str,
    api_key: str,
    settings: Settings | None = None,
) -> ReviewResult:
    """Produce the end-of-journey review of the learner's choices."""
    prompt = build_review_prompt(topic, history)
    try:
        raw = await llm.dispatch(provider, api_key, prompt, settings=settings)
    except llm.LLMError as e:
        logger.error("Review generation failed: %s", e)
        return fallback_review()
    return normalize_review_response(raw)
