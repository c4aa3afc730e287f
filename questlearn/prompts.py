"""Handlebars prompt rendering for story and review requests."""

from __future__ import annotations

import json
from collections.abc import Callable, Sequence
from typing import Any

import pybars

from questlearn.models import Turn


_compiler = pybars.Compiler()
_cache: dict[str, Callable] = {}


class PromptError(Exception):
    """Raised when a Handlebars template fails to compile or render."""


# ── Custom Handlebars helpers ────────────────────────────


def _helper_numbered(this, options, items):
    """{{#numbered array}}...{{/numbered}}: iterate, exposing a 1-based {{step}}."""
    result = []
    for i, item in enumerate(list(items), start=1):
        result.extend(options["fn"]({**item, "step": str(i)}))
    return result


_HELPERS: dict[str, Callable] = {
    "numbered": _helper_numbered,
}


def render_prompt(template_str: str, context: dict[str, Any]) -> str:
    """Compile and render a Handlebars template with the given context.

    Templates are cached by source string to avoid recompilation.
    """
    try:
        compiled = _cache.get(template_str)
        if compiled is None:
            compiled = _compiler.compile(template_str)
            _cache[template_str] = compiled
        return str(compiled(context, helpers=_HELPERS))
    except Exception as e:
        raise PromptError(f"Template error: {e}") from e


# ── Output shapes demanded from the model ────────────────

STORY_RESPONSE_FORMAT = """\
{
  "story": "the next story segment (string)",
  "choices": [
    {"text": "what the learner can do (string)", "expectedOutcome": "what they will learn (string)"}
  ],
  "progressMetrics": {
    "comprehensionLevel": 3,
    "topicsCovered": ["concept introduced so far (string)"],
    "suggestedFocus": "what the learner should focus on next (string)"
  }
}"""

REVIEW_RESPONSE_FORMAT = """\
{
  "choiceAnalysis": [
    {"choice": "the learner's choice (string)", "explanation": "the educational impact of that choice (string)"}
  ],
  "overallReview": "a review of the whole learning journey (string)",
  "rating": 4,
  "suggestedTopics": ["related topic 1", "related topic 2", "related topic 3"]
}"""

SUGGESTED_TOPIC_COUNT = 3

# ── Templates ────────────────────────────────────────────

STORY_PROMPT = """\
You are an interactive educational storyteller guiding a learner through \
an adventure about {{{topic}}}.

{{#if has_history}}
## Story So Far
{{#numbered steps}}
Step {{step}}:
- Previous situation: {{{story}}}
- User's choice: {{{choice}}}
- Outcome: {{{outcome}}}

{{/numbered}}
## The Learner Now Responds
"{{{user_input}}}"

Continue the story from the latest step. Build on the choices already \
made and keep the narrative consistent with everything above.
{{else}}
## The Learner Says
"{{{user_input}}}"

Start a brand-new learning adventure about {{{topic}}}: introduce a \
setting, a character the learner can relate to and a first challenge.
{{/if}}

## Requirements
- Write the next story segment in 150-200 words.
- Teach something concrete and accurate about {{{topic}}} through the story.
- Offer 3-4 choices, each using a different learning strategy:
  1. comprehension: check or deepen understanding of the concept just shown
  2. application: use the concept in a new situation
  3. problem-solving: reason through a challenge or puzzle
  4. contextual exploration: connect the topic to history, people or places
- Rate the learner's comprehension from 1 to 5 in progressMetrics.

Respond with ONLY a JSON object in exactly this shape:
{{{response_format}}}

Never wrap the JSON in markdown code blocks and never add text before or \
after it.\
"""

REVIEW_PROMPT = """\
A learner has just finished an interactive learning adventure about \
{{{topic}}}. Review their journey.

## Journey Transcript
{{{transcript}}}

## Requirements
- Speak directly to the learner in the second person ("you") with an \
encouraging, supportive tone.
- For each choice in the transcript, explain its educational impact.
- Give an overall review of what they learned and how they approached it.
- Give an integer rating from 1 to 5.
- Suggest exactly {{suggested_topic_count}} related topics to explore next.

Respond with ONLY a JSON object in exactly this shape:
{{{response_format}}}

Never wrap the JSON in markdown code blocks and never add text before or \
after it.\
"""


# ── Context building ─────────────────────────────────────


def build_story_context(
    topic: str, user_input: str, history: Sequence[Turn]
) -> dict[str, Any]:
    """Assemble template variables for a story prompt.

    Each prior turn becomes a step with the situation, the learner's choice
    and the outcome that choice was expected to lead to.
    """
    steps = [
        {
            "story": turn.story,
            "choice": turn.choice.text,
            "outcome": turn.choice.expected_outcome or "not stated",
        }
        for turn in history
    ]
    return {
        "topic": topic,
        "user_input": user_input,
        "has_history": bool(steps),
        "steps": steps,
        "response_format": STORY_RESPONSE_FORMAT,
    }


def build_review_context(topic: str, history: Sequence[Turn]) -> dict[str, Any]:
    """Assemble template variables for a review prompt.

    The transcript is the full history as JSON, in camelCase wire form.
    """
    transcript = [turn.model_dump(mode="json", by_alias=True) for turn in history]
    return {
        "topic": topic,
        "transcript": json.dumps(transcript, indent=2, ensure_ascii=False),
        "suggested_topic_count": str(SUGGESTED_TOPIC_COUNT),
        "response_format": REVIEW_RESPONSE_FORMAT,
    }


def build_story_prompt(topic: str, user_input: str, history: Sequence[Turn] = ()) -> str:
    """Prompt for the next story segment (cold start when history is empty)."""
    return render_prompt(STORY_PROMPT, build_story_context(topic, user_input, history))


def build_review_prompt(topic: str, history: Sequence[Turn]) -> str:
    """Prompt for the end-of-journey review."""
    return render_prompt(REVIEW_PROMPT, build_review_context(topic, history))
