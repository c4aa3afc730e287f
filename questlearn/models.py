"""Core domain models.

Every request, prompt context and normalized model response is expressed in
these types. Pydantic validates at each data boundary; Python attributes are
snake_case while the JSON wire format is camelCase (``expectedOutcome``,
``overallReview``, ...). Both spellings are accepted on input.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class Provider(str, Enum):
    """Supported LLM backends."""

    GEMINI = "gemini"
    GROQ = "groq"


class _Model(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Choice(_Model):
    """One option offered to the learner by the model."""

    text: str
    expected_outcome: str = ""


class ChoiceRecord(_Model):
    """The option the learner actually picked (or typed)."""

    text: str
    expected_outcome: str = ""
    timestamp: datetime | None = None


class ProgressMetrics(_Model):
    """Advisory, model-generated learning progress. Only the shape is enforced."""

    comprehension_level: int | float = 0
    topics_covered: list[str] = Field(default_factory=list)
    suggested_focus: str = ""

    @field_validator("topics_covered")
    @classmethod
    def _dedupe_topics(cls, topics: list[str]) -> list[str]:
        return list(dict.fromkeys(topics))


class Turn(_Model):
    """One completed step of the journey. The caller owns and replays these."""

    model_config = ConfigDict(frozen=True)

    story: str
    choice: ChoiceRecord
    metrics: ProgressMetrics = Field(default_factory=ProgressMetrics)

    @field_validator("choice", mode="before")
    @classmethod
    def _choice_from_text(cls, value: Any) -> Any:
        # Older clients send the chosen text only
        if isinstance(value, str):
            return {"text": value}
        return value


class StoryResult(_Model):
    """Normalized output of a continue-story request."""

    story: str = ""
    choices: list[Choice] = Field(default_factory=list)
    metrics: ProgressMetrics = Field(default_factory=ProgressMetrics)


class ChoiceAnalysis(_Model):
    choice: str = ""
    explanation: str = ""


class ReviewResult(_Model):
    """Normalized end-of-journey review."""

    choice_analysis: list[ChoiceAnalysis] = Field(default_factory=list)
    overall_review: str = ""
    rating: int = Field(default=3, ge=1, le=5)
    suggested_topics: list[str] = Field(default_factory=list)


class ProviderConfig(_Model):
    """Per-request backend selection. The key lives only as long as the call."""

    provider: Provider
    api_key: str = Field(repr=False)
