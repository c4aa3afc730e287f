"""Tests for the game service: prompt → dispatch → normalize, with the
upstream-failure fallbacks. llm.dispatch or the httpx transport is mocked; no network."""

import json
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from questlearn import game
from questlearn.llm import LLMError, UnsupportedProviderError
from questlearn.models import ReviewResult, StoryResult
from questlearn.normalizer import FALLBACK_RATING

STORY_JSON = json.dumps({
    "story": "The leaf glows.",
    "choices": [
        {"text": "Study the glow", "expectedOutcome": "Learn about chlorophyll"},
        {"text": "Climb the stem", "expectedOutcome": "Learn about xylem"},
    ],
    "progressMetrics": {"comprehensionLevel": 2, "topicsCovered": ["leaves"], "suggestedFocus": "light"},
})

REVIEW_JSON = json.dumps({
    "choiceAnalysis": [{"choice": "Peek inside a chloroplast", "explanation": "You went to the source."}],
    "overallReview": "You showed real curiosity.",
    "rating": 5,
    "suggestedTopics": ["Respiration", "Ecology", "Botany"],
})


class TestContinueStory:
    async def test_happy_path(self, history) -> None:
        with patch("questlearn.game.llm.dispatch", new_callable=AsyncMock) as mock_dispatch:
            mock_dispatch.return_value = STORY_JSON
            result = await game.continue_story("Photosynthesis", "Go", history, "gemini", "k")

        assert result.story == "The leaf glows."
        assert [c.text for c in result.choices] == ["Study the glow", "Climb the stem"]
        assert result.metrics.topics_covered == ["leaves"]

    async def test_dispatch_arguments(self, history, settings) -> None:
        with patch("questlearn.game.llm.dispatch", new_callable=AsyncMock) as mock_dispatch:
            mock_dispatch.return_value = STORY_JSON
            await game.continue_story(
                "Photosynthesis", "Go", history, "groq", "secret", settings=settings,
            )

        args, kwargs = mock_dispatch.call_args
        assert args[0] == "groq"
        assert args[1] == "secret"
        assert "Step 2:" in args[2]
        assert kwargs["history"] == history
        assert kwargs["settings"] is settings

    async def test_fenced_completion(self) -> None:
        with patch("questlearn.game.llm.dispatch", new_callable=AsyncMock) as mock_dispatch:
            mock_dispatch.return_value = f"```json\n{STORY_JSON}\n```"
            result = await game.continue_story("Photosynthesis", "Start", [], "groq", "k")
        assert result.story == "The leaf glows."

    async def test_prose_completion_recovered(self) -> None:
        with patch("questlearn.game.llm.dispatch", new_callable=AsyncMock) as mock_dispatch:
            mock_dispatch.return_value = "Sorry, here's a story without JSON."
            result = await game.continue_story("Photosynthesis", "Start", [], "groq", "k")
        assert result.story == "Sorry, here's a story without JSON."
        assert len(result.choices) == 2

    async def test_upstream_failure_returns_start_over(self, history) -> None:
        with patch("questlearn.game.llm.dispatch", new_callable=AsyncMock) as mock_dispatch:
            mock_dispatch.side_effect = LLMError("Gemini API returned HTTP 401")
            result = await game.continue_story("Photosynthesis", "Go", history, "gemini", "bad")

        assert isinstance(result, StoryResult)
        assert result.story == game.STORY_ERROR_TEXT
        assert len(result.choices) == 1
        assert result.choices[0].text == "Start Over"

    async def test_connection_reset_returns_start_over(self) -> None:
        mock_post = AsyncMock(side_effect=httpx.ReadError("connection reset"))
        with patch("httpx.AsyncClient.post", mock_post):
            result = await game.continue_story("Photosynthesis", "Go", [], "groq", "k")
        assert result.story == game.STORY_ERROR_TEXT
        assert [c.text for c in result.choices] == ["Start Over"]

    async def test_upstream_failure_not_retried(self) -> None:
        with patch("questlearn.game.llm.dispatch", new_callable=AsyncMock) as mock_dispatch:
            mock_dispatch.side_effect = LLMError("timed out")
            await game.continue_story("Photosynthesis", "Go", [], "gemini", "k")
        assert mock_dispatch.call_count == 1

    async def test_unsupported_provider_propagates(self) -> None:
        with pytest.raises(UnsupportedProviderError):
            await game.continue_story("Photosynthesis", "Go", [], "openai", "k")


class TestFinalReview:
    async def test_happy_path(self, history) -> None:
        with patch("questlearn.game.llm.dispatch", new_callable=AsyncMock) as mock_dispatch:
            mock_dispatch.return_value = REVIEW_JSON
            result = await game.final_review("Photosynthesis", history, "groq", "k")

        assert result.rating == 5
        assert result.overall_review == "You showed real curiosity."
        assert result.choice_analysis[0].explanation == "You went to the source."
        assert len(result.suggested_topics) == 3

    async def test_history_not_replayed(self, history) -> None:
        with patch("questlearn.game.llm.dispatch", new_callable=AsyncMock) as mock_dispatch:
            mock_dispatch.return_value = REVIEW_JSON
            await game.final_review("Photosynthesis", history, "gemini", "k")
        assert "history" not in mock_dispatch.call_args.kwargs
        assert "Peek inside a chloroplast" in mock_dispatch.call_args[0][2]

    async def test_upstream_failure_returns_fallback(self, history) -> None:
        with patch("questlearn.game.llm.dispatch", new_callable=AsyncMock) as mock_dispatch:
            mock_dispatch.side_effect = LLMError("quota exceeded")
            result = await game.final_review("Photosynthesis", history, "groq", "k")

        assert isinstance(result, ReviewResult)
        assert result.rating == FALLBACK_RATING
        assert result.overall_review == "Unable to generate review."
        assert result.choice_analysis == []

    async def test_connection_reset_returns_fallback(self, history) -> None:
        mock_post = AsyncMock(side_effect=httpx.ReadError("connection reset"))
        with patch("httpx.AsyncClient.post", mock_post):
            result = await game.final_review("Photosynthesis", history, "gemini", "k")
        assert result.rating == FALLBACK_RATING
        assert result.overall_review == "Unable to generate review."

    async def test_unparseable_review_returns_fallback(self, history) -> None:
        with patch("questlearn.game.llm.dispatch", new_callable=AsyncMock) as mock_dispatch:
            mock_dispatch.return_value = "Great job overall!"
            result = await game.final_review("Photosynthesis", history, "groq", "k")
        assert result.rating == FALLBACK_RATING

    async def test_unsupported_provider_propagates(self, history) -> None:
        with pytest.raises(UnsupportedProviderError):
            await game.final_review("Photosynthesis", history, "", "k")
