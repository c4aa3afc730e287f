"""Story + review endpoint."""

import logging

from fastapi import APIRouter, HTTPException

from questlearn import game
from questlearn.models import ProviderConfig

from .models import GameBody

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/game")
async def play(body: GameBody):
    """Continue the story, or review the journey when isFinal is set."""
    if not body.api_key:
        raise HTTPException(400, "API key is required")
    if not body.provider:
        raise HTTPException(400, "Provider is required")
    if not body.topic.strip():
        raise HTTPException(400, "Topic is required")

    config = None
    try:
        # Unknown provider ids fail validation here, before any upstream call
        config = ProviderConfig(provider=body.provider, api_key=body.api_key)
        if body.is_final and body.history is not None:
            result = await game.final_review(
                body.topic, body.history, config.provider, config.api_key,
            )
        else:
            result = await game.continue_story(
                body.topic, body.input, body.history or [], config.provider, config.api_key,
            )
    except Exception:
        logger.exception("Game request failed (%r)", config or body.provider)
        raise HTTPException(500, "Internal Server Error")

    return result.model_dump(mode="json", by_alias=True)
