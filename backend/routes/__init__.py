"""FastAPI API endpoints under /api.

Endpoint groups: health + provider listing, and the game endpoint that
continues a story or reviews a finished journey. The client owns all state
(topic, history, credentials) and resends it with every request.
"""

from fastapi import APIRouter

from .game import router as game_router
from .settings import router as settings_router

router = APIRouter()
router.include_router(settings_router)
router.include_router(game_router)
