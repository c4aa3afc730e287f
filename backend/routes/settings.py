"""Health check and provider listing endpoints."""

from fastapi import APIRouter

from questlearn.config import get_settings
from questlearn.models import Provider

router = APIRouter()


@router.get("/health")
async def health():
    """Health check."""
    return {"status": "ok"}


@router.get("/providers")
async def list_providers():
    """Supported providers and the model each one uses (no credentials)."""
    settings = get_settings()
    models = {
        Provider.GEMINI: settings.gemini_model,
        Provider.GROQ: settings.groq_model,
    }
    return [{"id": p.value, "model": models[p]} for p in Provider]
