import logging

from fastapi import FastAPI

from backend.routes import router
from questlearn.config import Settings, get_settings


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or get_settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    app = FastAPI(title="QuestLearn")
    app.include_router(router, prefix="/api")
    return app


# Default app instance for uvicorn (settings from QUESTLEARN_* env vars)
app = create_app()
