"""Pydantic request models for API endpoints."""

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from questlearn.models import Turn


class GameBody(BaseModel):
    """Body of POST /api/game.

    Required fields are optional here so the route can answer 400 with a
    specific message instead of a generic 422.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    input: str = ""
    topic: str = ""
    provider: str = ""
    api_key: str = Field("", repr=False)
    history: list[Turn] | None = None
    is_final: bool = False
