import pytest

from questlearn.config import Settings
from questlearn.models import ChoiceRecord, Turn

ENV_VARS = (
    "QUESTLEARN_GEMINI_MODEL",
    "QUESTLEARN_GROQ_MODEL",
    "QUESTLEARN_GEMINI_BASE_URL",
    "QUESTLEARN_GROQ_BASE_URL",
    "QUESTLEARN_LLM_TIMEOUT",
    "QUESTLEARN_REPLAY_HISTORY",
    "QUESTLEARN_LOG_LEVEL",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Every test starts from default settings, whatever the developer's .env says."""
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def settings() -> Settings:
    return Settings()


@pytest.fixture
def history() -> list[Turn]:
    """Two completed turns of a photosynthesis journey."""
    return [
        Turn(
            story="You shrink down and land on a sunlit leaf.",
            choice=ChoiceRecord(
                text="Peek inside a chloroplast",
                expected_outcome="Learn where photosynthesis happens",
            ),
        ),
        Turn(
            story="Inside, green stacks of thylakoids hum with light.",
            choice=ChoiceRecord(text="Follow a water molecule", expected_outcome=""),
        ),
    ]
