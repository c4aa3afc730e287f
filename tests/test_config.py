"""Tests for settings loaded from QUESTLEARN_* environment variables."""

from questlearn.config import Settings, get_settings


def test_defaults_without_env():
    assert get_settings() == Settings()
    settings = get_settings()
    assert settings.gemini_model == "gemini-2.0-flash-exp"
    assert settings.groq_model == "llama-3.3-70b-versatile"
    assert settings.replay_history is True
    assert settings.llm_timeout == 120.0


def test_env_overrides(monkeypatch):
    monkeypatch.setenv("QUESTLEARN_GROQ_MODEL", "llama-3.1-8b-instant")
    monkeypatch.setenv("QUESTLEARN_LLM_TIMEOUT", "30")
    monkeypatch.setenv("QUESTLEARN_LOG_LEVEL", "debug")
    settings = get_settings()
    assert settings.groq_model == "llama-3.1-8b-instant"
    assert settings.llm_timeout == 30.0
    assert settings.log_level == "DEBUG"


def test_replay_flag_parsing(monkeypatch):
    monkeypatch.setenv("QUESTLEARN_REPLAY_HISTORY", "false")
    assert get_settings().replay_history is False
    monkeypatch.setenv("QUESTLEARN_REPLAY_HISTORY", "YES")
    assert get_settings().replay_history is True


def test_blank_values_ignored(monkeypatch):
    monkeypatch.setenv("QUESTLEARN_GEMINI_MODEL", "   ")
    assert get_settings().gemini_model == "gemini-2.0-flash-exp"
