from __future__ import annotations

import pytest

from chatkin.config import DEFAULT_MODEL, ChatMode, Settings, load_settings
from chatkin.errors import ApiKeyNotConfiguredError, StoreNotConfiguredError


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
    monkeypatch.chdir(tmp_path)
    for key in ("CHATKIN_ANTHROPIC_API_KEY", "CHATKIN_SUPABASE_URL", "CHATKIN_SUPABASE_ANON_KEY", "CHATKIN_MODEL"):
        monkeypatch.delenv(key, raising=False)


def test_defaults() -> None:
    settings = Settings()
    assert settings.model == DEFAULT_MODEL
    assert settings.max_iterations == 10
    assert (settings.summarize_threshold, settings.summarize_every, settings.keep_recent_messages) == (60, 10, 50)


def test_mode_params() -> None:
    settings = Settings()
    chat = settings.mode_params(ChatMode.CHAT)
    action = settings.mode_params(ChatMode.ACTION)
    assert (chat.temperature, chat.max_tokens) == (0.7, 2048)
    assert (action.temperature, action.max_tokens) == (0.3, 4096)


def test_env_prefix(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("CHATKIN_MODEL", "env-model")
    monkeypatch.setenv("CHATKIN_SUPABASE_URL", "https://proj.example.test/")
    monkeypatch.setenv("CHATKIN_SUPABASE_ANON_KEY", "anon")
    settings = load_settings()
    assert settings.model == "env-model"
    assert settings.rest_url == "https://proj.example.test/rest/v1"


def test_overrides_skip_none() -> None:
    settings = load_settings(model="override", anthropic_api_key=None)
    assert settings.model == "override"
    assert settings.anthropic_api_key is None


def test_missing_credentials_raise() -> None:
    settings = Settings()
    with pytest.raises(ApiKeyNotConfiguredError):
        _ = settings.resolved_api_key
    with pytest.raises(StoreNotConfiguredError):
        _ = settings.rest_url
