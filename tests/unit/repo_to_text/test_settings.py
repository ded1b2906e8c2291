import pytest
from pydantic import ValidationError

from repo_to_text.settings import Settings


@pytest.mark.unit
def test_settings_defaults() -> None:
    settings = Settings()

    assert settings.github_api_url == "https://api.github.com"
    assert settings.user_agent == "Repository-To-Text-App"
    assert settings.strategy == "remote"
    assert settings.command == "convert"
    assert not settings.log_file
    assert not settings.server


@pytest.mark.unit
def test_from_env_reads_prefixed_variables(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("REPO_TO_TEXT_STRATEGY", "clone")
    monkeypatch.setenv("REPO_TO_TEXT_PORT", "9001")

    settings = Settings.from_env()

    assert settings.strategy == "clone"
    assert settings.port == 9001


@pytest.mark.unit
def test_from_env_overrides_win_and_none_is_ignored(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("REPO_TO_TEXT_STRATEGY", "clone")
    monkeypatch.setenv("REPO_TO_TEXT_HTTP_TIMEOUT", "5")

    settings = Settings.from_env(strategy="local", http_timeout=None)

    assert settings.strategy == "local"
    assert settings.http_timeout == 5.0


@pytest.mark.unit
def test_invalid_strategy_is_rejected(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("REPO_TO_TEXT_STRATEGY", "ftp")

    with pytest.raises(ValidationError):
        Settings.from_env()


@pytest.mark.unit
def test_log_level_setting(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("REPO_TO_TEXT_LOG_LEVEL", "DEBUG")

    assert Settings.from_env().log_level == "DEBUG"
    assert Settings.from_env(log_level="WARNING").log_level == "WARNING"
    with pytest.raises(ValidationError):
        Settings(log_level="VERBOSE")
