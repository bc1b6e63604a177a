"""Tests for Settings.from_env()."""

from pathlib import Path

import pytest

from zeromail.compose.composer import DEFAULT_COMPOSE_MODEL
from zeromail.compose.extractor import DEFAULT_EXTRACTOR_MODEL
from zeromail.config import Settings
from zeromail.search.synthesizer import DEFAULT_SEARCH_MODEL

_VARS = (
    "ANTHROPIC_API_KEY",
    "ZERO_SEARCH_MODEL",
    "ZERO_COMPOSE_MODEL",
    "ZERO_EXTRACTOR_MODEL",
    "ZERO_DB_PATH",
    "ZERO_AI_SEARCH",
    "USER_GOOGLE_EMAIL",
    "GMAIL_MCP_SERVER_PATH",
    "ZERO_USER_NAME",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for var in _VARS:
        monkeypatch.delenv(var, raising=False)


class TestSettingsFromEnv:
    def test_defaults(self) -> None:
        settings = Settings.from_env()
        assert settings.api_key == ""
        assert settings.search_model == DEFAULT_SEARCH_MODEL
        assert settings.compose_model == DEFAULT_COMPOSE_MODEL
        assert settings.extractor_model == DEFAULT_EXTRACTOR_MODEL
        assert settings.db_path == Path("data/zero_mail.db")
        assert settings.ai_search is True
        assert settings.mcp_server_path is None

    def test_reads_all_variables(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-test")
        monkeypatch.setenv("ZERO_SEARCH_MODEL", "claude-a")
        monkeypatch.setenv("ZERO_COMPOSE_MODEL", "claude-b")
        monkeypatch.setenv("ZERO_EXTRACTOR_MODEL", "claude-c")
        monkeypatch.setenv("ZERO_DB_PATH", "/tmp/zm.db")
        monkeypatch.setenv("USER_GOOGLE_EMAIL", "me@example.com")
        monkeypatch.setenv("GMAIL_MCP_SERVER_PATH", "/usr/bin/workspace-mcp")
        monkeypatch.setenv("ZERO_USER_NAME", "Dana")

        settings = Settings.from_env()

        assert settings.api_key == "sk-test"
        assert settings.search_model == "claude-a"
        assert settings.compose_model == "claude-b"
        assert settings.extractor_model == "claude-c"
        assert settings.db_path == Path("/tmp/zm.db")
        assert settings.user_email == "me@example.com"
        assert settings.mcp_server_path == "/usr/bin/workspace-mcp"
        assert settings.user_name == "Dana"

    @pytest.mark.parametrize("raw, expected", [("false", False), ("FALSE", False), ("true", True)])
    def test_ai_search_flag(self, monkeypatch: pytest.MonkeyPatch, raw: str, expected: bool) -> None:
        monkeypatch.setenv("ZERO_AI_SEARCH", raw)
        assert Settings.from_env().ai_search is expected

    def test_blank_model_falls_back(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("ZERO_SEARCH_MODEL", "")
        assert Settings.from_env().search_model == DEFAULT_SEARCH_MODEL
