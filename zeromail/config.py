"""Runtime settings read from the environment (.env is loaded by the CLI)."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from zeromail.compose.composer import DEFAULT_COMPOSE_MODEL
from zeromail.compose.extractor import DEFAULT_EXTRACTOR_MODEL
from zeromail.search.synthesizer import DEFAULT_SEARCH_MODEL


@dataclass
class Settings:
    api_key: str = ""
    search_model: str = DEFAULT_SEARCH_MODEL
    compose_model: str = DEFAULT_COMPOSE_MODEL
    extractor_model: str = DEFAULT_EXTRACTOR_MODEL
    db_path: Path = Path("data/zero_mail.db")
    ai_search: bool = True
    user_email: str = ""
    mcp_server_path: str | None = None
    user_name: str = ""

    @classmethod
    def from_env(cls) -> Settings:
        """Build Settings from environment variables."""
        return cls(
            api_key=os.environ.get("ANTHROPIC_API_KEY", ""),
            search_model=os.environ.get("ZERO_SEARCH_MODEL") or DEFAULT_SEARCH_MODEL,
            compose_model=os.environ.get("ZERO_COMPOSE_MODEL") or DEFAULT_COMPOSE_MODEL,
            extractor_model=os.environ.get("ZERO_EXTRACTOR_MODEL") or DEFAULT_EXTRACTOR_MODEL,
            db_path=Path(os.environ.get("ZERO_DB_PATH") or "data/zero_mail.db"),
            ai_search=os.environ.get("ZERO_AI_SEARCH", "true").lower() == "true",
            user_email=os.environ.get("USER_GOOGLE_EMAIL", ""),
            mcp_server_path=os.environ.get("GMAIL_MCP_SERVER_PATH") or None,
            user_name=os.environ.get("ZERO_USER_NAME", ""),
        )
