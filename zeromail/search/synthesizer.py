"""Claude-backed search query synthesis for phrases the rules can't parse."""

from __future__ import annotations

import logging
import os
from datetime import date, timedelta
from typing import Any

from anthropic import AsyncAnthropic
from anthropic.types import ToolUseBlock

from zeromail.search.normalizer import format_date

logger = logging.getLogger(__name__)

# Haiku: query rewriting is short and latency-sensitive.
DEFAULT_SEARCH_MODEL = "claude-haiku-4-5-20251001"
_MAX_TOKENS = 100
_TEMPERATURE = 0.2


class SynthesisError(Exception):
    """Raised when the model fails to return a usable search query."""


#: Anthropic tool schema used to force a machine-readable answer.
SEARCH_TOOL: dict[str, Any] = {
    "name": "record_search_query",
    "description": "Record the Gmail search query for the user's request.",
    "input_schema": {
        "type": "object",
        "properties": {
            "query": {
                "type": "string",
                "description": "Gmail search query using operators such as from:, to:, "
                               "subject:, has:, after:, before:.",
            },
        },
        "required": ["query"],
    },
}


def build_search_system_prompt(today: date) -> str:
    """Instructions and worked examples, with relative dates resolved against today."""
    week_ago = format_date(today - timedelta(days=7))
    return (
        "You are an email search query enhancer. Your job is to convert natural "
        "language queries into precise Gmail search queries.\n\n"
        "Rules:\n"
        "1. Focus on the main term first\n"
        "2. Only include secondary terms if explicitly mentioned\n"
        "3. Avoid generic terms that could dilute the search\n"
        "4. Use exact matches when possible\n"
        "5. Keep the query simple and focused\n\n"
        "Examples:\n"
        '- "find that sls legal email" → "subject:sls OR from:sls"\n'
        '- "sls legal documents" → "subject:sls OR from:sls has:attachment"\n'
        '- "emails between maha and fadi" → "(from:maha OR to:maha OR subject:maha) '
        'AND (from:fadi OR to:fadi OR subject:fadi)"\n'
        '- "maha fadi project" → "(from:maha OR to:maha OR subject:maha) '
        'AND (from:fadi OR to:fadi OR subject:fadi) subject:project"\n'
        '- "emails about project deadline from last week" → '
        f'"subject:project subject:deadline after:{week_ago} before:{format_date(today)}"\n\n'
        f"Today is {format_date(today)}. Call record_search_query with the query."
    )


class SearchQuerySynthesizer:
    """Asks Claude to turn a free-text phrase into a Gmail query.

    Uses a forced tool_choice so the answer is never wrapped in prose or
    markdown.

    Usage::

        synthesizer = SearchQuerySynthesizer()
        query = await synthesizer.synthesize("that sls legal email")
    """

    def __init__(self, api_key: str | None = None, model: str | None = None) -> None:
        self._client = AsyncAnthropic(
            api_key=api_key or os.environ.get("ANTHROPIC_API_KEY", "")
        )
        self._model = model or DEFAULT_SEARCH_MODEL

    async def synthesize(self, phrase: str, today: date | None = None) -> str:
        """Return a Gmail query for phrase.

        Raises:
            SynthesisError: if no record_search_query call (or an empty query)
                comes back.
        """
        response = await self._client.messages.create(
            model=self._model,
            max_tokens=_MAX_TOKENS,
            temperature=_TEMPERATURE,
            system=build_search_system_prompt(today or date.today()),
            tools=[SEARCH_TOOL],  # type: ignore[list-item]
            tool_choice={"type": "tool", "name": "record_search_query"},
            messages=[{"role": "user", "content": phrase}],
        )

        for block in response.content:
            if isinstance(block, ToolUseBlock) and block.name == "record_search_query":
                query = str(block.input.get("query", "")).strip()  # type: ignore[union-attr]
                if query:
                    return query
                break

        raise SynthesisError(
            f"Model did not return a search query for {phrase!r} "
            f"(stop_reason={response.stop_reason!r})"
        )
