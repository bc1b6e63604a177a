"""Writing-style metric extraction from a single sent email."""

from __future__ import annotations

import logging
import math
import os

from anthropic import AsyncAnthropic
from anthropic.types import ToolUseBlock

from zeromail.compose.prompts import STYLE_EXTRACTOR_PROMPT, STYLE_TOOL
from zeromail.compose.style import METRIC_KEYS
from zeromail.compose.types import StyleSample

logger = logging.getLogger(__name__)

DEFAULT_EXTRACTOR_MODEL = "claude-haiku-4-5-20251001"
_MAX_TOKENS = 1024


class ExtractionError(Exception):
    """Raised when the model fails to return a record_style_metrics tool call."""


class StyleExtractor:
    """Measures one email body against the style metric vocabulary.

    Usage::

        extractor = StyleExtractor()
        sample = await extractor.extract(sent_body)
        store.update(connection_id, sample)
    """

    def __init__(self, api_key: str | None = None, model: str | None = None) -> None:
        self._client = AsyncAnthropic(
            api_key=api_key or os.environ.get("ANTHROPIC_API_KEY", "")
        )
        self._model = model or DEFAULT_EXTRACTOR_MODEL

    async def extract(self, body: str) -> StyleSample:
        """Return the metrics for body.

        Raises:
            ValueError: if body is blank.
            ExtractionError: if the tool call is missing.
        """
        if not body or not body.strip():
            raise ValueError("Invalid body provided.")

        response = await self._client.messages.create(
            model=self._model,
            max_tokens=_MAX_TOKENS,
            temperature=0,
            system=STYLE_EXTRACTOR_PROMPT,
            tools=[STYLE_TOOL],  # type: ignore[list-item]
            tool_choice={"type": "tool", "name": "record_style_metrics"},
            messages=[{"role": "user", "content": body.strip()}],
        )

        for block in response.content:
            if isinstance(block, ToolUseBlock) and block.name == "record_style_metrics":
                return parse_style_sample(block.input)  # type: ignore[arg-type]

        raise ExtractionError(
            f"Model did not return a record_style_metrics tool call "
            f"(stop_reason={response.stop_reason!r})"
        )


def _form(value: object) -> str | None:
    if not isinstance(value, str):
        return None
    form = value.strip().lower()
    return form or None


def parse_style_sample(data: dict[str, object]) -> StyleSample:
    """Convert raw tool input into a StyleSample.

    Missing or non-numeric metrics fall back to 0, matching the extractor's
    neutral-default contract.
    """
    metrics: dict[str, float] = {}
    for key in METRIC_KEYS:
        raw = data.get(key, 0)
        try:
            value = float(raw)  # type: ignore[arg-type]
        except (TypeError, ValueError):
            logger.debug("Non-numeric %s=%r; using 0", key, raw)
            value = 0.0
        metrics[key] = value if math.isfinite(value) else 0.0
    return StyleSample(
        metrics=metrics,
        greeting=_form(data.get("greetingForm")),
        sign_off=_form(data.get("signOffForm")),
    )
