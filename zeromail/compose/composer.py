"""Style-conditioned email generation and output cleanup."""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, replace
from typing import Protocol, runtime_checkable

from anthropic import AsyncAnthropic
from anthropic.types import TextBlock

from zeromail.compose.prompts import (
    STYLE_PROMPT_VERSION,
    SUBJECT_SYSTEM_PROMPT,
    build_prompts,
    build_subject_prompt,
    strip_html,
)
from zeromail.compose.style import METRIC_KEYS
from zeromail.compose.types import BodyKind, GeneratedEmailBody, PromptContext

logger = logging.getLogger(__name__)

DEFAULT_COMPOSE_MODEL = "claude-sonnet-4-6"
GENERIC_FAILURE_MESSAGE = "Unable to fulfill your request."


class CompositionError(Exception):
    """Raised when the generation backend fails to produce a body."""


@dataclass(frozen=True)
class GenerationOptions:
    """Sampling options for one generation call."""

    max_tokens: int = 1_000
    temperature: float = 0.35          # controlled creativity
    frequency_penalty: float | None = 0.2
    presence_penalty: float | None = 0.1


@runtime_checkable
class TextGenerator(Protocol):
    """Prompt text in, completion text out."""

    async def generate(
        self, system_prompt: str, user_prompt: str, options: GenerationOptions
    ) -> str:
        ...


class AnthropicTextGenerator:
    """TextGenerator backed by the Anthropic Messages API.

    The Messages API has no frequency/presence penalties; when set they are
    logged at debug level and otherwise ignored.
    """

    def __init__(self, api_key: str | None = None, model: str | None = None) -> None:
        self._client = AsyncAnthropic(
            api_key=api_key or os.environ.get("ANTHROPIC_API_KEY", "")
        )
        self._model = model or DEFAULT_COMPOSE_MODEL

    async def generate(
        self, system_prompt: str, user_prompt: str, options: GenerationOptions
    ) -> str:
        if options.frequency_penalty or options.presence_penalty:
            logger.debug(
                "Ignoring unsupported penalties (frequency=%s, presence=%s)",
                options.frequency_penalty,
                options.presence_penalty,
            )
        response = await self._client.messages.create(
            model=self._model,
            max_tokens=options.max_tokens,
            temperature=options.temperature,
            system=system_prompt,
            messages=[{"role": "user", "content": user_prompt}],
        )
        return "".join(
            block.text for block in response.content if isinstance(block, TextBlock)
        )


# ── Post-processing ─────────────────────────────────────────────────────────────

_BODY_PREFIXES = (
    re.compile(r"^Here is the generated email body:", re.IGNORECASE),
    re.compile(r"^Sure, here'?s the email body:", re.IGNORECASE),
    re.compile(r"^Okay, here is the body:", re.IGNORECASE),
    re.compile(r"^Here'?s the draft:", re.IGNORECASE),
    re.compile(r"^Here is the email body:", re.IGNORECASE),
    re.compile(r"^Here is your email body:", re.IGNORECASE),
)
_SUBJECT_LINE = re.compile(r"^subject:[^\n]*\n+", re.IGNORECASE)
_UNSAFE = re.compile(
    r"(```|~~~|<[^>]+>|&lt;[^&]+&gt;|<script|<style|\bjavascript:|\bdata:\w+/)",
    re.IGNORECASE,
)
_PROFILE_LEAK = re.compile(
    r'"(?:' + "|".join(re.escape(k) for k in (*METRIC_KEYS, "greetingForm", "signOffForm")) + r')"\s*:'
)
_REFUSALS = (
    "i cannot",
    "i'm unable to",
    "i am unable to",
    "as an ai",
    "my purpose is to assist",
    "violates my safety guidelines",
    "sorry, i can only assist with email body",
)
_QUESTION_STARTERS = (
    "what", "how", "why", "when", "where", "who",
    "can you", "could you", "would you", "will you",
    "is it", "are there", "should i", "do you",
)

_SUBJECT_PREFIXES = (
    re.compile(r"^Here is the subject line:", re.IGNORECASE),
    re.compile(r"^Here is a subject line:", re.IGNORECASE),
    re.compile(r"^Here is a concise subject line for the email:", re.IGNORECASE),
    re.compile(r"^Okay, the subject is:", re.IGNORECASE),
    re.compile(r"^Subject:", re.IGNORECASE),
)


def _strip_first_prefix(text: str, prefixes: tuple[re.Pattern[str], ...]) -> str:
    text = text.lstrip()
    for prefix in prefixes:
        if prefix.match(text):
            logger.debug("Removed prefix matching %s", prefix.pattern)
            return prefix.sub("", text, count=1).lstrip()
    return text


def is_clarifying_question(text: str) -> bool:
    lowered = text.strip().lower()
    if lowered.endswith("?"):
        return True
    return any(lowered.startswith(starter) for starter in _QUESTION_STARTERS)


def postprocess_body(text: str) -> GeneratedEmailBody:
    """Clean raw model output into a body that is safe to insert.

    Conversational prefixes and a leading ``Subject:`` line are removed.
    Leaked markup, profile JSON or a refusal replaces the output with a
    generic failure (kind SYSTEM); a clarifying question is returned as
    kind QUESTION.
    """
    body = _strip_first_prefix(text, _BODY_PREFIXES)
    body = _SUBJECT_LINE.sub("", body, count=1).strip()

    if not body or _UNSAFE.search(body) or _PROFILE_LEAK.search(body):
        logger.warning("Generated body contained forbidden content; overriding")
        return GeneratedEmailBody(body=GENERIC_FAILURE_MESSAGE, kind=BodyKind.SYSTEM)

    lowered = body.lower()
    if any(phrase in lowered for phrase in _REFUSALS):
        logger.warning("Generated body was a refusal; overriding")
        return GeneratedEmailBody(body=GENERIC_FAILURE_MESSAGE, kind=BodyKind.SYSTEM)

    if is_clarifying_question(body):
        return GeneratedEmailBody(body=body, kind=BodyKind.QUESTION)
    return GeneratedEmailBody(body=body, kind=BodyKind.EMAIL)


# ── Composer ────────────────────────────────────────────────────────────────────


class EmailComposer:
    """Generates email bodies (and subjects) in the sender's own style.

    Usage::

        composer = EmailComposer()
        result = await composer.compose(PromptContext(
            instruction="tell the team kickoff moved to 10am",
            username="Dana",
            recipients=["team@example.com"],
            style_matrix=store.get(connection_id),
        ))
    """

    def __init__(
        self,
        generator: TextGenerator | None = None,
        options: GenerationOptions | None = None,
    ) -> None:
        self._generator = generator or AnthropicTextGenerator()
        self._options = options or GenerationOptions()

    async def compose(self, context: PromptContext) -> GeneratedEmailBody:
        """Build prompts, call the generator, post-process.

        Raises:
            CompositionError: if the generation backend fails.
        """
        cleaned = replace(
            context,
            thread_messages=[
                replace(m, body=strip_html(m.body)) for m in context.thread_messages
            ],
        )
        prompts = build_prompts(cleaned)
        logger.debug(
            "Composing (prompt v%s, profile=%s, thread=%d message(s))",
            STYLE_PROMPT_VERSION,
            context.style_matrix is not None,
            len(context.thread_messages),
        )
        try:
            raw = await self._generator.generate(
                prompts.system_prompt, prompts.user_prompt, self._options
            )
        except Exception as exc:
            logger.error("Email generation failed: %s", exc)
            raise CompositionError(f"Email generation failed: {exc}") from exc

        result = postprocess_body(raw)
        logger.info("Composed body kind=%s chars=%d", result.kind.value, len(result.body))
        return result

    async def generate_subject(self, body: str) -> str:
        """Suggest a subject line for body.  Returns "" on any failure."""
        if not body or not body.strip():
            logger.warning("Cannot generate subject for empty body")
            return ""
        try:
            raw = await self._generator.generate(
                SUBJECT_SYSTEM_PROMPT,
                build_subject_prompt(body),
                GenerationOptions(max_tokens=100, temperature=0.5,
                                  frequency_penalty=None, presence_penalty=None),
            )
        except Exception as exc:  # noqa: BLE001
            logger.error("Subject generation failed: %s", exc)
            return ""

        subject = _strip_first_prefix(raw, _SUBJECT_PREFIXES).strip()
        if "unable to generate subject" in subject.lower():
            logger.warning("Subject generation refused")
            return ""
        return subject
