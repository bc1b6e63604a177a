"""Search entry point: rules first, Claude second, then the mail driver."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import TYPE_CHECKING

from zeromail.search.normalizer import apply_detection, detect
from zeromail.search.synthesizer import SynthesisError

if TYPE_CHECKING:
    from zeromail.mail.types import MailDriver, ThreadList
    from zeromail.search.synthesizer import SearchQuerySynthesizer

logger = logging.getLogger(__name__)


class QuerySource(str, Enum):
    """Which stage produced the final query."""

    RULES = "rules"
    LLM = "llm"
    PASSTHROUGH = "passthrough"


@dataclass(frozen=True)
class SearchQueryResult:
    """Final provider query plus where it came from.

    ``error`` is set when the query degraded (empty input or a failed model
    call); the query is still safe to hand to the provider.
    """

    query: str
    source: QuerySource = QuerySource.PASSTHROUGH
    error: str | None = None


class SearchService:
    """Turns a user's search phrase into a provider query and runs it.

    Usage::

        service = SearchService(driver, synthesizer=SearchQuerySynthesizer())
        result, threads = await service.search("invoices from last month")
    """

    def __init__(
        self,
        driver: MailDriver | None = None,
        synthesizer: SearchQuerySynthesizer | None = None,
    ) -> None:
        self._driver = driver
        self._synthesizer = synthesizer

    async def enhance(self, phrase: str, today: date | None = None) -> SearchQueryResult:
        """Normalize phrase; fall back to Claude only when no rule fires. Never raises."""
        phrase = (phrase or "").strip()
        if not phrase:
            return SearchQueryResult(query="", error="Query is required")

        detection = detect(phrase, today)
        if detection is not None:
            return SearchQueryResult(
                query=apply_detection(phrase, detection), source=QuerySource.RULES
            )

        if self._synthesizer is None:
            return SearchQueryResult(query=phrase)

        try:
            query = await self._synthesizer.synthesize(phrase, today)
        except SynthesisError as exc:
            logger.warning("Search synthesis failed for %r: %s", phrase, exc)
            return SearchQueryResult(query=phrase, error=str(exc))
        except Exception as exc:  # noqa: BLE001
            logger.error("Search synthesis request failed for %r: %s", phrase, exc)
            return SearchQueryResult(query=phrase, error=str(exc) or "Failed to enhance search query")

        logger.info("Synthesized query %r for %r", query, phrase)
        return SearchQueryResult(query=query, source=QuerySource.LLM)

    async def search(
        self,
        phrase: str,
        folder: str = "inbox",
        max_results: int = 20,
        today: date | None = None,
    ) -> tuple[SearchQueryResult, ThreadList]:
        """Enhance phrase and pass the query verbatim to the driver's list()."""
        if self._driver is None:
            raise RuntimeError("SearchService.search() requires a mail driver")
        result = await self.enhance(phrase, today)
        threads = await self._driver.list(folder, result.query, max_results)
        return result, threads
