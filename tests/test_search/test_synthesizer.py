"""Tests for SearchQuerySynthesizer. The Anthropic client is mocked."""

from datetime import date
from unittest.mock import AsyncMock, MagicMock

import pytest
from anthropic.types import ToolUseBlock

from zeromail.search.synthesizer import (
    DEFAULT_SEARCH_MODEL,
    SEARCH_TOOL,
    SearchQuerySynthesizer,
    SynthesisError,
    build_search_system_prompt,
)


def make_tool_block(data: dict[str, object], name: str = "record_search_query") -> ToolUseBlock:
    return ToolUseBlock(type="tool_use", id="toolu_test_1", name=name, input=data)


def _mock_response(*blocks: object) -> MagicMock:
    r = MagicMock()
    r.content = list(blocks)
    r.stop_reason = "tool_use"
    return r


@pytest.fixture
def synthesizer() -> SearchQuerySynthesizer:
    return SearchQuerySynthesizer(api_key="test-key")


class TestSearchSystemPrompt:
    def test_resolves_dates_against_today(self) -> None:
        prompt = build_search_system_prompt(date(2026, 10, 19))
        assert "after:2026/10/12 before:2026/10/19" in prompt
        assert "Today is 2026/10/19" in prompt

    def test_mentions_the_tool(self) -> None:
        assert "record_search_query" in build_search_system_prompt(date(2026, 1, 1))


class TestSearchTool:
    def test_query_is_required(self) -> None:
        assert SEARCH_TOOL["input_schema"]["required"] == ["query"]


class TestSynthesize:
    async def test_returns_stripped_query(self, synthesizer: SearchQuerySynthesizer) -> None:
        synthesizer._client.messages.create = AsyncMock(
            return_value=_mock_response(make_tool_block({"query": "  subject:sls OR from:sls "}))
        )
        assert await synthesizer.synthesize("that sls legal email") == "subject:sls OR from:sls"

    async def test_forces_tool_and_passes_phrase(
        self, synthesizer: SearchQuerySynthesizer, today: date
    ) -> None:
        create = AsyncMock(return_value=_mock_response(make_tool_block({"query": "x"})))
        synthesizer._client.messages.create = create

        await synthesizer.synthesize("budget stuff", today)

        kwargs = create.call_args.kwargs
        assert kwargs["model"] == DEFAULT_SEARCH_MODEL
        assert kwargs["max_tokens"] == 100
        assert kwargs["temperature"] == 0.2
        assert kwargs["tool_choice"] == {"type": "tool", "name": "record_search_query"}
        assert kwargs["messages"] == [{"role": "user", "content": "budget stuff"}]
        assert "2026/10/19" in kwargs["system"]

    async def test_custom_model(self) -> None:
        synth = SearchQuerySynthesizer(api_key="k", model="claude-custom")
        create = AsyncMock(return_value=_mock_response(make_tool_block({"query": "x"})))
        synth._client.messages.create = create
        await synth.synthesize("a")
        assert create.call_args.kwargs["model"] == "claude-custom"

    async def test_raises_when_no_tool_call(self, synthesizer: SearchQuerySynthesizer) -> None:
        synthesizer._client.messages.create = AsyncMock(return_value=_mock_response())
        with pytest.raises(SynthesisError):
            await synthesizer.synthesize("anything")

    async def test_raises_on_empty_query(self, synthesizer: SearchQuerySynthesizer) -> None:
        synthesizer._client.messages.create = AsyncMock(
            return_value=_mock_response(make_tool_block({"query": "   "}))
        )
        with pytest.raises(SynthesisError):
            await synthesizer.synthesize("anything")

    async def test_ignores_other_tools(self, synthesizer: SearchQuerySynthesizer) -> None:
        synthesizer._client.messages.create = AsyncMock(
            return_value=_mock_response(
                make_tool_block({"query": "wrong"}, name="other_tool"),
                make_tool_block({"query": "right"}),
            )
        )
        assert await synthesizer.synthesize("anything") == "right"
