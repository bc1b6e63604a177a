"""Tests for WritingStyleStore. All tests use a temporary SQLite file."""

import math
from collections.abc import Iterator
from pathlib import Path

import pytest

from zeromail.compose.style import METRIC_KEYS
from zeromail.compose.types import StyleSample
from zeromail.storage.models import StyleState, WelfordState
from zeromail.storage.style_store import (
    WritingStyleStore,
    apply_sample,
    take_top_coverage,
    to_matrix,
    welford_init,
    welford_update,
)


# ── Helpers ─────────────────────────────────────────────────────────────────────


def make_sample(
    formality: float = 0.5,
    greeting: str | None = "hi",
    sign_off: str | None = "cheers",
) -> StyleSample:
    metrics = {key: 1.0 for key in METRIC_KEYS}
    metrics["formalityScore"] = formality
    return StyleSample(metrics=metrics, greeting=greeting, sign_off=sign_off)


@pytest.fixture
def store(tmp_path: Path) -> Iterator[WritingStyleStore]:
    s = WritingStyleStore(db_path=tmp_path / "test.db")
    yield s
    s.close()


# ── Welford ─────────────────────────────────────────────────────────────────────


class TestWelford:
    def test_init(self) -> None:
        assert welford_init(4.0) == WelfordState(count=1, mean=4.0, m2=0.0)

    def test_matches_batch_mean_and_variance(self) -> None:
        values = [2.0, 4.0, 4.0, 4.0, 5.0, 5.0, 7.0, 9.0]
        state = welford_init(values[0])
        for value in values[1:]:
            state = welford_update(state, value)
        assert state.count == 8
        assert math.isclose(state.mean, 5.0)
        assert math.isclose(state.variance, 32.0 / 7.0)

    def test_single_observation_has_zero_variance(self) -> None:
        assert welford_init(1.0).variance == 0.0


class TestTakeTopCoverage:
    def test_single_entry_kept(self) -> None:
        assert take_top_coverage({"hi": 1}) == {"hi": 1}

    def test_rare_tail_dropped(self) -> None:
        counts = {"hi": 60, "hello": 39, "yo": 1}
        assert take_top_coverage(counts) == {"hi": 60, "hello": 39}

    def test_crossing_entry_kept(self) -> None:
        counts = {"hi": 50, "hello": 50}
        assert take_top_coverage(counts) == {"hi": 50, "hello": 50}

    def test_empty(self) -> None:
        assert take_top_coverage({}) == {}


class TestApplySample:
    def test_first_sample_initialises(self) -> None:
        state = apply_sample(StyleState(connection_id="c"), make_sample(0.4))
        assert state.num_messages == 1
        assert state.metrics["formalityScore"] == WelfordState(1, 0.4, 0.0)
        assert state.greetings == {"hi": 1}
        assert state.sign_offs == {"cheers": 1}

    def test_missing_forms_not_counted(self) -> None:
        state = apply_sample(StyleState(connection_id="c"), make_sample(greeting=None))
        assert state.greetings == {}

    def test_does_not_mutate_input(self) -> None:
        original = StyleState(connection_id="c")
        apply_sample(original, make_sample())
        assert original.num_messages == 0
        assert original.metrics == {}


class TestToMatrix:
    def test_flat_snapshot(self) -> None:
        state = StyleState(
            connection_id="c",
            num_messages=3,
            metrics={"formalityScore": WelfordState(3, 0.123456, 0.0)},
            greetings={"hi": 2, "hello": 1},
            sign_offs={},
        )
        matrix = to_matrix(state)
        assert matrix["formalityScore"] == 0.1235
        assert matrix["greetingForm"] == "hi"
        assert matrix["signOffForm"] == ""
        assert matrix["numMessages"] == 3


# ── Store ───────────────────────────────────────────────────────────────────────


class TestWritingStyleStore:
    def test_unknown_connection_returns_none(self, store: WritingStyleStore) -> None:
        assert store.get("nobody") is None
        assert store.get_state("nobody") is None

    def test_update_then_get(self, store: WritingStyleStore) -> None:
        store.update("conn_1", make_sample(0.2))
        matrix = store.get("conn_1")
        assert matrix is not None
        assert matrix["formalityScore"] == 0.2
        assert matrix["greetingForm"] == "hi"
        assert matrix["numMessages"] == 1

    def test_running_mean_across_updates(self, store: WritingStyleStore) -> None:
        store.update("conn_1", make_sample(0.2))
        store.update("conn_1", make_sample(0.6))
        state = store.get_state("conn_1")
        assert state is not None
        assert state.num_messages == 2
        assert math.isclose(state.metrics["formalityScore"].mean, 0.4)
        assert state.metrics["formalityScore"].count == 2

    def test_most_frequent_greeting_wins(self, store: WritingStyleStore) -> None:
        store.update("conn_1", make_sample(greeting="hello"))
        store.update("conn_1", make_sample(greeting="hi"))
        store.update("conn_1", make_sample(greeting="hi"))
        assert store.get("conn_1")["greetingForm"] == "hi"  # type: ignore[index]

    def test_connections_are_isolated(self, store: WritingStyleStore) -> None:
        store.update("conn_1", make_sample(0.2))
        store.update("conn_2", make_sample(0.9))
        assert store.get("conn_1")["formalityScore"] == 0.2  # type: ignore[index]
        assert store.get("conn_2")["formalityScore"] == 0.9  # type: ignore[index]

    def test_persists_across_instances(self, tmp_path: Path) -> None:
        path = tmp_path / "persist.db"
        first = WritingStyleStore(db_path=path)
        first.update("conn_1", make_sample(0.3))
        first.close()

        second = WritingStyleStore(db_path=path)
        assert second.get("conn_1")["formalityScore"] == 0.3  # type: ignore[index]
        second.close()

    def test_delete(self, store: WritingStyleStore) -> None:
        store.update("conn_1", make_sample())
        assert store.delete("conn_1") is True
        assert store.get("conn_1") is None
        assert store.delete("conn_1") is False

    def test_creates_parent_directory(self, tmp_path: Path) -> None:
        nested = tmp_path / "a" / "b" / "style.db"
        s = WritingStyleStore(db_path=nested)
        s.close()
        assert nested.exists()
