"""Tests for metric bucket resolution."""

import pytest

from zeromail.compose.style import (
    FORM_KEYS,
    METRIC_KEYS,
    METRIC_RANGES,
    describe_style,
    metric_value,
    resolve_metric,
)
from zeromail.compose.types import Bucket


class TestVocabulary:
    def test_every_metric_has_a_range(self) -> None:
        assert set(METRIC_RANGES) == set(METRIC_KEYS)

    def test_ranges_are_not_degenerate(self) -> None:
        assert all(high > low for low, high in METRIC_RANGES.values())

    def test_form_keys_are_not_numeric_metrics(self) -> None:
        assert not set(FORM_KEYS) & set(METRIC_KEYS)

    def test_no_duplicate_keys(self) -> None:
        assert len(set(METRIC_KEYS)) == len(METRIC_KEYS)


class TestMetricValue:
    def test_flat_value(self) -> None:
        assert metric_value({"formalityScore": 0.4}, "formalityScore") == 0.4

    def test_welford_state_uses_mean(self) -> None:
        matrix = {"formalityScore": {"count": 3, "mean": 0.7, "m2": 0.1}}
        assert metric_value(matrix, "formalityScore") == 0.7

    def test_missing_key(self) -> None:
        assert metric_value({"other": 1.0}, "formalityScore") is None

    def test_none_matrix(self) -> None:
        assert metric_value(None, "formalityScore") is None

    @pytest.mark.parametrize("raw", [True, "0.5", float("nan"), float("inf"), None])
    def test_rejects_non_numeric(self, raw: object) -> None:
        assert metric_value({"formalityScore": raw}, "formalityScore") is None


class TestResolveMetric:
    @pytest.mark.parametrize(
        "value, expected",
        [
            (0.0, Bucket.LOW),
            (0.1, Bucket.LOW),
            (0.25, Bucket.MEDIUM),
            (0.5, Bucket.MEDIUM),
            (0.75, Bucket.MEDIUM),
            (0.9, Bucket.HIGH),
            (1.0, Bucket.HIGH),
        ],
    )
    def test_quartile_buckets(self, value: float, expected: Bucket) -> None:
        assert resolve_metric({"formalityScore": value}, "formalityScore") is expected

    def test_signed_range(self) -> None:
        assert resolve_metric({"sentimentPolarity": -0.8}, "sentimentPolarity") is Bucket.LOW
        assert resolve_metric({"sentimentPolarity": 0.8}, "sentimentPolarity") is Bucket.HIGH

    def test_missing_metric_is_medium(self) -> None:
        assert resolve_metric({}, "formalityScore") is Bucket.MEDIUM

    def test_missing_matrix_is_medium(self) -> None:
        assert resolve_metric(None, "emojiRate") is Bucket.MEDIUM

    def test_unknown_key_is_medium(self) -> None:
        assert resolve_metric({"mystery": 99.0}, "mystery") is Bucket.MEDIUM

    def test_degenerate_custom_range_is_medium(self) -> None:
        ranges = {"formalityScore": (1.0, 1.0)}
        assert resolve_metric({"formalityScore": 5.0}, "formalityScore", ranges) is Bucket.MEDIUM

    def test_custom_range(self) -> None:
        ranges = {"emojiRate": (0.0, 4.0)}
        assert resolve_metric({"emojiRate": 3.5}, "emojiRate", ranges) is Bucket.HIGH


class TestDescribeStyle:
    def test_no_profile_is_all_medium(self) -> None:
        buckets = describe_style(None)
        assert list(buckets) == list(METRIC_KEYS)
        assert set(buckets.values()) == {Bucket.MEDIUM}

    def test_mixed_profile(self) -> None:
        buckets = describe_style({"formalityScore": 0.95, "emojiRate": 0.0})
        assert buckets["formalityScore"] is Bucket.HIGH
        assert buckets["emojiRate"] is Bucket.LOW
        assert buckets["hedgeRate"] is Bucket.MEDIUM
