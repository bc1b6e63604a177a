"""Shared pytest fixtures."""

from datetime import date

import pytest

from zeromail.compose.style import METRIC_KEYS
from zeromail.compose.types import StyleSample


@pytest.fixture
def today() -> date:
    """A fixed reference date so relative phrases resolve deterministically."""
    return date(2026, 10, 19)


@pytest.fixture
def sample_style() -> StyleSample:
    """A plausible extraction for a short, friendly email."""
    metrics = {key: 0.0 for key in METRIC_KEYS}
    metrics.update(
        greetingPresent=1.0,
        signOffPresent=1.0,
        averageSentenceLength=12.0,
        formalityScore=0.3,
        contractionRate=25.0,
    )
    return StyleSample(metrics=metrics, greeting="hi", sign_off="cheers")
