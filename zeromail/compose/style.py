"""Writing-style metric vocabulary and bucket resolution."""

import math
from collections.abc import Mapping

from zeromail.compose.types import Bucket, WritingStyleMatrix

#: String-valued metrics: the sender's habitual greeting and sign-off.
FORM_KEYS: tuple[str, ...] = ("greetingForm", "signOffForm")

#: Numeric metrics in extractor order.  Rates are per thousand words unless
#: noted; ratios and scores are 0–1.
METRIC_KEYS: tuple[str, ...] = (
    # greeting / sign-off
    "greetingPresent",
    "signOffPresent",
    # simple totals & flags
    "tokenTotal",
    "charTotal",
    "paragraphs",
    "bulletListPresent",
    # structural averages
    "averageSentenceLength",
    "averageLinesPerParagraph",
    "averageWordLength",
    # vocabulary & diversity
    "typeTokenRatio",
    "movingAverageTtr",
    "hapaxProportion",
    "shannonEntropy",
    "lexicalDensity",
    "contractionRate",
    # syntax & grammar
    "subordinationRatio",
    "passiveVoiceRate",
    "modalVerbRate",
    "parseTreeDepthMean",
    # punctuation & symbols
    "commasPerSentence",
    "exclamationPerThousandWords",
    "questionMarkRate",
    "ellipsisRate",
    "parenthesesRate",
    "emojiRate",
    # tone
    "sentimentPolarity",
    "sentimentSubjectivity",
    "formalityScore",
    "hedgeRate",
    "certaintyRate",
    # readability & flow
    "fleschReadingEase",
    "gunningFogIndex",
    "smogIndex",
    "averageForwardReferences",
    "cohesionIndex",
    # persona markers
    "firstPersonSingularRate",
    "firstPersonPluralRate",
    "secondPersonRate",
    "selfReferenceRatio",
    "empathyPhraseRate",
    "humorMarkerRate",
    # formatting habits
    "markupBoldRate",
    "markupItalicRate",
    "hyperlinkRate",
    "codeBlockRate",
    # rhetorical devices
    "rhetoricalQuestionRate",
    "analogyRate",
    "imperativeSentenceRate",
    "expletiveOpeningRate",
    "parallelismRate",
)

#: Natural (low, high) range of each metric in typical email prose.  The
#: bucket boundaries are the quartiles of this range.
METRIC_RANGES: dict[str, tuple[float, float]] = {
    "greetingPresent": (0.0, 1.0),
    "signOffPresent": (0.0, 1.0),
    "tokenTotal": (0.0, 400.0),
    "charTotal": (0.0, 2400.0),
    "paragraphs": (1.0, 8.0),
    "bulletListPresent": (0.0, 1.0),
    "averageSentenceLength": (5.0, 30.0),
    "averageLinesPerParagraph": (1.0, 6.0),
    "averageWordLength": (3.0, 7.0),
    "typeTokenRatio": (0.0, 1.0),
    "movingAverageTtr": (0.0, 100.0),
    "hapaxProportion": (0.0, 1.0),
    "shannonEntropy": (0.0, 8.0),
    "lexicalDensity": (0.0, 1.0),
    "contractionRate": (0.0, 50.0),
    "subordinationRatio": (0.0, 1.0),
    "passiveVoiceRate": (0.0, 50.0),
    "modalVerbRate": (0.0, 50.0),
    "parseTreeDepthMean": (1.0, 8.0),
    "commasPerSentence": (0.0, 3.0),
    "exclamationPerThousandWords": (0.0, 40.0),
    "questionMarkRate": (0.0, 40.0),
    "ellipsisRate": (0.0, 20.0),
    "parenthesesRate": (0.0, 20.0),
    "emojiRate": (0.0, 40.0),
    "sentimentPolarity": (-1.0, 1.0),
    "sentimentSubjectivity": (0.0, 1.0),
    "formalityScore": (0.0, 1.0),
    "hedgeRate": (0.0, 30.0),
    "certaintyRate": (0.0, 30.0),
    "fleschReadingEase": (0.0, 100.0),
    "gunningFogIndex": (4.0, 20.0),
    "smogIndex": (4.0, 20.0),
    "averageForwardReferences": (0.0, 1.0),
    "cohesionIndex": (0.0, 1.0),
    "firstPersonSingularRate": (0.0, 80.0),
    "firstPersonPluralRate": (0.0, 50.0),
    "secondPersonRate": (0.0, 60.0),
    "selfReferenceRatio": (0.0, 1.0),
    "empathyPhraseRate": (0.0, 20.0),
    "humorMarkerRate": (0.0, 20.0),
    "markupBoldRate": (0.0, 10.0),
    "markupItalicRate": (0.0, 10.0),
    "hyperlinkRate": (0.0, 10.0),
    "codeBlockRate": (0.0, 5.0),
    "rhetoricalQuestionRate": (0.0, 20.0),
    "analogyRate": (0.0, 10.0),
    "imperativeSentenceRate": (0.0, 50.0),
    "expletiveOpeningRate": (0.0, 20.0),
    "parallelismRate": (0.0, 10.0),
}


def metric_value(matrix: WritingStyleMatrix | None, key: str) -> float | None:
    """Numeric value of key, or None when absent or not a finite number.

    Accepts both flat snapshots and stored Welford states (``{"mean": ...}``).
    """
    if not matrix or key not in matrix:
        return None
    raw = matrix[key]
    if isinstance(raw, Mapping):
        raw = raw.get("mean")
    if isinstance(raw, bool) or not isinstance(raw, (int, float)):
        return None
    value = float(raw)
    return value if math.isfinite(value) else None


def resolve_metric(
    matrix: WritingStyleMatrix | None,
    key: str,
    ranges: Mapping[str, tuple[float, float]] | None = None,
) -> Bucket:
    """Bucket a metric: bottom quartile LOW, top quartile HIGH, else MEDIUM.

    Missing keys, unknown ranges and non-numeric values all resolve to
    MEDIUM, so a sparse profile is never an error.
    """
    value = metric_value(matrix, key)
    bounds = (ranges or METRIC_RANGES).get(key)
    if value is None or bounds is None:
        return Bucket.MEDIUM
    low, high = bounds
    if high <= low:
        return Bucket.MEDIUM
    position = (value - low) / (high - low)
    if position < 0.25:
        return Bucket.LOW
    if position > 0.75:
        return Bucket.HIGH
    return Bucket.MEDIUM


def describe_style(
    matrix: WritingStyleMatrix | None,
    ranges: Mapping[str, tuple[float, float]] | None = None,
) -> dict[str, Bucket]:
    """Bucket every known metric, in extractor order."""
    return {key: resolve_metric(matrix, key, ranges) for key in METRIC_KEYS}
