"""Rule-based rewriting of natural-language search phrases into Gmail operators.

The normalizer is an ordered cascade of detectors.  Each detector is a pure
function ``(text, today) -> Detection | None``; the first one that fires wins
and the rest are never consulted.  A detection carries the operator tokens it
produced plus the character spans of ``text`` it consumed, so the cascade can
subtract those spans and keep whatever is left as free-text search terms.

Anything no detector recognises is passed through unchanged for the provider's
own free-text search.  Nothing in this module raises on user input.
"""

from __future__ import annotations

import calendar
import logging
import re
from collections.abc import Callable
from dataclasses import dataclass
from datetime import date

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Detection:
    """Output of a single detector.

    ``spans`` are (start, end) offsets into the input that the detector
    consumed.  ``prefix`` tokens are placed before the free-text remainder,
    ``tokens`` after it.  When ``keep_remainder`` is False the remainder is
    discarded entirely.
    """

    detector: str
    tokens: tuple[str, ...]
    spans: tuple[tuple[int, int], ...] = ()
    prefix: tuple[str, ...] = ()
    keep_remainder: bool = True


Detector = Callable[[str, date], "Detection | None"]


# ── Shared patterns & helpers ──────────────────────────────────────────────────

_MONTHS: dict[str, int] = {
    "january": 1, "jan": 1,
    "february": 2, "feb": 2,
    "march": 3, "mar": 3,
    "april": 4, "apr": 4,
    "may": 5,
    "june": 6, "jun": 6,
    "july": 7, "jul": 7,
    "august": 8, "aug": 8,
    "september": 9, "sept": 9, "sep": 9,
    "october": 10, "oct": 10,
    "november": 11, "nov": 11,
    "december": 12, "dec": 12,
}
# Longest names first so "sept" never shadows "september".
_MONTH_ALT = "|".join(sorted(_MONTHS, key=len, reverse=True))

# Leading preposition swallowed together with a temporal phrase.
_LEAD = r"(?:\b(?:from|in|during)\s+)?"

# Digits glued to a word, a path, or an operator (``after:2023/01/01``) are
# never treated as dates.
_NOT_BEFORE = r"(?<![\w/:.-])"
_NOT_AFTER = r"(?![\w/-])"

_SHORT_DATE = re.compile(rf"{_NOT_BEFORE}(\d{{1,2}})/(\d{{1,2}})/(\d{{4}}|\d{{2}}){_NOT_AFTER}")
_BARE_YEAR = re.compile(rf"{_LEAD}{_NOT_BEFORE}((?:19|20)\d{{2}}){_NOT_AFTER}", re.IGNORECASE)
_MONTH_OF_LAST_YEAR = re.compile(
    rf"{_LEAD}\b({_MONTH_ALT})\.?\s+of\s+last\s+year\b", re.IGNORECASE
)
_MONTH_YEAR = re.compile(
    rf"{_LEAD}\b({_MONTH_ALT})\.?,?\s+((?:19|20)\d{{2}}){_NOT_AFTER}", re.IGNORECASE
)
_ISO_DATE = re.compile(rf"{_NOT_BEFORE}(\d{{4}})[-/](\d{{1,2}})[-/](\d{{1,2}}){_NOT_AFTER}")
_RELATIVE = re.compile(
    r"\b(older|newer)\s+than\s+(\d+)\s*(day|week|month|year)s?\b", re.IGNORECASE
)
_BEFORE_WORD = re.compile(r"\bbefore\b", re.IGNORECASE)
_AFTER_WORD = re.compile(r"\bafter\b", re.IGNORECASE)
_BETWEEN_WORD = re.compile(r"\bbetween\b", re.IGNORECASE)
_FROM_CLAUSE = re.compile(r"\bfrom\s+([^\s,;]+)[,;]?", re.IGNORECASE)


def format_date(value: date) -> str:
    """Render a date as Gmail's zero-padded ``YYYY/MM/DD``."""
    return f"{value.year:04d}/{value.month:02d}/{value.day:02d}"


def pivot_year(raw: str) -> int:
    """Expand a two-digit year: ``< 50`` → 20YY, otherwise 19YY."""
    if len(raw) == 4:
        return int(raw)
    two_digit = int(raw)
    return 2000 + two_digit if two_digit < 50 else 1900 + two_digit


def _safe_date(year: int, month: int, day: int) -> date | None:
    try:
        return date(year, month, day)
    except ValueError:
        logger.debug("Discarding impossible date %04d-%02d-%02d", year, month, day)
        return None


def _month_range(year: int, month: int) -> tuple[date, date] | None:
    first = _safe_date(year, month, 1)
    if first is None:
        return None
    last_day = calendar.monthrange(year, month)[1]
    return first, date(year, month, last_day)


def _directional_tokens(
    text: str, dates: list[date]
) -> tuple[list[str], list[tuple[int, int]]]:
    """Map one or two dates to after:/before: tokens.

    Two dates always form a range, earliest first.  A single date becomes
    ``before:`` or ``after:`` depending on which word the phrase uses, and a
    same-day ``after:``/``before:`` pair otherwise.  The keyword spans that
    decided the direction are returned so they are not left as search terms.
    """
    if len(dates) >= 2:
        start, end = sorted(dates[:2])
        between = _BETWEEN_WORD.search(text)
        spans = [between.span()] if between else []
        return [f"after:{format_date(start)}", f"before:{format_date(end)}"], spans

    only = format_date(dates[0])
    before = _BEFORE_WORD.search(text)
    if before:
        return [f"before:{only}"], [before.span()]
    after = _AFTER_WORD.search(text)
    if after:
        return [f"after:{only}"], [after.span()]
    return [f"after:{only}", f"before:{only}"], []


def _preceded_by_month(text: str, position: int) -> bool:
    words = text[:position].rstrip(" ,.").split()
    return bool(words) and words[-1].lower().rstrip(".,") in _MONTHS


# ── Detectors (in cascade order) ───────────────────────────────────────────────


def detect_starred(text: str, today: date) -> Detection | None:
    """Any mention of "star" collapses the whole query to ``is:starred``."""
    if "star" in text.lower():
        return Detection("starred", ("is:starred",), keep_remainder=False)
    return None


def detect_short_date(text: str, today: date) -> Detection | None:
    """``MM/DD/YY`` dates (one or two), biased to the last year."""
    matches = list(_SHORT_DATE.finditer(text))[:2]
    if not matches:
        return None
    dates: list[date] = []
    for m in matches:
        parsed = _safe_date(pivot_year(m.group(3)), int(m.group(1)), int(m.group(2)))
        if parsed is None:
            return None
        dates.append(parsed)
    tokens, keyword_spans = _directional_tokens(text, dates)
    return Detection(
        "short_date",
        (*tokens, "newer_than:1y"),
        spans=tuple([m.span() for m in matches] + keyword_spans),
    )


def detect_bare_year(text: str, today: date) -> Detection | None:
    """A four-digit year on its own, e.g. "invoices from 2023"."""
    for m in _BARE_YEAR.finditer(text):
        if _preceded_by_month(text, m.start()):
            continue
        year = int(m.group(1))
        start = _safe_date(year, 1, 1)
        end = _safe_date(year + 1, 1, 1)
        if start is None or end is None:
            continue
        return Detection(
            "bare_year",
            (f"after:{format_date(start)}", f"before:{format_date(end)}", "newer_than:1y"),
            spans=(m.span(),),
        )
    return None


def detect_month_of_last_year(text: str, today: date) -> Detection | None:
    """e.g. "march of last year" → that calendar month in the previous year."""
    m = _MONTH_OF_LAST_YEAR.search(text)
    if not m:
        return None
    bounds = _month_range(today.year - 1, _MONTHS[m.group(1).lower()])
    if bounds is None:
        return None
    first, last = bounds
    return Detection(
        "month_of_last_year",
        (f"after:{format_date(first)}", f"before:{format_date(last)}"),
        spans=(m.span(),),
    )


def detect_month_year(text: str, today: date) -> Detection | None:
    """e.g. "march 2023" → that calendar month."""
    m = _MONTH_YEAR.search(text)
    if not m:
        return None
    bounds = _month_range(int(m.group(2)), _MONTHS[m.group(1).lower()])
    if bounds is None:
        return None
    first, last = bounds
    return Detection(
        "month_year",
        (f"after:{format_date(first)}", f"before:{format_date(last)}"),
        spans=(m.span(),),
    )


def detect_iso_date(text: str, today: date) -> Detection | None:
    """``YYYY-MM-DD`` or ``YYYY/MM/DD`` (one or two)."""
    matches = list(_ISO_DATE.finditer(text))[:2]
    if not matches:
        return None
    dates: list[date] = []
    for m in matches:
        parsed = _safe_date(int(m.group(1)), int(m.group(2)), int(m.group(3)))
        if parsed is None:
            return None
        dates.append(parsed)
    tokens, keyword_spans = _directional_tokens(text, dates)
    return Detection(
        "iso_date",
        tuple(tokens),
        spans=tuple([m.span() for m in matches] + keyword_spans),
    )


def detect_relative(text: str, today: date) -> Detection | None:
    """e.g. "older than 3 weeks" → ``older_than:3w``."""
    m = _RELATIVE.search(text)
    if not m:
        return None
    direction = m.group(1).lower()
    amount = int(m.group(2))
    unit = m.group(3).lower()[0]
    return Detection("relative", (f"{direction}_than:{amount}{unit}",), spans=(m.span(),))


_CANNED_PHRASES: tuple[tuple[str, Callable[[date], tuple[str, ...]]], ...] = (
    ("last week", lambda today: ("newer_than:7d",)),
    ("last month", lambda today: ("newer_than:30d",)),
    ("last year", lambda today: (
        f"after:{today.year - 1:04d}/01/01", f"before:{today.year:04d}/01/01",
    )),
    ("yesterday", lambda today: ("newer_than:2d", "older_than:1d")),
    ("today", lambda today: ("newer_than:1d",)),
    ("this week", lambda today: ("newer_than:7d",)),
    ("this month", lambda today: ("newer_than:30d",)),
    ("this year", lambda today: (f"after:{today.year:04d}/01/01",)),
)
_CANNED_PATTERNS = tuple(
    (phrase, re.compile(rf"{_LEAD}\b{re.escape(phrase)}\b", re.IGNORECASE), tokens)
    for phrase, tokens in _CANNED_PHRASES
)


def detect_canned_phrase(text: str, today: date) -> Detection | None:
    """Fixed relative phrases ("last week", "yesterday", ...).

    A ``from <sender>`` clause elsewhere in the phrase is lifted into a
    ``from:`` operator placed ahead of everything else.
    """
    for phrase, pattern, tokens in _CANNED_PATTERNS:
        m = pattern.search(text)
        if not m:
            continue
        spans = [m.span()]
        prefix: tuple[str, ...] = ()
        for clause in _FROM_CLAUSE.finditer(text):
            start, end = clause.span()
            if start < m.end() and m.start() < end:
                continue
            sender = clause.group(1).rstrip(".!?")
            if not sender or ":" in sender:
                continue
            prefix = (f"from:{sender}",)
            spans.append(clause.span())
            break
        logger.debug("Canned phrase %r matched", phrase)
        return Detection("canned_phrase", tokens(today), spans=tuple(spans), prefix=prefix)
    return None


#: Cascade order.  First match wins; reordering changes behaviour.
DETECTORS: tuple[Detector, ...] = (
    detect_starred,
    detect_short_date,
    detect_bare_year,
    detect_month_of_last_year,
    detect_month_year,
    detect_iso_date,
    detect_relative,
    detect_canned_phrase,
)


# ── Cascade ────────────────────────────────────────────────────────────────────


def subtract_spans(text: str, spans: tuple[tuple[int, int], ...]) -> str:
    """Remove the given spans from text and collapse the leftover whitespace."""
    parts: list[str] = []
    cursor = 0
    for start, end in sorted(spans):
        if end <= cursor:
            continue
        parts.append(text[cursor:max(start, cursor)])
        cursor = end
    parts.append(text[cursor:])
    return " ".join(" ".join(parts).split())


def detect(text: str, today: date | None = None) -> Detection | None:
    """Run the cascade and return the first detection, or None."""
    today = today or date.today()
    for detector in DETECTORS:
        detection = detector(text, today)
        if detection is not None:
            logger.debug("Detector %s fired for %r", detection.detector, text)
            return detection
    return None


def apply_detection(text: str, detection: Detection) -> str:
    """Merge a detection's operator tokens with the unconsumed remainder."""
    remainder = subtract_spans(text, detection.spans) if detection.keep_remainder else ""
    return " ".join(" ".join((*detection.prefix, remainder, *detection.tokens)).split())


def normalize(text: str, today: date | None = None) -> str:
    """Rewrite a search phrase into Gmail search operators.

    Returns the phrase unchanged when no detector recognises it, and ``""``
    for empty input.

    Example::

        normalize("older than 3 weeks")           # "older_than:3w"
        normalize("emails from bob last week")    # "from:bob emails newer_than:7d"
    """
    text = (text or "").strip()
    if not text:
        return ""
    detection = detect(text, today)
    if detection is None:
        return text
    return apply_detection(text, detection)
