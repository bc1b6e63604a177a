"""SQLite storage of per-connection writing-style matrices."""

import json
import logging
import sqlite3
from pathlib import Path
from typing import Any

from zeromail.compose.style import METRIC_KEYS
from zeromail.compose.types import StyleSample, WritingStyleMatrix
from zeromail.storage.models import ALL_TABLES, StyleState, WelfordState

logger = logging.getLogger(__name__)

_DEFAULT_DB_PATH = Path("data/zero_mail.db")

#: Greeting/sign-off forms are trimmed to those covering this share of uses.
TOP_COVERAGE = 0.95


# ── Pure update helpers ─────────────────────────────────────────────────────────


def welford_init(value: float) -> WelfordState:
    return WelfordState(count=1, mean=value, m2=0.0)


def welford_update(state: WelfordState, value: float) -> WelfordState:
    """Fold one observation into a running mean/variance."""
    count = state.count + 1
    delta = value - state.mean
    mean = state.mean + delta / count
    m2 = state.m2 + delta * (value - mean)
    return WelfordState(count=count, mean=mean, m2=m2)


def take_top_coverage(counts: dict[str, int], coverage: float = TOP_COVERAGE) -> dict[str, int]:
    """Keep the most frequent entries until they cover ``coverage`` of the total.

    The entry that crosses the threshold is kept, so a single form is never
    dropped.
    """
    total = sum(counts.values())
    if total <= 0:
        return {}
    kept: dict[str, int] = {}
    running = 0
    for form, count in sorted(counts.items(), key=lambda item: -item[1]):
        kept[form] = count
        running += count
        if running / total >= coverage:
            break
    return kept


def _bump(counts: dict[str, int], form: str | None) -> dict[str, int]:
    if not form:
        return counts
    updated = {**counts, form: counts.get(form, 0) + 1}
    return take_top_coverage(updated)


def apply_sample(state: StyleState, sample: StyleSample) -> StyleState:
    """Return a new StyleState with sample folded in."""
    metrics = dict(state.metrics)
    for key in METRIC_KEYS:
        value = sample.metrics.get(key)
        if value is None:
            continue
        previous = metrics.get(key)
        metrics[key] = welford_init(value) if previous is None else welford_update(previous, value)
    return StyleState(
        connection_id=state.connection_id,
        num_messages=state.num_messages + 1,
        metrics=metrics,
        greetings=_bump(state.greetings, sample.greeting),
        sign_offs=_bump(state.sign_offs, sample.sign_off),
    )


def _most_frequent(counts: dict[str, int]) -> str:
    if not counts:
        return ""
    return max(counts.items(), key=lambda item: item[1])[0]


def to_matrix(state: StyleState) -> dict[str, Any]:
    """Flatten a stored state into the snapshot the prompt builder consumes."""
    matrix: dict[str, Any] = {key: round(s.mean, 4) for key, s in state.metrics.items()}
    matrix["greetingForm"] = _most_frequent(state.greetings)
    matrix["signOffForm"] = _most_frequent(state.sign_offs)
    matrix["numMessages"] = state.num_messages
    return matrix


# ── Store ───────────────────────────────────────────────────────────────────────


class WritingStyleStore:
    """Wraps SQLite for per-connection writing-style matrices.

    Synchronous and single-threaded; one row per mail connection.

    Usage::

        store = WritingStyleStore()
        store.update("conn_1", sample)
        matrix = store.get("conn_1")
    """

    def __init__(self, db_path: str | Path = _DEFAULT_DB_PATH) -> None:
        self._path = Path(db_path)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(str(self._path))
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._create_tables()

    def close(self) -> None:
        """Close the underlying database connection."""
        self._conn.close()

    # ── Write API ───────────────────────────────────────────────────────────────

    def update(self, connection_id: str, sample: StyleSample) -> StyleState:
        """Fold a sample into the connection's matrix in a single transaction."""
        with self._conn:
            current = self.get_state(connection_id) or StyleState(connection_id=connection_id)
            updated = apply_sample(current, sample)
            self._conn.execute(
                """
                INSERT INTO writing_style_matrix (connection_id, num_messages, style, updated_at)
                VALUES (?, ?, ?, datetime('now'))
                ON CONFLICT(connection_id) DO UPDATE SET
                    num_messages = excluded.num_messages,
                    style        = excluded.style,
                    updated_at   = excluded.updated_at
                """,
                (connection_id, updated.num_messages, _encode_style(updated)),
            )
        logger.debug("Style matrix for %s now covers %d message(s)", connection_id, updated.num_messages)
        return updated

    def delete(self, connection_id: str) -> bool:
        """Remove a connection's matrix. Returns True if a row was deleted."""
        with self._conn:
            cursor = self._conn.execute(
                "DELETE FROM writing_style_matrix WHERE connection_id = ?", (connection_id,)
            )
        return cursor.rowcount > 0

    # ── Read API ────────────────────────────────────────────────────────────────

    def get_state(self, connection_id: str) -> StyleState | None:
        row = self._conn.execute(
            "SELECT connection_id, num_messages, style, updated_at "
            "FROM writing_style_matrix WHERE connection_id = ?",
            (connection_id,),
        ).fetchone()
        if row is None:
            return None
        return _decode_style(row)

    def get(self, connection_id: str) -> WritingStyleMatrix | None:
        """Flat metric snapshot for the prompt builder, or None if never learned."""
        state = self.get_state(connection_id)
        return to_matrix(state) if state is not None else None

    # ── Internal ────────────────────────────────────────────────────────────────

    def _create_tables(self) -> None:
        with self._conn:
            for ddl in ALL_TABLES:
                self._conn.execute(ddl)


def _encode_style(state: StyleState) -> str:
    return json.dumps({
        "metrics": {
            key: {"count": s.count, "mean": s.mean, "m2": s.m2}
            for key, s in state.metrics.items()
        },
        "greeting": state.greetings,
        "signOff": state.sign_offs,
    })


def _decode_style(row: sqlite3.Row) -> StyleState:
    try:
        data = json.loads(row["style"] or "{}")
    except json.JSONDecodeError:
        logger.error("Corrupt style JSON for %s; treating as empty", row["connection_id"])
        data = {}
    metrics = {
        key: WelfordState(count=int(s["count"]), mean=float(s["mean"]), m2=float(s["m2"]))
        for key, s in data.get("metrics", {}).items()
    }
    return StyleState(
        connection_id=row["connection_id"],
        num_messages=int(row["num_messages"]),
        metrics=metrics,
        greetings={str(k): int(v) for k, v in data.get("greeting", {}).items()},
        sign_offs={str(k): int(v) for k, v in data.get("signOff", {}).items()},
        updated_at=row["updated_at"],
    )
