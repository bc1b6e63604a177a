"""SQLite table schema and typed row types for the style store."""

from dataclasses import dataclass, field


# ── DDL ────────────────────────────────────────────────────────────────────────

_CREATE_WRITING_STYLE = """
CREATE TABLE IF NOT EXISTS writing_style_matrix (
    connection_id  TEXT PRIMARY KEY,
    num_messages   INTEGER NOT NULL DEFAULT 0,
    style          TEXT NOT NULL DEFAULT '{}',
    updated_at     TEXT NOT NULL DEFAULT (datetime('now'))
)
"""

#: All DDL statements in creation order.
ALL_TABLES: list[str] = [
    _CREATE_WRITING_STYLE,
]


# ── Typed state ────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class WelfordState:
    """Running mean/variance of one metric (Welford's online algorithm)."""

    count: int
    mean: float
    m2: float

    @property
    def variance(self) -> float:
        return self.m2 / (self.count - 1) if self.count > 1 else 0.0


@dataclass
class StyleState:
    """Everything stored for one connection, decoded from the ``style`` JSON."""

    connection_id: str
    num_messages: int = 0
    metrics: dict[str, WelfordState] = field(default_factory=dict)
    greetings: dict[str, int] = field(default_factory=dict)
    sign_offs: dict[str, int] = field(default_factory=dict)
    updated_at: str | None = None
