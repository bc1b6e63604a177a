"""Types for style-conditioned email composition."""

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

#: Flat metric name → value snapshot of a sender's writing style.  Numeric
#: metrics map to floats; ``greetingForm`` / ``signOffForm`` map to strings.
WritingStyleMatrix = Mapping[str, Any]


class Bucket(str, Enum):
    """Where a metric sits within its natural range."""

    LOW = "low"          # bottom quartile
    MEDIUM = "medium"    # middle 50 %, and the default for anything unknown
    HIGH = "high"        # top quartile


class BodyKind(str, Enum):
    """What the model actually returned after post-processing."""

    EMAIL = "email"
    QUESTION = "question"
    SYSTEM = "system"


@dataclass(frozen=True)
class ThreadMessage:
    """One prior message in the thread being replied to."""

    sender: str
    body: str
    to: list[str] = field(default_factory=list)
    subject: str = ""


@dataclass(frozen=True)
class PromptContext:
    """Request-scoped inputs for a single composition call. Never persisted."""

    instruction: str
    username: str
    recipients: list[str] = field(default_factory=list)
    thread_messages: list[ThreadMessage] = field(default_factory=list)  # oldest first
    current_subject: str | None = None
    style_matrix: WritingStyleMatrix | None = None


@dataclass(frozen=True)
class ComposePrompts:
    """The two strings handed to the text-generation backend."""

    system_prompt: str
    user_prompt: str


@dataclass(frozen=True)
class GeneratedEmailBody:
    """Post-processed model output, safe to drop into the editor."""

    body: str
    kind: BodyKind = BodyKind.EMAIL


@dataclass(frozen=True)
class StyleSample:
    """Metrics extracted from a single sent email."""

    metrics: dict[str, float] = field(default_factory=dict)
    greeting: str | None = None
    sign_off: str | None = None
