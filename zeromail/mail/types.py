"""Data types and the driver protocol shared by mail provider modules."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable


@dataclass(frozen=True)
class RawEmail:
    """A single message as returned by the Gmail MCP server.

    Fields populated by search_gmail_messages (lightweight):
        id, thread_id

    Fields populated by get_gmail_message(s)_content (full):
        sender, subject, body, recipient, date, web_link
    """

    id: str
    thread_id: str
    sender: str
    subject: str
    snippet: str
    labels: list[str] = field(default_factory=list)
    body: str | None = None
    recipient: str | None = None
    date: str | None = None
    web_link: str | None = None


@dataclass(frozen=True)
class Thread:
    """Summary row for one thread in a folder listing."""

    id: str
    thread_id: str
    sender: str
    subject: str
    snippet: str = ""
    date: str | None = None


@dataclass(frozen=True)
class ThreadList:
    """Result of MailDriver.list(): the threads matched by a provider query."""

    threads: list[Thread] = field(default_factory=list)
    query: str = ""


@runtime_checkable
class MailDriver(Protocol):
    """Provider abstraction consumed by the search and compose layers.

    The search query is handed to ``list`` verbatim; drivers must not
    reinterpret operator tokens.
    """

    async def list(self, folder: str, query: str, max_results: int = 20) -> ThreadList:
        ...

    async def get(self, message_id: str) -> RawEmail:
        ...

    async def send(self, to: str, subject: str, body: str) -> None:
        ...

    async def modify_labels(
        self,
        message_ids: list[str],
        add: list[str] | None = None,
        remove: list[str] | None = None,
    ) -> None:
        ...
