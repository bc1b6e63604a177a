"""Gmail mail driver over the workspace-mcp Gmail tools."""

from __future__ import annotations

import asyncio
import json
import logging
import os
import re
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from mcp import ClientSession
from mcp.client.stdio import StdioServerParameters, stdio_client
from mcp.types import TextContent

from zeromail.mail.types import RawEmail, Thread, ThreadList

logger = logging.getLogger(__name__)

# JSON-decoded value from an MCP tool response
_JsonValue = dict[str, Any] | list[Any] | str | None


class MCPError(Exception):
    """Raised when a workspace-mcp tool call returns an error."""


def folder_query(folder: str, query: str) -> str:
    """Scope a provider query to a folder.

    Gmail has no trash "label" filter on threads.list, so trash is expressed
    as an ``in:trash`` operator like every other folder.
    """
    folder = (folder or "").strip().lower()
    query = (query or "").strip()
    if not folder or folder == "all":
        return query
    return f"in:{folder} {query}".strip()


class GmailDriver:
    """Thin async MailDriver over the workspace-mcp Gmail tools.

    Holds a single MCP session for the lifetime of a command.  Use the
    `gmail_driver()` context manager to construct and tear down correctly.
    """

    def __init__(self, session: ClientSession, user_email: str) -> None:
        self._session = session
        self._user_email = user_email

    # ── MailDriver API ─────────────────────────────────────────────────────────

    async def list(self, folder: str, query: str, max_results: int = 20) -> ThreadList:
        """Search a folder with a provider query and return thread summaries.

        Makes two MCP calls: a lightweight search for IDs, then a batch
        content fetch so each thread carries sender and subject.
        """
        scoped = folder_query(folder, query)
        raw = await self._call(
            "search_gmail_messages",
            {"query": scoped, "page_size": max_results,
             "user_google_email": self._user_email},
        )
        hits = self._parse_search_hits(raw)
        if not hits:
            return ThreadList(threads=[], query=scoped)

        content = await self._call(
            "get_gmail_messages_content_batch",
            {"message_ids": [message_id for message_id, _ in hits],
             "user_google_email": self._user_email},
        )
        thread_ids = dict(hits)
        threads = [
            Thread(
                id=email.id,
                thread_id=email.thread_id or thread_ids.get(email.id, ""),
                sender=email.sender,
                subject=email.subject,
                snippet=email.snippet,
                date=email.date,
            )
            for email in self._parse_batch_emails(content)
        ]
        logger.debug("list(%r) → %d thread(s)", scoped, len(threads))
        return ThreadList(threads=threads, query=scoped)

    async def get(self, message_id: str) -> RawEmail:
        """Return a single message with full body."""
        raw = await self._call(
            "get_gmail_message_content",
            {"message_id": message_id, "user_google_email": self._user_email},
        )
        if isinstance(raw, str):
            emails = self._parse_batch_emails(raw)
            if emails:
                return emails[0]
            raise MCPError(f"Could not parse message {message_id} from response")
        if isinstance(raw, dict):
            return self._parse_email_dict(raw)
        raise MCPError(f"Unexpected response type for message {message_id}: {type(raw)}")

    async def send(self, to: str, subject: str, body: str) -> None:
        """Send a plain-text message."""
        await self._call(
            "send_gmail_message",
            {
                "to": to,
                "subject": subject,
                "body": body,
                "user_google_email": self._user_email,
            },
        )
        logger.info("Sent email to %s: %r", to, subject)

    async def modify_labels(
        self,
        message_ids: list[str],
        add: list[str] | None = None,
        remove: list[str] | None = None,
    ) -> None:
        """Add and/or remove label IDs on each message. No-op when both are empty."""
        if not add and not remove:
            return
        for message_id in message_ids:
            arguments: dict[str, Any] = {
                "message_id": message_id,
                "user_google_email": self._user_email,
            }
            if add:
                arguments["add_label_ids"] = list(add)
            if remove:
                arguments["remove_label_ids"] = list(remove)
            await self._call("modify_gmail_message_labels", arguments)
        logger.debug(
            "Modified labels on %d message(s): +%s -%s", len(message_ids), add or [], remove or []
        )

    # ── Internal helpers ───────────────────────────────────────────────────────

    async def _call(self, tool_name: str, arguments: dict[str, Any]) -> _JsonValue:
        """Call a workspace-mcp tool and return the parsed JSON result.

        Raises MCPError if the tool returns an error.  Plain-string responses
        are returned as-is.
        """
        logger.debug("MCP → %s %s", tool_name, arguments)
        result = await self._session.call_tool(tool_name, arguments)

        if result.isError:
            raise MCPError(f"Tool {tool_name!r} returned error: {result.content}")

        if not result.content:
            return None

        text: str | None = None
        for item in result.content:
            if isinstance(item, TextContent):
                text = item.text
                break

        if text is None:
            return None

        try:
            parsed: _JsonValue = json.loads(text)
            return parsed
        except json.JSONDecodeError:
            return text

    @staticmethod
    def _parse_search_hits(raw: _JsonValue) -> list[tuple[str, str]]:
        """Extract (message_id, thread_id) pairs from a search response."""
        if isinstance(raw, list):
            return [
                (str(m["message_id"]), str(m.get("thread_id", "")))
                for m in raw
                if isinstance(m, dict) and m.get("message_id")
            ]
        if not isinstance(raw, str):
            return []

        hits: list[tuple[str, str]] = []
        blocks = re.split(r"(?=Message ID:)", raw)
        for block in blocks:
            message = re.match(r"Message ID:\s*(\S+)", block)
            if not message:
                continue
            thread = re.search(r"Thread ID:\s*(\S+)", block)
            hits.append((message.group(1), thread.group(1) if thread else ""))
        return hits

    @staticmethod
    def _parse_batch_emails(raw: _JsonValue) -> list[RawEmail]:
        """Parse one or more messages from a batch/single content response.

        workspace-mcp returns text blocks like::

            Message ID: abc123
            Subject: Hello
            From: alice@example.com
            Date: Mon, 1 Jan 2026 12:00:00 +0000
            To: <bob@example.com>

            Body text follows after a blank line...
        """
        if isinstance(raw, list):
            return [
                GmailDriver._parse_email_dict(m)
                for m in raw
                if isinstance(m, dict)
            ]
        if not isinstance(raw, str):
            return []

        emails: list[RawEmail] = []
        blocks = re.split(r"(?=^Message ID:)", raw, flags=re.MULTILINE)
        for block in blocks:
            block = block.strip()
            if not block.startswith("Message ID:"):
                continue

            def _header(name: str) -> str:
                m = re.search(rf"^{name}:\s*(.+)$", block, re.MULTILINE)
                return m.group(1).strip() if m else ""

            body = ""
            header_end = re.search(r"\n\s*\n", block)
            if header_end:
                body = block[header_end.end():].strip()

            to_raw = _header("To")
            emails.append(RawEmail(
                id=_header("Message ID"),
                thread_id=_header("Thread ID"),
                sender=_header("From"),
                recipient=re.sub(r"^<|>$", "", to_raw) if to_raw else None,
                subject=_header("Subject") or "(no subject)",
                snippet=body[:200] if body else "",
                body=body or None,
                date=_header("Date") or None,
                web_link=_header("Web Link") or None,
            ))
        return emails

    @staticmethod
    def _parse_email_dict(data: dict[str, Any]) -> RawEmail:
        """Map a JSON message dict to a RawEmail."""
        body_raw = data.get("body", "")
        recipient_raw = data.get("to", "")
        date_raw = data.get("date", "")
        link_raw = data.get("web_link", "")

        return RawEmail(
            id=str(data.get("message_id", data.get("id", ""))),
            thread_id=str(data.get("thread_id", "")),
            sender=str(data.get("from", "")),
            recipient=str(recipient_raw) if recipient_raw else None,
            subject=str(data.get("subject", "(no subject)")),
            snippet=str(data.get("snippet", "")),
            body=str(body_raw) if body_raw else None,
            labels=list(data.get("labels", [])),
            date=str(date_raw) if date_raw else None,
            web_link=str(link_raw) if link_raw else None,
        )


_MCP_CONNECT_RETRIES = 3
_MCP_RETRY_DELAY_SECONDS = 3


@asynccontextmanager
async def gmail_driver(
    *,
    user_email: str | None = None,
    server_command: str | None = None,
) -> AsyncIterator[GmailDriver]:
    """Async context manager that yields a connected GmailDriver.

    Spawns `workspace-mcp` over the MCP stdio transport, initialises the
    session, and tears everything down on exit.  Startup is retried because
    workspace-mcp binds a local OAuth port that a previous instance may still
    hold.

    Args:
        user_email: Google account email. Falls back to USER_GOOGLE_EMAIL env var.
        server_command: Command used to launch the MCP server.
                        Defaults to GMAIL_MCP_SERVER_PATH env var (or "uvx").
    """
    email = user_email or os.environ.get("USER_GOOGLE_EMAIL", "")
    if not email:
        raise ValueError(
            "user_email must be provided or USER_GOOGLE_EMAIL env var must be set"
        )

    cmd = server_command or os.environ.get("GMAIL_MCP_SERVER_PATH", "uvx")
    _cmd_basename = os.path.basename(cmd).lower().replace(".exe", "")
    args = ["workspace-mcp", "--tools", "gmail"] if _cmd_basename == "uvx" else []

    server_params = StdioServerParameters(
        command=cmd,
        args=args,
        env={
            **os.environ,
            "USER_GOOGLE_EMAIL": email,
            "MCP_SINGLE_USER_MODE": "1",
            "WORKSPACE_MCP_PORT": os.environ.get("WORKSPACE_MCP_PORT", "18741"),
        },
    )

    last_err: BaseException | None = None
    connected = False
    for attempt in range(1, _MCP_CONNECT_RETRIES + 1):
        try:
            async with stdio_client(server_params) as (read, write):
                async with ClientSession(read, write) as session:
                    await session.initialize()
                    logger.info("Gmail MCP driver connected (%s)", email)
                    connected = True
                    yield GmailDriver(session, email)
                    return
        except Exception as exc:
            # Errors raised by the caller's block are not connection failures.
            if connected:
                raise
            last_err = exc
            if attempt < _MCP_CONNECT_RETRIES:
                logger.warning(
                    "MCP server connection failed (attempt %d/%d), retrying in %ds",
                    attempt,
                    _MCP_CONNECT_RETRIES,
                    _MCP_RETRY_DELAY_SECONDS,
                )
                await asyncio.sleep(_MCP_RETRY_DELAY_SECONDS)

    raise MCPError(f"Failed to connect after {_MCP_CONNECT_RETRIES} attempts") from last_err
