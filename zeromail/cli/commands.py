"""CLI command implementations: query, search, compose and style."""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import TYPE_CHECKING

import click
from rich import box
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from zeromail.compose.composer import CompositionError
from zeromail.compose.extractor import ExtractionError
from zeromail.compose.prompts import build_prompts
from zeromail.compose.style import describe_style, metric_value
from zeromail.compose.types import BodyKind, Bucket, PromptContext, ThreadMessage
from zeromail.mail.gmail_driver import MCPError, gmail_driver
from zeromail.search.service import SearchQueryResult

if TYPE_CHECKING:
    from zeromail.cli.context import AppContext
    from zeromail.mail.types import ThreadList

logger = logging.getLogger(__name__)
console = Console(width=200)

_BUCKET_STYLES = {Bucket.LOW: "blue", Bucket.MEDIUM: "dim", Bucket.HIGH: "magenta"}


def _print_query_result(result: SearchQueryResult) -> None:
    if result.error:
        console.print(f"[yellow]{result.error}[/yellow]")
    if result.query:
        console.print(f"[bold]{escape(result.query)}[/bold]  [dim]({result.source.value})[/dim]")


# ── query ───────────────────────────────────────────────────────────────────────


@click.command()
@click.argument("phrase")
@click.option("--no-ai", is_flag=True, help="Rules only; never call Claude.")
@click.pass_obj
def query(app: AppContext, phrase: str, no_ai: bool) -> None:
    """Print the provider search query for a natural-language phrase."""
    service = app.search_service(use_ai=not no_ai)
    result = asyncio.run(service.enhance(phrase))
    _print_query_result(result)


# ── search ──────────────────────────────────────────────────────────────────────


@click.command()
@click.argument("phrase")
@click.option("--folder", default="inbox", show_default=True, help="Folder to search.")
@click.option("--limit", default=20, show_default=True, help="Maximum threads to list.")
@click.option("--no-ai", is_flag=True, help="Rules only; never call Claude.")
@click.pass_obj
def search(app: AppContext, phrase: str, folder: str, limit: int, no_ai: bool) -> None:
    """Enhance a search phrase and list matching threads from Gmail."""
    asyncio.run(_search_async(app, phrase, folder, limit, no_ai))


async def _search_async(
    app: AppContext, phrase: str, folder: str, limit: int, no_ai: bool
) -> None:
    if not phrase.strip():
        console.print("[red]Query is required[/red]")
        return

    try:
        async with gmail_driver(
            user_email=app.settings.user_email or None,
            server_command=app.settings.mcp_server_path,
        ) as driver:
            service = app.search_service(driver, use_ai=not no_ai)
            result, threads = await service.search(phrase, folder=folder, max_results=limit)
    except (MCPError, ValueError) as exc:
        console.print(f"[red]Gmail error: {exc}[/red]")
        return

    _print_query_result(result)
    _print_threads(threads)


def _print_threads(threads: ThreadList) -> None:
    if not threads.threads:
        console.print("[yellow]No matching threads.[/yellow]")
        return

    table = Table(box=box.ROUNDED, show_header=True, header_style="bold cyan")
    table.add_column("#", style="dim", width=3)
    table.add_column("Subject", max_width=50)
    table.add_column("From", max_width=30)
    table.add_column("Date", width=12)
    table.add_column("Snippet", max_width=60, style="dim")

    for i, thread in enumerate(threads.threads, start=1):
        table.add_row(
            str(i),
            escape(thread.subject),
            escape(thread.sender),
            (thread.date or "")[:10],
            escape(thread.snippet),
        )
    console.print(table)


# ── compose ─────────────────────────────────────────────────────────────────────


def _load_thread(path: Path) -> list[ThreadMessage]:
    """Read a JSON list of ``{"from", "body", "to"?, "subject"?}`` objects."""
    data = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(data, list):
        raise ValueError("thread file must contain a JSON list")
    messages = []
    for item in data:
        if not isinstance(item, dict) or "body" not in item:
            raise ValueError("each thread message needs at least a 'body'")
        messages.append(
            ThreadMessage(
                sender=str(item.get("from", "")),
                body=str(item["body"]),
                to=[str(t) for t in item.get("to", [])],
                subject=str(item.get("subject", "")),
            )
        )
    return messages


@click.command()
@click.argument("instruction")
@click.option("--to", "recipients", multiple=True, help="Recipient address (repeatable).")
@click.option("--subject", default=None, help="Subject of the email being written.")
@click.option(
    "--thread",
    "thread_file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="JSON file with the prior thread messages, oldest first.",
)
@click.option("--connection", default=None, help="Connection whose learned style to use.")
@click.option("--name", default=None, help="Sender name. Defaults to ZERO_USER_NAME.")
@click.option("--show-prompt", is_flag=True, help="Print the prompts instead of calling Claude.")
@click.option("--suggest-subject", is_flag=True, help="Also suggest a subject line.")
@click.pass_obj
def compose(
    app: AppContext,
    instruction: str,
    recipients: tuple[str, ...],
    subject: str | None,
    thread_file: Path | None,
    connection: str | None,
    name: str | None,
    show_prompt: bool,
    suggest_subject: bool,
) -> None:
    """Draft an email body in your own writing style."""
    try:
        thread = _load_thread(thread_file) if thread_file else []
    except (ValueError, OSError) as exc:
        console.print(f"[red]Could not read thread file: {exc}[/red]")
        return

    matrix = app.style_store.get(connection) if connection else None
    if connection and matrix is None:
        console.print(
            f"[yellow]No style learned for {connection!r}; using a neutral profile.[/yellow]"
        )

    context = PromptContext(
        instruction=instruction,
        username=name or app.settings.user_name,
        recipients=list(recipients),
        thread_messages=thread,
        current_subject=subject,
        style_matrix=matrix,
    )

    if show_prompt:
        prompts = build_prompts(context)
        console.print(Panel(Text(prompts.system_prompt), title="System prompt", border_style="dim"))
        console.print(Panel(Text(prompts.user_prompt), title="User prompt", border_style="cyan"))
        return

    asyncio.run(_compose_async(app, context, suggest_subject))


async def _compose_async(app: AppContext, context: PromptContext, suggest_subject: bool) -> None:
    composer = app.composer()
    try:
        result = await composer.compose(context)
    except CompositionError as exc:
        console.print(f"[red]{exc}[/red]")
        return

    if result.kind is BodyKind.SYSTEM:
        console.print(f"[red]{result.body}[/red]")
        return
    if result.kind is BodyKind.QUESTION:
        console.print(Panel(Text(result.body), title="Clarification needed", border_style="yellow"))
        return

    console.print(Panel(Text(result.body), title="Draft", border_style="blue"))
    if suggest_subject:
        subject = await composer.generate_subject(result.body)
        if subject:
            console.print(f"[bold]Subject:[/bold] {escape(subject)}")
        else:
            console.print("[yellow]Could not suggest a subject.[/yellow]")


# ── style ───────────────────────────────────────────────────────────────────────


@click.group()
def style() -> None:
    """Inspect and train per-connection writing styles."""


@style.command("show")
@click.argument("connection")
@click.pass_obj
def style_show(app: AppContext, connection: str) -> None:
    """Show the learned style buckets for a connection."""
    matrix = app.style_store.get(connection)
    if matrix is None:
        console.print(
            f"[yellow]No style learned for {connection!r}. "
            f"Run `zero-mail style learn {connection} FILE...` first.[/yellow]"
        )
        return

    table = Table(box=box.ROUNDED, show_header=True, header_style="bold cyan")
    table.add_column("Metric", max_width=32)
    table.add_column("Value", justify="right", width=10)
    table.add_column("Bucket", width=8)

    for key, bucket in describe_style(matrix).items():
        value = metric_value(matrix, key)
        shown = f"{value:.2f}" if value is not None else "-"
        colour = _BUCKET_STYLES[bucket]
        table.add_row(key, shown, f"[{colour}]{bucket.value}[/{colour}]")

    console.print(
        f"\nStyle for [bold]{connection}[/bold] "
        f"[dim]({matrix.get('numMessages', 0)} message(s))[/dim]\n"
    )
    console.print(f"  Greeting: {matrix.get('greetingForm') or '-'}")
    console.print(f"  Sign-off: {matrix.get('signOffForm') or '-'}\n")
    console.print(table)


@style.command("learn")
@click.argument("connection")
@click.argument(
    "files",
    nargs=-1,
    required=True,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
)
@click.pass_obj
def style_learn(app: AppContext, connection: str, files: tuple[Path, ...]) -> None:
    """Learn a connection's style from sent email bodies (one per file)."""
    asyncio.run(_learn_async(app, connection, files))


async def _learn_async(app: AppContext, connection: str, files: tuple[Path, ...]) -> None:
    extractor = app.extractor()
    learned = 0
    failed = 0
    for path in files:
        try:
            sample = await extractor.extract(path.read_text(encoding="utf-8"))
        except (ExtractionError, ValueError) as exc:
            logger.error("Style extraction failed for %s: %s", path, exc)
            console.print(f"[red]{path.name}: {exc}[/red]")
            failed += 1
            continue
        state = app.style_store.update(connection, sample)
        learned += 1
        logger.debug("Learned %s (%d total)", path.name, state.num_messages)

    console.print(
        f"[green]Done.[/green] {learned} sample(s) learned for {connection}"
        + (f", [red]{failed} failed[/red]" if failed else "")
        + "."
    )
