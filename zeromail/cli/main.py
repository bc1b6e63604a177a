"""CLI entry point for zero-mail."""

import logging

import click
from dotenv import load_dotenv

from zeromail.cli.context import AppContext
from zeromail.config import Settings
from zeromail.storage.style_store import WritingStyleStore

logger = logging.getLogger(__name__)


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
@click.pass_context
def cli(ctx: click.Context, verbose: bool) -> None:
    """zero-mail: smart search queries and style-matched email drafting."""
    load_dotenv()
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
    )
    settings = Settings.from_env()
    store = WritingStyleStore(db_path=settings.db_path)
    ctx.obj = AppContext(settings, store)
    ctx.call_on_close(ctx.obj.close)


# Import and register commands after cli is defined to avoid circular imports.
from zeromail.cli.commands import compose, query, search, style  # noqa: E402

cli.add_command(query)
cli.add_command(search)
cli.add_command(compose)
cli.add_command(style)
