"""stagediff CLI -- promotion-state analysis for multi-stage branch pipelines.

This module is NEVER imported from stagediff/__init__.py.
It is only loaded via the ``stagediff`` entry point defined in pyproject.toml.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import TYPE_CHECKING

import click
from rich.logging import RichHandler

from stagediff.cli.formatting import format_error, get_console
from stagediff.cli.options import EXIT_BACKEND_UNAVAILABLE, StageDiffGroup
from stagediff.exceptions import BackendUnavailableError

if TYPE_CHECKING:
    from collections.abc import Iterator

    from stagediff.storage.repositories import HistoryReader


@click.group(cls=StageDiffGroup)
@click.option(
    "--repo",
    default=".",
    type=click.Path(file_okay=False),
    help="Git repository to analyse (default: current directory).",
)
@click.option(
    "--db",
    default=None,
    type=click.Path(dir_okay=False),
    help="Read a stagediff SQL history store instead of a git repository.",
)
@click.option("-v", "--verbose", is_flag=True, help="Log analysis steps to stderr.")
@click.pass_context
def cli(ctx: click.Context, repo: str, db: str | None, verbose: bool) -> None:
    """stagediff: find upstream commits not yet promoted downstream."""
    ctx.ensure_object(dict)
    ctx.obj["repo"] = repo
    ctx.obj["db_path"] = db
    if verbose:
        _enable_logging()


def _enable_logging() -> None:
    root = logging.getLogger("stagediff")
    if not any(isinstance(h, RichHandler) for h in root.handlers):
        root.addHandler(RichHandler(console=get_console(stderr=True), show_path=False))
    root.setLevel(logging.DEBUG)


def _open_reader(ctx: click.Context) -> HistoryReader:
    """Open the history backend selected on the command line."""
    db_path = ctx.obj["db_path"]
    if db_path is not None:
        from stagediff.store import HistoryStore

        return HistoryStore.open(db_path, create=False).reader(owns_engine=True)

    from stagediff.storage.git import GitHistoryReader

    return GitHistoryReader(ctx.obj["repo"])


@contextmanager
def _reader_session(ctx: click.Context) -> Iterator[HistoryReader]:
    """Open the reader, yield it, and close it on exit.

    An unreachable backend is reported on stderr and exits with
    EXIT_BACKEND_UNAVAILABLE.
    """
    try:
        reader = _open_reader(ctx)
    except BackendUnavailableError as e:
        format_error(str(e), get_console(stderr=True))
        raise SystemExit(EXIT_BACKEND_UNAVAILABLE) from None
    try:
        yield reader
    finally:
        reader.close()


# Register subcommands after cli group is defined
from stagediff.cli.commands.analyze import analyze  # noqa: E402
from stagediff.cli.commands.chain import chain  # noqa: E402

cli.add_command(analyze)
cli.add_command(chain)
