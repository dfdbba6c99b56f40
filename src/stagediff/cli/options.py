"""Shared click plumbing for stagediff commands: exit codes and tuning options."""

from __future__ import annotations

import re
from typing import Any, Callable

import click

from stagediff.models.config import DEFAULT_SCAN_WINDOW, DEFAULT_SQUASH_PATTERN, DEFAULT_TIMEOUT
from stagediff.models.report import FailureReason

EXIT_OK = 0
EXIT_BACKEND_UNAVAILABLE = 1
EXIT_TIMEOUT = 2
EXIT_INVALID_ARGS = 3

_FAILURE_EXIT_CODES = {
    FailureReason.BACKEND_UNAVAILABLE: EXIT_BACKEND_UNAVAILABLE,
    FailureReason.TIMEOUT: EXIT_TIMEOUT,
    FailureReason.NOT_FOUND: EXIT_INVALID_ARGS,
}


def exit_code_for(failure: FailureReason | None) -> int:
    return EXIT_OK if failure is None else _FAILURE_EXIT_CODES[failure]


class _InvalidArgsExitCode:
    """Report click usage errors with EXIT_INVALID_ARGS instead of click's 2.

    Exit code 2 is reserved for analysis timeouts.
    """

    def make_context(self, info_name, args, parent=None, **extra):  # type: ignore[no-untyped-def]
        try:
            return super().make_context(info_name, args, parent=parent, **extra)
        except click.UsageError as exc:
            exc.exit_code = EXIT_INVALID_ARGS
            raise

    def invoke(self, ctx):  # type: ignore[no-untyped-def]
        try:
            return super().invoke(ctx)
        except click.UsageError as exc:
            exc.exit_code = EXIT_INVALID_ARGS
            raise


class StageDiffCommand(_InvalidArgsExitCode, click.Command):
    pass


class StageDiffGroup(_InvalidArgsExitCode, click.Group):
    pass


def _validate_regex(ctx: click.Context, param: click.Parameter, value: str | None) -> str | None:
    if value is None:
        return value
    try:
        re.compile(value)
    except re.error as exc:
        raise click.BadParameter(f"invalid regular expression: {exc}") from None
    return value


def tuning_options(f: Callable[..., Any]) -> Callable[..., Any]:
    """Attach the externally tunable analysis parameters to a command."""
    options = [
        click.option(
            "--marker-pattern",
            default=None,
            envvar="STAGEDIFF_MARKER_PATTERN",
            callback=_validate_regex,
            help="Regex identifying sync-marker merge messages "
            "(default: 'merge.*<downstream name>', case-insensitive).",
        ),
        click.option(
            "--scan-window",
            default=DEFAULT_SCAN_WINDOW,
            show_default=True,
            envvar="STAGEDIFF_SCAN_WINDOW",
            type=click.IntRange(min=1),
            help="Maximum merge commits to inspect for a sync marker.",
        ),
        click.option(
            "--timeout",
            default=DEFAULT_TIMEOUT,
            show_default=True,
            envvar="STAGEDIFF_TIMEOUT",
            type=click.FloatRange(min=0, min_open=True),
            help="Wall-clock budget for the whole analysis, in seconds.",
        ),
        click.option(
            "--squash-pattern",
            default=DEFAULT_SQUASH_PATTERN,
            show_default=True,
            callback=_validate_regex,
            help="Regex identifying squash-merge commits on the downstream stage.",
        ),
        click.option(
            "--format",
            "output_format",
            type=click.Choice(["json", "table"], case_sensitive=False),
            default="json",
            show_default=True,
            help="Report format on stdout.",
        ),
    ]
    for option in reversed(options):
        f = option(f)
    return f
