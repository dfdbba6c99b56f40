"""stagediff analyze -- list upstream commits not yet promoted downstream."""

from __future__ import annotations

import click

from stagediff.cli.formatting import format_error, format_report, format_warnings, get_console
from stagediff.cli.options import EXIT_INVALID_ARGS, StageDiffCommand, exit_code_for, tuning_options


@click.command(cls=StageDiffCommand)
@click.option("--upstream", required=True, help="Stage whose work is being promoted.")
@click.option("--downstream", required=True, help="Stage receiving the promotion.")
@tuning_options
@click.pass_context
def analyze(
    ctx: click.Context,
    upstream: str,
    downstream: str,
    marker_pattern: str | None,
    scan_window: int,
    timeout: float,
    squash_pattern: str,
    output_format: str,
) -> None:
    """Report upstream commits that are pending promotion to downstream.

    The JSON report goes to stdout; warnings and errors go to stderr.
    Exit codes: 0 report produced, 1 backend unavailable, 2 timeout,
    3 invalid arguments or unknown stage.
    """
    from stagediff.cli import _reader_session
    from stagediff.exceptions import InvalidConfigError
    from stagediff.models.config import AnalyzeConfig
    from stagediff.pipeline import PromotionPipeline

    err = get_console(stderr=True)
    try:
        config = AnalyzeConfig(
            marker_pattern=marker_pattern,
            squash_pattern=squash_pattern,
            scan_window=scan_window,
            timeout=timeout,
        )
    except InvalidConfigError as e:
        format_error(str(e), err)
        ctx.exit(EXIT_INVALID_ARGS)

    with _reader_session(ctx) as reader:
        report = PromotionPipeline(reader, config).run(upstream, downstream)

    if output_format == "table":
        format_report(report, get_console())
    else:
        click.echo(report.to_json())

    format_warnings(report, err)
    if not report.ok:
        format_error(report.failure_detail or report.failure.value, err)
    ctx.exit(exit_code_for(report.failure))
