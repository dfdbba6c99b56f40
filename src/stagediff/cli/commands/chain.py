"""stagediff chain -- analyze every adjacent pair of a stage chain."""

from __future__ import annotations

import click

from stagediff.cli.formatting import format_chain, format_error, format_warnings, get_console
from stagediff.cli.options import EXIT_INVALID_ARGS, StageDiffCommand, exit_code_for, tuning_options


@click.command(cls=StageDiffCommand)
@click.argument("stages", nargs=-1, required=True)
@tuning_options
@click.pass_context
def chain(
    ctx: click.Context,
    stages: tuple[str, ...],
    marker_pattern: str | None,
    scan_window: int,
    timeout: float,
    squash_pattern: str,
    output_format: str,
) -> None:
    """Analyze STAGES pairwise, upstream first (e.g. develop staging main).

    Stops at the first promotion that fails; the exit code is that
    promotion's failure code.
    """
    from stagediff.cli import _reader_session
    from stagediff.exceptions import InvalidConfigError
    from stagediff.models.config import AnalyzeConfig
    from stagediff.pipeline import analyze_chain

    if len(stages) < 2:
        raise click.UsageError("at least two stages are required", ctx=ctx)

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
        report = analyze_chain(reader, stages, config)

    if output_format == "table":
        format_chain(report, get_console())
    else:
        click.echo(report.to_json())

    for link in report.links:
        format_warnings(link, err)
    failure = report.first_failure
    if failure is not None:
        format_error(
            f"{failure.upstream} -> {failure.downstream}: "
            f"{failure.failure_detail or failure.failure.value}",
            err,
        )
    ctx.exit(exit_code_for(failure.failure if failure is not None else None))
