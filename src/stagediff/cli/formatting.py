"""Rich formatting helpers for the stagediff CLI.

Report payloads go to stdout; warnings and errors go to a separate stderr
console so automated consumers can parse stdout untouched.
Rich auto-detects TTY and degrades gracefully when piped (no ANSI codes).
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from stagediff.models.report import Verdict

if TYPE_CHECKING:
    from stagediff.models.report import ChainReport, PromotionReport


def get_console(*, stderr: bool = False) -> Console:
    """Create a Rich Console that auto-detects TTY for graceful pipe degradation."""
    return Console(stderr=stderr)


_VERDICT_STYLE = {
    Verdict.PENDING: "green",
    Verdict.AMBIGUOUS: "yellow",
    Verdict.ALREADY_PRESENT: "dim",
}


def format_report(report: PromotionReport, console: Console) -> None:
    """Display a promotion report as a table plus its diagnostic trail."""
    console.print(
        f"[bold]{escape(report.upstream)}[/bold] -> [bold]{escape(report.downstream)}[/bold]",
        highlight=False,
    )
    if not report.ok:
        console.print(f"  Status:     [red]failed ({report.failure.value})[/red]")
        return

    sync = report.sync_point.describe() if report.sync_point else "none"
    console.print(f"  Sync point: [yellow]{escape(sync)}[/yellow]", highlight=False)
    counts = report.counts
    console.print(
        f"  Scanned {counts.scanned}  "
        f"[green]pending {counts.pending}[/green]  "
        f"[yellow]ambiguous {counts.ambiguous}[/yellow]  "
        f"[dim]already present {counts.already_present}[/dim]",
        highlight=False,
    )

    if not report.pending:
        console.print("[dim]Nothing to promote.[/dim]")
    else:
        table = Table(show_header=True, header_style="bold", box=None, pad_edge=False)
        table.add_column("Hash", style="yellow", width=8)
        table.add_column("Authored", style="dim")
        table.add_column("Verdict")
        table.add_column("Message")
        for cand in report.pending:
            style = _VERDICT_STYLE[cand.verdict]
            table.add_row(
                cand.commit.commit_hash[:8],
                cand.commit.authored_at.strftime("%Y-%m-%d %H:%M"),
                f"[{style}]{cand.verdict.value}[/{style}]",
                escape(cand.commit.subject),
            )
        console.print(table)

    if report.trail:
        console.print()
        console.print("[bold]Trail:[/bold]")
        for cand in report.trail:
            console.print(f"  {escape(cand.explain())}", highlight=False, soft_wrap=True)


def format_chain(chain: ChainReport, console: Console) -> None:
    """Display one summary row per adjacent stage pair."""
    table = Table(show_header=True, header_style="bold", box=None, pad_edge=False)
    table.add_column("Promotion")
    table.add_column("Sync point", style="yellow")
    table.add_column("Pending", justify="right", style="green")
    table.add_column("Ambiguous", justify="right", style="yellow")
    table.add_column("Present", justify="right", style="dim")
    table.add_column("Status")
    for link in chain.links:
        name = f"{escape(link.upstream)} -> {escape(link.downstream)}"
        if not link.ok:
            table.add_row(name, "", "", "", "", f"[red]{link.failure.value}[/red]")
            continue
        table.add_row(
            name,
            escape(link.sync_point.mode.value) if link.sync_point else "",
            str(link.counts.pending),
            str(link.counts.ambiguous),
            str(link.counts.already_present),
            "[yellow]unverified[/yellow]" if link.unverified else "ok",
        )
    console.print(table)


def format_warnings(report: PromotionReport, console: Console) -> None:
    """Print a report's non-fatal warnings on the diagnostic stream."""
    for warning in report.warnings:
        console.print(
            f"[yellow]Warning ({warning.code.value}):[/yellow] {escape(warning.message)}",
            highlight=False,
            soft_wrap=True,
        )


def format_error(message: str, console: Console) -> None:
    """Display an error message."""
    console.print(f"[red]Error:[/red] {escape(message)}", highlight=False, soft_wrap=True)
