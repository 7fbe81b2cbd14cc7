"""Output utilities for CLI commands with clear intent.

user_output goes to stderr for humans; machine_output goes to stdout for
scripts. Rich renderables for status tables and run summaries live here too.
"""

from collections.abc import Sequence

import click
from rich.panel import Panel
from rich.table import Table
from rich.text import Text


def user_output(message: str = "", nl: bool = True) -> None:
    """Human-facing text (stderr)."""
    click.echo(message, err=True, nl=nl)


def machine_output(message: str, nl: bool = True) -> None:
    """Script-facing text such as JSON (stdout)."""
    click.echo(message, nl=nl)


def format_bytes(size: int) -> str:
    """Render a byte count, e.g. 1536 -> "1.5 KB"."""
    if size < 1024:
        return f"{size} B"
    value = float(size)
    for unit in ("KB", "MB", "GB"):
        value /= 1024
        if value < 1024 or unit == "GB":
            return f"{value:.1f} {unit}"
    return f"{value:.1f} GB"


_STATUS_STYLES = {
    "up_to_date": "green",
    "update_available": "yellow",
    "not_installed": "dim",
    "error": "red",
}


def status_style(status_value: str) -> str:
    return _STATUS_STYLES.get(status_value, "")


def format_status_table(rows: Sequence[Sequence[str]], statuses: Sequence[str]) -> Table:
    """Build the branch status table.

    Args:
        rows: One row per branch (branch, status, version, size, files, mods)
        statuses: Status value per row, used for coloring
    """
    table = Table(show_header=True, header_style="bold", box=None, pad_edge=False)
    table.add_column("branch", no_wrap=True)
    table.add_column("status", no_wrap=True)
    table.add_column("version", no_wrap=True)
    table.add_column("size", justify="right", no_wrap=True)
    table.add_column("files", justify="right", no_wrap=True)
    table.add_column("mods", justify="right", no_wrap=True)
    for row, status in zip(rows, statuses, strict=True):
        branch, status_text, *rest = row
        table.add_row(branch, Text(status_text, style=status_style(status)), *rest)
    return table


def format_run_summary(
    *,
    title: str,
    succeeded: Sequence[str],
    problems: Sequence[tuple[str, str, str | None]],
    session_log: str | None,
    ok: bool,
) -> Panel:
    """Final summary box for an acquisition run.

    Args:
        title: Panel title
        succeeded: Display names of branches acquired successfully
        problems: (display name, status, log path) for every other branch
        session_log: Session log path, if a session was opened
        ok: Whether the run completed without problems
    """
    lines: list[Text] = []
    for name in succeeded:
        lines.append(Text(f"✓ {name}", style="green"))
    for name, status, log_path in problems:
        lines.append(Text(f"✗ {name}: {status}", style="red"))
        if log_path:
            lines.append(Text(f"    log: {log_path}", style="dim"))
    if not lines:
        lines.append(Text("No branches processed", style="dim"))
    if session_log:
        lines.append(Text(""))
        lines.append(Text(f"Session log: {session_log}", style="blue"))

    return Panel(
        Text("\n").join(lines),
        title=title,
        border_style="green" if ok else "red",
        padding=(1, 2),
    )
