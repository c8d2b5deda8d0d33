"""Console rendering for procpurge.

Scanner and Terminator return plain data; everything printed to the user
is produced here with Rich markup.
"""

from collections.abc import Sequence

from rich.console import Console
from rich.markup import escape

from procpurge.models import KillOutcome, KillResult, PurgeSummary, ReportableProcess

RULE = "═" * 47
COMMAND_LINE_WIDTH = 80

CONFIRM_ANSWERS = ("y", "yes")


def format_uptime(seconds: float) -> str:
    """Format elapsed seconds using the two most significant units."""
    seconds = max(0, int(seconds))
    days, remainder = divmod(seconds, 86400)
    hours, remainder = divmod(remainder, 3600)
    minutes, secs = divmod(remainder, 60)
    if days >= 1:
        return f"{days}d {hours}h"
    if hours >= 1:
        return f"{hours}h {minutes}m"
    return f"{minutes}m {secs}s"


def truncate(value: str, max_length: int = COMMAND_LINE_WIDTH) -> str:
    """Shorten ``value`` to ``max_length`` characters, ending in '...'."""
    if len(value) <= max_length:
        return value
    return value[: max_length - 3] + "..."


def is_confirmation(answer: str | None) -> bool:
    """True only for 'y' or 'yes' (case-insensitive, surrounding space ignored)."""
    return (answer or "").strip().lower() in CONFIRM_ANSWERS


class Report:
    """Renders scan results, the confirmation prompt and purge progress."""

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console(highlight=False, soft_wrap=True, emoji=False)

    def banner(self, version: str) -> None:
        self.console.print(f"[cyan]{RULE}[/]")
        self.console.print(f"[cyan]        procpurge v{escape(version)}[/]")
        self.console.print(f"[cyan]{RULE}[/]")
        self.console.print()

    def clean(self, process_name: str) -> None:
        self.console.print(
            f"[green]No orphaned/stuck {escape(process_name)} processes found. System is clean.[/]"
        )

    def candidates(
        self,
        process_name: str,
        reportables: Sequence[ReportableProcess],
        now: float | None = None,
    ) -> None:
        """Print one block per candidate followed by the totals."""
        self.console.print(
            f"[yellow]Found {len(reportables)} orphaned/stuck "
            f"{escape(process_name)} process(es):[/]"
        )
        self.console.print()

        for reportable in reportables:
            self.console.print(self.format_candidate(reportable, now))
            command_line = reportable.record.command_line
            if command_line:
                self.console.print(f"[dim]           Cmd: {escape(truncate(command_line))}[/]")

        total_memory = sum(r.record.memory_mb for r in reportables)
        total_children = sum(r.child_count for r in reportables)

        self.console.print()
        self.console.print(f"[yellow]Total memory consumed: {total_memory:.1f} MB[/]")
        if total_children > 0:
            self.console.print(f"[yellow]Total child processes: {total_children}[/]")
        self.console.print()

    @staticmethod
    def format_candidate(reportable: ReportableProcess, now: float | None = None) -> str:
        record = reportable.record
        parts = [
            f"  [red]PID: {record.pid:<8}[/]",
            f"Memory: {record.memory_mb:7.1f} MB",
            f"Running: {format_uptime(record.running_seconds(now))}",
            f"Responding: {'Yes' if record.is_responding else 'No'}",
        ]
        if reportable.child_count > 0:
            parts.append(f"Children: {reportable.child_count}")
        return " | ".join(parts)

    def confirm(self) -> bool:
        """Ask once; anything but y/yes (including EOF) declines."""
        try:
            answer = self.console.input(
                escape("Do you want to purge all these processes (including children)? [y/N]: ")
            )
        except EOFError:
            answer = ""
        return is_confirmation(answer)

    def cancelled(self) -> None:
        self.console.print("[bright_black]Purge cancelled. No processes were killed.[/]")

    def kill_result(self, result: KillResult) -> None:
        """Print the line for a single kill attempt."""
        label = "  Child" if result.is_child else "  Process"
        if result.outcome is KillOutcome.KILLED:
            status = "[green]killed[/]"
        elif result.outcome is KillOutcome.ALREADY_EXITED:
            status = "[dim]already exited[/]"
        else:
            status = f"[red]failed ({escape(result.detail)})[/]"
        self.console.print(f"{label} PID {result.pid}... {status}")

    def summary(self, summary: PurgeSummary) -> None:
        self.console.print()
        self.console.print(
            f"[green]Purge complete. Killed: {summary.killed} | Failed: {summary.failed}[/]"
        )
