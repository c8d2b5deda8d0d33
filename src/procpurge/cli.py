"""Command-line entry point for procpurge."""

import time
from importlib.metadata import PackageNotFoundError, version

import click
import structlog

from procpurge import logging as purge_logging
from procpurge.backends import select_backend
from procpurge.config import (
    DEFAULT_IDLE_AFTER_SECONDS,
    DEFAULT_KILL_TIMEOUT,
    DEFAULT_MIN_CPU_SECONDS,
    DEFAULT_PROCESS_NAME,
    Config,
)
from procpurge.console import Report
from procpurge.scanner import Scanner
from procpurge.terminator import Terminator

log = structlog.get_logger()


def _package_version() -> str:
    try:
        return version("procpurge")
    except PackageNotFoundError:
        return "unknown"


@click.command()
@click.version_option(package_name="procpurge")
@click.option(
    "--name",
    "-n",
    "process_name",
    default=DEFAULT_PROCESS_NAME,
    show_default=True,
    envvar="PROCPURGE_NAME",
    help="Executable name to scan for.",
)
@click.option(
    "--idle-minutes",
    type=click.FloatRange(min=0),
    default=DEFAULT_IDLE_AFTER_SECONDS / 60,
    show_default=True,
    envvar="PROCPURGE_IDLE_MINUTES",
    help="Uptime after which a CPU-idle process counts as stuck.",
)
@click.option(
    "--min-cpu-seconds",
    type=click.FloatRange(min=0),
    default=DEFAULT_MIN_CPU_SECONDS,
    show_default=True,
    envvar="PROCPURGE_MIN_CPU_SECONDS",
    help="CPU time below which a long-running process counts as idle.",
)
@click.option(
    "--timeout",
    "kill_timeout",
    type=click.FloatRange(min=0),
    default=DEFAULT_KILL_TIMEOUT,
    show_default=True,
    envvar="PROCPURGE_KILL_TIMEOUT",
    help="Seconds to wait for each killed process to exit.",
)
@click.option("--verbose", "-v", is_flag=True, help="Log diagnostics to stderr.")
def main(
    process_name: str,
    idle_minutes: float,
    min_cpu_seconds: float,
    kill_timeout: float,
    verbose: bool,
) -> None:
    """Find orphaned or stuck runtime processes and purge them with their children."""
    purge_logging.configure(verbose)

    try:
        config = Config.from_options(process_name, idle_minutes, min_cpu_seconds, kill_timeout)
    except ValueError as exc:
        raise click.BadParameter(str(exc)) from exc

    backend = select_backend()
    report = Report()
    report.banner(_package_version())

    reportables = Scanner(backend, config.thresholds).scan(config.process_name)
    if not reportables:
        report.clean(config.process_name)
        return

    report.candidates(config.process_name, reportables, now=time.time())

    if not report.confirm():
        report.cancelled()
        return

    report.console.print()
    terminator = Terminator(backend, timeout=config.kill_timeout)
    summary = terminator.purge(reportables, on_result=report.kill_result)
    report.summary(summary)
    log.info("purge_finished", killed=summary.killed, failed=summary.failed)


if __name__ == "__main__":
    main()
