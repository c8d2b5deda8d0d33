"""Leaf-first termination of reportable processes and their descendants."""

from collections.abc import Callable, Iterable

import structlog

from procpurge.backends import ProcessTableBackend
from procpurge.config import DEFAULT_KILL_TIMEOUT
from procpurge.errors import ProcessGone, TerminationFailed
from procpurge.models import KillOutcome, KillResult, PurgeSummary, ReportableProcess

log = structlog.get_logger()


class Terminator:
    """Kill processes through a backend, one contained attempt at a time."""

    def __init__(self, backend: ProcessTableBackend, timeout: float = DEFAULT_KILL_TIMEOUT) -> None:
        """
        Initialize the Terminator.

        Args:
            backend: Process table accessor providing the kill primitive.
            timeout: Seconds to wait for each process to confirm exit.
        """
        self._backend = backend
        self._timeout = timeout

    def kill(self, pid: int, is_child: bool = False) -> KillResult:
        """Terminate one pid. Never raises."""
        try:
            self._backend.terminate(pid, self._timeout)
        except ProcessGone:
            return KillResult(pid, is_child, KillOutcome.ALREADY_EXITED)
        except (TerminationFailed, OSError) as exc:
            log.debug("kill_failed", pid=pid, error=str(exc))
            return KillResult(pid, is_child, KillOutcome.FAILED, str(exc))
        except Exception as exc:
            log.warning("kill_error", pid=pid, error=str(exc), exc_info=True)
            return KillResult(pid, is_child, KillOutcome.FAILED, str(exc) or type(exc).__name__)
        return KillResult(pid, is_child, KillOutcome.KILLED)

    def purge(
        self,
        reportables: Iterable[ReportableProcess],
        on_result: Callable[[KillResult], None] | None = None,
    ) -> PurgeSummary:
        """
        Kill each reportable process after its descendants.

        Descendants go in reverse discovery order (deepest first), then the
        reportable's own pid. A descendant that already exited, for example
        because an earlier subtree kill took it down, counts as killed.

        Args:
            reportables: Candidates from ``Scanner.scan``.
            on_result: Called with each KillResult as soon as it is known.
        """
        results: list[KillResult] = []
        for reportable in reportables:
            for pid, is_child in _kill_order(reportable):
                result = self.kill(pid, is_child)
                results.append(result)
                if on_result is not None:
                    on_result(result)

        summary = PurgeSummary.from_results(results)
        log.debug("purge_complete", killed=summary.killed, failed=summary.failed)
        return summary


def _kill_order(reportable: ReportableProcess) -> list[tuple[int, bool]]:
    """Return (pid, is_child) pairs with every pid after its descendants."""
    order = [(pid, True) for pid in reversed(reportable.child_pids)]
    order.append((reportable.pid, False))
    return order
