"""Data models for procpurge."""

import enum
import time
from collections.abc import Iterable
from dataclasses import dataclass


class Health(enum.Flag):
    """Classification verdict for a single process.

    ORPHANED and STUCK are independent and may be combined.
    """

    HEALTHY = 0
    ORPHANED = enum.auto()
    STUCK = enum.auto()

    @property
    def reportable(self) -> bool:
        """True when the process is a purge candidate."""
        return bool(self)


@dataclass(slots=True, frozen=True)
class ProcessRecord:
    """Immutable snapshot of a candidate process."""

    pid: int
    parent_pid: int | None  # None when unresolvable
    memory_bytes: int
    start_time: float  # Epoch seconds
    cpu_time: float  # Cumulative user + system seconds
    is_responding: bool = True
    command_line: str = ""
    child_pids: tuple[int, ...] = ()

    @property
    def memory_mb(self) -> float:
        """Resident memory in megabytes."""
        return self.memory_bytes / (1024 * 1024)

    def running_seconds(self, now: float | None = None) -> float:
        """Seconds elapsed since the process started."""
        if now is None:
            now = time.time()
        return max(0.0, now - self.start_time)


@dataclass(slots=True, frozen=True)
class ReportableProcess:
    """A process flagged for purging, with its descendant snapshot."""

    record: ProcessRecord
    health: Health

    @property
    def pid(self) -> int:
        return self.record.pid

    @property
    def child_pids(self) -> tuple[int, ...]:
        return self.record.child_pids

    @property
    def child_count(self) -> int:
        return len(self.record.child_pids)

    @property
    def is_orphaned(self) -> bool:
        return Health.ORPHANED in self.health

    @property
    def is_stuck(self) -> bool:
        return Health.STUCK in self.health


class KillOutcome(enum.Enum):
    """Result of a single termination attempt."""

    KILLED = "killed"
    ALREADY_EXITED = "already exited"
    FAILED = "failed"


@dataclass(slots=True, frozen=True)
class KillResult:
    """Outcome of terminating one pid."""

    pid: int
    is_child: bool
    outcome: KillOutcome
    detail: str = ""

    @property
    def counts_as_killed(self) -> bool:
        return self.outcome is not KillOutcome.FAILED


@dataclass(slots=True, frozen=True)
class PurgeSummary:
    """Aggregate of kill results."""

    killed: int = 0
    failed: int = 0
    results: tuple[KillResult, ...] = ()

    @classmethod
    def from_results(cls, results: Iterable[KillResult]) -> "PurgeSummary":
        """Build a summary from kill results in attempt order."""
        results = tuple(results)
        killed = sum(1 for result in results if result.counts_as_killed)
        return cls(killed=killed, failed=len(results) - killed, results=results)
