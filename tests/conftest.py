"""Shared test fixtures for procpurge."""

import time
from dataclasses import dataclass, field

import pytest

from procpurge.backends import ProcessTableBackend
from procpurge.errors import ProcessGone, TerminationFailed
from procpurge.models import Health, ProcessRecord, ReportableProcess

SELF_PID = 4242


@dataclass
class FakeProcess:
    """One row of the in-memory process table."""

    pid: int
    ppid: int | None
    name: str = "dotnet"
    start_time: float = field(default_factory=time.time)
    cpu_time: float = 5.0
    rss: int = 50 * 1024 * 1024
    responding: bool = True
    cmdline: str = ""
    deny_kill: bool = False


class FakeBackend(ProcessTableBackend):
    """In-memory process table that records every call."""

    name = "fake"

    def __init__(self, processes: list[FakeProcess] | None = None) -> None:
        self.processes: dict[int, FakeProcess] = {p.pid: p for p in processes or []}
        self.calls: list[tuple[str, int | str]] = []
        self.terminated: list[int] = []
        self.broken_children: set[int] = set()

    def add(self, *processes: FakeProcess) -> "FakeBackend":
        for proc in processes:
            self.processes[proc.pid] = proc
        return self

    def list_processes_by_name(self, name: str) -> list[int]:
        self.calls.append(("list_processes_by_name", name))
        return [p.pid for p in self.processes.values() if p.name == name]

    def get_parent_pid(self, pid: int) -> int | None:
        self.calls.append(("get_parent_pid", pid))
        proc = self.processes.get(pid)
        return proc.ppid if proc else None

    def get_command_line(self, pid: int) -> str:
        self.calls.append(("get_command_line", pid))
        proc = self.processes.get(pid)
        return proc.cmdline if proc else ""

    def is_alive(self, pid: int) -> bool:
        self.calls.append(("is_alive", pid))
        return pid in self.processes

    def is_responding(self, pid: int) -> bool:
        self.calls.append(("is_responding", pid))
        proc = self.processes.get(pid)
        return proc.responding if proc else False

    def get_start_time(self, pid: int) -> float | None:
        self.calls.append(("get_start_time", pid))
        proc = self.processes.get(pid)
        return proc.start_time if proc else None

    def get_cpu_time(self, pid: int) -> float | None:
        self.calls.append(("get_cpu_time", pid))
        proc = self.processes.get(pid)
        return proc.cpu_time if proc else None

    def get_working_set_bytes(self, pid: int) -> int:
        self.calls.append(("get_working_set_bytes", pid))
        proc = self.processes.get(pid)
        return proc.rss if proc else 0

    def list_child_pids(self, pid: int) -> list[int]:
        self.calls.append(("list_child_pids", pid))
        if pid in self.broken_children:
            raise OSError(f"lookup failed for {pid}")
        return [p.pid for p in self.processes.values() if p.ppid == pid]

    def terminate(self, pid: int, timeout: float) -> None:
        self.calls.append(("terminate", pid))
        proc = self.processes.get(pid)
        if proc is None:
            raise ProcessGone(pid, "already exited")
        if proc.deny_kill:
            raise TerminationFailed(pid, "access denied")
        self.terminated.append(pid)
        del self.processes[pid]


def make_record(
    pid: int = 100,
    parent_pid: int | None = 1,
    running_seconds: float = 60.0,
    cpu_time: float = 5.0,
    is_responding: bool = True,
    memory_bytes: int = 10 * 1024 * 1024,
    command_line: str = "",
    child_pids: tuple[int, ...] = (),
    now: float = 1_700_000_000.0,
) -> ProcessRecord:
    """Create a ProcessRecord that has been running for ``running_seconds`` at ``now``."""
    return ProcessRecord(
        pid=pid,
        parent_pid=parent_pid,
        memory_bytes=memory_bytes,
        start_time=now - running_seconds,
        cpu_time=cpu_time,
        is_responding=is_responding,
        command_line=command_line,
        child_pids=child_pids,
    )


def make_reportable(
    pid: int = 100,
    child_pids: tuple[int, ...] = (),
    health: Health = Health.ORPHANED,
    **kwargs,
) -> ReportableProcess:
    """Create a ReportableProcess for testing."""
    return ReportableProcess(record=make_record(pid=pid, child_pids=child_pids, **kwargs), health=health)


@pytest.fixture
def backend() -> FakeBackend:
    """An empty in-memory backend."""
    return FakeBackend()


@pytest.fixture
def orphan_tree() -> FakeBackend:
    """Orphan root R(10) whose parent 9 is gone: R -> {C1(11) -> {G1(13)}, C2(12)}."""
    old = time.time() - 3600
    return FakeBackend(
        [
            FakeProcess(pid=10, ppid=9, start_time=old, cpu_time=30.0, cmdline="dotnet run"),
            FakeProcess(pid=11, ppid=10, name="node"),
            FakeProcess(pid=12, ppid=10, name="node"),
            FakeProcess(pid=13, ppid=11, name="sh"),
        ]
    )
