"""Tests for the Scanner."""

import os
import time

import pytest

from procpurge.config import Thresholds
from procpurge.models import Health
from procpurge.scanner import Scanner
from procpurge.terminator import Terminator
from tests.conftest import SELF_PID, FakeBackend, FakeProcess


def _healthy(pid: int, ppid: int = 1, **kwargs) -> FakeProcess:
    return FakeProcess(pid=pid, ppid=ppid, cpu_time=10.0, **kwargs)


class TestScanner:
    """Tests for Scanner.scan()."""

    def test_no_matching_processes(self, backend):
        """Test an empty table yields an empty report."""
        assert Scanner(backend, self_pid=SELF_PID).scan("dotnet") == []

    def test_self_is_excluded(self):
        """Test the tool's own pid is never reported even if it looks orphaned."""
        backend = FakeBackend([FakeProcess(pid=SELF_PID, ppid=None, responding=False)])

        assert Scanner(backend, self_pid=SELF_PID).scan("dotnet") == []
        assert ("get_parent_pid", SELF_PID) not in backend.calls

    def test_defaults_to_current_pid(self):
        """Test the excluded pid defaults to os.getpid()."""
        backend = FakeBackend([FakeProcess(pid=os.getpid(), ppid=None)])

        assert Scanner(backend).scan("dotnet") == []

    def test_healthy_processes_are_dropped(self):
        """Test adopted, active processes are not reported."""
        backend = FakeBackend([FakeProcess(pid=1, ppid=0, name="init"), _healthy(20)])

        assert Scanner(backend, self_pid=SELF_PID).scan("dotnet") == []

    def test_orphan_is_reported_with_descendants(self, orphan_tree):
        """Test an orphan carries its descendant snapshot and command line."""
        reportables = Scanner(orphan_tree, self_pid=SELF_PID).scan("dotnet")

        assert len(reportables) == 1
        reportable = reportables[0]
        assert reportable.pid == 10
        assert reportable.health == Health.ORPHANED
        assert reportable.child_pids == (11, 13, 12)
        assert reportable.child_count == 3
        assert reportable.record.command_line == "dotnet run"
        assert reportable.record.parent_pid == 9

    def test_only_named_processes_are_scanned(self, orphan_tree):
        """Test processes with other names are never classified."""
        Scanner(orphan_tree, self_pid=SELF_PID).scan("dotnet")

        classified = {pid for call, pid in orphan_tree.calls if call == "get_start_time"}
        assert classified == {10}

    def test_stuck_process_is_reported(self):
        """Test an adopted but idle process is reported as stuck."""
        backend = FakeBackend(
            [
                FakeProcess(pid=1, ppid=0, name="init"),
                FakeProcess(pid=30, ppid=1, start_time=time.time() - 3600, cpu_time=0.2),
            ]
        )

        reportables = Scanner(backend, self_pid=SELF_PID).scan("dotnet")

        assert [r.pid for r in reportables] == [30]
        assert reportables[0].health == Health.STUCK

    def test_unresponsive_process_is_reported(self):
        """Test a hung UI process is reported as stuck."""
        backend = FakeBackend([FakeProcess(pid=1, ppid=0, name="init"), _healthy(31, responding=False)])

        reportables = Scanner(backend, self_pid=SELF_PID).scan("dotnet")

        assert [r.pid for r in reportables] == [31]
        assert reportables[0].record.is_responding is False

    def test_thresholds_are_applied(self):
        """Test custom thresholds change the stuck verdict."""
        backend = FakeBackend(
            [
                FakeProcess(pid=1, ppid=0, name="init"),
                FakeProcess(pid=32, ppid=1, start_time=time.time() - 120, cpu_time=0.2),
            ]
        )

        assert Scanner(backend, self_pid=SELF_PID).scan("dotnet") == []
        lenient = Scanner(backend, Thresholds(idle_after_seconds=60.0), self_pid=SELF_PID)
        assert [r.pid for r in lenient.scan("dotnet")] == [32]

    def test_enumeration_order_is_kept(self):
        """Test results keep the relative order of the enumeration."""
        backend = FakeBackend([FakeProcess(pid=pid, ppid=None) for pid in (50, 40, 60)])

        reportables = Scanner(backend, self_pid=SELF_PID).scan("dotnet")

        assert [r.pid for r in reportables] == [50, 40, 60]

    def test_vanished_process_is_skipped(self):
        """Test a process missing its start time is skipped, not reported."""

        class VanishingBackend(FakeBackend):
            def get_start_time(self, pid):
                return None if pid == 70 else super().get_start_time(pid)

        backend = VanishingBackend([FakeProcess(pid=70, ppid=None), FakeProcess(pid=71, ppid=None)])

        assert [r.pid for r in Scanner(backend, self_pid=SELF_PID).scan("dotnet")] == [71]

    def test_failure_does_not_abort_scan(self):
        """Test an unexpected accessor exception only skips that pid."""

        class ExplodingBackend(FakeBackend):
            def get_working_set_bytes(self, pid):
                if pid == 80:
                    raise RuntimeError("platform error")
                return super().get_working_set_bytes(pid)

        backend = ExplodingBackend([FakeProcess(pid=80, ppid=None), FakeProcess(pid=81, ppid=None)])

        assert [r.pid for r in Scanner(backend, self_pid=SELF_PID).scan("dotnet")] == [81]


class TestSelfLineage:
    """Tests for keeping the running tool out of candidate trees."""

    @pytest.fixture
    def nested_backend(self) -> FakeBackend:
        """Orphan R(10) -> shell(11) -> {tool(SELF_PID) -> helper(4300), node(12)}."""
        return FakeBackend(
            [
                FakeProcess(pid=10, ppid=9, start_time=time.time() - 3600, cpu_time=0.2),
                FakeProcess(pid=11, ppid=10, name="bash"),
                FakeProcess(pid=SELF_PID, ppid=11, name="procpurge"),
                FakeProcess(pid=4300, ppid=SELF_PID, name="pgrep"),
                FakeProcess(pid=12, ppid=11, name="node"),
            ]
        )

    def test_self_and_ancestors_are_not_descendants(self, nested_backend):
        """Test the tool, its children and its ancestors stay out of child_pids."""
        reportables = Scanner(nested_backend, self_pid=SELF_PID).scan("dotnet")

        assert [r.pid for r in reportables] == [10]
        assert reportables[0].child_pids == (12,)

    def test_purge_never_touches_self(self, nested_backend):
        """Test a purge of the enclosing tree leaves the tool's lineage alive."""
        reportables = Scanner(nested_backend, self_pid=SELF_PID).scan("dotnet")

        summary = Terminator(nested_backend).purge(reportables)

        assert nested_backend.terminated == [12, 10]
        assert SELF_PID in nested_backend.processes
        assert 11 in nested_backend.processes
        assert (summary.killed, summary.failed) == (2, 0)

    def test_lineage_is_not_walked_without_descendants(self):
        """Test a childless candidate does not trigger the ancestor lookup."""
        backend = FakeBackend([FakeProcess(pid=10, ppid=None)])

        Scanner(backend, self_pid=SELF_PID).scan("dotnet")

        assert ("get_parent_pid", SELF_PID) not in backend.calls

    def test_parent_cycle_ends_lineage_walk(self):
        """Test a looping parent chain does not hang the ancestor lookup."""
        backend = FakeBackend(
            [
                FakeProcess(pid=10, ppid=None),
                FakeProcess(pid=20, ppid=10, name="bash"),
                FakeProcess(pid=SELF_PID, ppid=30, name="procpurge"),
                FakeProcess(pid=30, ppid=SELF_PID, name="bash"),
            ]
        )

        reportables = Scanner(backend, self_pid=SELF_PID).scan("dotnet")

        assert reportables[0].child_pids == (20,)
