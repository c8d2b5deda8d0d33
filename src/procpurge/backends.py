"""Process table accessors.

Two interchangeable backends expose the same primitive queries:

- ``QueryServiceBackend`` asks psutil, which wraps the host's process
  information service (native process APIs on Windows, libproc on macOS).
- ``PseudoFilesystemBackend`` reads ``/proc/<pid>/*`` directly and shells
  out to ``pgrep -P`` for direct children.

Every query fails soft: a vanished process, a permission error or a broken
platform facility yields a sentinel (None, "", [], 0, False) and a debug
log event, never an exception. Only ``terminate`` raises, and only
``ProcessGone`` or ``TerminationFailed``.
"""

from __future__ import annotations

import ctypes
import os
import signal
import subprocess
import sys
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

import psutil
import structlog

from procpurge.errors import ProcessGone, TerminationFailed

log = structlog.get_logger()

# Linux truncates /proc/<pid>/comm to TASK_COMM_LEN - 1 characters
COMM_MAX_LEN = 15


class ProcessTableBackend(ABC):
    """Primitive, fail-soft view of the OS process table."""

    name = "abstract"

    @abstractmethod
    def list_processes_by_name(self, name: str) -> list[int]:
        """Return pids whose executable name matches ``name``."""

    @abstractmethod
    def get_parent_pid(self, pid: int) -> int | None:
        """Return the parent pid, or None when it cannot be resolved."""

    @abstractmethod
    def get_command_line(self, pid: int) -> str:
        """Return the command line, or "" when inaccessible."""

    @abstractmethod
    def is_alive(self, pid: int) -> bool:
        """Return True if ``pid`` currently names a live process."""

    @abstractmethod
    def is_responding(self, pid: int) -> bool:
        """Return False only if the process owns a hung UI window.

        Processes without a UI surface count as responding.
        """

    @abstractmethod
    def get_start_time(self, pid: int) -> float | None:
        """Return the process start time in epoch seconds."""

    @abstractmethod
    def get_cpu_time(self, pid: int) -> float | None:
        """Return cumulative user + system CPU seconds."""

    @abstractmethod
    def get_working_set_bytes(self, pid: int) -> int:
        """Return resident memory in bytes, 0 when unknown."""

    @abstractmethod
    def list_child_pids(self, pid: int) -> list[int]:
        """Return direct children of ``pid`` (one level only)."""

    @abstractmethod
    def terminate(self, pid: int, timeout: float) -> None:
        """Forcefully terminate ``pid`` and wait up to ``timeout`` seconds.

        Raises:
            ProcessGone: The process did not exist when the kill was issued.
            TerminationFailed: The OS refused or failed the kill.
        """


# ─────────────────────────────────────────────────────────────────────────────
# psutil
# ─────────────────────────────────────────────────────────────────────────────


def _normalize_name(name: str) -> str:
    name = name.casefold()
    if name.endswith(".exe"):
        name = name[: -len(".exe")]
    return name


def _load_user32() -> Any | None:
    windll = getattr(ctypes, "windll", None)
    if windll is None:
        return None
    return getattr(windll, "user32", None)


class QueryServiceBackend(ProcessTableBackend):
    """Backend built on psutil's process query facility.

    Handles NoSuchProcess, AccessDenied and ZombieProcess by returning
    sentinels.
    """

    name = "query-service"

    def __init__(self, user32: Any | None = None) -> None:
        """
        Initialize the backend.

        Args:
            user32: Windows ``user32`` library used for hung-window
                detection. Looked up from ``ctypes.windll`` when omitted;
                None on hosts without one.
        """
        self._user32 = user32 if user32 is not None else _load_user32()

    def list_processes_by_name(self, name: str) -> list[int]:
        target = _normalize_name(name)
        pids: list[int] = []
        try:
            for proc in psutil.process_iter(attrs=["pid", "name"]):
                proc_name = proc.info.get("name") or ""
                if _normalize_name(proc_name) == target:
                    pids.append(proc.info["pid"])
        except (psutil.Error, OSError) as exc:
            log.debug("process_enumeration_failed", name=name, error=str(exc))
        return pids

    def get_parent_pid(self, pid: int) -> int | None:
        try:
            return psutil.Process(pid).ppid()
        except (psutil.Error, OSError) as exc:
            log.debug("parent_lookup_failed", pid=pid, error=str(exc))
            return None

    def get_command_line(self, pid: int) -> str:
        try:
            cmdline = psutil.Process(pid).cmdline()
        except (psutil.Error, OSError) as exc:
            log.debug("cmdline_lookup_failed", pid=pid, error=str(exc))
            return ""
        return " ".join(cmdline).strip()

    def is_alive(self, pid: int) -> bool:
        if pid <= 0:
            return False
        try:
            proc = psutil.Process(pid)
            return proc.status() != psutil.STATUS_ZOMBIE
        except psutil.ZombieProcess:
            return False
        except psutil.AccessDenied:
            # Exists but belongs to someone else
            return True
        except (psutil.Error, OSError):
            return False

    def is_responding(self, pid: int) -> bool:
        if self._user32 is None:
            return True
        try:
            handles = self._window_handles(pid)
            return not any(self._user32.IsHungAppWindow(hwnd) for hwnd in handles)
        except (OSError, AttributeError) as exc:
            log.debug("responding_check_failed", pid=pid, error=str(exc))
            return False

    def _window_handles(self, pid: int) -> list[Any]:
        """Return visible top-level windows owned by ``pid``."""
        from ctypes import wintypes

        user32 = self._user32
        handles: list[Any] = []

        @ctypes.WINFUNCTYPE(ctypes.c_bool, wintypes.HWND, wintypes.LPARAM)
        def enum_proc(hwnd: wintypes.HWND, _lparam: wintypes.LPARAM) -> bool:
            if not user32.IsWindowVisible(hwnd):
                return True
            owner = wintypes.DWORD()
            user32.GetWindowThreadProcessId(hwnd, ctypes.byref(owner))
            if owner.value == pid:
                handles.append(hwnd)
            return True

        user32.EnumWindows(enum_proc, 0)
        return handles

    def get_start_time(self, pid: int) -> float | None:
        try:
            return psutil.Process(pid).create_time()
        except (psutil.Error, OSError) as exc:
            log.debug("start_time_lookup_failed", pid=pid, error=str(exc))
            return None

    def get_cpu_time(self, pid: int) -> float | None:
        try:
            times = psutil.Process(pid).cpu_times()
        except (psutil.Error, OSError) as exc:
            log.debug("cpu_time_lookup_failed", pid=pid, error=str(exc))
            return None
        return times.user + times.system

    def get_working_set_bytes(self, pid: int) -> int:
        try:
            return psutil.Process(pid).memory_info().rss
        except (psutil.Error, OSError) as exc:
            log.debug("memory_lookup_failed", pid=pid, error=str(exc))
            return 0

    def list_child_pids(self, pid: int) -> list[int]:
        try:
            return [child.pid for child in psutil.Process(pid).children()]
        except (psutil.Error, OSError) as exc:
            log.debug("children_lookup_failed", pid=pid, error=str(exc))
            return []

    def terminate(self, pid: int, timeout: float) -> None:
        """Kill ``pid`` and its whole subtree, children first.

        This process and its ancestors are left alone even when they sit
        inside the subtree.
        """
        try:
            parent = psutil.Process(pid)
            protected = _protected_pids()
            children = [c for c in parent.children(recursive=True) if c.pid not in protected]
        except psutil.NoSuchProcess as exc:
            raise ProcessGone(pid, "already exited") from exc
        except psutil.AccessDenied as exc:
            raise TerminationFailed(pid, "access denied") from exc
        except (psutil.Error, OSError) as exc:
            raise TerminationFailed(pid, str(exc)) from exc

        for child in reversed(children):
            try:
                child.kill()
            except (psutil.Error, OSError) as exc:
                # The explicit descendant walk retries these individually
                log.debug("subtree_kill_skipped", pid=child.pid, root=pid, error=str(exc))

        try:
            parent.kill()
        except psutil.NoSuchProcess as exc:
            raise ProcessGone(pid, "already exited") from exc
        except psutil.AccessDenied as exc:
            raise TerminationFailed(pid, "access denied") from exc
        except (psutil.Error, OSError) as exc:
            raise TerminationFailed(pid, str(exc)) from exc

        alive = _wait_for_exit([*children, parent], timeout)
        if alive:
            log.debug("exit_wait_timed_out", pid=pid, still_alive=[p.pid for p in alive])


def _protected_pids() -> set[int]:
    """Return this process and its ancestors."""
    me = psutil.Process()
    pids = {me.pid}
    try:
        pids.update(p.pid for p in me.parents())
    except psutil.Error as exc:
        log.debug("self_lookup_failed", error=str(exc))
    return pids


def _is_zombie(proc: psutil.Process) -> bool:
    try:
        return proc.status() == psutil.STATUS_ZOMBIE
    except psutil.NoSuchProcess:
        return True
    except psutil.Error:
        return False


def _wait_for_exit(procs: list[psutil.Process], timeout: float) -> list[psutil.Process]:
    """Wait up to ``timeout`` seconds and return the processes still running.

    A killed process stays a zombie until its parent reaps it, so zombies
    count as exited.
    """
    deadline = time.monotonic() + timeout
    alive = procs
    while True:
        _, alive = psutil.wait_procs(alive, timeout=min(0.1, timeout))
        alive = [p for p in alive if not _is_zombie(p)]
        if not alive or time.monotonic() >= deadline:
            return alive


# ─────────────────────────────────────────────────────────────────────────────
# /proc
# ─────────────────────────────────────────────────────────────────────────────


class PseudoFilesystemBackend(ProcessTableBackend):
    """Backend reading the per-process pseudo-filesystem under ``/proc``."""

    name = "pseudo-filesystem"

    def __init__(
        self,
        proc_root: Path | str = "/proc",
        pgrep: str | None = "pgrep",
        helper_timeout: float = 5.0,
        clock_ticks: int | None = None,
    ) -> None:
        """
        Initialize the backend.

        Args:
            proc_root: Mount point of the process pseudo-filesystem.
            pgrep: Child-listing helper. None always scans ``proc_root``.
            helper_timeout: Seconds to wait for the helper to exit.
            clock_ticks: Kernel clock ticks per second. Read from sysconf
                when omitted.
        """
        self._root = Path(proc_root)
        self._pgrep = pgrep
        self._helper_timeout = helper_timeout
        self._clock_ticks = clock_ticks or _sysconf_clock_ticks()
        self._boot_time: float | None = None

    # Raw readers

    def _read_text(self, pid: int, entry: str) -> str | None:
        try:
            return (self._root / str(pid) / entry).read_text(errors="replace")
        except OSError:
            return None

    def _status_field(self, pid: int, key: str) -> str | None:
        status = self._read_text(pid, "status")
        if status is None:
            return None
        prefix = f"{key}:"
        for line in status.splitlines():
            if line.startswith(prefix):
                return line[len(prefix) :].strip()
        return None

    def _stat_fields(self, pid: int) -> list[str] | None:
        """Return /proc/<pid>/stat fields from field 3 (state) onwards.

        The comm field may contain spaces and parentheses, so split after
        the last closing parenthesis.
        """
        stat = self._read_text(pid, "stat")
        if stat is None or ")" not in stat:
            return None
        return stat.rsplit(")", 1)[1].split()

    def _stat_field(self, pid: int, field_no: int) -> int | None:
        fields = self._stat_fields(pid)
        try:
            return int(fields[field_no - 3]) if fields else None
        except (IndexError, ValueError):
            return None

    def _get_boot_time(self) -> float | None:
        if self._boot_time is None:
            try:
                stat = (self._root / "stat").read_text()
            except OSError as exc:
                log.debug("boot_time_unreadable", error=str(exc))
                return None
            for line in stat.splitlines():
                if line.startswith("btime "):
                    self._boot_time = float(line.split()[1])
                    break
        return self._boot_time

    def _pid_dirs(self) -> list[int]:
        try:
            return sorted(int(entry.name) for entry in self._root.iterdir() if entry.name.isdigit())
        except OSError as exc:
            log.debug("proc_listing_failed", root=str(self._root), error=str(exc))
            return []

    # Queries

    def list_processes_by_name(self, name: str) -> list[int]:
        target = name[:COMM_MAX_LEN]
        pids: list[int] = []
        for pid in self._pid_dirs():
            comm = self._read_text(pid, "comm")
            if comm is not None and comm.strip() == target:
                pids.append(pid)
        return pids

    def get_parent_pid(self, pid: int) -> int | None:
        value = self._status_field(pid, "PPid")
        try:
            return int(value) if value is not None else None
        except ValueError:
            log.debug("parent_lookup_failed", pid=pid, value=value)
            return None

    def get_command_line(self, pid: int) -> str:
        try:
            raw = (self._root / str(pid) / "cmdline").read_bytes()
        except OSError:
            return ""
        return raw.replace(b"\x00", b" ").decode(errors="replace").strip()

    def is_alive(self, pid: int) -> bool:
        if pid <= 0:
            return False
        state = self._status_field(pid, "State")
        if state is None:
            return False
        # Z (zombie) and X (dead) have exited; only the table entry remains
        return state[:1] not in ("Z", "X")

    def is_responding(self, pid: int) -> bool:
        # No UI surface to check on /proc hosts
        return True

    def get_start_time(self, pid: int) -> float | None:
        start_ticks = self._stat_field(pid, 22)
        boot_time = self._get_boot_time()
        if start_ticks is None or boot_time is None:
            return None
        return boot_time + start_ticks / self._clock_ticks

    def get_cpu_time(self, pid: int) -> float | None:
        utime = self._stat_field(pid, 14)
        stime = self._stat_field(pid, 15)
        if utime is None or stime is None:
            return None
        return (utime + stime) / self._clock_ticks

    def get_working_set_bytes(self, pid: int) -> int:
        value = self._status_field(pid, "VmRSS")  # e.g. "12345 kB"
        if not value:
            return 0
        try:
            return int(value.split()[0]) * 1024
        except (IndexError, ValueError):
            return 0

    def list_child_pids(self, pid: int) -> list[int]:
        if self._pgrep is None:
            return self._scan_child_pids(pid)
        try:
            completed = subprocess.run(
                [self._pgrep, "-P", str(pid)],
                capture_output=True,
                text=True,
                timeout=self._helper_timeout,
                check=False,
            )
        except (OSError, subprocess.TimeoutExpired) as exc:
            log.debug("pgrep_unavailable", pid=pid, error=str(exc))
            return self._scan_child_pids(pid)

        if completed.returncode == 1:
            return []  # No matches
        if completed.returncode != 0:
            log.debug("pgrep_failed", pid=pid, returncode=completed.returncode)
            return self._scan_child_pids(pid)
        return [int(token) for token in completed.stdout.split() if token.isdigit()]

    def _scan_child_pids(self, pid: int) -> list[int]:
        return [child for child in self._pid_dirs() if self.get_parent_pid(child) == pid]

    def terminate(self, pid: int, timeout: float) -> None:
        """Send SIGKILL to ``pid`` alone; callers walk the subtree."""
        if not self.is_alive(pid):
            raise ProcessGone(pid, "already exited")
        try:
            os.kill(pid, signal.SIGKILL)
        except ProcessLookupError as exc:
            raise ProcessGone(pid, "already exited") from exc
        except PermissionError as exc:
            raise TerminationFailed(pid, exc.strerror or "permission denied") from exc
        except OSError as exc:
            raise TerminationFailed(pid, exc.strerror or str(exc)) from exc

        deadline = time.monotonic() + timeout
        while self.is_alive(pid):
            if time.monotonic() >= deadline:
                log.debug("exit_wait_timed_out", pid=pid, timeout=timeout)
                return
            time.sleep(0.05)


def _sysconf_clock_ticks() -> int:
    try:
        return os.sysconf("SC_CLK_TCK")
    except (AttributeError, ValueError, OSError):
        return 100


# ─────────────────────────────────────────────────────────────────────────────
# Selection
# ─────────────────────────────────────────────────────────────────────────────


def backend_class_for(platform: str) -> type[ProcessTableBackend]:
    """Return the backend class for a ``sys.platform`` string."""
    if platform.startswith("linux"):
        return PseudoFilesystemBackend
    return QueryServiceBackend


def select_backend(platform: str | None = None) -> ProcessTableBackend:
    """Instantiate the backend for this host. Call once at startup."""
    backend = backend_class_for(platform or sys.platform)()
    log.debug("backend_selected", backend=backend.name)
    return backend
