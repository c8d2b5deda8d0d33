"""Scan the process table for orphaned or stuck processes."""

import os
import time
from dataclasses import replace

import structlog

from procpurge.backends import ProcessTableBackend
from procpurge.classifier import classify
from procpurge.config import Thresholds
from procpurge.graph import resolve_descendants
from procpurge.models import ProcessRecord, ReportableProcess

log = structlog.get_logger()


class Scanner:
    """
    Find purge candidates among processes with a given executable name.

    Each pid is handled in isolation: a process that vanishes or denies
    access is skipped without aborting the scan.
    """

    def __init__(
        self,
        backend: ProcessTableBackend,
        thresholds: Thresholds | None = None,
        self_pid: int | None = None,
    ) -> None:
        """
        Initialize the Scanner.

        Args:
            backend: Process table accessor for this host.
            thresholds: Stuck-detection heuristics. Defaults apply when omitted.
            self_pid: Pid to exclude from results. Defaults to this process.
        """
        self._backend = backend
        self._thresholds = thresholds or Thresholds()
        self._self_pid = os.getpid() if self_pid is None else self_pid
        self._self_lineage: frozenset[int] | None = None

    def scan(self, process_name: str) -> list[ReportableProcess]:
        """Return reportable processes in enumeration order."""
        reportables: list[ReportableProcess] = []
        now = time.time()
        self._self_lineage = None

        for pid in self._backend.list_processes_by_name(process_name):
            if pid == self._self_pid:
                continue
            try:
                reportable = self._inspect(pid, now)
            except Exception as exc:
                log.debug("process_skipped", pid=pid, error=str(exc))
                continue
            if reportable is not None:
                reportables.append(reportable)

        log.debug("scan_complete", name=process_name, reportable=len(reportables))
        return reportables

    def _inspect(self, pid: int, now: float) -> ReportableProcess | None:
        record = self._snapshot(pid)
        if record is None:
            return None

        health = classify(record, self._backend, self._thresholds, now)
        if not health.reportable:
            return None

        descendants = resolve_descendants(self._backend, pid, exclude=(self._self_pid,))
        if descendants:
            lineage = self._lineage()
            descendants = tuple(child for child in descendants if child not in lineage)

        record = replace(
            record,
            command_line=self._backend.get_command_line(pid),
            child_pids=descendants,
        )
        log.debug("process_flagged", pid=pid, health=str(health), children=len(record.child_pids))
        return ReportableProcess(record=record, health=health)

    def _lineage(self) -> frozenset[int]:
        """Return the excluded pid and its ancestors, looked up once per scan."""
        if self._self_lineage is None:
            lineage = [self._self_pid]
            parent = self._backend.get_parent_pid(self._self_pid)
            while parent is not None and parent > 0 and parent not in lineage:
                lineage.append(parent)
                parent = self._backend.get_parent_pid(parent)
            self._self_lineage = frozenset(lineage)
        return self._self_lineage

    def _snapshot(self, pid: int) -> ProcessRecord | None:
        """Read the per-process facts needed to classify ``pid``."""
        backend = self._backend
        start_time = backend.get_start_time(pid)
        cpu_time = backend.get_cpu_time(pid)
        if start_time is None or cpu_time is None:
            # Vanished or inaccessible
            log.debug("snapshot_incomplete", pid=pid)
            return None

        return ProcessRecord(
            pid=pid,
            parent_pid=backend.get_parent_pid(pid),
            memory_bytes=backend.get_working_set_bytes(pid),
            start_time=start_time,
            cpu_time=cpu_time,
            is_responding=backend.is_responding(pid),
        )
