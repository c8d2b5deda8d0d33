"""Orphan and stuck heuristics."""

import time

from procpurge.backends import ProcessTableBackend
from procpurge.config import Thresholds
from procpurge.models import Health, ProcessRecord


def is_orphaned(record: ProcessRecord, backend: ProcessTableBackend) -> bool:
    """True when the parent is unknown, non-positive, or no longer alive."""
    if record.parent_pid is None or record.parent_pid <= 0:
        return True
    return not backend.is_alive(record.parent_pid)


def is_stuck(record: ProcessRecord, thresholds: Thresholds, now: float | None = None) -> bool:
    """True when the process is unresponsive, or idle for too long.

    "Idle for too long" means running past ``thresholds.idle_after_seconds``
    while having consumed less than ``thresholds.min_cpu_seconds`` of CPU.
    """
    if not record.is_responding:
        return True
    return (
        record.running_seconds(now) > thresholds.idle_after_seconds
        and record.cpu_time < thresholds.min_cpu_seconds
    )


def classify(
    record: ProcessRecord,
    backend: ProcessTableBackend,
    thresholds: Thresholds | None = None,
    now: float | None = None,
) -> Health:
    """Combine the orphan and stuck checks into a single verdict.

    Both checks always run, so a process can be ORPHANED | STUCK.
    """
    thresholds = thresholds or Thresholds()
    now = time.time() if now is None else now

    health = Health.HEALTHY
    if is_orphaned(record, backend):
        health |= Health.ORPHANED
    if is_stuck(record, thresholds, now):
        health |= Health.STUCK
    return health
