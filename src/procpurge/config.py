"""Run settings for procpurge.

There is no configuration file; values come from CLI options and their
environment variables (see ``procpurge.cli``).
"""

from dataclasses import dataclass, field

DEFAULT_PROCESS_NAME = "dotnet"
DEFAULT_IDLE_AFTER_SECONDS = 5 * 60.0
DEFAULT_MIN_CPU_SECONDS = 1.0
DEFAULT_KILL_TIMEOUT = 5.0


@dataclass(slots=True, frozen=True)
class Thresholds:
    """Stuck-detection heuristics.

    A process running longer than ``idle_after_seconds`` that has consumed
    less than ``min_cpu_seconds`` of CPU is presumed wedged. Both values are
    tunables, not measured limits.
    """

    idle_after_seconds: float = DEFAULT_IDLE_AFTER_SECONDS
    min_cpu_seconds: float = DEFAULT_MIN_CPU_SECONDS

    def __post_init__(self) -> None:
        if self.idle_after_seconds < 0:
            raise ValueError(f"idle_after_seconds must be >= 0, got {self.idle_after_seconds}")
        if self.min_cpu_seconds < 0:
            raise ValueError(f"min_cpu_seconds must be >= 0, got {self.min_cpu_seconds}")


@dataclass(slots=True, frozen=True)
class Config:
    """Settings for a single invocation."""

    process_name: str = DEFAULT_PROCESS_NAME
    thresholds: Thresholds = field(default_factory=Thresholds)
    kill_timeout: float = DEFAULT_KILL_TIMEOUT  # Seconds to wait for exit confirmation

    def __post_init__(self) -> None:
        if not self.process_name.strip():
            raise ValueError("process_name must not be empty")
        if self.kill_timeout < 0:
            raise ValueError(f"kill_timeout must be >= 0, got {self.kill_timeout}")

    @classmethod
    def from_options(
        cls,
        process_name: str = DEFAULT_PROCESS_NAME,
        idle_minutes: float = DEFAULT_IDLE_AFTER_SECONDS / 60,
        min_cpu_seconds: float = DEFAULT_MIN_CPU_SECONDS,
        kill_timeout: float = DEFAULT_KILL_TIMEOUT,
    ) -> "Config":
        """Build a Config from CLI-style units (minutes for the idle window)."""
        return cls(
            process_name=process_name.strip(),
            thresholds=Thresholds(
                idle_after_seconds=idle_minutes * 60,
                min_cpu_seconds=min_cpu_seconds,
            ),
            kill_timeout=kill_timeout,
        )
