"""Exceptions raised by the termination primitive."""


class PurgeError(Exception):
    """Base class for procpurge errors."""

    def __init__(self, pid: int, message: str = "") -> None:
        self.pid = pid
        super().__init__(message or f"PID {pid}")


class ProcessGone(PurgeError):
    """The target process no longer exists."""


class TerminationFailed(PurgeError):
    """The OS refused or failed to terminate the process."""
