"""Status Watch exception hierarchy."""

from typing import Iterable


class StatusWatchError(Exception):
    """Base exception for all engine errors."""


class CollectorError(StatusWatchError):
    """Upstream source could not be reached or parsed."""

    def __init__(self, collector: str, message: str):
        self.collector = collector
        super().__init__(f"[{collector}] {message}")


class CollectorTimeoutError(CollectorError):
    """Collector did not return within its time budget."""

    def __init__(self, collector: str, timeout: float):
        self.timeout = timeout
        super().__init__(collector, f"timed out after {timeout:g}s")


class SnapshotError(StatusWatchError):
    """Collector produced a snapshot of the wrong shape."""

    def __init__(self, collector: str, message: str):
        self.collector = collector
        super().__init__(f"[{collector}] malformed snapshot: {message}")


class InvalidFilterError(StatusWatchError):
    """Event log query parameter outside its allowed values."""

    def __init__(self, field: str, allowed: Iterable[str]):
        self.field = field
        self.allowed = sorted(allowed)
        super().__init__(f"{field.capitalize()} must be one of: {', '.join(self.allowed)}")
