"""Error kinds raised by the streaming core and the regression engine."""

from __future__ import annotations


class RtPlotError(Exception):
    """Base error for all rtplot failures."""


# ---- Per-line ingestion errors (recoverable: the line is skipped) ----
class SampleError(RtPlotError):
    """Raised when a single input line cannot become a stored sample."""


class MalformedLine(SampleError):
    """Raised when a line contains a token that is not an integer."""


class ChannelCountMismatch(SampleError):
    """Raised when a line carries a different number of channels than the session."""

    def __init__(self, expected: int, actual: int) -> None:
        super().__init__(f"expected {expected} channel value(s), got {actual}")
        self.expected = expected
        self.actual = actual


class OutOfOrderSample(SampleError):
    """Raised when a sample is older than the newest retained sample."""

    def __init__(self, timestamp: int, latest: int) -> None:
        super().__init__(f"timestamp {timestamp} is older than latest timestamp {latest}")
        self.timestamp = timestamp
        self.latest = latest


# ---- Store lookups ----
class ChannelOutOfRange(RtPlotError, IndexError):
    """Raised when a channel index does not exist in the store."""

    def __init__(self, channel: int, channel_count: int) -> None:
        super().__init__(f"channel {channel} out of range for {channel_count} channel(s)")
        self.channel = channel
        self.channel_count = channel_count


# ---- Fit errors (surfaced to the fit requester only) ----
class FitError(RtPlotError):
    """Base error for regression failures."""


class InsufficientPoints(FitError):
    """Raised when a window holds fewer than ``degree + 1`` points."""

    def __init__(self, n_points: int, degree: int) -> None:
        super().__init__(
            f"degree {degree} fit needs at least {degree + 1} point(s), got {n_points}"
        )
        self.n_points = n_points
        self.degree = degree


class DegenerateWindow(FitError):
    """Raised when the timestamps in a window cannot support the requested degree."""


# ---- Fatal ingestion error ----
class InputReadFailure(RtPlotError):
    """Raised when the underlying input source fails; ingestion stops."""
