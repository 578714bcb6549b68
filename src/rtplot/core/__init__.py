"""Streaming core: line parsing, the shared ring store and window selection.

The ingestion thread appends parsed samples to a :class:`RingStore`; the
scope and fit requests read consistent snapshots from it without blocking
ingestion for longer than a copy.
"""

from .exceptions import (
    ChannelCountMismatch,
    ChannelOutOfRange,
    DegenerateWindow,
    FitError,
    InputReadFailure,
    InsufficientPoints,
    MalformedLine,
    OutOfOrderSample,
    RtPlotError,
    SampleError,
)
from .models import FitRequest, Sample, Series
from .ring_store import RetentionPolicy, RingStore
from .sample_parser import parse_line

__all__ = [
    "ChannelCountMismatch",
    "ChannelOutOfRange",
    "DegenerateWindow",
    "FitError",
    "InputReadFailure",
    "InsufficientPoints",
    "MalformedLine",
    "OutOfOrderSample",
    "RtPlotError",
    "SampleError",
    "FitRequest",
    "Sample",
    "Series",
    "RetentionPolicy",
    "RingStore",
    "parse_line",
]
