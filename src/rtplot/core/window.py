"""Map display and fit windows onto :class:`RingStore` queries."""

from __future__ import annotations

import math
from typing import List, Tuple

import numpy as np

from .models import FitRequest, Series
from .ring_store import RingStore

DEFAULT_MAX_DISPLAY_POINTS = 2000


def select_fit_window(store: RingStore, request: FitRequest) -> Series:
    """
    Return every retained point that ``request`` covers.

    Fits are never decimated. A request without any window form covers all
    retained points.
    """
    if request.last is not None:
        return store.latest(request.channel, request.last)
    if request.is_index_range:
        return store.slice(request.channel, request.start, request.stop)
    if request.t0 is not None and request.t1 is not None:
        return store.snapshot(request.channel, request.t0, request.t1)
    return store.slice(request.channel)


def decimate(series: Series, max_points: int) -> Series:
    """
    Stride-decimate ``series`` to at most ``max_points`` points.

    The newest point is always kept so the trace reaches the right edge of
    the scope.
    """
    max_points = max(2, int(max_points))
    n = len(series)
    if n <= max_points:
        return series
    stride = int(math.ceil((n - 1) / (max_points - 1)))
    idx = np.arange(0, n, stride)
    if idx[-1] != n - 1:
        idx = np.append(idx[: max_points - 1], n - 1)
    return Series(times=series.times[idx], values=series.values[idx], channel=series.channel)


def select_display_window(
    store: RingStore,
    channel: int,
    t0: float,
    t1: float,
    max_points: int = DEFAULT_MAX_DISPLAY_POINTS,
) -> Series:
    """Return the points of ``channel`` inside ``[t0, t1]``, decimated for drawing."""
    return decimate(store.snapshot(channel, t0, t1), max_points)


def scrolling_window(latest_t: float, span: float) -> Tuple[float, float]:
    """Return the ``(t0, t1)`` interval of a live view ending at ``latest_t``."""
    span = max(0.0, float(span))
    return float(latest_t) - span, float(latest_t)


def select_display_channels(
    store: RingStore,
    t0: float,
    t1: float,
    max_points: int = DEFAULT_MAX_DISPLAY_POINTS,
) -> List[Series]:
    """
    Return every channel inside ``[t0, t1]``, each decimated for drawing.

    All channels are cut from one consistent store state, so the traces of
    one frame always share the same rows.
    """
    return [decimate(series, max_points) for series in store.snapshot_channels(t0, t1)]
