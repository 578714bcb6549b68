"""Bounded, time-ordered multi-channel store shared by ingestion, plotting and fitting."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import List, Optional, Tuple

import numpy as np

from .exceptions import ChannelCountMismatch, ChannelOutOfRange, MalformedLine, OutOfOrderSample
from .models import Sample, Series

logger = logging.getLogger(__name__)

DEFAULT_INITIAL_CAPACITY = 4096
DEFAULT_MAX_SAMPLES_BACKSTOP = 2_000_000


@dataclass
class RetentionPolicy:
    """
    How much history the :class:`RingStore` keeps.

    ``max_samples`` bounds the number of rows; ``max_span`` bounds the age of
    the oldest row relative to the newest one (in raw timestamp units). Both
    may be set, in which case whichever is tighter wins. When only
    ``max_span`` is set, ``backstop_samples`` still caps memory so that a
    stream with frozen timestamps cannot grow without bound.
    """

    max_samples: Optional[int] = 100_000
    max_span: Optional[int] = None
    initial_capacity: int = DEFAULT_INITIAL_CAPACITY
    backstop_samples: int = DEFAULT_MAX_SAMPLES_BACKSTOP

    def __post_init__(self) -> None:
        if self.max_samples is not None and int(self.max_samples) <= 0:
            raise ValueError("max_samples must be positive")
        if self.max_span is not None and int(self.max_span) < 0:
            raise ValueError("max_span must be non-negative")
        if int(self.initial_capacity) <= 0:
            raise ValueError("initial_capacity must be positive")
        if int(self.backstop_samples) <= 0:
            raise ValueError("backstop_samples must be positive")

    def capacity_limit(self) -> int:
        """Return the maximum number of rows the store may hold."""
        if self.max_samples is not None:
            return max(1, int(self.max_samples))
        return max(1, int(self.backstop_samples))

    def initial_rows(self) -> int:
        return max(1, min(int(self.initial_capacity), self.capacity_limit()))


class RingStore:
    """
    Append-only, capacity-bounded time series for ``C`` channels.

    Rows live in a mirrored circular buffer: each row is written at physical
    slot ``p`` and ``p + capacity``, so the retained rows are always one
    contiguous slice ``[start, start + size)`` of the doubled arrays. That
    slice is time-ordered, which makes ``numpy.searchsorted`` usable for
    window queries without any unwrapping.

    A single ingestion thread appends. A new row is written into a slot that
    readers cannot see, then published by bumping ``size`` under ``_lock``;
    evictions publish a new ``start`` the same way. All channels share one
    row index, so one eviction removes the same timestamps from every
    channel at once. Readers copy their result out under ``_lock`` and never
    observe a half-written row.
    """

    def __init__(
        self,
        channel_count: Optional[int] = None,
        policy: RetentionPolicy | None = None,
    ) -> None:
        if channel_count is not None and int(channel_count) <= 0:
            raise ValueError("channel_count must be positive")
        self._policy = policy or RetentionPolicy()
        self._limit = self._policy.capacity_limit()
        self._lock = threading.Lock()
        self._write_lock = threading.Lock()

        self._channel_count: Optional[int] = None
        self._capacity = 0
        self._times = np.empty(0, dtype=np.int64)
        self._values = np.empty((0, 0), dtype=np.int64)
        self._start = 0
        self._size = 0
        self._version = 0
        self._evicted = 0

        if channel_count is not None:
            self._allocate(int(channel_count))

    # ------------------------------------------------------------------ props
    @property
    def policy(self) -> RetentionPolicy:
        return self._policy

    @property
    def channel_count(self) -> int:
        """Number of channels, or 0 while no sample has fixed it."""
        with self._lock:
            return self._channel_count or 0

    @property
    def capacity(self) -> int:
        """Rows currently allocated (grows up to the policy limit)."""
        with self._lock:
            return self._capacity

    @property
    def version(self) -> int:
        """Counter bumped on every published append."""
        with self._lock:
            return self._version

    @property
    def evicted(self) -> int:
        """Total rows dropped by the retention policy."""
        with self._lock:
            return self._evicted

    def __len__(self) -> int:
        with self._lock:
            return self._size

    # ----------------------------------------------------------------- ingest
    def append(self, sample: Sample) -> None:
        """
        Append one sample to every channel series.

        Raises
        ------
        MalformedLine
            A timestamp or value does not fit in 64 bits.
        ChannelCountMismatch
            The sample width differs from the store's channel count.
        OutOfOrderSample
            ``sample.timestamp`` is older than the newest retained row.
        """
        width = len(sample.values)
        t = int(sample.timestamp)
        try:
            row = np.asarray(sample.values, dtype=np.int64)
            stamp = np.int64(t)
        except OverflowError as exc:
            raise MalformedLine(f"sample at t={t} does not fit in 64-bit integers") from exc

        with self._write_lock:
            if self._channel_count is None:
                if width <= 0:
                    raise ChannelCountMismatch(1, width)
                with self._lock:
                    self._allocate(width)
            elif width != self._channel_count:
                raise ChannelCountMismatch(self._channel_count, width)

            if self._size > 0:
                newest = int(self._times[self._start + self._size - 1])
                if t < newest:
                    raise OutOfOrderSample(t, newest)

            if self._size == self._capacity:
                if self._capacity < self._limit:
                    self._grow()
                else:
                    self._publish_eviction(1)

            # The target slot lies outside [start, start + size) so readers
            # cannot see it until size is bumped below.
            slot = (self._start + self._size) % self._capacity
            self._times[slot] = stamp
            self._times[slot + self._capacity] = stamp
            self._values[slot] = row
            self._values[slot + self._capacity] = row

            with self._lock:
                self._size += 1
                self._version += 1

            self._enforce_span(t)

    def clear(self) -> None:
        """Drop every retained row; the channel count stays fixed."""
        with self._write_lock, self._lock:
            self._start = 0
            self._size = 0
            self._version += 1

    # ------------------------------------------------------------------ query
    def snapshot(self, channel: int, t0: float, t1: float) -> Series:
        """
        Return a copy of all points of ``channel`` with ``t0 <= t <= t1``.

        Intervals outside the retained data (including evicted history) give
        an empty or truncated series rather than an error.
        """
        with self._lock:
            self._check_channel(channel)
            if self._size == 0 or t1 < t0:
                return Series.empty(channel)
            lo, hi = self._bounds(t0, t1)
            return Series(
                times=self._times[lo:hi].copy(),
                values=self._values[lo:hi, channel].copy(),
                channel=channel,
            )

    def snapshot_channels(self, t0: float, t1: float) -> List[Series]:
        """Return one :class:`Series` per channel, all cut from the same published state."""
        with self._lock:
            count = self._channel_count or 0
            if self._size == 0 or t1 < t0:
                return [Series.empty(ch) for ch in range(count)]
            lo, hi = self._bounds(t0, t1)
            times = self._times[lo:hi].copy()
            block = self._values[lo:hi].copy()
        return [Series(times=times, values=block[:, ch], channel=ch) for ch in range(count)]

    def latest(self, channel: int, n: int) -> Series:
        """Return the newest ``n`` points of ``channel`` (fewer if not retained)."""
        with self._lock:
            self._check_channel(channel)
            count = min(max(0, int(n)), self._size)
            if count == 0:
                return Series.empty(channel)
            hi = self._start + self._size
            lo = hi - count
            return Series(
                times=self._times[lo:hi].copy(),
                values=self._values[lo:hi, channel].copy(),
                channel=channel,
            )

    def slice(self, channel: int, start: Optional[int] = None, stop: Optional[int] = None) -> Series:
        """Return retained points ``[start:stop]`` using Python slice semantics."""
        with self._lock:
            self._check_channel(channel)
            first, last, _ = slice(start, stop).indices(self._size)
            if last <= first:
                return Series.empty(channel)
            lo = self._start + first
            hi = self._start + last
            return Series(
                times=self._times[lo:hi].copy(),
                values=self._values[lo:hi, channel].copy(),
                channel=channel,
            )

    def time_range(self) -> Optional[Tuple[int, int]]:
        """Return ``(oldest, newest)`` retained timestamps, or ``None`` when empty."""
        with self._lock:
            if self._size == 0:
                return None
            return (
                int(self._times[self._start]),
                int(self._times[self._start + self._size - 1]),
            )

    # ---------------------------------------------------------------- helpers
    def _check_channel(self, channel: int) -> None:
        count = self._channel_count or 0
        if not isinstance(channel, (int, np.integer)) or channel < 0:
            raise ChannelOutOfRange(channel, count)
        # Before the first sample fixes the width every channel is just empty.
        if self._channel_count is not None and channel >= count:
            raise ChannelOutOfRange(channel, count)

    def _bounds(self, t0: float, t1: float) -> Tuple[int, int]:
        lo = self._start
        times = self._times[lo : lo + self._size]
        i0 = int(np.searchsorted(times, t0, side="left"))
        i1 = int(np.searchsorted(times, t1, side="right"))
        return lo + i0, lo + max(i0, i1)

    def _allocate(self, channel_count: int) -> None:
        capacity = self._policy.initial_rows()
        self._channel_count = channel_count
        self._capacity = capacity
        self._times = np.empty(2 * capacity, dtype=np.int64)
        self._values = np.empty((2 * capacity, channel_count), dtype=np.int64)

    def _grow(self) -> None:
        new_capacity = min(self._limit, max(2 * self._capacity, 1))
        size = self._size
        lo = self._start
        times = np.empty(2 * new_capacity, dtype=np.int64)
        values = np.empty((2 * new_capacity, self._values.shape[1]), dtype=np.int64)
        times[:size] = self._times[lo : lo + size]
        values[:size] = self._values[lo : lo + size]
        times[new_capacity : new_capacity + size] = times[:size]
        values[new_capacity : new_capacity + size] = values[:size]

        with self._lock:
            self._times = times
            self._values = values
            self._capacity = new_capacity
            self._start = 0

        if logger.isEnabledFor(logging.DEBUG):
            logger.debug("RingStore grew to %d rows", new_capacity)

    def _publish_eviction(self, count: int) -> None:
        if count <= 0:
            return
        with self._lock:
            self._start = (self._start + count) % self._capacity
            self._size -= count
            self._evicted += count
            self._version += 1

    def _enforce_span(self, newest: int) -> None:
        max_span = self._policy.max_span
        if max_span is None or self._size == 0:
            return
        threshold = newest - int(max_span)
        lo = self._start
        times = self._times[lo : lo + self._size]
        stale = int(np.searchsorted(times, threshold, side="left"))
        self._publish_eviction(stale)

