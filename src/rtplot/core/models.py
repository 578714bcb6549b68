"""Shared dataclasses for samples, series snapshots and fit requests."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterator, Optional, Tuple

import numpy as np


@dataclass(frozen=True)
class Sample:
    timestamp: int
    values: Tuple[int, ...]

    @property
    def channel_count(self) -> int:
        return len(self.values)


def _empty_series_arrays() -> tuple[np.ndarray, np.ndarray]:
    return np.empty(0, dtype=np.int64), np.empty(0, dtype=np.int64)


@dataclass(frozen=True)
class Series:
    """
    Immutable snapshot of one channel: parallel ``times`` / ``values`` arrays.

    The arrays are private copies made by the store; they are marked
    read-only so a consumer cannot mutate what another consumer sees.
    """

    times: np.ndarray = field(repr=False)
    values: np.ndarray = field(repr=False)
    channel: int = 0

    def __post_init__(self) -> None:
        t = np.asarray(self.times, dtype=np.int64).reshape(-1)
        v = np.asarray(self.values).reshape(-1)
        if t.size != v.size:
            raise ValueError(
                f"times and values must have the same length, got {t.size} vs {v.size}"
            )
        t.setflags(write=False)
        v.setflags(write=False)
        object.__setattr__(self, "times", t)
        object.__setattr__(self, "values", v)

    @classmethod
    def empty(cls, channel: int = 0) -> "Series":
        times, values = _empty_series_arrays()
        return cls(times=times, values=values, channel=channel)

    def __len__(self) -> int:
        return int(self.times.size)

    def __iter__(self) -> Iterator[tuple[int, int]]:
        for t, y in zip(self.times.tolist(), self.values.tolist()):
            yield t, y

    @property
    def t_start(self) -> Optional[int]:
        return None if len(self) == 0 else int(self.times[0])

    @property
    def t_end(self) -> Optional[int]:
        return None if len(self) == 0 else int(self.times[-1])

    def points(self) -> list[tuple[int, int]]:
        return list(self)


@dataclass(frozen=True)
class FitRequest:
    """
    One polynomial fit over a single channel.

    Exactly one window form is used, checked in this order:
    ``last`` (newest N points), ``start``/``stop`` (index range over the
    retained points), ``t0``/``t1`` (closed time interval).
    """

    channel: int
    degree: int
    t0: Optional[int] = None
    t1: Optional[int] = None
    start: Optional[int] = None
    stop: Optional[int] = None
    last: Optional[int] = None

    def __post_init__(self) -> None:
        if self.degree not in (0, 1, 2):
            raise ValueError(f"degree must be 0, 1 or 2, got {self.degree}")
        has_time = self.t0 is not None or self.t1 is not None
        has_index = self.start is not None or self.stop is not None
        has_last = self.last is not None
        if sum((has_time, has_index, has_last)) > 1:
            raise ValueError("FitRequest takes a time interval, an index range or last=N, not several")
        if has_time and (self.t0 is None or self.t1 is None):
            raise ValueError("a time interval needs both t0 and t1")

    @property
    def is_index_range(self) -> bool:
        return self.start is not None or self.stop is not None
