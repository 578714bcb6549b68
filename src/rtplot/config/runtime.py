"""Runtime configuration for the scope: retention, channels, grid and plot tuning."""

from __future__ import annotations

import math
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, List, Mapping, MutableMapping, Optional, Type, TypeVar

import yaml

from ..core.ring_store import DEFAULT_INITIAL_CAPACITY, DEFAULT_MAX_SAMPLES_BACKSTOP, RetentionPolicy

T = TypeVar("T")

DEFAULT_CHANNEL_COLORS = [
    "#1f77b4",
    "#ff7f0e",
    "#2ca02c",
    "#d62728",
    "#9467bd",
    "#8c564b",
    "#e377c2",
    "#7f7f7f",
    "#bcbd22",
    "#17becf",
]


def _hz_to_interval_ms(value_hz: float, fallback_ms: int) -> int:
    """Convert a frequency in Hz into a positive integer interval in ms."""
    try:
        hz = float(value_hz)
    except (TypeError, ValueError):
        hz = 0.0
    if hz <= 0.0 or math.isnan(hz) or math.isinf(hz):
        return max(1, int(fallback_ms))
    return max(1, int(round(1000.0 / hz)))


def _positive(value: Any, fallback: float) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return fallback
    if not math.isfinite(number) or number <= 0.0:
        return fallback
    return number


def _optional_positive_int(value: Any) -> Optional[int]:
    if value is None:
        return None
    try:
        number = int(value)
    except (TypeError, ValueError):
        return None
    return number if number > 0 else None


@dataclass(slots=True)
class RetentionConfig:
    """
    How much history the store keeps.

    ``max_samples`` caps the row count, ``max_span`` caps the age of the
    oldest row in raw time units. Leaving both unset keeps the default
    sample cap.
    """

    max_samples: Optional[int] = 100_000
    max_span: Optional[int] = None
    initial_capacity: int = DEFAULT_INITIAL_CAPACITY
    backstop_samples: int = DEFAULT_MAX_SAMPLES_BACKSTOP

    def sanitized(self) -> RetentionConfig:
        max_samples = _optional_positive_int(self.max_samples)
        max_span = None if self.max_span is None else max(0, int(self.max_span))
        return RetentionConfig(
            max_samples=max_samples,
            max_span=max_span,
            initial_capacity=max(1, int(self.initial_capacity)),
            backstop_samples=max(1, int(self.backstop_samples)),
        )

    def to_policy(self) -> RetentionPolicy:
        cfg = self.sanitized()
        return RetentionPolicy(
            max_samples=cfg.max_samples,
            max_span=cfg.max_span,
            initial_capacity=cfg.initial_capacity,
            backstop_samples=cfg.backstop_samples,
        )


@dataclass(slots=True)
class ChannelConfig:
    """Label and raw-to-grid scaling of one channel."""

    label: str = ""
    raw_offset: float = 0.0
    raw_per_division: float = 1.0

    def sanitized(self) -> ChannelConfig:
        return ChannelConfig(
            label=str(self.label or ""),
            raw_offset=float(self.raw_offset),
            raw_per_division=_positive(self.raw_per_division, 1.0),
        )

    def to_divisions(self, raw: Any) -> Any:
        """Convert raw channel readings to vertical grid divisions."""
        return (raw - self.raw_offset) / self.raw_per_division


@dataclass(slots=True)
class TimeAxisConfig:
    divisions: int = 10
    seconds_per_division: float = 1.0
    raw_per_second: float = 1000.0
    label: str = "t"

    def sanitized(self) -> TimeAxisConfig:
        return TimeAxisConfig(
            divisions=max(1, int(self.divisions)),
            seconds_per_division=_positive(self.seconds_per_division, 1.0),
            raw_per_second=_positive(self.raw_per_second, 1000.0),
            label=str(self.label or ""),
        )

    @property
    def raw_per_division(self) -> float:
        return self.raw_per_second * self.seconds_per_division

    def to_divisions(self, raw: Any) -> Any:
        """Convert raw timestamps to horizontal grid divisions."""
        return raw / self.raw_per_division

    def to_raw(self, divisions: Any) -> Any:
        return divisions * self.raw_per_division


@dataclass(slots=True)
class DataAxisConfig:
    divisions: int = 8
    zero_shift: float = 0.0
    label: str = ""

    def sanitized(self) -> DataAxisConfig:
        return DataAxisConfig(
            divisions=max(1, int(self.divisions)),
            zero_shift=float(self.zero_shift),
            label=str(self.label or ""),
        )


@dataclass(slots=True)
class GridConfig:
    label: str = ""
    time: TimeAxisConfig = field(default_factory=TimeAxisConfig)
    data: DataAxisConfig = field(default_factory=DataAxisConfig)

    def sanitized(self) -> GridConfig:
        return GridConfig(
            label=str(self.label or ""),
            time=self.time.sanitized(),
            data=self.data.sanitized(),
        )


@dataclass(slots=True)
class PlotConfig:
    """Refresh rate, per-line point budget and colours of the live scope."""

    refresh_hz: float = 50.0
    max_points_per_line: int = 2000
    background: str = "#101418"
    grid: str = "#3a4048"
    fit: str = "#ffffff"
    labels: str = "#d0d0d0"
    channels: List[str] = field(default_factory=lambda: list(DEFAULT_CHANNEL_COLORS))

    def sanitized(self) -> PlotConfig:
        colors = [str(c) for c in (self.channels or []) if c]
        try:
            max_points = int(self.max_points_per_line)
        except (TypeError, ValueError):
            max_points = 2000
        return PlotConfig(
            refresh_hz=_positive(self.refresh_hz, 50.0),
            max_points_per_line=max(100, max_points),
            background=str(self.background),
            grid=str(self.grid),
            fit=str(self.fit),
            labels=str(self.labels),
            channels=colors or list(DEFAULT_CHANNEL_COLORS),
        )

    def refresh_interval_ms(self) -> int:
        """Return the timer interval that corresponds to ``refresh_hz``."""
        return _hz_to_interval_ms(self.refresh_hz, fallback_ms=20)

    def channel_color(self, channel: int) -> str:
        return self.channels[channel % len(self.channels)]


@dataclass(slots=True)
class RtPlotConfig:
    """
    Everything read once at session start.

    ``channel_count`` fixes the session width. When it is unset and
    ``channels`` is non-empty, the number of channel entries is used; when
    both are unset, the first parsed input line decides.
    """

    channel_count: Optional[int] = None
    channels: List[ChannelConfig] = field(default_factory=list)
    retention: RetentionConfig = field(default_factory=RetentionConfig)
    grid: GridConfig = field(default_factory=GridConfig)
    plot: PlotConfig = field(default_factory=PlotConfig)

    def sanitized(self) -> RtPlotConfig:
        return RtPlotConfig(
            channel_count=_optional_positive_int(self.channel_count),
            channels=[c.sanitized() for c in self.channels],
            retention=self.retention.sanitized(),
            grid=self.grid.sanitized(),
            plot=self.plot.sanitized(),
        )

    def effective_channel_count(self) -> Optional[int]:
        if self.channel_count is not None:
            return self.channel_count
        if self.channels:
            return len(self.channels)
        return None

    def channel(self, index: int) -> ChannelConfig:
        """Return the scaling for ``index``, defaulting to identity scaling."""
        if 0 <= index < len(self.channels):
            return self.channels[index]
        return ChannelConfig(label=f"ch{index}")


def _recognized_fields(cls: type) -> set[str]:
    return {f.name for f in fields(cls)}


def _build(cls: Type[T], data: Any) -> T:
    """Instantiate dataclass ``cls`` from the known keys of ``data``."""
    if not isinstance(data, Mapping):
        return cls()
    known = _recognized_fields(cls)
    payload: MutableMapping[str, Any] = {key: data[key] for key in data.keys() & known}
    return cls(**payload)


def config_from_mapping(data: Mapping[str, Any] | None) -> RtPlotConfig:
    """Build :class:`RtPlotConfig` from ``data`` (ignoring unknown keys)."""
    if not data:
        return RtPlotConfig()

    raw_channels = data.get("channels") or []
    if not isinstance(raw_channels, list):
        raise ValueError(f"'channels' must be a list, got {type(raw_channels).__name__}")
    channels = [_build(ChannelConfig, entry) for entry in raw_channels]

    grid_raw = data.get("grid") if isinstance(data.get("grid"), Mapping) else {}
    grid = GridConfig(
        label=grid_raw.get("label", ""),
        time=_build(TimeAxisConfig, grid_raw.get("time")),
        data=_build(DataAxisConfig, grid_raw.get("data")),
    )

    cfg = RtPlotConfig(
        channel_count=data.get("channel_count"),
        channels=channels,
        retention=_build(RetentionConfig, data.get("retention")),
        grid=grid,
        plot=_build(PlotConfig, data.get("plot")),
    )
    return cfg.sanitized()


def load_config(path: str | Path | None) -> RtPlotConfig:
    """
    Load configuration from ``path``.

    Missing files fall back to default :class:`RtPlotConfig`.
    """
    if path is None:
        return RtPlotConfig()
    cfg_path = Path(path).expanduser()
    if not cfg_path.exists():
        return RtPlotConfig()
    with cfg_path.open("r", encoding="utf-8") as fh:
        raw = yaml.safe_load(fh) or {}
    if not isinstance(raw, Mapping):
        raise ValueError(f"Expected mapping in {cfg_path}, got {type(raw).__name__}")
    return config_from_mapping(raw)


__all__ = [
    "ChannelConfig",
    "DataAxisConfig",
    "GridConfig",
    "PlotConfig",
    "RetentionConfig",
    "RtPlotConfig",
    "TimeAxisConfig",
    "config_from_mapping",
    "load_config",
]
