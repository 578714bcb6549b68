"""
Matplotlib live scope.

The view pulls decimated snapshots from the :class:`RingStore` through the
window selector, so ingestion never waits on drawing. Frames are only
redrawn when the store version or the view state changed. Keyboard handling is
delegated to :class:`ScopeState`.
"""

from __future__ import annotations

import logging
from typing import List, Optional

import matplotlib.pyplot as plt
import numpy as np
from matplotlib.animation import FuncAnimation

from ..config.runtime import RtPlotConfig
from ..core.ring_store import RingStore
from ..core.stream_reader import StreamReaderHandle
from ..core.window import select_display_channels
from ..tools.debug import time_block
from .scope_state import ScopeState

logger = logging.getLogger(__name__)

FIT_CURVE_POINTS = 200
SCOPE_KEYS = {" ", "m", "h", "j", "k", "l", "q", "0", "1", "2", "3", "4", "5", "6", "7", "8", "9"}
DIMMED_ALPHA = 0.3


def _release_keymaps(keys: set[str]) -> None:
    """Drop ``keys`` from Matplotlib's default navigation shortcuts."""
    for name in list(plt.rcParams.keys()):
        if not name.startswith("keymap."):
            continue
        bound = plt.rcParams[name]
        plt.rcParams[name] = [k for k in bound if k not in keys]


class LiveScope:
    def __init__(
        self,
        store: RingStore,
        config: RtPlotConfig,
        *,
        state: Optional[ScopeState] = None,
        reader: Optional[StreamReaderHandle] = None,
        fig=None,
        ax=None,
    ) -> None:
        self.store = store
        self.config = config
        self.reader = reader
        self.state = state or ScopeState(
            config=config,
            channel_count=store.channel_count or (config.effective_channel_count() or 0),
        )

        if fig is None or ax is None:
            _release_keymaps(SCOPE_KEYS)
            fig, ax = plt.subplots()
        self.fig = fig
        self.ax = ax
        self._lines: List = []
        self._animation: Optional[FuncAnimation] = None
        self._drawn_key: Optional[tuple] = None

        self._setup_axes()
        colors = config.plot
        (self._fit_line,) = ax.plot([], [], color=colors.fit, linewidth=1.5, zorder=5)
        (self._fit_bounds,) = ax.plot([], [], color=colors.fit, linewidth=0.8, linestyle="--", zorder=4)
        self._status = ax.text(
            0.01,
            0.98,
            "",
            transform=ax.transAxes,
            va="top",
            ha="left",
            color=colors.labels,
            family="monospace",
        )
        self.fig.canvas.mpl_connect("key_press_event", self.on_key)

    # ------------------------------------------------------------------ setup
    def _y_limits(self) -> tuple[float, float]:
        data = self.config.grid.data
        half = data.divisions / 2.0
        return -half - data.zero_shift, half - data.zero_shift

    def _setup_axes(self) -> None:
        grid = self.config.grid
        colors = self.config.plot
        ax = self.ax

        ax.set_facecolor(colors.background)
        self.fig.patch.set_facecolor(colors.background)
        ax.set_xlim(-grid.time.divisions, 0.0)
        ymin, ymax = self._y_limits()
        ax.set_ylim(ymin, ymax)
        ax.set_xticks(np.arange(-grid.time.divisions, 1))
        ax.set_yticks(np.arange(np.ceil(ymin), np.floor(ymax) + 1))
        ax.tick_params(labelbottom=False, labelleft=False, colors=colors.grid)
        ax.grid(True, color=colors.grid, linewidth=0.6)
        ax.axhline(0.0, color=colors.grid, linewidth=1.2)
        for spine in ax.spines.values():
            spine.set_color(colors.grid)

        ax.set_xlabel(
            f"{grid.time.label} ({grid.time.seconds_per_division:g} s/div)",
            color=colors.labels,
        )
        if grid.data.label:
            ax.set_ylabel(grid.data.label, color=colors.labels)
        if grid.label:
            ax.set_title(grid.label, color=colors.labels)

    def _ensure_lines(self, count: int) -> None:
        while len(self._lines) < count:
            idx = len(self._lines)
            (line,) = self.ax.plot(
                [],
                [],
                color=self.config.plot.channel_color(idx),
                linewidth=1.0,
                label=self.config.channel(idx).label or f"ch{idx}",
            )
            self._lines.append(line)

    # ----------------------------------------------------------------- frames
    def update(self, _frame=None) -> list:
        with time_block("scope frame"):
            return self._draw()

    def _draw(self) -> list:
        artists = [*self._lines, self._fit_line, self._fit_bounds, self._status]
        count = self.store.channel_count
        if count == 0:
            self._status.set_text(self._reader_status() or "waiting for data")
            return artists
        self.state.channel_count = count
        self._ensure_lines(count)

        visible = self.state.visible_range(self.store.time_range())
        if visible is None:
            return artists
        # Nothing new to show: same rows, same view, same fit settings.
        key = self._frame_key(visible)
        if key == self._drawn_key:
            return artists
        self._drawn_key = key
        end = visible[1]
        t0, t1 = self.state.raw_range(visible)
        time_axis = self.config.grid.time
        max_points = self.config.plot.max_points_per_line
        focused = self.state.focused_channel

        for shown, line in zip(select_display_channels(self.store, t0, t1, max_points), self._lines):
            x = time_axis.to_divisions(shown.times.astype(np.float64)) - end
            y = self.config.channel(shown.channel).to_divisions(shown.values.astype(np.float64))
            line.set_data(x, y)
            line.set_alpha(1.0 if focused is None or focused == shown.channel else DIMMED_ALPHA)

        self._draw_fit(end)
        return [*self._lines, self._fit_line, self._fit_bounds, self._status]

    def _frame_key(self, visible) -> tuple:
        state = self.state
        return (
            self.store.version,
            visible,
            state.fit_degree,
            state.fit_range,
            state.focused_channel,
            self.reader is not None and self.reader.failure is not None,
        )

    def _draw_fit(self, end: float) -> None:
        state = self.state
        if state.fit_range is None:
            self._fit_line.set_data([], [])
            self._fit_bounds.set_data([], [])
            self._status.set_text(self._reader_status())
            return

        x0, x1 = state.fit_range[0] - end, state.fit_range[1] - end
        ymin, ymax = self._y_limits()
        self._fit_bounds.set_data([x0, x0, np.nan, x1, x1], [ymin, ymax, np.nan, ymin, ymax])

        if state.fit_degree is None:
            self._fit_line.set_data([], [])
            self._status.set_text("frozen")
            return
        if state.focused_channel is None:
            self._fit_line.set_data([], [])
            self._status.set_text("focus a channel (1-9) to fit")
            return

        result = state.current_fit(self.store)
        if result is None:
            self._fit_line.set_data([], [])
            self._status.set_text("fit: no result for this window")
            return

        raw0, raw1 = state.raw_range(state.fit_range)
        t = np.linspace(raw0, raw1, FIT_CURVE_POINTS)
        y = self.config.channel(state.focused_channel).to_divisions(result.evaluate(t))
        self._fit_line.set_data(self.config.grid.time.to_divisions(t) - end, y)
        self._status.set_text(result.label())

    def _reader_status(self) -> str:
        if self.reader is not None and self.reader.failure is not None:
            return f"input stopped: {self.reader.failure}"
        return ""

    # ------------------------------------------------------------------ input
    def on_key(self, event) -> None:
        visible = self.state.visible_range(self.store.time_range())
        self.state.handle_key(event.key, visible)
        if self.state.should_close:
            plt.close(self.fig)

    def run(self) -> None:
        """Start the animation and block in Matplotlib's event loop."""
        self._animation = FuncAnimation(
            self.fig,
            self.update,
            interval=self.config.plot.refresh_interval_ms(),
            blit=False,
            cache_frame_data=False,
        )
        plt.show()
