"""
Interaction state of the live scope, independent of any plotting library.

All positions here are in horizontal grid divisions (raw time divided by
``raw_per_second * seconds_per_division``). In live mode the visible window
ends at the newest retained sample; freezing pins it so a fit window can be
placed and adjusted with the keyboard:

  space     freeze / unfreeze (unfreezing drops the fit)
  m         cycle fit: off -> constant -> linear -> quadratic -> off
  h / l     move the fit window left / right
  j / k     shrink / grow the fit window
  1 .. 9    focus a channel (the channel that gets fitted), 0 clears focus
  q         quit
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Optional, Tuple

from ..analysis.regression import FitResult
from ..config.runtime import RtPlotConfig
from ..core.fitting import try_fit
from ..core.models import FitRequest
from ..core.ring_store import RingStore
from ..core.window import scrolling_window

logger = logging.getLogger(__name__)

FIT_DEGREES: Tuple[Optional[int], ...] = (None, 0, 1, 2)
FIT_NAMES = {0: "constant", 1: "linear", 2: "quadratic"}

# Fit window step per key press, in divisions; key repeat moves faster.
RESOLUTION = 0.01
STEP_MULTIPLIER = 4.0
# Narrowest fit window j can produce, in divisions.
MIN_FIT_WIDTH = RESOLUTION * STEP_MULTIPLIER * 5.0

Range = Tuple[float, float]


@dataclass
class ScopeState:
    config: RtPlotConfig
    channel_count: int = 0
    frozen_end: Optional[float] = None
    fit_degree: Optional[int] = None
    fit_range: Optional[Range] = None
    focused_channel: Optional[int] = None
    should_close: bool = False

    _cached_request: Optional[FitRequest] = field(default=None, init=False, repr=False)
    _cached_result: Optional[FitResult] = field(default=None, init=False, repr=False)

    # ------------------------------------------------------------------ window
    @property
    def frozen(self) -> bool:
        return self.frozen_end is not None

    @property
    def span(self) -> float:
        return float(self.config.grid.time.divisions)

    def visible_range(self, time_range: Optional[Tuple[int, int]]) -> Optional[Range]:
        """
        Return the visible ``(start, end)`` in divisions.

        ``time_range`` is the store's ``(oldest, newest)`` raw timestamps; the
        live window ends at the newest one.
        """
        if self.frozen_end is not None:
            return self.frozen_end - self.span, self.frozen_end
        if time_range is None:
            return None
        return scrolling_window(self.config.grid.time.to_divisions(time_range[1]), self.span)

    def raw_range(self, visible: Range) -> Tuple[float, float]:
        time_axis = self.config.grid.time
        return time_axis.to_raw(visible[0]), time_axis.to_raw(visible[1])

    # ---------------------------------------------------------------- controls
    def toggle_freeze(self, visible: Optional[Range]) -> None:
        if self.frozen:
            self.frozen_end = None
            self.fit_degree = None
            self.fit_range = None
            return
        if visible is None:
            return
        self.frozen_end = visible[1]
        self.fit_range = visible

    def cycle_fit_mode(self) -> None:
        if not self.frozen:
            return
        idx = FIT_DEGREES.index(self.fit_degree)
        self.fit_degree = FIT_DEGREES[(idx + 1) % len(FIT_DEGREES)]
        logger.debug("Fit mode: %s", FIT_NAMES.get(self.fit_degree, "off"))

    def focus(self, channel: Optional[int]) -> None:
        if channel is None:
            self.focused_channel = None
        elif 0 <= channel < self.channel_count:
            self.focused_channel = channel

    def shift_fit_window(self, direction: int, *, repeat: bool = False) -> None:
        """Move the fit window by one step left (``-1``) or right (``+1``)."""
        visible = self._frozen_visible()
        if self.fit_range is None or visible is None:
            return
        step = _step(repeat) * (1 if direction > 0 else -1)
        start, end = self.fit_range
        if direction < 0 and start + step > visible[0]:
            self.fit_range = (start + step, end + step)
        elif direction > 0 and end + step < visible[1]:
            self.fit_range = (start + step, end + step)

    def resize_fit_window(self, grow: bool, *, repeat: bool = False) -> None:
        visible = self._frozen_visible()
        if self.fit_range is None or visible is None:
            return
        step = _step(repeat)
        start, end = self.fit_range
        if grow:
            if end + step < visible[1] and start - step > visible[0]:
                self.fit_range = (start - step, end + step)
        elif (end - step) - (start + step) > MIN_FIT_WIDTH:
            self.fit_range = (start + step, end - step)

    def handle_key(self, key: Optional[str], visible: Optional[Range], *, repeat: bool = False) -> None:
        """Apply one key press (matplotlib key names)."""
        if not key:
            return
        if key == "q":
            self.should_close = True
        elif key == " ":
            self.toggle_freeze(visible)
        elif key == "m":
            self.cycle_fit_mode()
        elif key == "h":
            self.shift_fit_window(-1, repeat=repeat)
        elif key == "l":
            self.shift_fit_window(+1, repeat=repeat)
        elif key == "j":
            self.resize_fit_window(False, repeat=repeat)
        elif key == "k":
            self.resize_fit_window(True, repeat=repeat)
        elif key == "0":
            self.focus(None)
        elif key.isdigit() and len(key) == 1:
            self.focus(int(key) - 1)

    # -------------------------------------------------------------------- fits
    def fit_request(self) -> Optional[FitRequest]:
        """Return the request implied by the current state, if any."""
        if self.fit_degree is None or self.fit_range is None or self.focused_channel is None:
            return None
        t0, t1 = self.raw_range(self.fit_range)
        return FitRequest(
            channel=self.focused_channel,
            degree=self.fit_degree,
            t0=int(math.ceil(round(t0, 6))),
            t1=int(math.floor(round(t1, 6))),
        )

    def current_fit(self, store: RingStore) -> Optional[FitResult]:
        """
        Return the fit for the current request.

        A frozen window lies in already-ingested history, so the result is
        reused until the request changes.
        """
        request = self.fit_request()
        if request is None:
            self._cached_request = None
            self._cached_result = None
            return None
        if request != self._cached_request:
            self._cached_request = request
            self._cached_result = try_fit(store, request)
        return self._cached_result

    def _frozen_visible(self) -> Optional[Range]:
        if self.frozen_end is None:
            return None
        return self.frozen_end - self.span, self.frozen_end


def _step(repeat: bool) -> float:
    return RESOLUTION * STEP_MULTIPLIER if repeat else RESOLUTION
