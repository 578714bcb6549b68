"""Run fit requests against the shared store."""

from __future__ import annotations

import logging
from typing import Optional

from ..analysis.regression import FitResult, fit_polynomial
from .exceptions import ChannelOutOfRange, FitError
from .models import FitRequest
from .ring_store import RingStore
from .window import select_fit_window

logger = logging.getLogger(__name__)


def run_fit(store: RingStore, request: FitRequest) -> FitResult:
    """
    Fit the window described by ``request``.

    Errors (:class:`~rtplot.core.exceptions.FitError`,
    :class:`~rtplot.core.exceptions.ChannelOutOfRange`) propagate to the
    caller.
    """
    series = select_fit_window(store, request)
    return fit_polynomial(series.times, series.values, request.degree)


def try_fit(store: RingStore, request: FitRequest) -> Optional[FitResult]:
    """
    Like :func:`run_fit` but a failed fit yields ``None``.

    The render loop uses this so a bad window never interrupts drawing; the
    failure is still logged.
    """
    try:
        return run_fit(store, request)
    except (FitError, ChannelOutOfRange) as exc:
        logger.info("Fit on channel %d (degree %d) gave no result: %s", request.channel, request.degree, exc)
        return None
