"""
Ingest the integer line format from a text stream into a :class:`RingStore`.

The loop is meant to run in a background thread while the scope and fit
requests read the store from the main thread.
"""

from __future__ import annotations

import logging
import sys
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Iterator, Optional, TextIO

from ..tools.debug import debug_enabled
from .exceptions import (
    ChannelCountMismatch,
    InputReadFailure,
    OutOfOrderSample,
    SampleError,
)
from .ring_store import RingStore
from .sample_parser import parse_line

logger = logging.getLogger(__name__)

_THROUGHPUT_EVERY = 10_000


@dataclass
class IngestStats:
    """Counters describing one ingestion run."""

    lines_read: int = 0
    samples_appended: int = 0
    malformed: int = 0
    channel_mismatches: int = 0
    out_of_order: int = 0
    failure: Optional[InputReadFailure] = None
    finished: bool = False
    channel_count: Optional[int] = None

    @property
    def skipped(self) -> int:
        return self.malformed + self.channel_mismatches + self.out_of_order

    def record(self, exc: SampleError) -> None:
        if isinstance(exc, ChannelCountMismatch):
            self.channel_mismatches += 1
        elif isinstance(exc, OutOfOrderSample):
            self.out_of_order += 1
        else:
            self.malformed += 1


def _iter_lines(stream: Iterable[str]) -> Iterator[str]:
    """Yield lines, turning source failures into :class:`InputReadFailure`."""
    iterator = iter(stream)
    while True:
        try:
            line = next(iterator)
        except StopIteration:
            return
        except (OSError, UnicodeDecodeError, ValueError) as exc:
            raise InputReadFailure(f"input read failed: {exc}") from exc
        yield line


def reader_loop(
    stream: Iterable[str],
    store: RingStore,
    *,
    channel_count: Optional[int] = None,
    stop_event: Optional[threading.Event] = None,
    stats: Optional[IngestStats] = None,
) -> IngestStats:
    """
    Read lines from ``stream`` and append parsed samples to ``store``.

    ``channel_count`` fixes the session width up front (from configuration);
    when ``None`` the store's width is used, or the first parsed line sets it.
    Bad lines are logged and skipped. A failing source ends the loop with
    ``stats.failure`` set; everything ingested so far stays in the store.
    """
    stats = stats or IngestStats()
    if channel_count is None and store.channel_count:
        channel_count = store.channel_count
    stats.channel_count = channel_count

    debug_on = debug_enabled()
    started = time.perf_counter()

    try:
        for line_no, raw_line in enumerate(_iter_lines(stream), start=1):
            if stop_event is not None and stop_event.is_set():
                break

            line = raw_line.strip()
            if not line:
                continue
            stats.lines_read += 1

            try:
                sample = parse_line(line, channel_count)
                store.append(sample)
            except SampleError as exc:
                stats.record(exc)
                logger.warning("Skipping line %d %r: %s", line_no, line, exc)
                continue

            if channel_count is None:
                channel_count = sample.channel_count
                stats.channel_count = channel_count
                logger.info("Session channel count fixed at %d", channel_count)

            stats.samples_appended += 1
            if debug_on and stats.samples_appended % _THROUGHPUT_EVERY == 0:
                elapsed = time.perf_counter() - started
                logger.info(
                    "Ingested %d samples in %.2f s (%.0f samples/s)",
                    stats.samples_appended,
                    elapsed,
                    stats.samples_appended / max(elapsed, 1e-9),
                )
    except InputReadFailure as exc:
        stats.failure = exc
        logger.error("Ingestion stopped after %d line(s): %s", stats.lines_read, exc)
    finally:
        stats.finished = True

    if stats.skipped:
        logger.info(
            "Ingestion skipped %d line(s): %d malformed, %d channel mismatch, %d out of order",
            stats.skipped,
            stats.malformed,
            stats.channel_mismatches,
            stats.out_of_order,
        )
    return stats


@dataclass
class StreamReaderHandle:
    thread: threading.Thread
    stop_event: threading.Event
    store: RingStore
    stats: IngestStats = field(default_factory=IngestStats)

    def stop(self, *, join: bool = False, timeout: Optional[float] = None) -> None:
        self.stop_event.set()
        if join:
            self.thread.join(timeout)

    def join(self, timeout: Optional[float] = None) -> None:
        self.thread.join(timeout)

    def is_alive(self) -> bool:
        return self.thread.is_alive()

    @property
    def failure(self) -> Optional[InputReadFailure]:
        return self.stats.failure


def start_reader(
    stream: Iterable[str],
    store: RingStore,
    *,
    channel_count: Optional[int] = None,
    thread_name: Optional[str] = None,
) -> StreamReaderHandle:
    """Start a daemon thread running :func:`reader_loop` over ``stream``."""
    stop_event = threading.Event()
    stats = IngestStats()

    def _target() -> None:
        reader_loop(stream, store, channel_count=channel_count, stop_event=stop_event, stats=stats)

    thread = threading.Thread(
        target=_target,
        name=thread_name or "RtPlotStreamReader",
        daemon=True,
    )
    handle = StreamReaderHandle(thread=thread, stop_event=stop_event, store=store, stats=stats)
    thread.start()
    return handle


def start_reader_on_stdin(
    store: RingStore,
    *,
    channel_count: Optional[int] = None,
    thread_name: Optional[str] = None,
) -> StreamReaderHandle:
    """Convenience wrapper that starts the reader on ``sys.stdin``."""
    return start_reader(
        sys.stdin,
        store,
        channel_count=channel_count,
        thread_name=thread_name or "RtPlotStreamReader(stdin)",
    )


def open_source(path: str | Path | None) -> TextIO:
    """Return ``sys.stdin`` for ``None`` or ``"-"``, else open ``path`` for reading."""
    if path is None or str(path) == "-":
        return sys.stdin
    return Path(path).expanduser().open("r", encoding="utf-8")
