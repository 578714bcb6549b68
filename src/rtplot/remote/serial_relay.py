"""
Relay a device's serial output to stdout in the scope's line format.

Devices print comma-separated unsigned integers (``t,ch0,ch1,...`` with an
optional trailing comma). The relay drops the first lines while the device
settles and rewrites every record space-separated, one per line, so it can be
piped straight into ``rtplot plot``.
"""

from __future__ import annotations

import logging
import sys
from typing import Iterable, Iterator, List, Optional, TextIO

import serial
from serial.tools import list_ports as serial_list_ports

from ..core.exceptions import MalformedLine

logger = logging.getLogger(__name__)

DEFAULT_BAUD_RATE = 115_200
SETTLE_LINES = 10
READ_TIMEOUT_S = 10.0


def list_ports() -> List[str]:
    """Return the device names of all serial ports pyserial can see."""
    return sorted(port.device for port in serial_list_ports.comports())


def convert_record(line: str) -> str:
    """
    Turn ``"12,3,4,"`` into ``"12 3 4"``.

    Raises :class:`MalformedLine` when a field is not a non-negative integer.
    """
    body = line.rstrip().rstrip(",")
    fields = body.split(",")
    values = []
    for field in fields:
        try:
            value = int(field, 10)
        except ValueError:
            raise MalformedLine(f"not an integer field {field!r} in {line.rstrip()!r}") from None
        if value < 0:
            raise MalformedLine(f"negative field {field!r} in {line.rstrip()!r}")
        values.append(value)
    return " ".join(str(v) for v in values)


def relay_lines(lines: Iterable[str], out: TextIO, *, skip: int = SETTLE_LINES) -> int:
    """
    Convert ``lines`` and write them to ``out``; return the number written.

    The first ``skip`` lines are discarded unread. Conversion errors
    propagate and stop the relay.
    """
    written = 0
    for index, line in enumerate(lines):
        if index < skip:
            continue
        out.write(convert_record(line) + "\n")
        out.flush()
        written += 1
    return written


def open_serial(port: str, baud_rate: int = DEFAULT_BAUD_RATE) -> serial.Serial:
    ser = serial.Serial(port, baud_rate, timeout=READ_TIMEOUT_S)
    logger.info("Opened %s @ %d baud", port, baud_rate)
    return ser


def iter_serial_lines(ser: serial.Serial) -> Iterator[str]:
    """
    Yield decoded lines from ``ser``.

    Read timeouts are retried. Lines that are not ASCII are logged and
    dropped without counting towards the settling lines.
    """
    while True:
        raw = ser.readline()
        if not raw:
            continue
        try:
            line = raw.decode("ascii")
        except UnicodeDecodeError as exc:
            logger.warning("Dropping unreadable serial line %r: %s", raw, exc)
            continue
        yield line


def run_relay(
    port: str,
    baud_rate: int = DEFAULT_BAUD_RATE,
    *,
    out: Optional[TextIO] = None,
) -> int:
    """Relay ``port`` to ``out`` (stdout by default) until interrupted."""
    out = out or sys.stdout
    ser = open_serial(port, baud_rate)
    try:
        return relay_lines(iter_serial_lines(ser), out)
    finally:
        ser.close()
        logger.info("Serial port %s closed", port)
