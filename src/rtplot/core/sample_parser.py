"""
Parse the whitespace-separated integer line format written by the relay:

  <t> <v0> [<v1> ...]

``t`` is an integer timestamp in raw device units and every ``v`` is an
integer channel reading. The number of channel values is fixed for a
session; callers pass that count explicitly (``None`` while it is not yet
known, in which case the first parsed line establishes it).
"""

from __future__ import annotations

import re
from typing import List, Optional

from .exceptions import ChannelCountMismatch, MalformedLine
from .models import Sample


_INT_TOKEN = re.compile(r"[+-]?[0-9]+")

INT64_MIN = -(2**63)
INT64_MAX = 2**63 - 1


def _parse_int(token: str, line: str) -> int:
    if _INT_TOKEN.fullmatch(token) is None:
        raise MalformedLine(f"not an integer: {token!r} in line {line!r}")
    value = int(token, 10)
    if not INT64_MIN <= value <= INT64_MAX:
        raise MalformedLine(f"integer out of 64-bit range: {token!r} in line {line!r}")
    return value


def parse_line(line: str, channel_count: Optional[int] = None) -> Sample:
    """
    Parse one input line into a :class:`Sample`.

    Parameters
    ----------
    line:
        Raw text, with or without the trailing newline.
    channel_count:
        Channel count established for the session, or ``None`` to accept any
        positive count.

    Raises
    ------
    MalformedLine
        A token is not an integer, or the line carries no channel values.
    ChannelCountMismatch
        The number of channel values differs from ``channel_count``.
    """
    tokens: List[str] = line.split()
    if len(tokens) < 2:
        raise MalformedLine(f"expected a timestamp and at least one value, got {line!r}")

    numbers = [_parse_int(token, line) for token in tokens]
    values = tuple(numbers[1:])

    if channel_count is not None and len(values) != channel_count:
        raise ChannelCountMismatch(channel_count, len(values))

    return Sample(timestamp=numbers[0], values=values)
