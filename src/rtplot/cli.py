"""
Command line entry point.

  rtplot plot  [--config FILE] [--file FILE]
  rtplot fit   --file FILE --channel N --degree D [--t0 T --t1 T | --last N | --start I --stop J]
  rtplot relay list-serial
  rtplot relay read --serial-port PORT [--baud-rate B]
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
from typing import Optional, Sequence, TextIO

from .analysis.regression import FitResult, format_measurement
from .config.runtime import RtPlotConfig, load_config
from .core.exceptions import ChannelOutOfRange, FitError, MalformedLine
from .core.fitting import run_fit
from .core.models import FitRequest
from .core.ring_store import RingStore
from .core.stream_reader import open_source, reader_loop, start_reader, start_reader_on_stdin

logger = logging.getLogger(__name__)

LOG_LEVEL_ENV = "RTPLOT_LOG_LEVEL"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(level: Optional[str] = None) -> None:
    """Configure root logging once, from ``level`` or ``RTPLOT_LOG_LEVEL``."""
    name = (level or os.getenv(LOG_LEVEL_ENV) or "WARNING").upper()
    numeric = getattr(logging, name, None)
    if not isinstance(numeric, int):
        numeric = logging.WARNING
    logging.basicConfig(level=numeric, format=LOG_FORMAT, stream=sys.stderr)


def _make_store(config: RtPlotConfig) -> RingStore:
    return RingStore(
        channel_count=config.effective_channel_count(),
        policy=config.retention.to_policy(),
    )


# --------------------------------------------------------------------------- # plot
def cmd_plot(args: argparse.Namespace) -> int:
    from .gui.live_scope import LiveScope

    config = load_config(args.config)
    store = _make_store(config)
    channel_count = config.effective_channel_count()
    source = open_source(args.file)
    if source is sys.stdin:
        reader = start_reader_on_stdin(store, channel_count=channel_count)
    else:
        reader = start_reader(source, store, channel_count=channel_count)
    try:
        LiveScope(store, config, reader=reader).run()
    except KeyboardInterrupt:
        return 0
    finally:
        reader.stop()
        if source is not sys.stdin:
            source.close()
    return 0


# --------------------------------------------------------------------------- # fit
def _request_from_args(args: argparse.Namespace, parser: argparse.ArgumentParser) -> FitRequest:
    try:
        return FitRequest(
            channel=args.channel,
            degree=args.degree,
            t0=args.t0,
            t1=args.t1,
            start=args.start,
            stop=args.stop,
            last=args.last,
        )
    except ValueError as exc:
        parser.error(str(exc))
        raise


def print_fit(result: FitResult, *, canonical: bool = False, out: Optional[TextIO] = None) -> None:
    out = out or sys.stdout
    out.write(
        f"degree {result.degree} fit over {result.n_points} point(s), "
        f"t in [{result.t_first}, {result.t_last}], dof {result.dof}, rss {result.rss:g}\n"
    )
    if canonical:
        fit = result.canonical()
        out.write("y = b0 + b1 * t + b2 * t^2 (raw t)\n")
        coefficients, errors, prefix = fit.coefficients, fit.standard_errors, "b"
    else:
        out.write(f"y = c0 + c1 * u + c2 * u^2, u = t - {result.t_mean:.6f}\n")
        coefficients, errors, prefix = result.coefficients, result.standard_errors, "c"
    for k, (value, error) in enumerate(zip(coefficients, errors)):
        out.write(f"  {prefix}{k} = {format_measurement(float(value), float(error))}\n")
    for parameter in result.characteristic_parameters():
        out.write(f"  {parameter}\n")


def cmd_fit(args: argparse.Namespace, parser: argparse.ArgumentParser) -> int:
    request = _request_from_args(args, parser)
    config = load_config(args.config)
    store = _make_store(config)

    source = open_source(args.file)
    try:
        stats = reader_loop(source, store, channel_count=config.effective_channel_count())
    finally:
        if source is not sys.stdin:
            source.close()
    if stats.failure is not None:
        print(f"error: {stats.failure}", file=sys.stderr)
        return 1
    logger.info("Ingested %d sample(s) from %s", stats.samples_appended, args.file)

    try:
        result = run_fit(store, request)
    except (FitError, ChannelOutOfRange) as exc:
        print(f"fit failed: {exc}", file=sys.stderr)
        return 1
    print_fit(result, canonical=args.canonical)
    return 0


# --------------------------------------------------------------------------- # relay
def cmd_relay(args: argparse.Namespace) -> int:
    import serial

    from .remote import serial_relay

    if args.relay_command == "list-serial":
        for name in serial_relay.list_ports():
            print(name)
        return 0

    try:
        serial_relay.run_relay(args.serial_port, args.baud_rate)
    except serial.SerialException as exc:
        print(f"Error connecting to the serial port: {exc}", file=sys.stderr)
        return 1
    except MalformedLine as exc:
        print(f"Error parsing data from the serial port: {exc}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        return 0
    return 0


# --------------------------------------------------------------------------- # CLI
def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="rtplot",
        description="Real-time oscilloscope for integer sample streams, with least-squares fits.",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default=None,
        help=f"Logging level (default: ${LOG_LEVEL_ENV} or WARNING).",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    plot = sub.add_parser("plot", help="Show the live scope for stdin or a recorded file.")
    plot.add_argument("-c", "--config", type=str, default=None, help="YAML configuration file.")
    plot.add_argument(
        "-f",
        "--file",
        type=str,
        default=None,
        help="Replay this file instead of reading stdin ('-' also means stdin).",
    )

    fit = sub.add_parser("fit", help="Ingest a file and print one polynomial fit.")
    fit.add_argument("-f", "--file", type=str, required=True, help="Input file ('-' for stdin).")
    fit.add_argument("-c", "--config", type=str, default=None, help="YAML configuration file.")
    fit.add_argument("--channel", type=int, required=True, help="Channel index (0-based).")
    fit.add_argument("--degree", type=int, choices=[0, 1, 2], required=True)
    fit.add_argument("--t0", type=int, default=None, help="Window start (raw time, inclusive).")
    fit.add_argument("--t1", type=int, default=None, help="Window end (raw time, inclusive).")
    fit.add_argument("--start", type=int, default=None, help="First retained index of the window.")
    fit.add_argument("--stop", type=int, default=None, help="Index one past the end of the window.")
    fit.add_argument("--last", type=int, default=None, help="Fit the newest N points.")
    fit.add_argument(
        "--canonical",
        action="store_true",
        help="Print coefficients on the raw time axis instead of the centered one.",
    )

    relay = sub.add_parser("relay", help="Relay a serial device to stdout.")
    relay_sub = relay.add_subparsers(dest="relay_command", required=True)
    relay_sub.add_parser("list-serial", help="Show all available serial ports.")
    read = relay_sub.add_parser("read", help="Read data from a serial port.")
    read.add_argument("--serial-port", type=str, required=True, help="Serial port to read from.")
    read.add_argument("--baud-rate", type=int, default=115_200, help="Baud rate (default: 115200).")

    return parser


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.log_level)

    if args.command == "plot":
        return cmd_plot(args)
    if args.command == "fit":
        return cmd_fit(args, parser)
    return cmd_relay(args)


if __name__ == "__main__":
    raise SystemExit(main())
