from __future__ import annotations

import io
from types import SimpleNamespace

import pytest

from rtplot.core.exceptions import MalformedLine
from rtplot.core.sample_parser import parse_line
from rtplot.remote import serial_relay


class FakeSerial:
    def __init__(self, lines: list[bytes]) -> None:
        self._lines = list(lines)
        self.closed = False

    def readline(self) -> bytes:
        return self._lines.pop(0)

    def close(self) -> None:
        self.closed = True


def test_convert_record_rewrites_commas() -> None:
    assert serial_relay.convert_record("123,4,5,\r\n") == "123 4 5"
    assert serial_relay.convert_record("7,8") == "7 8"
    assert parse_line(serial_relay.convert_record("10,20,30,")).values == (20, 30)


@pytest.mark.parametrize("line", ["1,x,3", "1,,3", "1,-2", ""])
def test_convert_record_rejects_bad_fields(line: str) -> None:
    with pytest.raises(MalformedLine):
        serial_relay.convert_record(line)


def test_relay_lines_skips_settling_lines() -> None:
    lines = ["garbage"] * 3 + ["1,2,", "2,3,"]
    out = io.StringIO()
    written = serial_relay.relay_lines(lines, out, skip=3)
    assert written == 2
    assert out.getvalue() == "1 2\n2 3\n"


def test_relay_stops_on_parse_error() -> None:
    out = io.StringIO()
    with pytest.raises(MalformedLine):
        serial_relay.relay_lines(["1,2", "oops", "3,4"], out, skip=0)
    assert out.getvalue() == "1 2\n"


def test_list_ports(monkeypatch) -> None:
    ports = [SimpleNamespace(device="/dev/ttyUSB1"), SimpleNamespace(device="/dev/ttyACM0")]
    monkeypatch.setattr(serial_relay.serial_list_ports, "comports", lambda: ports)
    assert serial_relay.list_ports() == ["/dev/ttyACM0", "/dev/ttyUSB1"]


def test_run_relay_reads_port_and_closes_it(monkeypatch) -> None:
    settle = [b"boot\r\n"] * serial_relay.SETTLE_LINES
    fake = FakeSerial(settle + [b"", b"100,1,2,\r\n", b"200,3,4,\r\n", b"bad\r\n"])
    opened = {}

    def _open(port, baud, timeout):
        opened.update(port=port, baud=baud)
        return fake

    monkeypatch.setattr(serial_relay.serial, "Serial", _open)
    out = io.StringIO()
    with pytest.raises(MalformedLine):
        serial_relay.run_relay("/dev/ttyUSB0", 9600, out=out)

    assert opened == {"port": "/dev/ttyUSB0", "baud": 9600}
    assert out.getvalue() == "100 1 2\n200 3 4\n"
    assert fake.closed


def test_unreadable_serial_lines_are_dropped(monkeypatch, caplog) -> None:
    settle = [b"boot\r\n"] * serial_relay.SETTLE_LINES
    garbled = b"\xff\xfe\r\n"
    fake = FakeSerial(settle[:4] + [garbled] + settle[4:] + [b"5,6,\r\n", garbled, b"7,8,\r\n", b"bad\r\n"])
    monkeypatch.setattr(serial_relay.serial, "Serial", lambda port, baud, timeout: fake)

    out = io.StringIO()
    with caplog.at_level("WARNING", logger="rtplot.remote.serial_relay"):
        with pytest.raises(MalformedLine):
            serial_relay.run_relay("/dev/ttyUSB0", out=out)

    assert out.getvalue() == "5 6\n7 8\n"
    assert sum("unreadable" in r.getMessage() for r in caplog.records) == 2
