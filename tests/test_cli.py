"""Tests for the sony9pin command-line front end (uses pyserial's loop:// echo port)."""

import io

import pytest

from VTR422 import cli
from VTR422.events import AckEvent, DeviceTypeEvent, NakEvent, StatusEvent, TimecodeEvent, RawEvent
from VTR422.exceptions import InvalidArgument
from VTR422.protocol import NakReason, StatusFlag, Timecode, encode


@pytest.fixture(autouse=True)
def _no_local_config(tmp_path, monkeypatch):
    # Keep a developer's ./config.json out of the tests.
    monkeypatch.chdir(tmp_path)


class TestBuildPacket:
    @pytest.mark.parametrize("command, args, expected", [
        ("play", [], bytes([0x20, 0x01, 0x21])),
        ("status", [], encode(0x60, 0x20, [0x0A])),
        ("timecode", [], encode(0x60, 0x0C, [0x03])),
        ("timecode", ["LTC"], encode(0x60, 0x0C, [0x01])),
        ("timecode", ["vitc"], encode(0x60, 0x0C, [0x02])),
        ("cue", ["01:02:03:12"], encode(0x20, 0x31, [0x12, 0x03, 0x02, 0x01])),
        ("jog", ["-5"], encode(0x20, 0x21, [0x05])),
        ("shuttle", ["0x10"], encode(0x20, 0x13, [0x10])),
        ("raw", ["0x61", "0x20", "10"], encode(0x61, 0x20, [0x0A])),
        ("rew", [], encode(0x20, 0x20)),
    ])
    def test_commands(self, command, args, expected):
        assert cli.build_packet_for(command, args) == expected

    def test_bad_time_source(self):
        with pytest.raises(InvalidArgument):
            cli.build_packet_for("timecode", ["gps"])

    def test_raw_needs_two_bytes(self):
        with pytest.raises(InvalidArgument):
            cli.build_packet_for("raw", ["0x20"])

    def test_unknown(self):
        with pytest.raises(KeyError):
            cli.build_packet_for("dance", [])


class TestEventPrinter:
    def test_formats(self):
        out = io.StringIO()
        p = cli.EventPrinter(out)
        p.print_event(AckEvent(0x10, 0x01, b""))
        p.print_event(NakEvent(0x11, 0x12, b"\x04", reasons=frozenset({NakReason.CHECKSUM_ERROR})))
        p.print_event(DeviceTypeEvent(0x12, 0x11, b"\x20\x25", device_type=0x2025))
        p.print_event(TimecodeEvent(0x74, 0x04, b"", timecode=Timecode(1, 2, 3, 4)))
        p.print_event(RawEvent(0x80, 0x14, b""))
        assert out.getvalue().splitlines() == [
            "ACK",
            "NAK [CHECKSUM_ERROR]",
            "DEVICE_TYPE 0x2025",
            "TIMECODE 01:02:03:04",
            "RAW 80 14",
        ]

    def test_status_printed_on_change_only(self):
        out = io.StringIO()
        p = cli.EventPrinter(out)
        stop = StatusEvent(0x72, 0x20, b"", flags=frozenset({StatusFlag.STOP}))
        play = StatusEvent(0x72, 0x20, b"", flags=frozenset({StatusFlag.PLAY}))
        for ev in (stop, stop, play, play, stop):
            p.print_event(ev)
        assert out.getvalue().splitlines() == ["STATUS [STOP]", "STATUS [PLAY]", "STATUS [STOP]"]


class TestRun:
    def test_unknown_command_exit_2(self):
        assert cli.run(["--port", "loop://", "dance"]) == cli.EXIT_USAGE

    def test_bad_argument_exit_2(self):
        assert cli.run(["--port", "loop://", "cue", "12:00"]) == cli.EXIT_USAGE

    def test_link_error_exit_1(self):
        assert cli.run(["--port", "/dev/does-not-exist-9pin", "play"]) == cli.EXIT_LINK_ERROR

    def test_wait_ack_timeout_exit_4(self):
        # loop:// echoes PLAY back, which is not an ACK
        code = cli.run(["--port", "loop://", "--wait-ack", "--timeout", "0.1", "--listen", "0", "play"])
        assert code == cli.EXIT_TIMEOUT

    def test_wait_ack_ok_exit_0(self, capsys):
        # an echoed raw 10 01 is an ACK
        code = cli.run(["--port", "loop://", "--wait-ack", "--timeout", "0.5", "--listen", "0", "raw", "0x10", "0x01"])
        assert code == cli.EXIT_OK
        assert "ACK" in capsys.readouterr().out

    def test_wait_ack_nak_exit_3(self):
        code = cli.run(["--port", "loop://", "--wait-ack", "--timeout", "0.5", "--listen", "0",
                        "raw", "0x10", "0x12", "0x01"])
        assert code == cli.EXIT_NAK

    def test_fire_and_forget_prints_echo(self, capsys):
        code = cli.run(["--port", "loop://", "--listen", "0.2", "status"])
        assert code == cli.EXIT_OK
        assert "RAW 61 20 0a" in capsys.readouterr().out
