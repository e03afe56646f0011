"""VTRWorker poll loop, run on the test thread so signals are delivered directly."""

import threading

import pytest

QtCore = pytest.importorskip("PySide6.QtCore")

from VTR422.protocol import StatusFlag, Timecode, encode  # noqa: E402
from VTR422.vtr_core import VTR422  # noqa: E402
from VTR422.vtr_worker import VTRWorker  # noqa: E402

from conftest import FakeLink  # noqa: E402


@pytest.fixture(scope="module")
def qt_app():
    return QtCore.QCoreApplication.instance() or QtCore.QCoreApplication([])


def _deck(pkt):
    if pkt[:2] == bytes([0x00, 0x11]):
        return encode(0x10, 0x11, [0x20, 0x25])
    if pkt[1] == 0x20:
        return encode(0x70, 0x20, [0x00, 0x01, 0x80])
    if pkt[1] == 0x0C:
        return encode(0x70, 0x04, [0x05, 0x04, 0x03, 0x02])
    return None


def _run_for(worker, seconds):
    timer = threading.Timer(seconds, worker.stop)
    timer.start()
    worker.start()
    timer.join()


class TestVTRWorker:
    def test_poll_loop_emits_readouts(self, qt_app):
        link = FakeLink(responder=_deck)
        worker = VTRWorker("fake", poll_ms=30, vtr=VTR422("fake", link=link))

        seen = {"connected": 0, "disconnected": 0, "flags": [], "tc": [], "device": []}
        worker.connected.connect(lambda: seen.__setitem__("connected", seen["connected"] + 1))
        worker.disconnected.connect(lambda: seen.__setitem__("disconnected", seen["disconnected"] + 1))
        worker.statusFlags.connect(lambda flags: seen["flags"].append(flags))
        worker.timecode.connect(lambda tc: seen["tc"].append(tc))
        worker.deviceType.connect(lambda dt: seen["device"].append(dt))

        _run_for(worker, 0.25)

        assert seen["connected"] == 1
        assert seen["disconnected"] == 1
        assert seen["device"] == [0x2025]
        assert seen["flags"] and seen["flags"][-1] == {StatusFlag.PLAY, StatusFlag.SERVO_LOCK}
        assert seen["tc"] and seen["tc"][-1] == Timecode(2, 3, 4, 5)
        assert not link.is_open
        assert link.written[0] == bytes([0x00, 0x11, 0x11])

    def test_read_failure_ends_poll_loop(self, qt_app):
        link = FakeLink(responder=_deck)
        link.fail_reads = True
        worker = VTRWorker("fake", poll_ms=20, vtr=VTR422("fake", link=link))
        errors, disconnected = [], []
        worker.error.connect(lambda e: errors.append(e))
        worker.disconnected.connect(lambda: disconnected.append(True))

        safety = threading.Timer(2.0, worker.stop)
        safety.start()
        worker.start()
        safety.cancel()

        assert "Link lost" in errors
        assert disconnected == [True]

    def test_send_by_name(self, qt_app):
        link = FakeLink()
        worker = VTRWorker("fake", vtr=VTR422("fake", link=link))
        errors = []
        worker.error.connect(lambda e: errors.append(e))
        worker.vtr.open()
        try:
            worker.send("jog", 3)
            worker.send("no_such_command")
        finally:
            worker.vtr.close()
        assert link.written == [encode(0x20, 0x11, [0x03])]
        assert errors == ["Unknown deck command: no_such_command"]

    def test_send_on_closed_link_reports_error(self, qt_app):
        link = FakeLink()
        link.close()
        worker = VTRWorker("fake", vtr=VTR422("fake", link=link))
        errors = []
        worker.error.connect(lambda e: errors.append(e))
        worker.send("play")
        assert len(errors) == 1
        assert "LinkError" in errors[0]

    def test_connect_failure(self, qt_app):
        worker = VTRWorker("/dev/does-not-exist-9pin")
        errors, connected = [], []
        worker.error.connect(lambda e: errors.append(e))
        worker.connected.connect(lambda: connected.append(True))
        worker.start()
        assert not connected
        assert any(e.startswith("Connect failed") for e in errors)
