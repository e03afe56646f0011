"""
Shared fixtures for the deck tests.

``FakeLink`` stands in for a pyserial port: everything written is recorded,
and bytes pushed with ``inject()`` come back out of ``read()``.
"""

import threading
from typing import Callable, List, Optional

import pytest
import serial

from VTR422.vtr_core import VTR422


class FakeLink:
    def __init__(self, responder: Optional[Callable[[bytes], Optional[bytes]]] = None,
                 read_timeout: float = 0.01):
        self.is_open = True
        self.written: List[bytes] = []
        self.responder = responder
        self.read_timeout = read_timeout
        self.fail_writes = False
        self.fail_reads = False
        self.flushes = 0
        self._rx = bytearray()
        self._cond = threading.Condition()

    @property
    def in_waiting(self) -> int:
        with self._cond:
            return len(self._rx)

    def read(self, size: int = 1) -> bytes:
        if self.fail_reads:
            raise serial.SerialException("device disconnected")
        with self._cond:
            if not self._rx and self.is_open:
                self._cond.wait(self.read_timeout)
            chunk = bytes(self._rx[:size])
            del self._rx[:size]
            return chunk

    def write(self, data: bytes) -> int:
        if self.fail_writes:
            raise serial.SerialException("device reports write failure")
        self.written.append(bytes(data))
        if self.responder is not None:
            reply = self.responder(bytes(data))
            if reply:
                self.inject(reply)
        return len(data)

    def flush(self) -> None:
        self.flushes += 1

    def inject(self, data: bytes, delay: Optional[float] = None) -> None:
        if delay:
            timer = threading.Timer(delay, self.inject, args=(data,))
            timer.daemon = True
            timer.start()
            return
        with self._cond:
            self._rx.extend(data)
            self._cond.notify_all()

    def open(self) -> None:
        self.is_open = True

    def close(self) -> None:
        with self._cond:
            self.is_open = False
            self._cond.notify_all()


@pytest.fixture
def fake_link():
    return FakeLink()


@pytest.fixture
def session(fake_link):
    """An open VTR422 session on a FakeLink; closed after the test."""
    vtr = VTR422("fake", link=fake_link)
    vtr.open()
    yield vtr
    vtr.close()
