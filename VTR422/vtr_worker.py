# vtr_worker.py
import queue
import threading
import time
from typing import Optional

from PySide6.QtCore import QObject, Signal, Slot

from .events import DeviceTypeEvent, NakEvent, StatusEvent, TimecodeEvent, VTREvent
from .exceptions import Sony9PinError
from .protocol import CurrentTimeSenseFlag
from .vtr_core import VTR422


class VTRWorker(QObject):
    """
    Qt-friendly worker that owns a VTR422 session and polls the deck in a loop.
    Intended to be moved to a dedicated QThread via QObject.moveToThread().
    """

    # UI-friendly signals
    status = Signal(str)
    error = Signal(str)
    connected = Signal()
    disconnected = Signal()
    eventReceived = Signal(object)   # VTREvent
    statusFlags = Signal(object)     # frozenset[StatusFlag]
    timecode = Signal(object)        # Timecode
    deviceType = Signal(int)
    nak = Signal(object)             # frozenset[NakReason]

    def __init__(self,
                 port: str,
                 baud: int = 38400,
                 poll_ms: int = 250,
                 parent: Optional[QObject] = None,
                 vtr: Optional[VTR422] = None,
                 time_source: int = CurrentTimeSenseFlag.AUTO):
        super().__init__(parent)
        self.port = port
        self.baud = baud
        self.poll_interval = max(0.02, poll_ms / 1000.0)  # floor to 20 ms, about one frame
        self.time_source = time_source
        self._running = False
        self._stop_flag = threading.Event()

        # Allow DI for tests; otherwise create a real session
        self.vtr = vtr or VTR422(port, baud)

        # Wire core callbacks to Qt signals
        self.vtr.on_status = self.status.emit
        self.vtr.on_error = self.error.emit

        # Events are decoded on the session's reader thread; hand them over to
        # the poll loop so every signal leaves from the worker's own thread.
        self._inbox: "queue.Queue[VTREvent]" = queue.Queue()
        self.vtr.subscribe(VTREvent, self._inbox.put)

    @Slot()
    def start(self):
        """
        Worker thread entry point.
        - Opens the link, asks for the device type, then polls status and current time at a steady cadence.
        - Emits Qt signals for status/errors/connection and forwards events as they arrive.
        - Safe to call once; subsequent calls while running are ignored.
        """
        if self._running:
            return

        self._running = True
        self._stop_flag.clear()
        connected_ok = False
        try:
            # --- 1) Open the link -------------------------------------------------
            try:
                self.vtr.open()
            except Sony9PinError as e:
                self.error.emit(f"Connect failed: {e}")
                return
            connected_ok = True
            self.connected.emit()

            # --- 2) Identify the deck (reply arrives through the inbox) --------------
            self._safe_call(self.vtr.device_type)

            # --- 3) Poll loop -------------------------------------------------------
            next_poll_time = time.monotonic()
            while self._running:
                self._drain_inbox()
                if not self.vtr.is_open():
                    self.error.emit("Link lost")
                    break
                self._safe_call(self.vtr.status_sense, 0, 10)
                self._safe_call(self.vtr.current_time_sense, self.time_source)

                next_poll_time += self.poll_interval
                sleep_for = next_poll_time - time.monotonic()
                if sleep_for > 0:
                    self._stop_flag.wait(sleep_for)
                else:
                    # Behind schedule (slow link): restart the cadence from now.
                    next_poll_time = time.monotonic()

            self._drain_inbox()

        finally:
            # --- 4) Always clean up -------------------------------------------------
            if connected_ok:
                try:
                    self.vtr.close()
                except Sony9PinError as e:
                    self.error.emit(f"Close failed: {e}")
            self._running = False
            if connected_ok:
                self.disconnected.emit()

    @Slot()
    def stop(self):
        """Request the polling loop to stop gracefully."""
        self._running = False
        self._stop_flag.set()

    def send(self, method_name: str, *args):
        """
        Run one session command by name, e.g. ``send("play")`` or ``send("jog", -5)``.

        Session writes are lock-protected, so the UI thread may call this
        directly while the poll loop is running.
        """
        method = getattr(self.vtr, method_name, None)
        if not callable(method) or method_name.startswith("_"):
            self.error.emit(f"Unknown deck command: {method_name}")
            return
        self._safe_call(method, *args)

    # --- internals ---
    def _safe_call(self, fn, *args):
        try:
            fn(*args)
        except Sony9PinError as e:
            self.error.emit(f"{getattr(fn, '__name__', fn)} failed ({type(e).__name__}): {e}")

    def _drain_inbox(self):
        while True:
            try:
                ev = self._inbox.get_nowait()
            except queue.Empty:
                return
            self._dispatch(ev)

    def _dispatch(self, ev: VTREvent):
        self.eventReceived.emit(ev)
        if isinstance(ev, StatusEvent):
            self.statusFlags.emit(ev.flags)
        elif isinstance(ev, TimecodeEvent):
            self.timecode.emit(ev.timecode)
        elif isinstance(ev, DeviceTypeEvent):
            self.deviceType.emit(ev.device_type)
        elif isinstance(ev, NakEvent):
            self.nak.emit(ev.reasons)
