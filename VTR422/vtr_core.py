# VTR422/vtr_core.py
import logging
import threading
import time
from typing import Any, Callable, FrozenSet, List, Optional, Type, TypeVar

import serial

from logger import get_logger
from .decoder import Sony9PinDecoder
from .events import (
    AckEvent,
    AckResult,
    Acked,
    DeviceTypeEvent,
    EventChannel,
    Handler,
    NakEvent,
    Nakked,
    StatusEvent,
    TimecodeEvent,
    TimedOut,
    VTREvent,
)
from .exceptions import LinkError
from .protocol import (
    MAX_PACKET_LEN,
    CurrentTimeSenseFlag,
    Encoder,
    StatusFlag,
    Timecode,
)

logger = get_logger(__name__)

E = TypeVar("E", bound=VTREvent)


class VTR422:
    """
    Host-side session with one Sony 9-pin deck over an RS-422 serial link.

    Design notes:
    - One reader thread per open session pulls bytes off the link and feeds the
      decoder; decoding and event dispatch happen on that thread, in arrival order.
    - Writers are serialized: a command is never written while another is still draining.
    - Replies are published on ``self.events`` (a typed channel). The last status,
      timecode and device type are also kept as plain attributes.
    - NAK and timeout are *results* of send_and_wait_ack(), not exceptions. Only
      link failures raise (LinkError), and only to the operation that hit them.
    """

    # === Serial defaults (Sony 9-pin: 38.4k 8O1) ===
    DEFAULT_BAUD        = 38400
    DEFAULT_DATA_BITS   = 8
    DEFAULT_PARITY      = "odd"
    DEFAULT_STOP_BITS   = 1

    PARITIES = {
        "none": serial.PARITY_NONE,
        "even": serial.PARITY_EVEN,
        "odd": serial.PARITY_ODD,
        "mark": serial.PARITY_MARK,
        "space": serial.PARITY_SPACE,
    }

    # === Timings (seconds) ===
    READ_TIMEOUT_S      = 0.05  # reader thread wakes at least this often to check for stop
    WRITE_TIMEOUT_S     = 1.0
    ACK_TIMEOUT_S       = 0.8   # decks answer within a frame or two; 800 ms is generous
    JOIN_TIMEOUT_S      = 1.0

    def __init__(self, port_path: str = "COM1", baud_rate: int = DEFAULT_BAUD,
                 data_bits: int = DEFAULT_DATA_BITS, parity: str = DEFAULT_PARITY,
                 stop_bits: float = DEFAULT_STOP_BITS, *, debug: bool = False,
                 max_packet_len: int = MAX_PACKET_LEN,
                 read_timeout: float = READ_TIMEOUT_S, write_timeout: float = WRITE_TIMEOUT_S,
                 link: Optional[Any] = None):
        """
        Parameters
        ----------
        port_path : str
            OS serial device ('COM3', '/dev/ttyUSB0') or any pyserial URL ('loop://', 'socket://host:port').
        baud_rate, data_bits, parity, stop_bits
            Passed through to pyserial unchanged. parity takes 'none'/'even'/'odd'/'mark'/'space'
            or pyserial's single letters.
        debug : bool
            Log every TX/RX dump and decoded event at INFO instead of DEBUG.
        max_packet_len : int
            Decoder scan window. Raise it (e.g. 256) for decks with long vendor replies.
        link : optional
            Pre-built link object (read/write/flush/close/is_open/in_waiting). Used instead
            of opening port_path; handy for tests and non-serial transports.
        """
        # --- Link configuration (passed through unmodified) ---
        self.port_path = port_path
        self.baud_rate = baud_rate
        self.data_bits = data_bits
        self.parity = parity
        self.stop_bits = stop_bits
        self.read_timeout = read_timeout
        self.write_timeout = write_timeout
        self.max_packet_len = max_packet_len
        self.debug = debug

        self._link = link
        self._owns_link = link is None

        # --- Receive side ---
        self.decoder = Sony9PinDecoder(max_packet_len)
        self.events = EventChannel()
        self._reader: Optional[threading.Thread] = None
        self._stop_flag = threading.Event()

        # --- Transmit side: one outstanding write at a time ---
        self._write_lock = threading.Lock()

        # --- "Last observed" caches; overwritten by each matching event ---
        self.last_status_flags: FrozenSet[StatusFlag] = frozenset()
        self.last_timecode: Optional[Timecode] = None
        self.last_device_type: Optional[int] = None

        # --- UI callbacks (optional) ---
        self.on_status: Optional[Callable[[str], None]] = None
        self.on_error: Optional[Callable[[str], None]] = None

    # ---------- Lifecycle ----------
    def is_open(self) -> bool:
        return bool(self._link is not None and self._link.is_open)

    def open(self) -> None:
        """Open the link and start the reader thread. No-op if already open."""
        if self.is_open() and self._reader is not None:
            return

        if self._owns_link:
            try:
                self._link = serial.serial_for_url(
                    self.port_path,
                    baudrate=self.baud_rate,
                    bytesize=self.data_bits,
                    parity=self._pyserial_parity(self.parity),
                    stopbits=self.stop_bits,
                    timeout=self.read_timeout,
                    write_timeout=self.write_timeout,
                )
            except (serial.SerialException, ValueError) as exc:
                self._error(f"Error opening {self.port_path}: {exc}")
                raise LinkError(f"Could not open {self.port_path}: {exc}") from exc
        elif not self._link.is_open:
            try:
                self._link.open()
            except (serial.SerialException, OSError) as exc:
                self._error(f"Error opening {self.port_path}: {exc}")
                raise LinkError(f"Could not open {self.port_path}: {exc}") from exc

        # Fresh receive state for every session.
        self.decoder = Sony9PinDecoder(self.max_packet_len)
        self._stop_flag.clear()
        self._reader = threading.Thread(target=self._reader_loop, name=f"vtr422-rx-{self.port_path}", daemon=True)
        self._reader.start()

        self._status(
            f"Port opened: {self.port_path} {self.baud_rate}bps "
            f"{self.data_bits}{self._pyserial_parity(self.parity)}{self.stop_bits}"
        )

    def close(self) -> None:
        """Stop the reader and close the link."""
        self._stop_flag.set()
        reader, self._reader = self._reader, None
        if reader is not None and reader is not threading.current_thread():
            reader.join(self.JOIN_TIMEOUT_S)

        link = self._link
        if link is None:
            return
        try:
            if link.is_open:
                link.close()
                self._status("Port closed")
        except (serial.SerialException, OSError) as exc:
            self._error(f"Close error: {exc}")
            raise LinkError(f"Could not close {self.port_path}: {exc}") from exc
        finally:
            if self._owns_link:
                self._link = None

    def __enter__(self) -> "VTR422":
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # ---------- Receive path ----------
    def _reader_loop(self) -> None:
        link = self._link
        while not self._stop_flag.is_set():
            try:
                waiting = link.in_waiting
                chunk = link.read(waiting or 1)
            except (serial.SerialException, OSError, TypeError, AttributeError) as exc:
                # pyserial raises TypeError/AttributeError when the port is closed under it.
                if not self._stop_flag.is_set():
                    self._error(f"Serial read error: {exc}")
                    self._abandon_link(link)
                break
            if chunk:
                self.feed(chunk)

    def _abandon_link(self, link) -> None:
        """Close a link that failed under the reader so later sends raise LinkError."""
        try:
            link.close()
        except (serial.SerialException, OSError) as exc:
            logger.warning("Close after read error failed: %s", exc)
        self._status("Port closed after read error")

    def feed(self, chunk: bytes) -> List[VTREvent]:
        """Decode inbound bytes, refresh caches and publish each event.

        Called by the reader thread; tests may call it directly.
        """
        if not chunk:
            return []
        self._trace("RX %d bytes: %s", len(chunk), bytes(chunk).hex(' '))
        decoded = self.decoder.feed(chunk)
        for event in decoded:
            self._trace("%s", event.text)
            if isinstance(event, StatusEvent):
                self.last_status_flags = event.flags
            elif isinstance(event, TimecodeEvent):
                self.last_timecode = event.timecode
            elif isinstance(event, DeviceTypeEvent):
                self.last_device_type = event.device_type
            self.events.publish(event)
        return decoded

    # ---------- Event channel ----------
    def subscribe(self, kind: Type[E], handler: Callable[[E], None]) -> Callable[[E], None]:
        return self.events.subscribe(kind, handler)

    def unsubscribe(self, kind: Type[VTREvent], handler: Handler) -> bool:
        return self.events.unsubscribe(kind, handler)

    def wait_for_event(self, kind: Type[E], timeout: float) -> Optional[E]:
        """Block until the next event of ``kind`` arrives, or return None after ``timeout``."""
        return self._await(kind, None, timeout)

    def _await(self, kind: Type[E], packet: Optional[bytes], timeout: float) -> Optional[E]:
        # Listen first, then send: a fast deck can answer before send() returns.
        got = threading.Event()
        box: List[E] = []

        def _handler(event: E) -> None:
            if not got.is_set():
                box.append(event)
                got.set()

        self.events.subscribe(kind, _handler)
        try:
            if packet is not None:
                self.send(packet)
            got.wait(timeout)
        finally:
            self.events.unsubscribe(kind, _handler)
        return box[0] if box else None

    # ---------- Transmit path ----------
    def send(self, packet: bytes) -> None:
        """Write one packet and wait until the link has drained it."""
        if not self.is_open():
            raise LinkError("Serial port not open")
        with self._write_lock:
            self._trace("TX %d bytes: %s", len(packet), bytes(packet).hex(' '))
            try:
                self._link.write(packet)
                self._link.flush()
            except (serial.SerialException, OSError) as exc:
                self._error(f"Write error: {exc}")
                raise LinkError(f"Write to {self.port_path} failed: {exc}") from exc

    def send_command(self, cmd1: int, cmd2: int, data=None, *, strict: bool = True) -> None:
        """Generic 1:1 entry point used by the vendor extension catalogs."""
        self.send(Encoder.encode(cmd1, cmd2, data, strict=strict))

    def send_and_wait_ack(self, packet: bytes, timeout: float = ACK_TIMEOUT_S) -> AckResult:
        """
        Send ``packet`` and race the deck's ACK against its NAK against ``timeout``.

        Returns
        -------
        Acked | Nakked | TimedOut
            Whichever happened first. Listeners are removed on every outcome.

        Raises
        ------
        LinkError
            Only if the write itself failed.
        """
        settled = threading.Event()
        outcome: List[AckResult] = []

        def _on_reply(event: VTREvent) -> None:
            if settled.is_set():
                return
            outcome.append(Acked(event) if isinstance(event, AckEvent) else Nakked(event))
            settled.set()

        self.events.subscribe(AckEvent, _on_reply)
        self.events.subscribe(NakEvent, _on_reply)
        try:
            self.send(packet)
            if settled.wait(timeout):
                result = outcome[0]
            else:
                result = TimedOut(timeout)
        finally:
            self.events.unsubscribe(AckEvent, _on_reply)
            self.events.unsubscribe(NakEvent, _on_reply)

        if isinstance(result, Nakked):
            logger.warning("Deck refused %s: %s", bytes(packet).hex(' '), result.event.text)
        elif isinstance(result, TimedOut):
            logger.info("No ACK/NAK for %s within %.3fs", bytes(packet).hex(' '), timeout)
        return result

    def command_and_wait_ack(self, cmd1: int, cmd2: int, data=None,
                             timeout: float = ACK_TIMEOUT_S) -> AckResult:
        return self.send_and_wait_ack(Encoder.encode(cmd1, cmd2, data), timeout)

    # ---------- High-level API: system ----------
    def local_enable(self) -> None: self.send(Encoder.local_enable())
    def local_disable(self) -> None: self.send(Encoder.local_disable())
    def device_type(self) -> None: self.send(Encoder.device_type())

    # ---------- High-level API: transport ----------
    def play(self) -> None: self.send(Encoder.play())
    def stop(self) -> None: self.send(Encoder.stop())
    def record(self) -> None: self.send(Encoder.record())
    def standby_on(self) -> None: self.send(Encoder.standby_on())
    def standby_off(self) -> None: self.send(Encoder.standby_off())
    def eject(self) -> None: self.send(Encoder.eject())
    def fast_forward(self) -> None: self.send(Encoder.fast_forward())
    def rewind(self) -> None: self.send(Encoder.rewind())
    def sync_play(self) -> None: self.send(Encoder.sync_play())
    def preroll(self) -> None: self.send(Encoder.preroll())
    def preview(self) -> None: self.send(Encoder.preview())
    def review(self) -> None: self.send(Encoder.review())
    def frame_step_forward(self) -> None: self.send(Encoder.frame_step_forward())
    def frame_step_reverse(self) -> None: self.send(Encoder.frame_step_reverse())
    def jog(self, delta: int) -> None: self.send(Encoder.jog(delta))
    def var_speed(self, speed: int) -> None: self.send(Encoder.var_speed(speed))
    def shuttle(self, speed: int) -> None: self.send(Encoder.shuttle(speed))

    def cue_up_with_data(self, hh: int, mm: int, ss: int, ff: int) -> None:
        self.send(Encoder.cue_up_with_data(hh, mm, ss, ff))

    # ---------- High-level API: preset / select ----------
    def in_entry(self) -> None: self.send(Encoder.in_entry())
    def out_entry(self) -> None: self.send(Encoder.out_entry())
    def auto_mode_on(self) -> None: self.send(Encoder.auto_mode_on())
    def auto_mode_off(self) -> None: self.send(Encoder.auto_mode_off())
    def input_check(self) -> None: self.send(Encoder.input_check())

    def in_data_preset(self, hh: int, mm: int, ss: int, ff: int) -> None:
        self.send(Encoder.in_data_preset(hh, mm, ss, ff))

    def out_data_preset(self, hh: int, mm: int, ss: int, ff: int) -> None:
        self.send(Encoder.out_data_preset(hh, mm, ss, ff))

    def preroll_preset(self, hh: int, mm: int, ss: int, ff: int) -> None:
        self.send(Encoder.preroll_preset(hh, mm, ss, ff))

    # ---------- High-level API: sense ----------
    def status_sense(self, start: int = 0, size: int = 9) -> None:
        self.send(Encoder.status_sense(start, size))

    def current_time_sense(self, flag: int = CurrentTimeSenseFlag.LTC_TC) -> None:
        self.send(Encoder.current_time_sense(flag))

    def tc_gen_sense(self) -> None: self.send(Encoder.tc_gen_sense())
    def in_data_sense(self) -> None: self.send(Encoder.in_data_sense())
    def out_data_sense(self) -> None: self.send(Encoder.out_data_sense())

    # ---------- Polling helpers ----------
    def wait_ready(self, timeout: float = 3.0, interval: float = 0.2) -> bool:
        """
        Poll STATUS SENSE until the deck reports SERVO_LOCK.

        Returns True as soon as a status reply carries SERVO_LOCK, False if
        ``timeout`` runs out first. Each poll waits at most ``interval``.
        """
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            started = time.monotonic()
            event = self._await(StatusEvent, Encoder.status_sense(0, 10), interval)
            if event is not None and StatusFlag.SERVO_LOCK in event.flags:
                return True
            self._sleep_rest(started, interval, deadline)
        return False

    def poll_timecode(self, interval: float = 0.25, duration: float = 3.0,
                      flag: int = CurrentTimeSenseFlag.AUTO) -> List[Timecode]:
        """Issue CURRENT TIME SENSE every ``interval`` for ``duration``; return what came back."""
        samples: List[Timecode] = []
        end_at = time.monotonic() + duration
        while time.monotonic() < end_at:
            started = time.monotonic()
            event = self._await(TimecodeEvent, Encoder.current_time_sense(flag), interval)
            if event is not None:
                samples.append(event.timecode)
            self._sleep_rest(started, interval, end_at)
        return samples

    @staticmethod
    def _sleep_rest(started: float, interval: float, deadline: float) -> None:
        now = time.monotonic()
        sleep_for = min(started + interval, deadline) - now
        if sleep_for > 0:
            time.sleep(sleep_for)

    # ---------- small helpers ----------
    @classmethod
    def _pyserial_parity(cls, parity: str) -> str:
        key = str(parity).lower()
        if key in cls.PARITIES:
            return cls.PARITIES[key]
        if parity in cls.PARITIES.values():
            return parity
        raise LinkError(f"Unknown parity {parity!r}")

    def _trace(self, msg: str, *args) -> None:
        logger.log(logging.INFO if self.debug else logging.DEBUG, msg, *args)

    def _status(self, msg: str) -> None:
        logger.info(msg)
        if self.on_status:
            self.on_status(msg)

    def _error(self, msg: str) -> None:
        logger.error(msg)
        if self.on_error:
            self.on_error(msg)
