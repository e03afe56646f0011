# VTR422/protocol.py
"""
Sony 9-pin (RS-422) packet codec and command catalog.

Packet layout on the wire::

    +-------------------------+------+----------------+----------+
    | CMD1 (class | data len) | CMD2 | DATA (0..15 B) | CHECKSUM |
    +-------------------------+------+----------------+----------+

- CMD1: high nibble = command class, low nibble = number of data bytes
- CHECKSUM: sum of every preceding byte, mod 256

There is no start-of-frame marker; the checksum is the only structural
signal a receiver has (see ``VTR422.decoder``).
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import FrozenSet, Iterable, Optional, Union

from .exceptions import DecodeError, InvalidArgument

MIN_PACKET_LEN = 3    # CMD1 + CMD2 + CHECKSUM
MAX_DATA_LEN = 15     # fits the CMD1 low nibble
MAX_PACKET_LEN = MIN_PACKET_LEN + MAX_DATA_LEN

ByteSource = Union[bytes, bytearray, Iterable[int]]


# === Command classes (CMD1 high nibble) ===
class Cmd1:
    SYSTEM_CONTROL          = 0x00
    SYSTEM_CONTROL_RETURN   = 0x10  # ACK / NAK / device type replies
    TRANSPORT_CONTROL       = 0x20
    PRESET_SELECT_CONTROL   = 0x40
    SENSE_REQUEST           = 0x60
    SENSE_RETURN            = 0x70  # status / timecode replies


# === CMD2 opcodes, one table per class ===
class SystemCtrl:
    LOCAL_DISABLE   = 0x0C
    DEVICE_TYPE     = 0x11  # reply: 12 11 <hi> <lo>
    LOCAL_ENABLE    = 0x1D


class TransportCtrl:
    STOP                    = 0x00
    PLAY                    = 0x01
    RECORD                  = 0x02
    STANDBY_OFF             = 0x04
    STANDBY_ON              = 0x05
    EJECT                   = 0x0F
    FAST_FWD                = 0x10
    JOG_FWD                 = 0x11  # data1 = speed
    VAR_FWD                 = 0x12  # data1 = speed
    SHUTTLE_FWD             = 0x13  # data1 = speed
    FRAME_STEP_FWD          = 0x14
    FAST_REVERSE            = 0x20
    REWIND                  = 0x20
    JOG_REV                 = 0x21
    VAR_REV                 = 0x22
    SHUTTLE_REV             = 0x23
    FRAME_STEP_REV          = 0x24
    PREROLL                 = 0x30
    CUE_UP_WITH_DATA        = 0x31  # data = FF SS MM HH (BCD)
    SYNC_PLAY               = 0x34
    PROG_SPEED_PLAY_PLUS    = 0x38
    PROG_SPEED_PLAY_MINUS   = 0x39
    PREVIEW                 = 0x40
    REVIEW                  = 0x41


class PresetSelectCtrl:
    IN_ENTRY        = 0x10
    OUT_ENTRY       = 0x11
    IN_DATA_PRESET  = 0x14  # data = FF SS MM HH (BCD)
    OUT_DATA_PRESET = 0x15
    PREROLL_PRESET  = 0x31
    INPUT_CHECK     = 0x37
    AUTO_MODE_OFF   = 0x40
    AUTO_MODE_ON    = 0x41


class SenseRequest:
    TC_GEN_SENSE        = 0x0A
    CURRENT_TIME_SENSE  = 0x0C  # data1 = CurrentTimeSenseFlag
    IN_DATA_SENSE       = 0x10
    OUT_DATA_SENSE      = 0x11
    STATUS_SENSE        = 0x20  # data1 = (start << 4) | size


class CurrentTimeSenseFlag:
    LTC_TC  = 0x01
    VITC_TC = 0x02
    AUTO    = 0x03  # deck picks LTC or VITC, whichever reads
    TIMER_1 = 0x04
    TIMER_2 = 0x08
    LTC_UB  = 0x10
    VITC_UB = 0x20


# === Return opcodes the decoder understands ===
RSP_ACK = 0x01
RSP_NAK = 0x12
RSP_DEVICE_TYPE = 0x11
RSP_STATUS_DATA = 0x20

# Sense-return CMD2 values whose first four data bytes are a timecode
# (gen time, LTC/VITC time, in/out data, hold, preroll ...).
TIMECODE_RETURNS = frozenset({0x04, 0x06, 0x08, 0x10, 0x11, 0x14, 0x16, 0x31})


class NakReason(str, Enum):
    UNKNOWN_CMD     = "UNKNOWN_CMD"
    CHECKSUM_ERROR  = "CHECKSUM_ERROR"
    PARITY_ERROR    = "PARITY_ERROR"
    BUFFER_OVERRUN  = "BUFFER_OVERRUN"
    FRAMING_ERROR   = "FRAMING_ERROR"
    TIMEOUT         = "TIMEOUT"


NAK_BITS = (
    (0x01, NakReason.UNKNOWN_CMD),
    (0x04, NakReason.CHECKSUM_ERROR),
    (0x10, NakReason.PARITY_ERROR),
    (0x20, NakReason.BUFFER_OVERRUN),
    (0x40, NakReason.FRAMING_ERROR),
    (0x80, NakReason.TIMEOUT),
)


class StatusFlag(str, Enum):
    # byte 0: cassette / reference / local
    CASSETTE_OUT        = "CASSETTE_OUT"
    SERVO_REF_MISSING   = "SERVO_REF_MISSING"
    LOCAL               = "LOCAL"
    # byte 1: transport
    STANDBY             = "STANDBY"
    STOP                = "STOP"
    EJECT               = "EJECT"
    REWIND              = "REWIND"
    FORWARD             = "FORWARD"
    RECORD              = "RECORD"
    PLAY                = "PLAY"
    # byte 2: servo / speed modes
    SERVO_LOCK          = "SERVO_LOCK"
    SHUTTLE             = "SHUTTLE"
    JOG                 = "JOG"
    VAR                 = "VAR"
    REVERSE             = "REVERSE"
    STILL               = "STILL"
    CUE_UP              = "CUE_UP"
    # byte 3: edit points
    AUTO_MODE           = "AUTO_MODE"
    FREEZE_ON           = "FREEZE_ON"
    AUDIO_OUT_SET       = "AUDIO_OUT_SET"
    AUDIO_IN_SET        = "AUDIO_IN_SET"
    OUT_SET             = "OUT_SET"
    IN_SET              = "IN_SET"
    # byte 4: EE / edit modes
    SELECT_EE           = "SELECT_EE"
    FULL_EE             = "FULL_EE"
    EDIT_SET            = "EDIT_SET"
    REVIEW_SET          = "REVIEW_SET"
    AUTO_EDIT_SET       = "AUTO_EDIT_SET"


# (byte index, mask, flag)
STATUS_BITS = (
    (0, 0x20, StatusFlag.CASSETTE_OUT),
    (0, 0x10, StatusFlag.SERVO_REF_MISSING),
    (0, 0x01, StatusFlag.LOCAL),

    (1, 0x80, StatusFlag.STANDBY),
    (1, 0x20, StatusFlag.STOP),
    (1, 0x10, StatusFlag.EJECT),
    (1, 0x08, StatusFlag.REWIND),
    (1, 0x04, StatusFlag.FORWARD),
    (1, 0x02, StatusFlag.RECORD),
    (1, 0x01, StatusFlag.PLAY),

    (2, 0x80, StatusFlag.SERVO_LOCK),
    (2, 0x20, StatusFlag.SHUTTLE),
    (2, 0x10, StatusFlag.JOG),
    (2, 0x08, StatusFlag.VAR),
    (2, 0x04, StatusFlag.REVERSE),
    (2, 0x02, StatusFlag.STILL),
    (2, 0x01, StatusFlag.CUE_UP),

    (3, 0x80, StatusFlag.AUTO_MODE),
    (3, 0x40, StatusFlag.FREEZE_ON),
    (3, 0x08, StatusFlag.AUDIO_OUT_SET),
    (3, 0x04, StatusFlag.AUDIO_IN_SET),
    (3, 0x02, StatusFlag.OUT_SET),
    (3, 0x01, StatusFlag.IN_SET),

    (4, 0x80, StatusFlag.SELECT_EE),
    (4, 0x40, StatusFlag.FULL_EE),
    (4, 0x10, StatusFlag.EDIT_SET),
    (4, 0x08, StatusFlag.REVIEW_SET),
    (4, 0x04, StatusFlag.AUTO_EDIT_SET),
)

# Frames byte of a timecode field
TC_DROP_FRAME_BIT = 0x40
TC_COLOR_FRAME_BIT = 0x10
TC_FRAMES_MASK = 0x3F


@dataclass(frozen=True)
class Timecode:
    hours: int = 0
    minutes: int = 0
    seconds: int = 0
    frames: int = 0
    drop_frame: bool = False
    color_frame: bool = False

    _PATTERN = re.compile(r"^(\d\d?):(\d\d?):(\d\d?)[:;.](\d\d?)$")

    @classmethod
    def parse(cls, text: str) -> "Timecode":
        """Parse ``HH:MM:SS:FF`` (one or two digits per field, ``;`` marks drop frame)."""
        m = cls._PATTERN.match(text.strip())
        if not m:
            raise InvalidArgument(f"Time must be HH:MM:SS:FF, got {text!r}")
        hh, mm, ss, ff = (int(g) for g in m.groups())
        return cls(hh, mm, ss, ff, drop_frame=";" in text)

    def __str__(self) -> str:
        return f"{self.hours:02d}:{self.minutes:02d}:{self.seconds:02d}:{self.frames:02d}"


@dataclass(frozen=True)
class Packet:
    """A checksum-valid packet as it appeared on the wire."""

    cmd1: int
    cmd2: int
    data: bytes
    checksum: int

    @property
    def command_class(self) -> int:
        return self.cmd1 & 0xF0

    @property
    def declared_length(self) -> int:
        """Data length claimed by the CMD1 low nibble."""
        return self.cmd1 & 0x0F

    def to_bytes(self) -> bytes:
        return bytes([self.cmd1, self.cmd2]) + self.data + bytes([self.checksum])

    def __repr__(self) -> str:
        return (
            f"Packet(cmd1=0x{self.cmd1:02X}, cmd2=0x{self.cmd2:02X}, "
            f"data={self.data.hex(' ') if self.data else '(empty)'})"
        )


# ---------- framing ----------
def checksum(data: ByteSource) -> int:
    """8-bit unsigned sum of ``data``."""
    return sum(b & 0xFF for b in data) & 0xFF


def _as_bytes(data: Optional[ByteSource]) -> bytes:
    if data is None:
        return b""
    if isinstance(data, (bytes, bytearray)):
        return bytes(data)
    values = list(data)
    bad = [v for v in values if not 0 <= int(v) <= 0xFF]
    if bad:
        raise InvalidArgument(f"Data bytes must be 0..255, got {bad}")
    return bytes(int(v) for v in values)


def encode(cmd1: int, cmd2: int, data: Optional[ByteSource] = None, *, strict: bool = True) -> bytes:
    """Build one framed packet.

    Args:
        cmd1: Command class; only the high nibble is used.
        cmd2: Opcode within the class.
        data: Up to 15 payload bytes.
        strict: When False, payloads longer than 15 bytes are framed anyway
            with the length nibble masked (some vendor extensions do this).

    Returns:
        ``bytes`` ready to write to the link.

    Raises:
        InvalidArgument: more than 15 data bytes (strict mode), or an
            opcode/data value outside 0..255.
    """
    if not (0 <= cmd1 <= 0xFF and 0 <= cmd2 <= 0xFF):
        raise InvalidArgument(f"cmd1/cmd2 must be 0..255, got 0x{cmd1:X}/0x{cmd2:X}")
    payload = _as_bytes(data)
    if strict and len(payload) > MAX_DATA_LEN:
        raise InvalidArgument(
            f"Sony 9-pin packets carry at most {MAX_DATA_LEN} data bytes, got {len(payload)}"
        )
    header = (cmd1 & 0xF0) | (len(payload) & 0x0F)
    body = bytes([header, cmd2]) + payload
    return body + bytes([checksum(body)])


def verify_checksum(raw: ByteSource) -> bool:
    raw = bytes(raw)
    return len(raw) >= MIN_PACKET_LEN and checksum(raw[:-1]) == raw[-1]


def parse_packet(raw: ByteSource, max_len: int = MAX_PACKET_LEN) -> Optional[Packet]:
    """Return a ``Packet`` if ``raw`` is exactly one well-formed packet, else None."""
    raw = bytes(raw)
    if not MIN_PACKET_LEN <= len(raw) <= max_len:
        return None
    if not verify_checksum(raw):
        return None
    return Packet(cmd1=raw[0], cmd2=raw[1], data=raw[2:-1], checksum=raw[-1])


# ---------- BCD / timecode ----------
def bcd(value: int) -> int:
    """Pack 0..99 into one BCD byte (out-of-range input is clamped)."""
    v = max(0, min(99, int(value)))
    return ((v // 10) << 4) | (v % 10)


def bcd_to_int(byte: int) -> int:
    return ((byte >> 4) & 0x0F) * 10 + (byte & 0x0F)


def decode_timecode(data: ByteSource) -> Timecode:
    """Decode ``[FF, SS, MM, HH]`` BCD bytes into a Timecode."""
    data = bytes(data)
    if len(data) < 4:
        raise DecodeError(f"Timecode needs 4 bytes, got {len(data)}")
    ff, ss, mm, hh = data[:4]
    fields = {
        "hours": bcd_to_int(hh),
        "minutes": bcd_to_int(mm),
        "seconds": bcd_to_int(ss),
        "frames": bcd_to_int(ff & TC_FRAMES_MASK),
    }
    bad = {k: v for k, v in fields.items() if v > 99}
    if bad:
        raise DecodeError(f"Malformed BCD timecode {data[:4].hex(' ')}: {bad}")
    return Timecode(
        drop_frame=bool(ff & TC_DROP_FRAME_BIT),
        color_frame=bool(ff & TC_COLOR_FRAME_BIT),
        **fields,
    )


def encode_timecode(tc: Timecode) -> bytes:
    """Inverse of decode_timecode. Fields are clamped to 0..99."""
    ff = bcd(tc.frames)
    if tc.drop_frame:
        ff |= TC_DROP_FRAME_BIT
    if tc.color_frame:
        ff |= TC_COLOR_FRAME_BIT
    return bytes([ff, bcd(tc.seconds), bcd(tc.minutes), bcd(tc.hours)])


def _tc_bytes(hh: int, mm: int, ss: int, ff: int) -> bytes:
    return encode_timecode(Timecode(hh, mm, ss, ff))


# ---------- bit tables ----------
def decode_nak(mask: int) -> FrozenSet[NakReason]:
    return frozenset(reason for bit, reason in NAK_BITS if mask & bit)


def decode_status(data: ByteSource) -> FrozenSet[StatusFlag]:
    data = bytes(data)
    flags = set()
    for index, bit, flag in STATUS_BITS:
        if index < len(data) and data[index] & bit:
            flags.add(flag)
    return frozenset(flags)


# ---------- command builders ----------
def _clamp_speed(speed: int) -> int:
    return max(-0x7F, min(0x7F, int(speed)))


class Encoder:
    """One builder per catalog entry; each returns packet bytes."""

    # System control
    @staticmethod
    def local_disable() -> bytes:
        return encode(Cmd1.SYSTEM_CONTROL, SystemCtrl.LOCAL_DISABLE)

    @staticmethod
    def device_type() -> bytes:
        return encode(Cmd1.SYSTEM_CONTROL, SystemCtrl.DEVICE_TYPE)

    @staticmethod
    def local_enable() -> bytes:
        return encode(Cmd1.SYSTEM_CONTROL, SystemCtrl.LOCAL_ENABLE)

    # Transport
    @staticmethod
    def transport(cmd2: int, data: Optional[ByteSource] = None) -> bytes:
        return encode(Cmd1.TRANSPORT_CONTROL, cmd2, data)

    @classmethod
    def stop(cls) -> bytes:
        return cls.transport(TransportCtrl.STOP)

    @classmethod
    def play(cls) -> bytes:
        return cls.transport(TransportCtrl.PLAY)

    @classmethod
    def record(cls) -> bytes:
        return cls.transport(TransportCtrl.RECORD)

    @classmethod
    def standby_off(cls) -> bytes:
        return cls.transport(TransportCtrl.STANDBY_OFF)

    @classmethod
    def standby_on(cls) -> bytes:
        return cls.transport(TransportCtrl.STANDBY_ON)

    @classmethod
    def eject(cls) -> bytes:
        return cls.transport(TransportCtrl.EJECT)

    @classmethod
    def fast_forward(cls) -> bytes:
        return cls.transport(TransportCtrl.FAST_FWD)

    @classmethod
    def rewind(cls) -> bytes:
        return cls.transport(TransportCtrl.REWIND)

    @classmethod
    def preroll(cls) -> bytes:
        return cls.transport(TransportCtrl.PREROLL)

    @classmethod
    def preview(cls) -> bytes:
        return cls.transport(TransportCtrl.PREVIEW)

    @classmethod
    def review(cls) -> bytes:
        return cls.transport(TransportCtrl.REVIEW)

    @classmethod
    def sync_play(cls) -> bytes:
        return cls.transport(TransportCtrl.SYNC_PLAY)

    @classmethod
    def frame_step_forward(cls) -> bytes:
        return cls.transport(TransportCtrl.FRAME_STEP_FWD)

    @classmethod
    def frame_step_reverse(cls) -> bytes:
        return cls.transport(TransportCtrl.FRAME_STEP_REV)

    @classmethod
    def cue_up_with_data(cls, hh: int, mm: int, ss: int, ff: int) -> bytes:
        return cls.transport(TransportCtrl.CUE_UP_WITH_DATA, _tc_bytes(hh, mm, ss, ff))

    # Signed speed: sign selects FWD/REV, magnitude (0..0x7F) is data1.
    @classmethod
    def _speed(cls, fwd: int, rev: int, speed: int) -> bytes:
        v = _clamp_speed(speed)
        return cls.transport(fwd if v >= 0 else rev, [abs(v) & 0x7F])

    @classmethod
    def jog(cls, delta: int) -> bytes:
        return cls._speed(TransportCtrl.JOG_FWD, TransportCtrl.JOG_REV, delta)

    @classmethod
    def var_speed(cls, speed: int) -> bytes:
        return cls._speed(TransportCtrl.VAR_FWD, TransportCtrl.VAR_REV, speed)

    @classmethod
    def shuttle(cls, speed: int) -> bytes:
        return cls._speed(TransportCtrl.SHUTTLE_FWD, TransportCtrl.SHUTTLE_REV, speed)

    # Sense
    @staticmethod
    def status_sense(start: int = 0, size: int = 10) -> bytes:
        v = ((start & 0x0F) << 4) | (size & 0x0F)
        return encode(Cmd1.SENSE_REQUEST, SenseRequest.STATUS_SENSE, [v])

    @staticmethod
    def current_time_sense(flag: int = CurrentTimeSenseFlag.LTC_TC) -> bytes:
        return encode(Cmd1.SENSE_REQUEST, SenseRequest.CURRENT_TIME_SENSE, [flag & 0xFF])

    @staticmethod
    def tc_gen_sense() -> bytes:
        return encode(Cmd1.SENSE_REQUEST, SenseRequest.TC_GEN_SENSE)

    @staticmethod
    def in_data_sense() -> bytes:
        return encode(Cmd1.SENSE_REQUEST, SenseRequest.IN_DATA_SENSE)

    @staticmethod
    def out_data_sense() -> bytes:
        return encode(Cmd1.SENSE_REQUEST, SenseRequest.OUT_DATA_SENSE)

    # Preset / select
    @staticmethod
    def preset(cmd2: int, data: Optional[ByteSource] = None) -> bytes:
        return encode(Cmd1.PRESET_SELECT_CONTROL, cmd2, data)

    @classmethod
    def in_entry(cls) -> bytes:
        return cls.preset(PresetSelectCtrl.IN_ENTRY)

    @classmethod
    def out_entry(cls) -> bytes:
        return cls.preset(PresetSelectCtrl.OUT_ENTRY)

    @classmethod
    def in_data_preset(cls, hh: int, mm: int, ss: int, ff: int) -> bytes:
        return cls.preset(PresetSelectCtrl.IN_DATA_PRESET, _tc_bytes(hh, mm, ss, ff))

    @classmethod
    def out_data_preset(cls, hh: int, mm: int, ss: int, ff: int) -> bytes:
        return cls.preset(PresetSelectCtrl.OUT_DATA_PRESET, _tc_bytes(hh, mm, ss, ff))

    @classmethod
    def preroll_preset(cls, hh: int, mm: int, ss: int, ff: int) -> bytes:
        return cls.preset(PresetSelectCtrl.PREROLL_PRESET, _tc_bytes(hh, mm, ss, ff))

    @classmethod
    def auto_mode_on(cls) -> bytes:
        return cls.preset(PresetSelectCtrl.AUTO_MODE_ON)

    @classmethod
    def auto_mode_off(cls) -> bytes:
        return cls.preset(PresetSelectCtrl.AUTO_MODE_OFF)

    @classmethod
    def input_check(cls) -> bytes:
        return cls.preset(PresetSelectCtrl.INPUT_CHECK)

    # Generic
    encode = staticmethod(encode)
