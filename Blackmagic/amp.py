# Blackmagic/amp.py
"""
Blackmagic Advanced Media Protocol (HyperDeck) extensions over Sony 9-pin framing.

Everything here is data: each helper only picks cmd1/cmd2/data and hands
them to ``VTR422.send_command``. Replies come back through the session's
event channel like any other packet (mostly as RawEvent).
"""

from typing import Iterable, List, Optional, Tuple, Union

from logger import get_logger
from VTR422.protocol import CurrentTimeSenseFlag, Timecode, encode_timecode
from VTR422.vtr_core import VTR422

logger = get_logger(__name__)

TimecodeLike = Union[Timecode, Tuple[int, int, int, int], List[int], str, None]


def _signed_byte(value: int) -> int:
    """Two's complement byte for -128..127 (wraps like the deck does)."""
    return int(value) & 0xFF


def _pack_tc(tc: TimecodeLike) -> bytes:
    """IN/OUT points as FF SS MM HH BCD. Accepts Timecode, (hh, mm, ss, ff) or 'HH:MM:SS:FF'."""
    if tc is None:
        return encode_timecode(Timecode())
    if isinstance(tc, Timecode):
        return encode_timecode(tc)
    if isinstance(tc, str):
        return encode_timecode(Timecode.parse(tc))
    hh, mm, ss, ff = tc
    return encode_timecode(Timecode(hh, mm, ss, ff))


class BlackmagicAMP:
    # ---- AMP commands (cmd1, cmd2) ----
    AUTO_SKIP                   = (0xA1, 0x01)  # data: signed clip delta
    LIST_NEXT_ID_SINGLE         = (0xA0, 0x15)
    LIST_NEXT_ID                = (0xA1, 0x15)  # data: count 1..255
    CLEAR_PLAYLIST              = (0x20, 0x29)
    SET_PLAYBACK_LOOP           = (0x41, 0x42)  # bit0 loop, bit1 timeline (else single clip)
    SET_STOP_MODE               = (0x41, 0x44)  # see STOP_MODES
    APPEND_PRESET               = (0x4F, 0x16)  # name len (BE16) + UTF-8 name + IN + OUT

    # ---- Blackmagic extensions ----
    SEEK_TO_TIMELINE_POSITION   = (0x08, 0x02)  # data: LE16 fraction of timeline
    SEEK_RELATIVE_CLIP          = (0x81, 0x03)  # data: signed clip delta

    STOP_MODES = {
        0: "Off",
        1: "Freeze on last frame",
        2: "Freeze on next clip",
        3: "Black",
    }

    def __init__(self, vtr: VTR422):
        self.vtr = vtr

    # ---------- 1:1 sender ----------
    def send(self, cmd1: int, cmd2: int, data: Optional[Iterable[int]] = None) -> None:
        self.vtr.send_command(cmd1, cmd2, data)

    raw = send

    # ---------- timecode utilities ----------
    def timecode_auto(self) -> None:
        self.vtr.current_time_sense(CurrentTimeSenseFlag.AUTO)

    def poll_timecode(self, interval: float = 0.25, duration: float = 3.0) -> List[Timecode]:
        return self.vtr.poll_timecode(interval=interval, duration=duration, flag=CurrentTimeSenseFlag.AUTO)

    # ---------- AMP ----------
    def auto_skip(self, delta_clips: int) -> None:
        self.send(*self.AUTO_SKIP, [_signed_byte(delta_clips)])

    def list_next_id_single(self) -> None:
        self.send(*self.LIST_NEXT_ID_SINGLE)

    def list_next_id(self, count: int) -> None:
        self.send(*self.LIST_NEXT_ID, [max(1, min(255, int(count)))])

    def clear_playlist(self) -> None:
        self.send(*self.CLEAR_PLAYLIST)

    def set_playback_loop(self, enable: bool = False, timeline: bool = False) -> None:
        self.send(*self.SET_PLAYBACK_LOOP, [(1 if enable else 0) | ((1 if timeline else 0) << 1)])

    def set_stop_mode(self, mode: int) -> None:
        self.send(*self.SET_STOP_MODE, [max(0, min(3, int(mode)))])

    def append_preset(self, name: str, in_tc: TimecodeLike, out_tc: TimecodeLike) -> None:
        """
        Append a clip to the playlist by name with IN/OUT points.

        The payload is almost always longer than 15 bytes; HyperDecks take it
        with the CMD1 length nibble masked, so it is framed non-strictly.
        """
        name_bytes = str(name or "").encode("utf-8")[:0xFFFF]
        n = len(name_bytes)
        data = bytes([(n >> 8) & 0xFF, n & 0xFF]) + name_bytes + _pack_tc(in_tc) + _pack_tc(out_tc)
        if len(data) > 15:
            logger.debug("AppendPreset payload is %d bytes; sending with masked length nibble", len(data))
        cmd1, cmd2 = self.APPEND_PRESET
        self.vtr.send_command(cmd1, cmd2, data, strict=False)

    # ---------- extensions ----------
    def seek_to_timeline_position(self, pos: float) -> None:
        """``pos`` is a fraction 0..1 of the timeline, or a raw 0..65535 value."""
        if 0 <= pos <= 1:
            v = round(pos * 0xFFFF)
        else:
            v = max(0, min(0xFFFF, int(pos)))
        self.send(*self.SEEK_TO_TIMELINE_POSITION, [v & 0xFF, (v >> 8) & 0xFF])

    def seek_relative_clip(self, delta_clips: int) -> None:
        self.send(*self.SEEK_RELATIVE_CLIP, [_signed_byte(delta_clips)])
