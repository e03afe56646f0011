# VTR422/decoder.py
"""
Stream resynchronizer: turns the raw byte stream from a deck into events.

Sony 9-pin has no sync byte, so packet boundaries are recovered purely from
the checksum. Candidate lengths are tried shortest first; the first length
whose trailing byte equals the sum of the bytes before it is taken as a
packet, and anything in front of it is discarded. When nothing matches,
only the leading bytes that already had a full window behind them are
discarded; a short tail is kept until more bytes arrive. A match found
further in is not taken while an earlier byte still heads a packet whose
declared length has not fully arrived.

A checksum collision inside a longer packet can misframe it. The protocol
offers nothing stronger to check against, so that is accepted as-is.
"""

from __future__ import annotations

from typing import List, Optional, Tuple

from logger import get_logger
from .exceptions import DecodeError
from .events import (
    AckEvent,
    DeviceTypeEvent,
    NakEvent,
    RawEvent,
    StatusEvent,
    TimecodeEvent,
    VTREvent,
)
from .protocol import (
    MAX_PACKET_LEN,
    MIN_PACKET_LEN,
    RSP_ACK,
    RSP_DEVICE_TYPE,
    RSP_NAK,
    RSP_STATUS_DATA,
    TIMECODE_RETURNS,
    Cmd1,
    decode_nak,
    decode_status,
    decode_timecode,
)

logger = get_logger(__name__)

# Decks that answer vendor commands with replies longer than 15 data bytes
# need a wider scan window.
EXTENDED_MAX_PACKET_LEN = 256

# CMD1 classes a packet can open with: the Sony classes plus the vendor
# return (8X, 9X) and command (AX, BX) blocks.
PACKET_CLASSES = frozenset({0x00, 0x10, 0x20, 0x40, 0x60, 0x70, 0x80, 0x90, 0xA0, 0xB0})


class Sony9PinDecoder:
    """Accumulates inbound bytes and yields interpreted events.

    Not thread-safe: feed it from a single reader.
    """

    def __init__(self, max_packet_len: int = MAX_PACKET_LEN):
        if max_packet_len < MIN_PACKET_LEN:
            raise ValueError(f"max_packet_len must be >= {MIN_PACKET_LEN}")
        self.max_packet_len = max_packet_len
        self.buffer = bytearray()
        self.dropped_bytes = 0

    def feed(self, data: bytes) -> List[VTREvent]:
        """Add data to the accumulator and return every event now complete."""
        self.buffer.extend(data)
        events: List[VTREvent] = []

        while len(self.buffer) >= MIN_PACKET_LEN:
            found = self._find_packet()
            if found is None:
                # A leading byte with a full window behind it and no match
                # can never start a packet. Anything shorter may still be the
                # head of a packet whose tail hasn't arrived yet.
                excess = len(self.buffer) - self.max_packet_len + 1
                if excess > 0:
                    self._drop(excess)
                break

            start, length = found
            if start and self._awaiting_tail(start):
                # The match sits inside a packet that is still arriving.
                break
            if start:
                self._drop(start)
            packet = bytes(self.buffer[:length])
            del self.buffer[:length]
            events.append(self.interpret(packet))

        return events

    def reset(self) -> None:
        self.buffer.clear()

    def _awaiting_tail(self, start: int) -> bool:
        """True if a byte before `start` heads a packet whose declared length runs past the buffer."""
        buf = self.buffer
        n = len(buf)
        for offset in range(start):
            head = buf[offset]
            declared = MIN_PACKET_LEN + (head & 0x0F)
            if (head & 0xF0) in PACKET_CLASSES and declared <= self.max_packet_len and offset + declared > n:
                return True
        return False

    def _find_packet(self) -> Optional[Tuple[int, int]]:
        """(offset, length) of the first checksum-valid packet, smallest offset then length."""
        buf = self.buffer
        n = len(buf)
        for start in range(n - MIN_PACKET_LEN + 1):
            limit = min(self.max_packet_len, n - start)
            running = (buf[start] + buf[start + 1]) & 0xFF
            for length in range(MIN_PACKET_LEN, limit + 1):
                if running == buf[start + length - 1]:
                    return start, length
                running = (running + buf[start + length - 1]) & 0xFF
        return None

    def _drop(self, count: int) -> None:
        logger.debug("Resync: discarding %d byte(s): %s", count, bytes(self.buffer[:count]).hex(' '))
        del self.buffer[:count]
        self.dropped_bytes += count

    @staticmethod
    def interpret(packet: bytes) -> VTREvent:
        """Classify one checksum-valid packet."""
        cmd1, cmd2 = packet[0], packet[1]
        data = bytes(packet[2:-1])
        cmd_class = cmd1 & 0xF0

        if cmd1 == Cmd1.SYSTEM_CONTROL_RETURN and cmd2 == RSP_ACK:
            return AckEvent(cmd1, cmd2, data)
        # Decks also send NAK with the length nibble set: 11 12 <mask> <sum>.
        if cmd2 == RSP_NAK and (cmd1 == Cmd1.SYSTEM_CONTROL_RETURN or (cmd1 == 0x11 and len(data) == 1)):
            mask = data[0] if data else 0
            return NakEvent(cmd1, cmd2, data, reasons=decode_nak(mask))
        if cmd1 == 0x12 and cmd2 == RSP_DEVICE_TYPE and len(data) >= 2:
            return DeviceTypeEvent(cmd1, cmd2, data, device_type=(data[0] << 8) | data[1])

        if cmd_class == Cmd1.SENSE_RETURN:
            if cmd2 == RSP_STATUS_DATA:
                return StatusEvent(cmd1, cmd2, data, flags=decode_status(data))
            if cmd2 in TIMECODE_RETURNS and len(data) >= 4:
                try:
                    return TimecodeEvent(cmd1, cmd2, data, timecode=decode_timecode(data[:4]))
                except DecodeError as exc:
                    logger.debug("Timecode return %02x %02x not decodable: %s", cmd1, cmd2, exc)

        return RawEvent(cmd1, cmd2, data)
