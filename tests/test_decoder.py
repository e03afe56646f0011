"""Unit tests for the stream resynchronizer and reply interpretation."""

import pytest

from VTR422.decoder import EXTENDED_MAX_PACKET_LEN, Sony9PinDecoder
from VTR422.events import (
    AckEvent,
    DeviceTypeEvent,
    NakEvent,
    RawEvent,
    StatusEvent,
    TimecodeEvent,
)
from VTR422.protocol import NakReason, StatusFlag, Timecode, encode

ACK = bytes([0x10, 0x01, 0x11])


class TestResync:
    """Recovering packet boundaries from a noisy byte stream."""

    def test_single_ack(self):
        events = Sony9PinDecoder().feed(ACK)
        assert len(events) == 1
        assert isinstance(events[0], AckEvent)
        assert events[0].text == "ACK"

    def test_leading_junk_is_discarded(self):
        dec = Sony9PinDecoder()
        events = dec.feed(bytes([0xFF, 0xFF]) + ACK)
        assert [type(e) for e in events] == [AckEvent]
        assert dec.dropped_bytes == 2
        assert dec.buffer == bytearray()

    def test_packet_split_across_feeds(self):
        status = encode(0x70, 0x20, [0x00, 0x01, 0x80, 0x00])
        dec = Sony9PinDecoder()
        assert dec.feed(status[:3]) == []
        events = dec.feed(status[3:])
        assert len(events) == 1
        assert events[0].flags == {StatusFlag.PLAY, StatusFlag.SERVO_LOCK}
        assert dec.dropped_bytes == 0

    @pytest.mark.parametrize("cut", range(1, 13))
    def test_status_with_zero_runs_split_anywhere(self, cut):
        # 00 00 00 is itself checksum-valid; it must not be carved out of the data
        status = encode(0x70, 0x20, [0x00, 0x20, 0x00, 0x00, 0x00, 0x00, 0x00, 0x00, 0x00, 0x00])
        whole = Sony9PinDecoder().feed(status)
        assert [e.text for e in whole] == ["STATUS: STOP"]

        dec = Sony9PinDecoder()
        events = dec.feed(status[:cut]) + dec.feed(status[cut:])
        assert events == whole
        assert dec.dropped_bytes == 0

    def test_noise_before_split_packet(self):
        status = encode(0x70, 0x20, [0x00, 0x20, 0x00, 0x00, 0x00, 0x00, 0x00, 0x00, 0x00, 0x00])
        dec = Sony9PinDecoder()
        # the head so far holds 20 00 20, a valid packet of its own
        assert dec.feed(bytes([0xFF]) + status[:8]) == []
        (ev,) = dec.feed(status[8:])
        assert ev.flags == {StatusFlag.STOP}
        assert dec.dropped_bytes == 1

    def test_byte_at_a_time(self):
        tc = encode(0x70, 0x04, [0x05, 0x04, 0x03, 0x02])
        dec = Sony9PinDecoder()
        events = []
        for b in tc:
            events += dec.feed(bytes([b]))
        assert len(events) == 1
        assert events[0].timecode == Timecode(2, 3, 4, 5)

    def test_glued_packets(self):
        stream = ACK + encode(0x10, 0x12, [0x04]) + ACK
        events = Sony9PinDecoder().feed(stream)
        assert [type(e) for e in events] == [AckEvent, NakEvent, AckEvent]

    def test_noise_without_packet_is_bounded(self):
        dec = Sony9PinDecoder(max_packet_len=5)
        # 0x01, 0x02, 0x04 ... never equal the running sum of a window
        noise = bytes([0x01, 0x02, 0x04, 0x08, 0x10, 0x20, 0x40, 0x80])
        assert dec.feed(noise) == []
        assert len(dec.buffer) < dec.max_packet_len

    def test_shortest_valid_length_wins(self):
        # [0x00, 0x00, 0x00] is already a valid 3-byte packet
        events = Sony9PinDecoder().feed(bytes([0x00, 0x00, 0x00, 0x00]))
        assert len(events) == 1
        assert isinstance(events[0], RawEvent)

    def test_max_len_limits_packets(self):
        long_reply = encode(0x80, 0x16, [0x01] * 20, strict=False)
        assert Sony9PinDecoder().feed(long_reply) == []
        events = Sony9PinDecoder(EXTENDED_MAX_PACKET_LEN).feed(long_reply)
        assert len(events) == 1
        assert events[0].data == bytes([0x01] * 20)

    def test_max_len_below_minimum_rejected(self):
        with pytest.raises(ValueError):
            Sony9PinDecoder(2)

    def test_reset_clears_partial(self):
        dec = Sony9PinDecoder()
        dec.feed(ACK[:2])
        dec.reset()
        assert dec.feed(ACK[2:]) == []


class TestInterpret:
    """Dispatch table from (cmd1, cmd2) to event type."""

    def test_nak_reasons(self):
        (ev,) = Sony9PinDecoder().feed(bytes([0x10, 0x12, 0x04, 0x26]))
        assert isinstance(ev, NakEvent)
        assert ev.reasons == {NakReason.CHECKSUM_ERROR}
        assert ev.mask == 0x04

    def test_nak_with_length_nibble(self):
        (ev,) = Sony9PinDecoder().feed(encode(0x10, 0x12, [0x01]))
        assert ev.cmd1 == 0x11
        assert ev.reasons == {NakReason.UNKNOWN_CMD}

    @pytest.mark.parametrize("packet", [
        encode(0x12, 0x01, [0xAA, 0xBB]),
        encode(0x70, 0x01),
        encode(0x12, 0x12, [0x01, 0x02]),
    ])
    def test_ack_nak_need_system_return_header(self, packet):
        (ev,) = Sony9PinDecoder().feed(packet)
        assert isinstance(ev, RawEvent)

    def test_device_type(self):
        (ev,) = Sony9PinDecoder().feed(encode(0x10, 0x11, [0x20, 0x25]))
        assert isinstance(ev, DeviceTypeEvent)
        assert ev.device_type == 0x2025

    def test_device_type_needs_two_bytes(self):
        (ev,) = Sony9PinDecoder().feed(encode(0x10, 0x11, [0x20]))
        assert isinstance(ev, RawEvent)

    def test_status(self):
        (ev,) = Sony9PinDecoder().feed(encode(0x70, 0x20, [0x01, 0x20]))
        assert isinstance(ev, StatusEvent)
        assert ev.flags == {StatusFlag.LOCAL, StatusFlag.STOP}

    @pytest.mark.parametrize("cmd2", [0x04, 0x06, 0x08, 0x10, 0x11, 0x14, 0x16, 0x31])
    def test_timecode_returns(self, cmd2):
        (ev,) = Sony9PinDecoder().feed(encode(0x70, cmd2, [0x05, 0x04, 0x03, 0x02]))
        assert isinstance(ev, TimecodeEvent)
        assert str(ev.timecode) == "02:03:04:05"

    def test_malformed_timecode_becomes_raw(self):
        (ev,) = Sony9PinDecoder().feed(encode(0x70, 0x04, [0x00, 0x00, 0x00, 0xAA]))
        assert isinstance(ev, RawEvent)

    def test_short_timecode_becomes_raw(self):
        (ev,) = Sony9PinDecoder().feed(encode(0x70, 0x04, [0x00, 0x00]))
        assert isinstance(ev, RawEvent)

    def test_unknown_class_is_raw(self):
        (ev,) = Sony9PinDecoder().feed(encode(0x80, 0x14))
        assert isinstance(ev, RawEvent)
        assert ev.text == "RAW 80 14"
