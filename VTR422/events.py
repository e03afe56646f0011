# VTR422/events.py
"""Typed events produced by the decoder and the channel that delivers them."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Callable, FrozenSet, List, Optional, Tuple, Type, Union

from logger import get_logger
from .protocol import NakReason, StatusFlag, Timecode

logger = get_logger(__name__)


@dataclass(frozen=True)
class VTREvent:
    cmd1: int
    cmd2: int
    data: bytes

    @property
    def text(self) -> str:
        raw = bytes([self.cmd1, self.cmd2]) + self.data
        return f"RAW {raw.hex(' ')}"


@dataclass(frozen=True)
class AckEvent(VTREvent):
    @property
    def text(self) -> str:
        return "ACK"


@dataclass(frozen=True)
class NakEvent(VTREvent):
    reasons: FrozenSet[NakReason] = field(default_factory=frozenset)

    @property
    def mask(self) -> int:
        return self.data[0] if self.data else 0

    @property
    def text(self) -> str:
        names = ", ".join(sorted(r.value for r in self.reasons))
        return f"NAK {self.mask:02x} [{names}]"


@dataclass(frozen=True)
class DeviceTypeEvent(VTREvent):
    device_type: int = 0

    @property
    def text(self) -> str:
        return f"DEVICE TYPE 0x{self.device_type:04x}"


@dataclass(frozen=True)
class StatusEvent(VTREvent):
    flags: FrozenSet[StatusFlag] = field(default_factory=frozenset)

    @property
    def text(self) -> str:
        return "STATUS: " + " ".join(sorted(f.value for f in self.flags))


@dataclass(frozen=True)
class TimecodeEvent(VTREvent):
    timecode: Timecode = field(default_factory=Timecode)

    @property
    def text(self) -> str:
        return f"TIMECODE {self.timecode}"


@dataclass(frozen=True)
class RawEvent(VTREvent):
    """Any checksum-valid packet with no more specific meaning."""


# ---------- outcome of a command/acknowledgement exchange ----------
@dataclass(frozen=True)
class Acked:
    event: AckEvent
    ok = True


@dataclass(frozen=True)
class Nakked:
    event: NakEvent
    ok = False

    @property
    def reasons(self) -> FrozenSet[NakReason]:
        return self.event.reasons


@dataclass(frozen=True)
class TimedOut:
    timeout: float
    ok = False


AckResult = Union[Acked, Nakked, TimedOut]

Handler = Callable[[VTREvent], None]


class EventChannel:
    """
    Fan-out of decoded events to subscribers, keyed by event class.

    - ``subscribe(StatusEvent, fn)`` receives status events only;
      ``subscribe(VTREvent, fn)`` receives everything.
    - Delivery iterates over a snapshot taken at publish time, so a handler
      may unsubscribe itself (or anyone else) while being called.
    - A handler that raises is logged and skipped; the others still run.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._handlers: List[Tuple[Type[VTREvent], Handler]] = []

    def subscribe(self, kind: Type[VTREvent], handler: Handler) -> Handler:
        with self._lock:
            self._handlers.append((kind, handler))
        return handler

    def unsubscribe(self, kind: Type[VTREvent], handler: Handler) -> bool:
        """Remove one registration. Returns False if it was not subscribed."""
        with self._lock:
            for i, (k, h) in enumerate(self._handlers):
                if k is kind and h == handler:
                    del self._handlers[i]
                    return True
        return False

    def subscriber_count(self, kind: Optional[Type[VTREvent]] = None) -> int:
        with self._lock:
            if kind is None:
                return len(self._handlers)
            return sum(1 for k, _ in self._handlers if k is kind)

    def publish(self, event: VTREvent) -> None:
        with self._lock:
            snapshot = list(self._handlers)
        for kind, handler in snapshot:
            if not isinstance(event, kind):
                continue
            # Skip handlers removed earlier in this same dispatch.
            if not self._is_subscribed(kind, handler):
                continue
            try:
                handler(event)
            except Exception:
                logger.exception("Event handler %r failed on %s", handler, event.text)

    def _is_subscribed(self, kind: Type[VTREvent], handler: Handler) -> bool:
        with self._lock:
            return any(k is kind and h == handler for k, h in self._handlers)

    def clear(self) -> None:
        with self._lock:
            self._handlers.clear()

