# VTR422/cli.py
import argparse
import os
import sys
import time
from typing import Callable, Dict, List, Optional

from deck_config import DeckConfig
from logger import get_logger, setup_logging
from VTR422.events import (
    Acked,
    AckEvent,
    DeviceTypeEvent,
    NakEvent,
    Nakked,
    StatusEvent,
    TimecodeEvent,
    VTREvent,
)
from VTR422.exceptions import InvalidArgument, LinkError
from VTR422.protocol import CurrentTimeSenseFlag, Encoder, Timecode

logger = get_logger(__name__)

EXIT_OK = 0
EXIT_LINK_ERROR = 1
EXIT_USAGE = 2
EXIT_NAK = 3
EXIT_TIMEOUT = 4

TIME_SOURCES = {
    "auto": CurrentTimeSenseFlag.AUTO,
    "ltc": CurrentTimeSenseFlag.LTC_TC,
    "vitc": CurrentTimeSenseFlag.VITC_TC,
}

COMMAND_HELP = """\
commands:
  device                      Query device type
  status                      Status sense (page 0 size 10)
  timecode [auto|ltc|vitc]    Current time sense
  play | stop | record        Transport basics
  standby-on | standby-off    Standby control
  eject | ff | rew            Eject / fast forward / rewind
  cue HH:MM:SS:FF             Cue up with data
  jog <-127..127>             Jog, signed 1-byte magnitude
  var <-127..127>             Var speed
  shuttle <-127..127>         Shuttle
  raw <cmd1> <cmd2> [data..]  Send raw bytes (hex 0x.. or decimal)

examples:
  sony9pin --port COM3 play
  sony9pin --wait-ack stop
  sony9pin timecode auto
  sony9pin cue 01:02:03:12
  sony9pin raw 0x61 0x20 0x0a
"""


def _int(text: str) -> int:
    try:
        return int(text, 0)
    except ValueError:
        raise InvalidArgument(f"Not a number: {text!r}") from None


def _arg(args: List[str], index: int, default: str) -> str:
    return args[index] if len(args) > index else default


def _timecode_flag(args: List[str]) -> int:
    src = _arg(args, 0, "auto").lower()
    if src not in TIME_SOURCES:
        raise InvalidArgument(f"Time source must be one of {', '.join(TIME_SOURCES)}, got {src!r}")
    return TIME_SOURCES[src]


def _cue(args: List[str]) -> bytes:
    tc = Timecode.parse(_arg(args, 0, "00:00:00:00"))
    return Encoder.cue_up_with_data(tc.hours, tc.minutes, tc.seconds, tc.frames)


def _raw(args: List[str]) -> bytes:
    if len(args) < 2:
        raise InvalidArgument("raw needs at least <cmd1> <cmd2>")
    cmd1, cmd2, *data = (_int(a) for a in args)
    return Encoder.encode(cmd1, cmd2, data)


# command name -> builder(args) -> packet bytes
COMMANDS: Dict[str, Callable[[List[str]], bytes]] = {
    "device":       lambda a: Encoder.device_type(),
    "status":       lambda a: Encoder.status_sense(0, 10),
    "timecode":     lambda a: Encoder.current_time_sense(_timecode_flag(a)),
    "play":         lambda a: Encoder.play(),
    "stop":         lambda a: Encoder.stop(),
    "record":       lambda a: Encoder.record(),
    "standby-on":   lambda a: Encoder.standby_on(),
    "standby-off":  lambda a: Encoder.standby_off(),
    "eject":        lambda a: Encoder.eject(),
    "ff":           lambda a: Encoder.fast_forward(),
    "rew":          lambda a: Encoder.rewind(),
    "cue":          _cue,
    "jog":          lambda a: Encoder.jog(_int(_arg(a, 0, "0"))),
    "var":          lambda a: Encoder.var_speed(_int(_arg(a, 0, "0"))),
    "shuttle":      lambda a: Encoder.shuttle(_int(_arg(a, 0, "0"))),
    "raw":          _raw,
}


def build_packet_for(command: str, args: List[str]) -> bytes:
    """Packet for a CLI command. Raises KeyError for unknown commands, InvalidArgument for bad args."""
    return COMMANDS[command](args)


class EventPrinter:
    """Prints decoded deck replies. Status/timecode lines only print when they change."""

    def __init__(self, out=None):
        self.out = out or sys.stdout
        self._last_key: Dict[str, str] = {}

    def _emit_on_change(self, kind: str, line: str):
        if self._last_key.get(kind) == line:
            return
        self._last_key[kind] = line
        self._emit(line)

    def _emit(self, line: str):
        print(line, file=self.out, flush=True)

    def print_event(self, ev: VTREvent):
        if isinstance(ev, AckEvent):
            self._emit("ACK")
        elif isinstance(ev, NakEvent):
            self._emit(f"NAK [{', '.join(sorted(r.value for r in ev.reasons))}]")
        elif isinstance(ev, StatusEvent):
            self._emit_on_change("status", f"STATUS [{', '.join(sorted(f.value for f in ev.flags))}]")
        elif isinstance(ev, TimecodeEvent):
            self._emit_on_change("timecode", f"TIMECODE {ev.timecode}")
        elif isinstance(ev, DeviceTypeEvent):
            self._emit(f"DEVICE_TYPE 0x{ev.device_type:04x}")
        else:
            self._emit(ev.text)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="sony9pin",
        description="Send Sony 9-pin (RS-422) commands to a deck and print its replies.",
        epilog=COMMAND_HELP,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--config", help="JSON config file (default: ./config.json if present)")
    parser.add_argument("--port", help="Serial port or pyserial URL (overrides config)")
    parser.add_argument("--baud", type=int, help="Baud rate (overrides config)")
    parser.add_argument("--debug", action="store_true", help="Log TX/RX hex dumps")
    parser.add_argument("--wait-ack", action="store_true",
                        help="Wait for ACK/NAK; exit 0 on ACK, 3 on NAK, 4 on timeout")
    parser.add_argument("--timeout", type=float, help="ACK wait in seconds (default: config ack_timeout_ms)")
    parser.add_argument("--listen", type=float, default=0.5,
                        help="Seconds to keep printing replies after sending (default 0.5)")
    parser.add_argument("command", help="Command name (see below)")
    parser.add_argument("args", nargs="*", help="Command arguments")
    return parser


def _load_config(path: Optional[str]) -> DeckConfig:
    if path:
        return DeckConfig(path)
    if os.path.exists("config.json"):
        return DeckConfig("config.json")
    return DeckConfig.defaults()


def run(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    cfg = _load_config(args.config)

    setup_logging("DEBUG" if args.debug else cfg.log_level, cfg.log_file)

    try:
        packet = build_packet_for(args.command, args.args)
    except KeyError:
        print(f"Unknown command: {args.command}", file=sys.stderr)
        return EXIT_USAGE
    except InvalidArgument as e:
        print(f"[ERROR] {e}", file=sys.stderr)
        return EXIT_USAGE

    overrides = {"debug": args.debug or cfg.vtr_debug}
    if args.port:
        overrides["port_path"] = args.port
    if args.baud:
        overrides["baud_rate"] = args.baud
    vtr = cfg.create_vtr(**overrides)

    printer = EventPrinter()
    vtr.subscribe(VTREvent, printer.print_event)
    vtr.on_error = lambda e: print("[ERROR]", e, file=sys.stderr)

    try:
        vtr.open()
    except LinkError as e:
        logger.error("%s", e)
        return EXIT_LINK_ERROR

    code = EXIT_OK
    try:
        if args.wait_ack:
            timeout = args.timeout if args.timeout is not None else cfg.ack_timeout
            result = vtr.send_and_wait_ack(packet, timeout)
            if isinstance(result, Acked):
                code = EXIT_OK
            elif isinstance(result, Nakked):
                code = EXIT_NAK
            else:
                print(f"No reply within {timeout:.3f}s", file=sys.stderr)
                code = EXIT_TIMEOUT
        else:
            vtr.send(packet)
        if args.listen > 0:
            time.sleep(args.listen)
    except LinkError as e:
        logger.error("%s", e)
        code = EXIT_LINK_ERROR
    except KeyboardInterrupt:
        pass
    finally:
        try:
            vtr.close()
        except LinkError as e:
            logger.error("%s", e)
    return code


def main():
    sys.exit(run())


if __name__ == "__main__":
    main()
