# VTR422/exceptions.py
"""Errors raised by the Sony 9-pin engine.

A NAK from the deck is *not* an error: it comes back as a ``Nakked`` result
(see ``VTR422.events``). Only host-side misuse and link failures raise.
"""


class Sony9PinError(Exception):
    """Base class for all errors raised by this package."""
    pass


class InvalidArgument(Sony9PinError, ValueError):
    """A command could not be encoded (e.g. more than 15 data bytes)."""
    pass


class DecodeError(Sony9PinError, ValueError):
    """Bytes could not be decoded (e.g. malformed BCD timecode)."""
    pass


class LinkError(Sony9PinError):
    """The serial link failed to open, write or close."""
    pass
