"""
Protocol Command and Reply Definitions

This module defines the data structures shared by the decoder, the encoder
and the command dispatcher.

Reply values are plain Python objects:
    None            -> null bulk string
    int             -> integer
    str             -> simple string (status line)
    ErrorReply      -> error string
    bytes           -> bulk string
    list / tuple    -> array
"""

from dataclasses import dataclass, field
from typing import Any, List

# Wire type bytes
ARRAY = ord("*")
BULK = ord("$")
SIMPLE = ord("+")
ERROR = ord("-")
INTEGER = ord(":")

CRLF = b"\r\n"


class ProtocolError(Exception):
    """Malformed wire data. Fatal for the connection that produced it."""


class CommandError(Exception):
    """A command fault reported to the client as an error reply."""


class ErrorReply(str):
    """Text sent (or received) as an error string rather than a status line."""


class ReplySequence(list):
    """
    Zero or more replies emitted in order by a single command.

    DUMPALL uses it to stream one reply per stored key, QUIT returns an
    empty one because it answers by closing the stream.
    """


@dataclass
class Command:
    """
    A decoded command line.

    Attributes:
        name: Uppercase command name
        args: Remaining frame elements, positionally
        given: Command name as sent by the client
    """
    name: str
    args: List[Any] = field(default_factory=list)
    given: str = ""


def to_text(value: Any) -> str:
    """Convert a frame element to text (bytes decoded losslessly)."""
    if isinstance(value, str):
        return value
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).decode("utf-8", "surrogateescape")
    if value is None:
        return ""
    return str(value)


def to_bytes(value: Any) -> bytes:
    """Convert a frame element to a byte string value."""
    if isinstance(value, bytes):
        return value
    if isinstance(value, bytearray):
        return bytes(value)
    return to_text(value).encode("utf-8", "surrogateescape")


def to_int(value: Any) -> int:
    """
    Convert a frame element to an integer.

    Raises:
        CommandError: If the element is not a base-10 integer
    """
    if isinstance(value, int):
        return value
    try:
        return int(to_text(value), 10)
    except ValueError:
        raise CommandError("value is not an integer or out of range") from None
