"""
Reply Encoder

Serializes reply values into the RESP wire format. The output is exactly
what FrameDecoder reads back, which is what snapshot files rely on.

RESP types:
- Simple Strings: +OK\r\n
- Errors: -Error message\r\n
- Integers: :1000\r\n
- Bulk Strings: $6\r\nfoobar\r\n (length followed by data), $-1\r\n for null
- Arrays: *2\r\n$4\r\nPING\r\n (count followed by elements)
"""

from typing import Any

from .commands import CRLF, ErrorReply


def encode_reply(value: Any) -> bytes:
    """
    Encode one reply value.

    Example:
        >>> encode_reply(["SET", b"foo", b"bar"])
        b'*3\\r\\n+SET\\r\\n$3\\r\\nfoo\\r\\n$3\\r\\nbar\\r\\n'
        >>> encode_reply(None)
        b'$-1\\r\\n'

    Raises:
        TypeError: If the value has no wire representation
    """
    out = bytearray()
    _encode_into(value, out)
    return bytes(out)


def _encode_into(value: Any, out: bytearray) -> None:
    if value is None:
        out += b"$-1\r\n"
    elif isinstance(value, ErrorReply):
        out += b"-" + _text(value) + CRLF
    elif isinstance(value, str):
        out += b"+" + _text(value) + CRLF
    elif isinstance(value, bool):
        raise TypeError(f"Unknown item to write: {value!r}")
    elif isinstance(value, int):
        out += b":" + str(value).encode("ascii") + CRLF
    elif isinstance(value, (bytes, bytearray, memoryview)):
        data = bytes(value)
        out += b"$" + str(len(data)).encode("ascii") + CRLF + data + CRLF
    elif isinstance(value, (list, tuple)):
        out += b"*" + str(len(value)).encode("ascii") + CRLF
        for item in value:
            _encode_into(item, out)
    else:
        raise TypeError(f"Unknown item to write: {value!r}")


def _text(value: str) -> bytes:
    return value.encode("utf-8", "surrogateescape")
