"""
Incremental Frame Decoder

Turns a byte stream, delivered in arbitrary chunks, into complete protocol
values. State is kept between feed() calls, so a chunk may end anywhere:
inside a length line, inside a bulk body, or between CR and LF.

Nested arrays are assembled with an explicit stack of pending arrays rather
than recursion.
"""

from typing import Any, Callable, List, Optional

from .commands import ARRAY, BULK, ERROR, INTEGER, SIMPLE, ErrorReply, ProtocolError

_LINE_TYPES = (ARRAY, BULK, SIMPLE, ERROR, INTEGER)
_CR = 0x0D
_LF = 0x0A

# Bulk body modes (outside the line types above)
_BODY = -1
_TRAILER = -2


class _PendingArray:
    """An array whose elements are still arriving."""

    __slots__ = ("expected", "items")

    def __init__(self, expected: int):
        self.expected = expected
        self.items: List[Any] = []


class FrameDecoder:
    """
    Streaming decoder for the RESP wire format.

    Every completed top-level value is passed to ``on_frame`` synchronously,
    in the order it finished parsing, before the rest of the chunk is
    processed. A callback may call close() to stop decoding mid-chunk.

    Usage:
        frames = []
        decoder = FrameDecoder(frames.append)
        decoder.feed(b"*1\\r\\n$4\\r\\nPI")
        decoder.feed(b"NG\\r\\n")
        frames  # [[b"PING"]]
    """

    def __init__(self, on_frame: Callable[[Any], None]):
        self._on_frame = on_frame
        self._type: Optional[int] = None
        self._line = bytearray()
        self._remaining = 0
        self._stack: List[_PendingArray] = []
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def idle(self) -> bool:
        """True when no partial frame is buffered."""
        return self._type is None and not self._stack

    def close(self) -> None:
        """Stop decoding and drop any partial frame."""
        self._closed = True
        self._type = None
        self._line = bytearray()
        self._stack = []

    def feed(self, chunk: bytes) -> None:
        """
        Process one chunk of input.

        Raises:
            ProtocolError: On an unrecognised type byte or a malformed line
        """
        pos = 0
        size = len(chunk)

        while pos < size and not self._closed:
            if self._type is None:
                tag = chunk[pos]
                pos += 1
                if tag in (_CR, _LF):
                    # Keep-alive
                    continue
                if tag not in _LINE_TYPES:
                    raise ProtocolError(f"Unknown type: {bytes([tag])!r}")
                self._type = tag
                self._line = bytearray()
                continue

            if self._type == _BODY:
                take = min(self._remaining, size - pos)
                self._line += chunk[pos:pos + take]
                pos += take
                self._remaining -= take
                if self._remaining == 0:
                    self._type = _TRAILER
                    self._remaining = 2
                continue

            if self._type == _TRAILER:
                take = min(self._remaining, size - pos)
                pos += take
                self._remaining -= take
                if self._remaining == 0:
                    body = bytes(self._line)
                    self._type = None
                    self._line = bytearray()
                    self._complete(body)
                continue

            line_end = chunk.find(b"\n", pos)
            if line_end == -1:
                self._line += chunk[pos:]
                pos = size
                continue

            self._line += chunk[pos:line_end]
            pos = line_end + 1
            if self._line.endswith(b"\r"):
                del self._line[-1]
            self._end_line(bytes(self._line))

    def _end_line(self, line: bytes) -> None:
        """Handle a complete line for the current type."""
        tag = self._type
        self._type = None
        self._line = bytearray()

        if tag == ARRAY:
            count = _parse_int(line)
            if count < 0:
                self._complete(None)
            elif count == 0:
                self._complete([])
            else:
                self._stack.append(_PendingArray(count))
        elif tag == BULK:
            length = _parse_int(line)
            if length < 0:
                self._complete(None)
            else:
                self._type = _BODY if length else _TRAILER
                self._remaining = length if length else 2
        elif tag == INTEGER:
            self._complete(_parse_int(line))
        elif tag == ERROR:
            self._complete(ErrorReply(line.decode("utf-8", "surrogateescape")))
        else:
            self._complete(line.decode("utf-8", "surrogateescape"))

    def _complete(self, item: Any) -> None:
        """Fold a finished item into the pending arrays, emitting top-level frames."""
        while self._stack:
            top = self._stack[-1]
            top.items.append(item)
            if len(top.items) < top.expected:
                return
            self._stack.pop()
            item = top.items
        self._on_frame(item)


def _parse_int(line: bytes) -> int:
    try:
        return int(line)
    except ValueError:
        raise ProtocolError(f"Invalid integer line: {line!r}") from None


def decode_all(data: bytes) -> List[Any]:
    """Decode a complete buffer into a list of top-level frames."""
    frames: List[Any] = []
    FrameDecoder(frames.append).feed(data)
    return frames
