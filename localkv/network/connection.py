"""
Connection Module

A Connection ties one byte source to the shared keyspace: incoming chunks go
through its FrameDecoder, each complete frame is run by its
CommandDispatcher, and encoded replies go to its sink.

The same class serves TCP clients, the snapshot writer (sink = snapshot
buffer) and the snapshot loader (no sink).

Lifecycle:
    OPEN -> ACTIVE -> CLOSING -> CLOSED
    OPEN -> CLOSING               (closed before any data arrived)
"""

import logging
from enum import Enum
from typing import Any, Callable, Optional

from ..cache.store import Keyspace
from ..protocol.commands import ProtocolError
from ..protocol.decoder import FrameDecoder
from ..protocol.dispatcher import CommandDispatcher

logger = logging.getLogger(__name__)


class ConnectionState(Enum):
    """Lifecycle states of a connection."""
    OPEN = "open"
    ACTIVE = "active"
    CLOSING = "closing"
    CLOSED = "closed"


TRANSITIONS = {
    ConnectionState.OPEN: {ConnectionState.ACTIVE, ConnectionState.CLOSING},
    ConnectionState.ACTIVE: {ConnectionState.CLOSING},
    ConnectionState.CLOSING: {ConnectionState.CLOSED},
    ConnectionState.CLOSED: set(),
}


class SnapshotSink:
    """In-memory byte sink, used to capture a DUMPALL transcript."""

    def __init__(self):
        self._chunks = []
        self.closed = False

    def write(self, data: bytes) -> None:
        if self.closed:
            raise ValueError("write to closed sink")
        self._chunks.append(data)

    def close(self) -> None:
        self.closed = True

    def getvalue(self) -> bytes:
        return b"".join(self._chunks)


class StreamSink:
    """Sink writing to an asyncio StreamWriter."""

    def __init__(self, writer):
        self._writer = writer

    def write(self, data: bytes) -> None:
        self._writer.write(data)

    def close(self) -> None:
        self._writer.close()


class Connection:
    """
    One protocol session against the shared keyspace.

    Usage:
        connection = Connection(keyspace, sink, name="TCP:127.0.0.1:5000")
        connection.feed(chunk)      # may run several commands
        connection.close("Ended")

    Attributes:
        name: Connection name used in log lines (changed by CLIENT SETNAME)
        state: Current ConnectionState
    """

    def __init__(
            self,
            keyspace: Keyspace,
            sink=None,
            name: str = "",
            on_save: Optional[Callable[[], Any]] = None,
            quiet: bool = False,
    ):
        """
        Initialize the connection.

        Args:
            keyspace: The shared Keyspace
            sink: Object with write(bytes) and close(), or None to discard replies
            name: Name for log lines
            on_save: Hook run by the SAVE command
            quiet: Log lifecycle events at debug level only
        """
        self.name = name
        self.state = ConnectionState.OPEN
        self._quiet = quiet
        self._sink = sink
        self._decoder: Optional[FrameDecoder] = FrameDecoder(self._on_frame)
        self._dispatcher: Optional[CommandDispatcher] = CommandDispatcher(keyspace, self, on_save)
        self.log("Connected")

    @property
    def closed(self) -> bool:
        return self.state in (ConnectionState.CLOSING, ConnectionState.CLOSED)

    def log(self, message: str, level: int = logging.INFO) -> None:
        """Log a line prefixed with the connection name."""
        if self._quiet:
            level = min(level, logging.DEBUG)
        logger.log(level, f"{self.name} {message}")

    def _transition(self, state: ConnectionState) -> None:
        if state not in TRANSITIONS[self.state]:
            raise RuntimeError(f"{self.name}: invalid transition {self.state.value} -> {state.value}")
        self.state = state

    def feed(self, chunk: bytes) -> None:
        """
        Process incoming bytes; ignored once the connection is closing.

        Raises:
            ProtocolError: On malformed input. The connection is closed first.
        """
        if self.closed:
            return
        if self.state is ConnectionState.OPEN:
            self._transition(ConnectionState.ACTIVE)
        try:
            self._decoder.feed(chunk)
        except ProtocolError as exc:
            self.log(f"Protocol error: {exc}", logging.WARNING)
            self.close("Protocol error")
            raise

    def _on_frame(self, frame: Any) -> None:
        self._dispatcher.dispatch(frame)

    def write(self, data: bytes) -> None:
        """Send reply bytes to the sink, if any."""
        if self._sink is not None and not self.closed:
            self._sink.write(data)

    def close(self, reason: str = "Disconnected") -> None:
        """
        Tear the connection down.

        Pending partial frames are dropped and all references are released.
        Safe to call more than once.
        """
        if self.closed:
            return
        self._transition(ConnectionState.CLOSING)
        self.log(reason)

        sink = self._sink
        if self._decoder is not None:
            self._decoder.close()
        self._decoder = None
        self._dispatcher = None
        self._sink = None
        try:
            if sink is not None:
                sink.close()
        finally:
            self._transition(ConnectionState.CLOSED)
