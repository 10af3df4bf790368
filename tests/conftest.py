"""
Pytest Configuration and Fixtures

This module provides shared fixtures and configuration for all tests.
"""

import asyncio
import socket
import pytest
import pytest_asyncio
from contextlib import closing
from typing import AsyncGenerator

from localkv.cache.store import Keyspace
from localkv.network.connection import Connection, SnapshotSink
from localkv.network.tcp_server import KVServer
from localkv.protocol.decoder import FrameDecoder, decode_all
from localkv.protocol.encoder import encode_reply


def find_free_port() -> int:
    """Find an available port for testing."""
    with closing(socket.socket(socket.AF_INET, socket.SOCK_STREAM)) as s:
        s.bind(('', 0))
        s.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        return s.getsockname()[1]


def command(*parts) -> bytes:
    """Encode a command line as an array of bulk strings."""
    return encode_reply([p if isinstance(p, bytes) else str(p).encode() for p in parts])


# ============================================================================
# Clock / Keyspace Fixtures
# ============================================================================

class FakeClock:
    """Deterministic millisecond clock for TTL tests."""

    def __init__(self, start: int = 1_700_000_000_000):
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, millis: int) -> None:
        self.now += millis


@pytest.fixture
def clock() -> FakeClock:
    """A fake clock starting at a fixed epoch."""
    return FakeClock()


@pytest.fixture
def keyspace(clock: FakeClock) -> Keyspace:
    """Create a fresh Keyspace driven by the fake clock."""
    return Keyspace(clock=clock)


# ============================================================================
# Connection Fixtures
# ============================================================================

class Session:
    """
    A Connection wired to an in-memory sink.

    Usage:
        session.run("SET", "k", "v")  # -> "OK"
    """

    def __init__(self, keyspace: Keyspace, on_save=None):
        self.sink = SnapshotSink()
        self.connection = Connection(keyspace, self.sink, name="TEST", on_save=on_save)
        self._read = 0

    def feed(self, data: bytes) -> None:
        self.connection.feed(data)

    def output(self) -> bytes:
        """Bytes written since the last call."""
        data = self.sink.getvalue()
        new = data[self._read:]
        self._read = len(data)
        return new

    def replies(self) -> list:
        """Decoded replies written since the last call."""
        return decode_all(self.output())

    def run(self, *parts):
        """Send one command and return its single decoded reply."""
        self.feed(command(*parts))
        replies = self.replies()
        assert len(replies) == 1, replies
        return replies[0]


@pytest.fixture
def session(keyspace: Keyspace) -> Session:
    """A connection to the fake-clock keyspace with a capturing sink."""
    return Session(keyspace)


@pytest.fixture
def cmd():
    """The command encoder: cmd("SET", "k", "v") -> wire bytes."""
    return command


@pytest.fixture
def frames():
    """A decoder collecting frames into a list: returns (decoder, frames)."""
    collected = []
    return FrameDecoder(collected.append), collected


# ============================================================================
# Server Fixtures
# ============================================================================

@pytest.fixture
def server_port() -> int:
    """Get a free port for server testing."""
    return find_free_port()


@pytest_asyncio.fixture
async def server(server_port: int) -> AsyncGenerator[KVServer, None]:
    """
    Create and start a server instance for testing.

    This fixture:
    1. Creates a KVServer on a random free port, persistence disabled
    2. Starts it in a background task
    3. Yields the server for testing
    4. Cleans up after the test
    """
    srv = KVServer(host='127.0.0.1', port=server_port, filename=None, save_interval=0, expire_interval=0)

    # Start server in background task
    server_task = asyncio.create_task(srv.start())

    # Wait for server to be ready
    await asyncio.sleep(0.1)

    yield srv

    # Cleanup
    await srv.stop()
    server_task.cancel()
    try:
        await server_task
    except asyncio.CancelledError:
        pass


# ============================================================================
# Client Fixtures
# ============================================================================

class AsyncClient:
    """
    Helper class for testing server interactions.

    Provides a simple async context manager interface for
    sending commands and receiving decoded replies.

    Usage:
        async with AsyncClient('127.0.0.1', port) as client:
            reply = await client.send_command("SET", "key", "value")
            assert reply == "OK"
    """

    def __init__(self, host: str, port: int):
        self.host = host
        self.port = port
        self.reader = None
        self.writer = None
        self._replies = []
        self._decoder = FrameDecoder(self._replies.append)

    async def connect(self) -> None:
        """Establish connection to server."""
        self.reader, self.writer = await asyncio.open_connection(
            self.host, self.port
        )

    async def disconnect(self) -> None:
        """Close connection to server."""
        if self.writer:
            self.writer.close()
            try:
                await self.writer.wait_closed()
            except ConnectionError:
                pass

    async def send_raw(self, data: bytes) -> None:
        self.writer.write(data)
        await self.writer.drain()

    async def read_reply(self, timeout: float = 2.0):
        """Read the next decoded reply."""
        while not self._replies:
            chunk = await asyncio.wait_for(self.reader.read(4096), timeout)
            if not chunk:
                raise ConnectionError("closed by server")
            self._decoder.feed(chunk)
        return self._replies.pop(0)

    async def send_command(self, *parts):
        """Send a command and return its decoded reply."""
        await self.send_raw(command(*parts))
        return await self.read_reply()

    async def __aenter__(self):
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.disconnect()


@pytest.fixture
def client_factory(server_port: int):
    """
    Factory fixture to create test clients.

    Usage:
        async def test_something(server, client_factory):
            async with client_factory() as client:
                reply = await client.send_command("GET", "key")
    """
    def factory() -> AsyncClient:
        return AsyncClient('127.0.0.1', server_port)
    return factory


# ============================================================================
# Pytest Configuration
# ============================================================================

def pytest_configure(config):
    """Configure custom pytest markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )
