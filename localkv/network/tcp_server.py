"""
Async TCP Server Module

This module implements the asynchronous TCP server for localkv.

One event loop runs every client connection and both timers (periodic
snapshot saves and the expiry sweep), so commands never execute concurrently
and the keyspace needs no locking.
"""

import asyncio
import logging
from asyncio import StreamReader, StreamWriter
from typing import List, Optional

from ..cache.expiry import ExpiryReaper
from ..cache.store import Keyspace
from ..config.settings import settings
from ..persistence.engine import PersistenceEngine
from ..protocol.commands import ProtocolError
from .connection import Connection, StreamSink

logger = logging.getLogger(__name__)


class KVServer:
    """
    Asynchronous TCP server for localkv.

    Features:
    - Non-blocking I/O with asyncio
    - Pipelined commands (several commands per read are run in order)
    - Snapshot load at startup, periodic and on-demand saves
    - Periodic active expiry
    - Shared Keyspace across all connections

    Usage:
        server = KVServer(host='127.0.0.1', port=6379, filename='persist.db')
        await server.start()  # Runs forever

    Attributes:
        host: Server bind address
        port: Server port number
        keyspace: The Keyspace shared by all connections
        persistence: Snapshot engine for the keyspace
        reaper: Expiry sweeper for the keyspace
    """

    def __init__(
            self,
            host: str = None,
            port: int = None,
            keyspace: Keyspace = None,
            filename: Optional[str] = None,
            save_interval: float = None,
            expire_interval: float = None,
    ):
        """
        Initialize the server.

        Args:
            host: Bind address (default from settings)
            port: Port number (default from settings)
            keyspace: Keyspace instance (creates new one if not provided)
            filename: Snapshot file, None disables persistence
            save_interval: Seconds between saves, 0 disables periodic saves
            expire_interval: Seconds between expiry sweeps, 0 disables sweeping
        """
        self.host = host if host is not None else settings.HOST
        self.port = port if port is not None else settings.PORT
        self.keyspace = keyspace if keyspace is not None else Keyspace()
        self.save_interval = save_interval if save_interval is not None else settings.SAVE_INTERVAL
        self.expire_interval = expire_interval if expire_interval is not None else settings.EXPIRE_INTERVAL
        self.persistence = PersistenceEngine(self.keyspace, filename)
        self.reaper = ExpiryReaper(self.keyspace)

        # Server state
        self._server: Optional[asyncio.Server] = None
        self._timers: List[asyncio.Task] = []
        self._running = False

    async def handle_client(
            self,
            reader: StreamReader,
            writer: StreamWriter
    ) -> None:
        """
        Handle a single client connection.

        Reads chunks until the client disconnects, sends QUIT or sends
        malformed data, feeding each chunk to the connection's decoder.
        """
        addr = writer.get_extra_info('peername')
        name = f"TCP:{addr[0]}:{addr[1]}" if addr else "TCP:unknown"
        connection = Connection(
            self.keyspace,
            StreamSink(writer),
            name=name,
            on_save=self.persistence.request_save,
        )

        try:
            while not connection.closed:
                data = await reader.read(settings.READ_BUFFER_SIZE)
                if not data:
                    connection.close("Ended")
                    break

                connection.feed(data)
                if not connection.closed:
                    await writer.drain()

        except ProtocolError:
            # Already logged and closed by the connection
            pass
        except ConnectionError as exc:
            connection.close(f"Connection error: {exc}")
        except Exception as exc:  # Log unexpected errors but keep server alive
            logger.exception(f"Error handling client {addr}: {exc}")
        finally:
            connection.close()
            try:
                await writer.wait_closed()
            except ConnectionError:
                pass

    async def start(self) -> None:
        """
        Load the snapshot, start the timers and serve until cancelled.

        Example:
            server = KVServer(port=6379)
            asyncio.run(server.start())
        """
        if self._running:
            return

        self.persistence.load()

        self._server = await asyncio.start_server(
            self.handle_client,
            self.host,
            self.port,
        )
        self._running = True

        if self.save_interval and self.persistence.filename:
            self._timers.append(asyncio.create_task(self.persistence.run(self.save_interval)))
        if self.expire_interval:
            self._timers.append(asyncio.create_task(self.reaper.run(self.expire_interval)))

        addrs = ', '.join(str(sock.getsockname()) for sock in self._server.sockets or [])
        logger.info(f"Listening on: {addrs}")

        try:
            async with self._server:
                await self._server.serve_forever()
        except asyncio.CancelledError:
            # Expected during shutdown/fixture cleanup
            logger.debug("Server start cancelled")
        finally:
            self._running = False

    async def stop(self) -> None:
        """
        Stop the server gracefully.

        Cancels the timers, closes the listener, waits for pending snapshot
        writes and, when periodic saving is enabled, writes a final snapshot.
        """
        for task in self._timers:
            task.cancel()
        if self._timers:
            await asyncio.gather(*self._timers, return_exceptions=True)
        self._timers = []

        if self._server is None:
            return

        self._server.close()
        try:
            await self._server.wait_closed()
        finally:
            self._server = None
            self._running = False

        await self.persistence.drain()
        if self.save_interval:
            self.persistence.save()

    def is_running(self) -> bool:
        """Check if the server is currently running."""
        return self._running

    @property
    def sockets(self):
        """Listening sockets (useful when bound to port 0)."""
        return self._server.sockets if self._server is not None else []


async def run_server(**kwargs) -> None:
    """
    Convenience function to create and run the server.

    Usage:
        asyncio.run(run_server(port=6379, filename='persist.db'))
    """
    server = KVServer(**kwargs)

    try:
        await server.start()
    except asyncio.CancelledError:
        logger.info("Server shutdown requested")
    finally:
        await server.stop()
