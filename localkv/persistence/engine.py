"""
Persistence Engine

Snapshots are written and read by running the normal protocol pipeline:

    save: DUMPALL + QUIT are fed to a Connection whose sink captures the
          replies; the captured transcript (FLUSHDB followed by one SET per
          live key) is the snapshot file.
    load: the snapshot file is fed to a Connection with no sink, so every
          SET replays against the keyspace.

The snapshot format is therefore exactly the wire format, and there is no
separate serializer.
"""

import asyncio
import logging
import os
from typing import Optional, Set

from ..cache.store import Keyspace
from ..network.connection import Connection, SnapshotSink
from ..protocol.commands import ProtocolError
from ..protocol.encoder import encode_reply

logger = logging.getLogger(__name__)

SAVE_SCRIPT = encode_reply(["DUMPALL"]) + encode_reply(["QUIT"])


class PersistenceEngine:
    """
    Snapshot writer and loader for a keyspace.

    Usage:
        engine = PersistenceEngine(keyspace, "persist.db")
        engine.load()                          # at startup
        engine.save()                          # synchronous write
        await engine.save_async()              # write off the event loop
        asyncio.create_task(engine.run(10))    # periodic saves
        await engine.drain()                   # before shutdown

    Attributes:
        keyspace: The Keyspace to snapshot
        filename: Snapshot path, or None to disable persistence
    """

    def __init__(self, keyspace: Keyspace, filename: Optional[str] = None):
        self.keyspace = keyspace
        self.filename = filename
        self._writing = False
        self._pending: Optional[asyncio.Future] = None
        self._tasks: Set[asyncio.Task] = set()

    @property
    def writing(self) -> bool:
        """True while a worker-thread snapshot write is outstanding."""
        return self._writing

    def dump(self) -> bytes:
        """Run DUMPALL through the pipeline and return the transcript bytes."""
        sink = SnapshotSink()
        saver = Connection(self.keyspace, sink, name="SAVER", quiet=True)
        saver.feed(SAVE_SCRIPT)
        return sink.getvalue()

    def _prepare(self) -> Optional[bytes]:
        if not self.filename or not self.keyspace.dirty:
            return None
        self.keyspace.mark_clean()
        logger.info(f"Saving: {self.filename}")
        return self.dump()

    def _write(self, payload: bytes) -> None:
        tmp_path = f"{self.filename}.tmp"
        with open(tmp_path, "wb") as fh:
            fh.write(payload)
        os.replace(tmp_path, self.filename)

    def save(self) -> bool:
        """
        Write a snapshot now if the keyspace is dirty.

        Returns:
            True if a snapshot was written
        """
        if self._writing:
            logger.info("Save skipped: a snapshot write is already in progress")
            return False
        payload = self._prepare()
        if payload is None:
            return False
        try:
            self._write(payload)
        except OSError:
            logger.exception(f"Save error: {self.filename}")
            self.keyspace.dirty = True
            return False
        return True

    async def save_async(self) -> bool:
        """
        Write a snapshot without blocking the event loop.

        The transcript is built on the loop thread; only the file write runs
        in a worker thread. A request made while a write is outstanding is
        skipped.

        Cancelling the caller does not cancel the write: the thread cannot be
        stopped, so ``writing`` stays True until it has finished.

        Returns:
            True if a snapshot was written
        """
        if self._writing:
            logger.info("Save skipped: a snapshot write is already in progress")
            return False
        payload = self._prepare()
        if payload is None:
            return False
        self._writing = True
        pending = asyncio.ensure_future(asyncio.to_thread(self._write, payload))
        pending.add_done_callback(self._write_done)
        self._pending = pending
        try:
            await asyncio.shield(pending)
        except OSError:
            return False
        return True

    def _write_done(self, future: asyncio.Future) -> None:
        self._writing = False
        self._pending = None
        if future.cancelled():
            return
        exc = future.exception()
        if exc is not None:
            logger.error(f"Save error: {self.filename}", exc_info=exc)
            self.keyspace.dirty = True

    def request_save(self) -> None:
        """Save hook for the SAVE command: async on a running loop, else inline."""
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self.save()
            return
        task = loop.create_task(self.save_async())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def drain(self) -> None:
        """Wait for requested saves and any outstanding file write to finish."""
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        if self._pending is not None:
            await asyncio.wait([self._pending])

    def load(self) -> bool:
        """
        Replay the snapshot file into the keyspace.

        A missing or unreadable file leaves the keyspace empty. A corrupt file
        clears whatever was replayed before the fault.

        Returns:
            True if a snapshot was loaded
        """
        if not self.filename:
            return False
        logger.info(f"Loading: {self.filename}")
        try:
            with open(self.filename, "rb") as fh:
                data = fh.read()
        except OSError as exc:
            logger.info(f"Load error: {exc}")
            return False

        loader = Connection(self.keyspace, None, name="LOADER", quiet=True)
        try:
            loader.feed(data)
        except ProtocolError as exc:
            logger.error(f"Load error: {self.filename} is corrupt ({exc})")
            self.keyspace.clear()
            self.keyspace.mark_clean()
            return False
        loader.close("Ended")
        self.keyspace.mark_clean()
        logger.info(f"Loaded {len(self.keyspace)} keys")
        return True

    async def run(self, interval: float) -> None:
        """Attempt a save every ``interval`` seconds until cancelled."""
        while True:
            await asyncio.sleep(interval)
            await self.save_async()
