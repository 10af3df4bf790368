"""
Keyspace Store Module

This module implements the shared key-value storage behind every connection.

The keyspace is a plain mapping of key -> Entry. Expiry is recorded as an
absolute epoch timestamp in milliseconds, but reads never check it: expired
entries stay visible until the ExpiryReaper removes them.
"""

import time
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional, Tuple


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


@dataclass
class Entry:
    """
    A stored value.

    Attributes:
        value: Opaque byte string (always reported as type "string")
        expire_at: Absolute expiry in epoch milliseconds, None = never expires
    """
    value: bytes
    expire_at: Optional[int] = None

    def is_expired(self, now: int) -> bool:
        """Check whether the expiry has strictly passed at ``now``."""
        return self.expire_at is not None and self.expire_at < now


class Keyspace:
    """
    In-memory keyspace shared by all connections.

    All operations run on the event loop thread, one command at a time, so
    no locking is needed.

    Internal Storage:
        Uses a dict for O(1) lookups.
        Format: key -> Entry

    Attributes:
        dirty: True when there are mutations not yet written to a snapshot
    """

    def __init__(self, clock: Callable[[], int] = None):
        """
        Initialize the keyspace.

        Args:
            clock: Callable returning epoch milliseconds (default: wall clock)
        """
        self._clock = clock if clock is not None else now_ms
        self._data: Dict[str, Entry] = {}
        self.dirty = False

    def now(self) -> int:
        """Current time in epoch milliseconds according to the keyspace clock."""
        return self._clock()

    def get(self, key: str) -> Optional[Entry]:
        """
        Look up the entry for a key.

        Expiry is not checked here; a key past its expiry is returned until
        the reaper sweeps it.
        """
        return self._data.get(key)

    def set(self, key: str, value: bytes, expire_at: Optional[int] = None) -> None:
        """Store a value, replacing any existing entry and its expiry."""
        self._data[key] = Entry(value=value, expire_at=expire_at)
        self.dirty = True

    def set_many(self, pairs: Iterable[Tuple[str, bytes]]) -> None:
        """Store several values without expiry."""
        for key, value in pairs:
            self._data[key] = Entry(value=value)
        self.dirty = True

    def delete(self, keys: Iterable[str]) -> int:
        """
        Delete every existing key among ``keys``.

        Returns:
            Number of keys removed
        """
        removed = 0
        for key in keys:
            if self._data.pop(key, None) is not None:
                removed += 1
        if removed:
            self.dirty = True
        return removed

    def expire_at(self, key: str, stamp: int) -> bool:
        """
        Set the absolute expiry of an existing key.

        Returns:
            True if the key existed, False otherwise (nothing is changed)
        """
        entry = self._data.get(key)
        if entry is None:
            return False
        entry.expire_at = stamp
        self.dirty = True
        return True

    def clear(self) -> None:
        """Remove all keys."""
        self._data.clear()
        self.dirty = True

    def keys(self) -> List[str]:
        """Snapshot of the current keys."""
        return list(self._data)

    def items(self) -> List[Tuple[str, Entry]]:
        """Snapshot of the current (key, entry) pairs."""
        return list(self._data.items())

    def remove(self, key: str) -> None:
        """Drop a key without touching the dirty flag (used by expiry)."""
        self._data.pop(key, None)

    def mark_clean(self) -> None:
        """Clear the dirty flag."""
        self.dirty = False

    def __contains__(self, key: str) -> bool:
        return key in self._data

    def __len__(self) -> int:
        return len(self._data)
