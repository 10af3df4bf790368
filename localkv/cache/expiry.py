"""
Expiry Reaper Module

Active expiration of keys. This is the only automatic removal path: commands
do not check expiry when they read a key.
"""

import asyncio
import logging

from .store import Keyspace

logger = logging.getLogger(__name__)


class ExpiryReaper:
    """
    Periodic sweep that removes keys whose expiry has passed.

    Usage:
        reaper = ExpiryReaper(keyspace)
        reaper.sweep()                       # one pass
        asyncio.create_task(reaper.run(5))   # every 5 seconds
    """

    def __init__(self, keyspace: Keyspace):
        self.keyspace = keyspace

    def sweep(self) -> int:
        """
        Remove every entry whose expiry is strictly before now.

        Returns:
            Number of keys removed
        """
        now = self.keyspace.now()
        expired = [key for key, entry in self.keyspace.items() if entry.is_expired(now)]
        for key in expired:
            logger.info(f"Expired: {key}")
            self.keyspace.remove(key)
        return len(expired)

    async def run(self, interval: float) -> None:
        """Sweep every ``interval`` seconds until cancelled."""
        while True:
            await asyncio.sleep(interval)
            self.sweep()
