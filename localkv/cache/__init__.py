"""Cache module for localkv."""

from .expiry import ExpiryReaper
from .store import Entry, Keyspace

__all__ = ["Entry", "ExpiryReaper", "Keyspace"]
