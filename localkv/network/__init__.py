"""Network module for localkv."""

from .connection import Connection, ConnectionState, SnapshotSink, StreamSink

__all__ = ["Connection", "ConnectionState", "SnapshotSink", "StreamSink"]
