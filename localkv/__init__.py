"""
localkv: In-Memory Key-Value Store

A single-process key-value server for local development and testing,
speaking the RESP wire protocol over TCP with Python asyncio, and
persisting snapshots by replaying its own command transcript.
"""

__version__ = "1.0.0"
