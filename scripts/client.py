#!/usr/bin/env python3
"""
Interactive Test Client for localkv

A simple command-line client for manually testing the localkv server.
Commands are sent as RESP arrays of bulk strings; replies are decoded with
the server's own FrameDecoder.

Usage:
    python scripts/client.py                  # Connect to localhost:6379
    python scripts/client.py --host 1.2.3.4   # Connect to specific host
    python scripts/client.py --port 6380      # Connect to specific port

Commands:
    Any supported command, e.g. SET key value EX 60, GET key, SCAN 0
    help                      - Show this help
    exit                      - Exit client
"""

import argparse
import shlex
import socket
import sys

# Enable command history with arrow keys (works on Unix systems)
try:
    import readline  # noqa: F401
except ImportError:
    pass  # readline not available on Windows by default

from localkv.protocol.commands import ErrorReply
from localkv.protocol.decoder import FrameDecoder
from localkv.protocol.encoder import encode_reply


class LocalKVClient:
    """Simple blocking TCP client for localkv."""

    def __init__(self, host: str, port: int, timeout: float = 5.0):
        self.host = host
        self.port = port
        self.timeout = timeout
        self.socket = None
        self._replies = []
        self._decoder = FrameDecoder(self._replies.append)

    def connect(self) -> bool:
        """Connect to the server."""
        try:
            self.socket = socket.create_connection((self.host, self.port), self.timeout)
            self._replies.clear()
            self._decoder = FrameDecoder(self._replies.append)
            return True
        except OSError as e:
            print(f"Connection error: {e}")
            return False

    def disconnect(self):
        """Disconnect from the server."""
        if self.socket:
            try:
                self.socket.close()
            except OSError:
                pass
            self.socket = None

    def send_command(self, *parts: str):
        """Send a command and return the decoded reply."""
        if not self.socket:
            raise ConnectionError("Not connected")

        self.socket.sendall(encode_reply([part.encode("utf-8") for part in parts]))

        while not self._replies:
            chunk = self.socket.recv(4096)
            if not chunk:
                raise ConnectionError("Connection closed by server")
            self._decoder.feed(chunk)
        return self._replies.pop(0)

    def drain_replies(self) -> list:
        """Return and clear replies already decoded beyond the last one read."""
        replies = list(self._replies)
        self._replies.clear()
        return replies

    def __enter__(self):
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.disconnect()


def format_reply(reply, indent: int = 0) -> str:
    """Render a reply the way redis-cli does."""
    pad = " " * indent
    if reply is None:
        return f"{pad}(nil)"
    if isinstance(reply, ErrorReply):
        return f"{pad}(error) {reply}"
    if isinstance(reply, str):
        return f"{pad}{reply}"
    if isinstance(reply, int):
        return f"{pad}(integer) {reply}"
    if isinstance(reply, bytes):
        return f'{pad}"{reply.decode("utf-8", "backslashreplace")}"'
    if not reply:
        return f"{pad}(empty array)"
    lines = []
    for i, item in enumerate(reply, 1):
        rendered = format_reply(item, indent + 3).lstrip()
        lines.append(f"{pad}{i}) {rendered}")
    return "\n".join(lines)


def print_help():
    """Print help message."""
    print("""
localkv Commands:
-----------------
  PING | ECHO v | INFO | SAVE | SELECT 0 | DBSIZE | FLUSHALL | FLUSHDB
  SET k v [EX s|PX ms] [NX|XX]   SETEX k s v   PSETEX k ms v
  GET k   MGET k...   MSET k v...   MSETNX k v...   DEL k...
  EXISTS k   TYPE k   KEYS pattern   SCAN cursor [COUNT n] [MATCH pattern]
  EXPIRE k s   PEXPIRE k ms   EXPIREAT k unix_ms   TTL k   PTTL k
  CLIENT SETNAME name | CLIENT GETNAME   DUMPALL   QUIT

Client Commands:
----------------
  help                      Show this help message
  exit                      Exit the client
  reconnect                 Reconnect to the server
""")


def main():
    parser = argparse.ArgumentParser(
        description="Interactive test client for localkv"
    )
    parser.add_argument(
        "--host",
        type=str,
        default="localhost",
        help="Server host (default: localhost)"
    )
    parser.add_argument(
        "--port",
        type=int,
        default=6379,
        help="Server port (default: 6379)"
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=5.0,
        help="Socket timeout in seconds (default: 5.0)"
    )

    args = parser.parse_args()

    print(f"Connecting to {args.host}:{args.port}...")

    client = LocalKVClient(args.host, args.port, args.timeout)

    if not client.connect():
        print("Failed to connect. Is the server running?")
        print(f"  Try: python -m localkv.server --port {args.port}")
        sys.exit(1)

    print("Connected! Type 'help' for commands.\n")

    try:
        while True:
            try:
                line = input(f"{args.host}:{args.port}> ").strip()
            except EOFError:
                print("\nGoodbye!")
                break

            if not line:
                continue

            lower_cmd = line.lower()
            if lower_cmd == "help":
                print_help()
                continue
            if lower_cmd == "exit":
                break
            if lower_cmd == "reconnect":
                client.disconnect()
                print("Reconnected!" if client.connect() else "Reconnection failed.")
                continue

            try:
                parts = shlex.split(line)
            except ValueError as e:
                print(f"Invalid input: {e}")
                continue

            try:
                reply = client.send_command(*parts)
            except OSError as e:
                if parts[0].upper() == "QUIT":
                    print("Goodbye!")
                    break
                print(f"Error: {e}")
                continue

            print(format_reply(reply))
            # DUMPALL answers with several replies
            for extra in client.drain_replies():
                print(format_reply(extra))

    except KeyboardInterrupt:
        print("\n\nInterrupted. Goodbye!")
    finally:
        client.disconnect()


if __name__ == "__main__":
    main()
