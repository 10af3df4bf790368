#!/usr/bin/env python3
"""
localkv Server Entry Point

This is the main entry point for starting the localkv server.

Usage:
    python -m localkv.server                      # Default settings (127.0.0.1:6379)
    python -m localkv.server --port 6380          # Custom port
    python -m localkv.server -a 0.0.0.0           # Custom bind address
    python -m localkv.server --no-save            # No periodic snapshots
    python -m localkv.server data.db              # Custom snapshot file
    python -m localkv.server --debug              # Enable debug logging

Environment Variables:
    LOCALKV_HOST             - Server bind address
    LOCALKV_PORT             - Server port
    LOCALKV_FILENAME         - Snapshot file
    LOCALKV_SAVE_INTERVAL    - Seconds between snapshots (0 = disabled)
    LOCALKV_EXPIRE_INTERVAL  - Seconds between expiry sweeps
    LOCALKV_DEBUG            - Enable debug mode (true/false)
"""

import argparse
import asyncio
import logging
import signal
import sys
from typing import List, Optional

from .config.settings import settings
from .network.tcp_server import KVServer


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="localkv: In-Memory Key-Value Store Server",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )

    parser.add_argument(
        "-a", "--address",
        type=str,
        default=settings.HOST,
        help="Host address to bind to",
    )

    parser.add_argument(
        "-p", "--port",
        type=int,
        default=settings.PORT,
        help="Port number to listen on",
    )

    parser.add_argument(
        "-i", "--save-interval",
        type=int,
        default=settings.SAVE_INTERVAL,
        help="Seconds between snapshot saves",
    )

    parser.add_argument(
        "-n", "--no-save",
        dest="save_interval",
        action="store_const",
        const=0,
        help="Disable periodic snapshot saves",
    )

    parser.add_argument(
        "-e", "--expire-interval",
        type=int,
        default=settings.EXPIRE_INTERVAL,
        help="Seconds between expiry sweeps",
    )

    parser.add_argument(
        "-f", "--filename",
        type=str,
        default=None,
        help=f"Snapshot file (default: {settings.FILENAME})",
    )

    parser.add_argument(
        "snapshot",
        nargs="?",
        default=None,
        help="Snapshot file, same as --filename",
    )

    parser.add_argument(
        "--debug",
        action="store_true",
        default=settings.DEBUG,
        help="Enable debug logging",
    )

    args = parser.parse_args(argv)
    args.filename = args.filename or args.snapshot or settings.FILENAME
    return args


def setup_logging(debug: bool = False) -> None:
    """Configure logging based on debug flag."""
    level = logging.DEBUG if debug else getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)

    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler(sys.stdout),
        ]
    )


def main(argv: Optional[List[str]] = None) -> None:
    """Main entry point for the server."""
    args = parse_args(argv)

    setup_logging(debug=args.debug)
    logger = logging.getLogger(__name__)

    server = KVServer(
        host=args.address,
        port=args.port,
        filename=args.filename,
        save_interval=args.save_interval,
        expire_interval=args.expire_interval,
    )

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)

    async def shutdown(sig: signal.Signals) -> None:
        """Handle shutdown signal."""
        logger.info(f"Received signal {sig.name}, initiating shutdown...")
        await server.stop()

    # Register signal handlers (Unix only)
    if sys.platform != 'win32':
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(
                sig,
                lambda s=sig: asyncio.create_task(shutdown(s))
            )

    logger.info("Starting localkv server")
    logger.info(f"  Address: {args.address}")
    logger.info(f"  Port: {args.port}")
    logger.info(f"  Snapshot: {args.filename}")
    logger.info(f"  Save interval: {args.save_interval or 'disabled'}")
    logger.info(f"  Expire interval: {args.expire_interval or 'disabled'}")

    try:
        loop.run_until_complete(server.start())
    except KeyboardInterrupt:
        logger.info("Keyboard interrupt received")
        loop.run_until_complete(server.stop())
    except Exception as e:
        logger.error(f"Server error: {e}")
        raise
    finally:
        loop.run_until_complete(loop.shutdown_asyncgens())
        loop.close()
        logger.info("Server shutdown complete")


if __name__ == "__main__":
    main()
