"""
=============================================================================
METRICS SERVER CLI ENTRY POINT
=============================================================================

Run the server standalone, optionally serving a file that some other
process keeps rewriting (a "textfile" exporter).

=============================================================================
USAGE
=============================================================================

    # Serve an empty payload on localhost:9100
    python -m metrics_server

    # Listen on all interfaces
    python -m metrics_server --address 0.0.0.0:9100

    # Serve a file, re-read every 10 seconds
    python -m metrics_server --file /var/lib/node/metrics.prom --interval 10

=============================================================================
"""

import argparse
import logging
import sys
from typing import Optional

from . import __version__
from .buffer import PoisonedLockError
from .config import ServerConfig
from .server import MetricsServer, ServingLoop


logger = logging.getLogger("metrics_server")


def setup_logging(level_name: str):
    """Configure root logging the same way for every entry point."""
    level = getattr(logging, level_name.upper(), logging.INFO)

    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    logging.getLogger("metrics_server").setLevel(level)


def build_parser() -> argparse.ArgumentParser:
    defaults = ServerConfig.from_env()

    parser = argparse.ArgumentParser(
        prog="metrics-server",
        description="Serve a metrics snapshot over HTTP for scrapers",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m metrics_server                          # 127.0.0.1:9100, empty payload
  python -m metrics_server -a 0.0.0.0:9100          # All interfaces
  python -m metrics_server -f metrics.prom -i 10    # Serve a file, reload every 10s
        """
    )

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK ARGUMENTS
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--address", "-a",
        default=defaults.address,
        help=f"host:port to listen on (default: {defaults.address})"
    )

    parser.add_argument(
        "--path",
        default=defaults.metrics_path,
        help=f"Path to serve metrics on (default: {defaults.metrics_path})"
    )

    parser.add_argument(
        "--timeout", "-t",
        type=float,
        default=defaults.timeout,
        help="Per-connection timeout in seconds (default: none)"
    )

    # ─────────────────────────────────────────────────────────────────────
    # PAYLOAD ARGUMENTS
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--file", "-f",
        default=None,
        help="File whose contents are served (default: empty payload)"
    )

    parser.add_argument(
        "--interval", "-i",
        type=float,
        default=5.0,
        help="Seconds between re-reads of --file (default: 5)"
    )

    # ─────────────────────────────────────────────────────────────────────
    # META ARGUMENTS
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--log-level", "-l",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=defaults.log_level.upper(),
        help=f"Logging level (default: {defaults.log_level.upper()})"
    )

    parser.add_argument(
        "--version", "-v",
        action="version",
        version=f"metrics-server {__version__}"
    )

    return parser


def load_file(server: MetricsServer, path: str) -> Optional[int]:
    """
    Push the contents of path into the server.

    A missing or unreadable file keeps the previous payload.

    Returns:
        Bytes stored, or None if the file could not be read.
    """
    try:
        with open(path, "rb") as f:
            data = f.read()
    except OSError as e:
        logger.error(f"Cannot read {path}: {e}")
        return None

    return server.update(data)


def run_producer(server: MetricsServer, loop: ServingLoop, path: Optional[str], interval: float):
    """
    Keep the payload fresh until the serving loop stops.

    Without a file there is nothing to refresh; just wait.
    """
    if path is None:
        loop.wait_for_shutdown()
        return

    while loop.is_running:
        stored = load_file(server, path)
        if stored is not None:
            logger.debug(f"Loaded {stored} bytes from {path}")
        if loop.wait_for_shutdown(interval):
            break


def main(argv=None) -> int:
    """
    Main CLI entry point.

    Returns:
        Process exit code.
    """
    args = build_parser().parse_args(argv)

    setup_logging(args.log_level)

    try:
        config = ServerConfig(
            address=args.address,
            metrics_path=args.path,
            timeout=args.timeout,
            log_level=args.log_level,
        )
        server = MetricsServer(config)
        loop = server.serve()
    except (ValueError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    try:
        run_producer(server, loop, args.file, args.interval)
    except KeyboardInterrupt:
        logger.info("Received keyboard interrupt")
        loop.shutdown()
        loop.wait_for_shutdown(timeout=5.0)
        return 0
    except PoisonedLockError as e:
        logger.critical(f"Stopping: {e}")
        return 1

    # The serving thread only exits on its own when something went fatally wrong
    return 1


if __name__ == "__main__":
    sys.exit(main())
