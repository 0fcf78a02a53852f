#!/usr/bin/env python3
"""
Start the tabulation web server.

The POST endpoints work without a database; the stored-election endpoints
need --db (or RCV_DATABASE_PATH) pointing at a store built by load_ballots.py.
"""

import argparse
import logging
import os
import socket
import sys
from pathlib import Path

import uvicorn

# Add src to path so we can import our modules
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from web.main import SEED_ENV_VAR, set_database_path  # noqa: E402

logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


def find_free_port(host, first_port, attempts=10):
    """First port in [first_port, first_port + attempts) that can be bound."""
    for port in range(first_port, first_port + attempts):
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
            try:
                sock.bind((host, port))
            except OSError:
                continue
            return port
    return None


def main():
    parser = argparse.ArgumentParser(description="Start the tabulation web server")
    parser.add_argument("--db", help="Path to DuckDB ballot store (optional)")
    parser.add_argument("--seed", help="Default seed for stored-election counts")
    parser.add_argument("--host", default="127.0.0.1", help="Host to bind to")
    parser.add_argument("--port", type=int, default=8000, help="Port to bind to")
    parser.add_argument(
        "--reload", action="store_true", help="Enable auto-reload for development"
    )
    parser.add_argument(
        "--auto-port",
        action="store_true",
        help="Use the next free port if --port is taken",
    )

    args = parser.parse_args()

    if args.db:
        db_path = Path(args.db)
        if not db_path.exists():
            logger.error(f"Database file not found: {db_path}")
            sys.exit(1)
        set_database_path(str(db_path.absolute()))

    if args.seed:
        os.environ[SEED_ENV_VAR] = args.seed

    port = args.port
    if args.auto_port:
        port = find_free_port(args.host, args.port)
        if port is None:
            logger.error(f"No free port found starting from {args.port}")
            sys.exit(1)
        if port != args.port:
            logger.warning(f"Port {args.port} is taken, using {port}")

    logger.info(f"Serving on http://{args.host}:{port}")
    uvicorn.run("web.main:app", host=args.host, port=port, reload=args.reload)


if __name__ == "__main__":
    main()
