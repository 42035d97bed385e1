"""
Run the hook server directly.

Usage:
    python -m hooksync.server
    python -m hooksync.server --host 0.0.0.0 --port 8000
"""

import argparse

from ..logging_config import setup_logging
from .app import run_server


def main():
    parser = argparse.ArgumentParser(description="GitHub Hook Sync server")
    parser.add_argument("--host", default="127.0.0.1", help="Bind address")
    parser.add_argument("--port", type=int, default=5055, help="Port (default: 5055)")
    parser.add_argument("--debug", action="store_true", help="Enable debug mode")

    args = parser.parse_args()

    setup_logging()
    run_server(host=args.host, port=args.port, debug=args.debug)


if __name__ == "__main__":
    main()
