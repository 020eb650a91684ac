"""Process entry point: ``python -m tezos_indexer {api|job|service}``."""

import argparse
import sys
from typing import List, Optional

import structlog

from tezos_indexer.core.config import load_settings
from tezos_indexer.core.errors import ConfigError
from tezos_indexer.core.logging import setup_logging
from tezos_indexer.main import ROLE_SERVICE, ROLES, create_app
from tezos_indexer.server import build_server

logger = structlog.get_logger()


def main(argv: Optional[List[str]] = None) -> int:
    """Parse arguments, load configuration and serve until a signal arrives."""
    parser = argparse.ArgumentParser(
        prog="tezos_indexer",
        description="Tezos delegation indexer",
    )
    parser.add_argument(
        "role",
        nargs="?",
        choices=ROLES,
        default=ROLE_SERVICE,
        help="api: read API only, job: poller only, service: both (default)",
    )
    parser.add_argument(
        "--config",
        "-c",
        default=None,
        help="Path to the YAML configuration file (default: $TZINDEX_CONFIG or config/config.yaml)",
    )
    args = parser.parse_args(argv)

    try:
        settings = load_settings(args.config)
    except ConfigError as e:
        print(f"configuration error: {e}", file=sys.stderr)
        return 1

    setup_logging(settings.logging)

    try:
        app = create_app(args.role, settings)
    except ConfigError as e:
        logger.error("Invalid configuration", error=str(e))
        return 1

    server = build_server(
        app,
        host=settings.server.host,
        port=settings.server.port,
        shutdown_timeout=settings.shutdown_timeout.total_seconds(),
    )
    server.run()
    if not server.started:
        # Startup failed: lifespan error or the port could not be bound
        return 3
    return 0


if __name__ == "__main__":
    sys.exit(main())
