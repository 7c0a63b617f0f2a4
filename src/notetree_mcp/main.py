#!/usr/bin/env python
"""Main entry point for the Notetree MCP server."""
import argparse
import atexit
import logging
import os
import sys
from pathlib import Path

from notetree_mcp.config import config
from notetree_mcp.exceptions import ConfigurationError
from notetree_mcp.models.db_models import init_db
from notetree_mcp.observability import configure_logging, metrics
from notetree_mcp.server.mcp_server import NotetreeMcpServer


def parse_args(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(description="Notetree MCP Server")
    parser.add_argument(
        "--database-path",
        help="SQLite database file path",
        type=str,
        default=os.environ.get("NOTETREE_DATABASE_PATH")
    )
    parser.add_argument(
        "--log-dir",
        help="Directory for rotating log files",
        type=str,
        default=os.environ.get("NOTETREE_LOG_DIR")
    )
    parser.add_argument(
        "--log-level",
        help="Logging level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=os.environ.get("NOTETREE_LOG_LEVEL", "INFO")
    )
    return parser.parse_args(argv)


def update_config(args):
    """Update the global config with command line arguments.

    Raises:
        ConfigurationError: If the database path points at a directory.
    """
    if args.database_path:
        database_path = Path(args.database_path)
        if database_path.is_dir():
            raise ConfigurationError(
                f"Database path is a directory: {database_path}",
                config_key="database_path",
            )
        config.database_path = database_path
    if args.log_dir:
        config.log_dir = Path(args.log_dir)


def _save_metrics_on_exit():
    """Save metrics to disk on server shutdown."""
    try:
        if metrics.save_metrics():
            logging.getLogger(__name__).info("Metrics saved to disk on shutdown")
    except Exception as e:
        logging.getLogger(__name__).warning(f"Failed to save metrics on shutdown: {e}")


def main():
    """Run the Notetree MCP server."""
    args = parse_args()
    try:
        update_config(args)
    except ConfigurationError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        sys.exit(2)

    # Configure logging (console + persistent file logging with rotation)
    log_level = getattr(logging, args.log_level.upper(), logging.INFO)
    try:
        log_dir = configure_logging(level=log_level, console=True)
    except Exception as e:
        # Fall back to basic console logging if file logging fails
        logging.basicConfig(level=log_level)
        logging.getLogger(__name__).warning(f"Failed to configure file logging: {e}")
        log_dir = None

    logger = logging.getLogger(__name__)
    if log_dir:
        logger.info(f"Persistent logging enabled: {log_dir}")
        metrics.set_metrics_file(log_dir.parent / "metrics.json")

    # Register metrics save on shutdown
    atexit.register(_save_metrics_on_exit)

    # Initialize database schema; one engine shared by all repositories
    try:
        logger.info(f"Using SQLite database: {config.get_db_url()}")
        engine = init_db()
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")
        sys.exit(1)

    try:
        logger.info("Starting Notetree MCP server")
        server = NotetreeMcpServer(engine=engine)
        server.run()
    except Exception as e:
        logger.error(f"Error running server: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
