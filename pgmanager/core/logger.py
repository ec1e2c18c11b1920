"""Logging setup shared by the API server and the CLI."""

import logging

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"


def setup_logging(debug: bool = False) -> None:
    """Configure the root logger once per process."""
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format=LOG_FORMAT,
    )
    # SQL echo is controlled by the engine, not by our log level.
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
