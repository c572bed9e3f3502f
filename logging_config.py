"""Logging configuration for the application."""

import logging
import sys

RELEASE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DEVELOPMENT_FORMAT = "%(asctime)s - %(name)s:%(lineno)d - %(levelname)s - %(message)s"


def setup_logging(level: str = "INFO", app_env: str = "development") -> None:
    """
    Configure application logging.

    Development runs get the module line number in every record; release
    runs keep the compact format.

    Args:
        level: Logging level (default: INFO)
        app_env: Application environment, "development" or "release"
    """
    log_format = RELEASE_FORMAT if app_env == "release" else DEVELOPMENT_FORMAT
    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format=log_format,
        datefmt="%Y-%m-%d %H:%M:%S",
        handlers=[
            logging.StreamHandler(sys.stdout),
        ],
        force=True,
    )
    # aio-pika and aiormq are chatty at INFO during reconnects
    logging.getLogger("aiormq").setLevel(logging.WARNING)
    logging.getLogger("aio_pika").setLevel(logging.WARNING)
