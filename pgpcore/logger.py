"""Logging setup for the pgpcore package."""

import json
import logging
import os
import sys
import time

ROOT_LOGGER = "pgpcore"


def configure_logging(level: str | int = logging.WARNING, to_file: str | None = None) -> logging.Logger:
    """Attach a structured handler to the package logger.

    Modules log through ``logging.getLogger(__name__)``; this only decides
    where those records go. Calling it again updates the level but does not
    add handlers twice.
    """
    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(level.upper() if isinstance(level, str) else level)

    if not logger.handlers:
        handler = logging.StreamHandler(sys.stderr)
        formatter = logging.Formatter(
            fmt=json.dumps({
                "ts": "%(asctime)s",
                "level": "%(levelname)s",
                "name": "%(name)s",
                "msg": "%(message)s"
            }),
            datefmt="%Y-%m-%dT%H:%M:%SZ",
        )
        formatter.converter = time.gmtime  # UTC timestamps
        handler.setFormatter(formatter)
        logger.addHandler(handler)

        if to_file:
            os.makedirs(os.path.dirname(to_file) or ".", exist_ok=True)
            file_handler = logging.FileHandler(to_file)
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)

    return logger
