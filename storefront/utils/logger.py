"""
Logging for the storefront service.

Every module logs under the "storefront" namespace:
    logger = get_logger("catalogue.snapshot")   # -> storefront.catalogue.snapshot

Level comes from LOG_LEVEL (default INFO) and can be changed at runtime with
set_level(), e.g. by the maintenance scripts' --verbose flag.
"""
import logging
import os
import sys

ROOT_NAME = "storefront"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def _build_root() -> logging.Logger:
    root = logging.getLogger(ROOT_NAME)
    level = os.getenv("LOG_LEVEL", "INFO").upper()
    root.setLevel(level)

    if not root.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT))
        root.addHandler(handler)

    # uvicorn installs its own root handlers; keep our lines single
    root.propagate = False
    return root


logger = _build_root()


def set_level(level: str) -> None:
    """Change the level of every storefront logger."""
    logger.setLevel(level.upper())


def get_logger(name: str = None) -> logging.Logger:
    """
    Get a logger instance.

    Args:
        name: Dotted component name, appended to 'storefront'

    Returns:
        Logger instance
    """
    if name:
        return logging.getLogger(f"{ROOT_NAME}.{name}")
    return logger
