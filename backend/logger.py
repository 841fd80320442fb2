"""Logging configuration for the audit backend."""

import logging
import os
import sys

ROOT_LOGGER_NAME = "authority_audit"


def setup_logger(name: str = ROOT_LOGGER_NAME, level: int | str | None = None) -> logging.Logger:
    """Configure and return the root service logger.

    Safe to call repeatedly; handlers are only attached once.
    """
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger

    if level is None:
        level = os.getenv("LOG_LEVEL", "INFO").strip().upper() or "INFO"
    logger.setLevel(level)

    formatter = logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)
    logger.addHandler(handler)
    return logger


logger = setup_logger()


def get_module_logger(module_name: str) -> logging.Logger:
    """Child logger such as ``authority_audit.scraper``."""
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{module_name}")
