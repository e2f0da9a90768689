"""Logging configuration for doctree-sync."""

import sys
from typing import TextIO

from loguru import logger


def configure_logging(*, verbose: bool = False, sink: TextIO = sys.stderr) -> None:
    """Configure loguru with appropriate level.

    Verbose mode shows the diagnostic trace of every resolver, enumerator and
    reconciler step, prefixed with the emitting module.
    """
    logger.remove()
    if verbose:
        logger.add(sink, level="DEBUG", format="{level.icon} {name}: {message}")
    else:
        logger.add(sink, level="INFO", format="{level.icon} {message}")
