"""Root logger configuration for command-line runs.

Library modules only ever call ``logging.getLogger(__name__)``; the CLI
calls ``configure_logging`` once at start-up.  Log lines go to stderr so
that stdout stays free for command output (``features`` prints JSON).
"""

from __future__ import annotations

import logging
import sys

from i18n_consensus.config import LoggingSettings

FORMATS = {
    "simple": "%(levelname)s: %(message)s",
    "detailed": "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
}

# httpx logs every request at INFO; the oracle already records its calls.
_NOISY_LOGGERS = ("httpx", "httpcore")


def configure_logging(settings: LoggingSettings, *, verbose: bool = False) -> None:
    """Apply ``settings`` to the root logger.

    Args:
        settings: Level name and format key.
        verbose:  Force DEBUG regardless of ``settings.level``.
    """
    level_name = "DEBUG" if verbose else settings.level.upper()
    level = logging.getLevelName(level_name)
    if not isinstance(level, int):
        level = logging.INFO

    logging.basicConfig(
        level=level,
        format=FORMATS.get(settings.format, FORMATS["detailed"]),
        datefmt="%H:%M:%S",
        stream=sys.stderr,
        force=True,
    )
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))
