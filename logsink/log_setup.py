"""Logger setup — stdlib logging with an extra TRACE level below DEBUG."""

import logging
import sys

TRACE = 5
logging.addLevelName(TRACE, "TRACE")

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DEBUG_LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s (%(filename)s:%(lineno)d): %(message)s"

_LEVEL_ALIASES = {
    TRACE: ("trace", "t", "0"),
    logging.DEBUG: ("debug", "d", "1"),
    logging.INFO: ("info", "information", "i", "2"),
    logging.WARNING: ("warn", "warning", "w", "3"),
    logging.ERROR: ("error", "err", "e", "4"),
}


def parse_level(value: str) -> int:
    """Map a LOG_LEVEL string (name, letter or digit) to a logging level.

    Unrecognized values fall back to INFO.
    """
    value = (value or "").strip().lower()
    for level, aliases in _LEVEL_ALIASES.items():
        if value in aliases:
            return level
    return logging.INFO


def setup_logging(level_name: str, stream=None) -> int:
    """Configure the root logger and return the numeric level chosen.

    At DEBUG and below the source file and line are added to each record.
    """
    level = parse_level(level_name)
    logging.basicConfig(
        level=level,
        format=DEBUG_LOG_FORMAT if level <= logging.DEBUG else LOG_FORMAT,
        stream=stream or sys.stdout,
        force=True,
    )
    logging.getLogger(__name__).info(
        "Logger initialized (level=%s, python=%s)",
        logging.getLevelName(level), sys.version.split()[0],
    )
    return level
