"""
Python-side logging setup.

The JVM logs through log4j2 (conf/log4j2.properties); the driver's own
progress messages go through the standard logging module.
"""

import logging

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: int | str = logging.INFO) -> None:
    """Configure root logging for a command-line run."""
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())

    logging.basicConfig(level=level, format=LOG_FORMAT)
    root = logging.getLogger()
    root.setLevel(level)
    # py4j logs every gateway call at DEBUG/INFO
    logging.getLogger("py4j").setLevel(logging.WARNING)
    logging.captureWarnings(True)
