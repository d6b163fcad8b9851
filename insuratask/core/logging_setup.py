import logging
import sys

from insuratask.core.config import settings


def setup_logging(level: str = None) -> None:
    """
    Configure the root logger once: a single stderr handler with timestamps.

    Chatty third-party loggers (googleapiclient discovery cache, schedule) are
    kept at WARNING.
    """
    root = logging.getLogger()
    root.setLevel((level or settings.LOG_LEVEL).upper())

    for h in list(root.handlers):
        root.removeHandler(h)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(
        fmt="%(asctime)s.%(msecs)03d %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    ))
    root.addHandler(handler)

    logging.getLogger("googleapiclient.discovery_cache").setLevel(logging.ERROR)
    logging.getLogger("schedule").setLevel(logging.WARNING)
