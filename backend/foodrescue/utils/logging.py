import logging
import sys

from foodrescue.config import settings

_FORMAT = "[%(name)s] %(levelname)s %(message)s"


def get_logger(name: str) -> logging.Logger:
    """
    Return a named logger under the ``foodrescue`` namespace.

    The stdout handler is attached once, on the namespace root, so every
    module logger shares the same output and level (settings.LOG_LEVEL).
    """
    root = logging.getLogger("foodrescue")
    if not root.handlers:
        h = logging.StreamHandler(sys.stdout)
        h.setFormatter(logging.Formatter(_FORMAT))
        root.addHandler(h)
        root.setLevel(settings.LOG_LEVEL.upper())
    return logging.getLogger(f"foodrescue.{name}")
