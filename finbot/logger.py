import logging
import sys
from finbot.config import LOG_LEVEL

ROOT_LOGGER_NAME = "finbot"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

def _configure_root() -> logging.Logger:
    root = logging.getLogger(ROOT_LOGGER_NAME)
    if not root.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(handler)
        root.setLevel(LOG_LEVEL)
        root.propagate = False
    return root

def get_logger(name: str) -> logging.Logger:
    """Returns a logger under the `finbot` hierarchy; `main` and other outside names are nested too."""
    root = _configure_root()
    if name == ROOT_LOGGER_NAME or name.startswith(ROOT_LOGGER_NAME + "."):
        return logging.getLogger(name)
    return root.getChild(name)
