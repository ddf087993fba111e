"""Logging setup.

The terminal belongs to the chat view, so records go to a rotating file.
"""

import logging
from logging.handlers import RotatingFileHandler

from .config import DEFAULT_HOME, AgentConfig

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(config: AgentConfig) -> logging.Logger:
    """Configure the ``agerus`` logger hierarchy from the loaded config."""
    log_file = config.log_file or DEFAULT_HOME / "agerus.log"
    log_file.parent.mkdir(parents=True, exist_ok=True)

    handler = RotatingFileHandler(log_file, maxBytes=2_000_000, backupCount=3, encoding="utf-8")
    handler.setFormatter(logging.Formatter(LOG_FORMAT))

    root = logging.getLogger("agerus")
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(getattr(logging, config.log_level.upper(), logging.INFO))
    root.propagate = False

    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    return root
