import logging
import logging.handlers
import os
from typing import Optional
import sys

# Default log file path (in project root)
LOG_FILE = os.path.join(os.path.dirname(os.path.abspath(__file__)), 'sony9pin.log')

# Set maxBytes and backupCount as needed (e.g., 10MB and 3 backups)
MAX_BYTES = 10 * 1024 * 1024  # 10 MB
BACKUP_COUNT = 3

LOG_FORMAT = '%(asctime)s [%(levelname)s] %(name)s: %(message)s'


def setup_logging(level: int | str = logging.INFO, log_file: Optional[str] = LOG_FILE) -> None:
    """
    Configure the root logger for an entry point (CLI, deck panel).

    Library modules never call this; they only use get_logger().
    Pass log_file=None to log to the console only.
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if log_file:
        handlers.insert(0, logging.handlers.RotatingFileHandler(
            log_file, maxBytes=MAX_BYTES, backupCount=BACKUP_COUNT, encoding='utf-8'
        ))

    logging.basicConfig(level=level, format=LOG_FORMAT, handlers=handlers, force=True)

    # Qt prints its own diagnostics; keep them out of the deck log.
    logging.getLogger("PySide6").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Get a logger with the specified name."""
    return logging.getLogger(name)

