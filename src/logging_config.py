"""Logging setup for the profile builder CLI.

Library modules only create ``logging.getLogger(__name__)``; handlers are
installed here, once, from ``src.profiles.cli.main``. A second call, or a
call in a process whose root logger is already configured (pytest, an
embedding application), leaves the existing handlers alone.

Console lines go to stderr so ``profiles build`` can print JSON on stdout.
The file log carries the thread name as well, since one profile build fans
its analytics queries out over a worker pool.
"""

import logging
import os
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

LOG_DIR = Path(os.environ.get("PROFILE_LOG_DIR", "logs"))
LOG_FILE = LOG_DIR / "profiles.log"
LOG_MAX_BYTES = 5 * 1024 * 1024
LOG_BACKUPS = 3

CONSOLE_FORMAT = "%(levelname)s %(name)s: %(message)s"
FILE_FORMAT = "%(asctime)s %(levelname)s [%(threadName)s] %(name)s: %(message)s"

# Transport loggers that repeat every pooled request at DEBUG
NOISY_LOGGERS = ("urllib3", "requests")


def _file_handler(path: Path) -> Optional[logging.Handler]:
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        handler = RotatingFileHandler(path, maxBytes=LOG_MAX_BYTES, backupCount=LOG_BACKUPS)
    except OSError:
        # Read-only checkout: console logging only
        return None
    handler.setFormatter(logging.Formatter(FILE_FORMAT))
    return handler


def configure_logging(level: int = logging.INFO, log_file: Optional[Path] = LOG_FILE) -> bool:
    """Install console and file handlers on the root logger.

    Args:
        level: Root level; DEBUG also logs every analytics query
        log_file: Rotating log path, or None for console only

    Returns:
        True if handlers were installed, False if logging was already configured
    """
    root = logging.getLogger()
    if root.handlers:
        return False

    console = logging.StreamHandler()
    console.setFormatter(logging.Formatter(CONSOLE_FORMAT))
    root.addHandler(console)

    if log_file is not None:
        handler = _file_handler(Path(log_file))
        if handler is not None:
            root.addHandler(handler)

    root.setLevel(level)
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    return True
