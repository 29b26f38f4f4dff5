# src/collab_tracker/logging_setup.py

from __future__ import annotations

import logging
import logging.handlers
import sys
from pathlib import Path

APP_LOGGER = "collab_tracker"
LOG_FILE_NAME = "tracker.log"

# Libraries that talk on every HTTP call (Plunk, GitHub, npm, the vision endpoint).
CHATTY_LIBRARIES = ("httpx", "httpcore", "openai")


class _ConsoleNoiseFilter(logging.Filter):
    """
    Console filter for the slash-command prompt.

    Store loggers (project_store, task_store) only surface WARNING+ because
    schema and legacy-column migrations log on every start. Anything outside
    the app only surfaces errors.
    """

    def __init__(self, app_prefix: str = APP_LOGGER) -> None:
        super().__init__()
        self.app_prefix = app_prefix + "."

    def filter(self, record: logging.LogRecord) -> bool:
        if record.name.startswith(self.app_prefix):
            if record.name.endswith("_store"):
                return record.levelno >= logging.WARNING
            return True
        return record.levelno >= logging.ERROR


def setup_logging(
    *,
    log_dir: str | Path = ".local/tracker",
    console_level: int = logging.INFO,
    file_level: int = logging.DEBUG,
    max_bytes: int = 2_000_000,
    backups: int = 3,
) -> Path:
    """Console plus rotating file logging. Returns the log file path."""
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / LOG_FILE_NAME

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    for h in list(root.handlers):
        root.removeHandler(h)
        h.close()

    fmt = logging.Formatter(
        fmt="%(asctime)s.%(msecs)03d %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(console_level)
    console.setFormatter(fmt)
    console.addFilter(_ConsoleNoiseFilter())
    root.addHandler(console)

    tracker_file = logging.handlers.RotatingFileHandler(
        str(log_file), maxBytes=max_bytes, backupCount=backups, encoding="utf-8"
    )
    tracker_file.setLevel(file_level)
    tracker_file.setFormatter(fmt)
    root.addHandler(tracker_file)

    logging.captureWarnings(True)
    for name in CHATTY_LIBRARIES:
        logging.getLogger(name).setLevel(logging.WARNING)

    return log_file
