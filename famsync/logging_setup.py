"""Logging configuration for famsync."""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional, Union


class _LibraryNoiseFilter(logging.Filter):
    """Keep famsync logs on the console; other libraries only from WARNING up."""

    def filter(self, record: logging.LogRecord) -> bool:
        if record.name.startswith("famsync"):
            return True
        return record.levelno >= logging.WARNING


def setup_logging(
    log_dir: Optional[Union[str, Path]] = None,
    console_level: int = logging.INFO,
    file_level: int = logging.DEBUG,
) -> None:
    """Configure root logging once, early at startup.

    Args:
        log_dir: Directory for `famsync.log`; no file handler when None
        console_level: Minimum level printed to stderr
        file_level: Minimum level written to the log file
    """
    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    for handler in list(root.handlers):
        root.removeHandler(handler)

    formatter = logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(console_level)
    console.setFormatter(formatter)
    console.addFilter(_LibraryNoiseFilter())
    root.addHandler(console)

    if log_dir is not None:
        path = Path(log_dir)
        path.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(path / "famsync.log", maxBytes=2_000_000, backupCount=3, encoding="utf-8")
        file_handler.setLevel(file_level)
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
