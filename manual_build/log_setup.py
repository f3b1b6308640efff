from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler

LOG_FORMAT = "%(message)s"
FILE_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def setup_logging(level: str, console: Console, log_file: Optional[Path] = None) -> None:
    """
    Send log records through the same console as the status display so they
    print above it instead of tearing it.
    """
    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)

    root.setLevel(logging.DEBUG if log_file else level)

    rich_handler = RichHandler(console=console, show_path=False, markup=False)
    rich_handler.setLevel(level)
    rich_handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(rich_handler)

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(FILE_FORMAT))
        root.addHandler(file_handler)

    # The preview server stays quiet; request lines would scroll the status away.
    logging.getLogger("werkzeug").setLevel(logging.ERROR)
    logging.getLogger("watchdog").setLevel(logging.WARNING)
