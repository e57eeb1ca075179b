from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from datetime import date
import logging
from pathlib import Path

ROOT_LOGGER_NAME = "uploader"
LOG_FORMAT = "[%(asctime)s] [%(levelname)s] %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def log_file_path(log_dir: Path, *, today: date | None = None) -> Path:
    day = today or date.today()
    return log_dir / f"document_uploader_{day.isoformat()}.log"


@contextmanager
def open_run_log(log_dir: Path, level: str = "INFO") -> Iterator[Path]:
    """Attach a per-day log file to the ``uploader`` logger for one run.

    The handler is removed and closed when the block exits, whatever the
    outcome of the run.
    """
    log_dir.mkdir(parents=True, exist_ok=True)
    path = log_file_path(log_dir)

    handler = logging.FileHandler(path, mode="a", encoding="utf-8")
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))

    resolved_level = logging.getLevelName(level.upper())
    if not isinstance(resolved_level, int):
        resolved_level = logging.INFO

    root = logging.getLogger(ROOT_LOGGER_NAME)
    previous_level = root.level
    root.setLevel(resolved_level)
    root.addHandler(handler)
    try:
        yield path
    finally:
        root.removeHandler(handler)
        handler.close()
        root.setLevel(previous_level)
