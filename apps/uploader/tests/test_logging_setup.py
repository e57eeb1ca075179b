from datetime import date
import logging
from pathlib import Path

from uploader.logging_setup import ROOT_LOGGER_NAME, log_file_path, open_run_log


def test_log_file_is_named_per_day(tmp_path: Path) -> None:
    path = log_file_path(tmp_path, today=date(2024, 3, 9))

    assert path == tmp_path / "document_uploader_2024-03-09.log"


def test_run_log_captures_module_loggers_and_detaches(tmp_path: Path) -> None:
    root = logging.getLogger(ROOT_LOGGER_NAME)
    handlers_before = list(root.handlers)

    with open_run_log(tmp_path / "logs", "debug") as path:
        logging.getLogger("uploader.services.pipeline.resolver").debug("Resolved PHASE P1")

    assert root.handlers == handlers_before
    contents = path.read_text(encoding="utf-8")
    assert "[DEBUG] uploader.services.pipeline.resolver: Resolved PHASE P1" in contents


def test_unknown_level_falls_back_to_info(tmp_path: Path) -> None:
    with open_run_log(tmp_path, "chatty") as path:
        logging.getLogger("uploader.cli").debug("hidden")
        logging.getLogger("uploader.cli").info("shown")

    contents = path.read_text(encoding="utf-8")
    assert "shown" in contents
    assert "hidden" not in contents
