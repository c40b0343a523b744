from __future__ import annotations

import logging
from pathlib import Path

from bundlegen.logging import configure_logging, get_logger, reset_handlers


def test_get_logger_nests_under_bundlegen() -> None:
    assert get_logger().name == "bundlegen"
    assert get_logger("pipeline").name == "bundlegen.pipeline"


def test_configure_logging_writes_to_log_file(tmp_path: Path) -> None:
    log_file = tmp_path / "logs" / "bundlegen.log"

    logger = configure_logging(verbose=True, log_file=log_file)
    get_logger("pipeline").debug("Entering stage %s", "clean")
    reset_handlers(logger)

    content = log_file.read_text(encoding="utf-8")
    assert "DEBUG bundlegen.pipeline: Entering stage clean" in content


def test_configure_logging_replaces_previous_handlers(tmp_path: Path) -> None:
    configure_logging(log_file=tmp_path / "first.log")
    logger = configure_logging()

    assert len(logger.handlers) == 1
    assert logger.level == logging.INFO
    assert not logger.propagate
