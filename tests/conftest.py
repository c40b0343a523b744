from __future__ import annotations

import logging
from pathlib import Path

import pytest

from bundlegen.logging import reset_handlers
from tests._fixtures.project_builder import ProjectBuilder, RecordingRunner


@pytest.fixture(autouse=True)
def _reset_bundlegen_logger():
    """Undo CLI logging setup so caplog sees records from every test."""
    yield
    logger = logging.getLogger("bundlegen")
    reset_handlers(logger)
    logger.propagate = True
    logger.setLevel(logging.NOTSET)


@pytest.fixture
def project_builder(tmp_path: Path) -> ProjectBuilder:
    """Provide a reusable project builder rooted at the pytest tmp_path."""
    return ProjectBuilder(tmp_path)


@pytest.fixture
def runner() -> RecordingRunner:
    return RecordingRunner()
