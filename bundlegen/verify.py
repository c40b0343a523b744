"""Verification that promised output artifacts exist on disk."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from .logging import get_logger
from .models import VerificationReport

logger = get_logger("verify")


class MissingFileError(RuntimeError):
    """Raised when expected output files are absent after a build."""

    def __init__(self, report: VerificationReport) -> None:
        self.report = report
        super().__init__(
            f"{report.missing_count} out of {report.expected_count} expected files not found: "
            + ", ".join(report.missing)
        )


class ExpectedFiles(ABC):
    """Source of expected file paths, evaluated at verification time."""

    @abstractmethod
    def paths(self, root: Path) -> List[str]:
        """Return root-relative paths that must exist."""


@dataclass(frozen=True)
class StaticFileList(ExpectedFiles):
    """An explicit list of expected paths."""

    files: Tuple[str, ...]

    def paths(self, root: Path) -> List[str]:
        return list(self.files)


@dataclass(frozen=True)
class MappedFileList(ExpectedFiles):
    """Expect every ``pattern`` match under ``cwd`` to appear under ``dest``.

    ``replace`` rewrites part of each mapped name, e.g. ``("scss", "css")``
    expects ``dist/.../x.css`` for a source ``x.scss``.
    """

    cwd: str
    pattern: str
    dest: str
    replace: Optional[Tuple[str, str]] = None

    def paths(self, root: Path) -> List[str]:
        source_dir = root / self.cwd
        expected: List[str] = []
        for match in sorted(source_dir.glob(self.pattern)):
            if not match.is_file():
                continue
            relative = match.relative_to(source_dir).as_posix()
            if self.replace is not None:
                relative = relative.replace(*self.replace)
            expected.append(f"{self.dest.rstrip('/')}/{relative}")
        return expected


@dataclass(frozen=True)
class GeneratedFileList(ExpectedFiles):
    """Paths produced by a callable when verification runs."""

    factory: Callable[[], Iterable[str]]

    def paths(self, root: Path) -> List[str]:
        return list(self.factory())


def collect_expected(sources: Iterable[ExpectedFiles], root: Path) -> List[str]:
    expected: List[str] = []
    for source in sources:
        expected.extend(source.paths(root))
    return expected


def verify(expected_files: Sequence[str], root: Path | None = None) -> VerificationReport:
    """Check each expected path (relative to ``root``) for existence right now."""
    base = root or Path.cwd()
    presence: Dict[str, bool] = {}
    for path in expected_files:
        if path in presence:
            continue
        presence[path] = (base / path).exists()
    missing = sum(1 for present in presence.values() if not present)
    return VerificationReport(
        files=MappingProxyType(presence),
        missing_count=missing,
        expected_count=len(presence),
    )


def display_report(report: VerificationReport, log: logging.Logger | None = None) -> None:
    """Log one present/missing line per file, in input order."""
    log = log or logger
    for path, present in report.files.items():
        if present:
            log.info("%s - ✓ Present", path)
        else:
            log.error("%s - ✗ Missing", path)


def process_report(report: VerificationReport, log: logging.Logger | None = None) -> None:
    """Log the summary and raise ``MissingFileError`` when anything is missing."""
    log = log or logger
    if not report.passed:
        log.error("Verification failed")
        raise MissingFileError(report)
    log.info("Verification passed")
    log.info(
        "%d out of %d expected files were present", report.expected_count, report.expected_count
    )


def verify_files(message: str, expected_files: Sequence[str], root: Path) -> VerificationReport:
    """Verify, report and fail in one step."""
    logger.info(message)
    report = verify(expected_files, root)
    display_report(report)
    process_report(report)
    return report


__all__ = [
    "ExpectedFiles",
    "GeneratedFileList",
    "MappedFileList",
    "MissingFileError",
    "StaticFileList",
    "collect_expected",
    "display_report",
    "process_report",
    "verify",
    "verify_files",
]
