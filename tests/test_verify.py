from __future__ import annotations

import logging
from pathlib import Path

import pytest

from bundlegen.verify import (
    GeneratedFileList,
    MappedFileList,
    MissingFileError,
    StaticFileList,
    collect_expected,
    display_report,
    process_report,
    verify,
    verify_files,
)


def _touch(root: Path, *paths: str) -> None:
    for relative in paths:
        path = root / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text("", encoding="utf-8")


def test_verify_counts_missing_files(tmp_path: Path) -> None:
    _touch(tmp_path, "a", "b")

    report = verify(["a", "b", "c"], tmp_path)

    assert report.expected_count == 3
    assert report.missing_count == 1
    assert report.missing == ("c",)
    assert dict(report.files) == {"a": True, "b": True, "c": False}
    assert not report.passed


def test_verify_empty_list_passes(tmp_path: Path) -> None:
    report = verify([], tmp_path)

    assert report.expected_count == 0
    assert report.missing_count == 0
    assert report.passed


def test_verify_collapses_duplicates(tmp_path: Path) -> None:
    _touch(tmp_path, "dist/a.js")

    report = verify(["dist/a.js", "dist/a.js"], tmp_path)

    assert report.expected_count == 1


def test_report_is_read_only(tmp_path: Path) -> None:
    report = verify(["a"], tmp_path)

    with pytest.raises(TypeError):
        report.files["a"] = True  # type: ignore[index]


def test_display_report_logs_each_file(tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
    _touch(tmp_path, "a")
    report = verify(["a", "b"], tmp_path)

    with caplog.at_level(logging.INFO, logger="bundlegen"):
        display_report(report)

    messages = [record.getMessage() for record in caplog.records]
    assert messages == ["a - ✓ Present", "b - ✗ Missing"]
    assert caplog.records[1].levelno == logging.ERROR


def test_process_report_raises_with_report(tmp_path: Path) -> None:
    report = verify(["missing.js"], tmp_path)

    with pytest.raises(MissingFileError) as excinfo:
        process_report(report)

    assert excinfo.value.report is report
    assert "1 out of 1 expected files not found" in str(excinfo.value)


def test_process_report_logs_summary_on_success(tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
    _touch(tmp_path, "a", "b")

    with caplog.at_level(logging.INFO, logger="bundlegen"):
        process_report(verify(["a", "b"], tmp_path))

    assert "2 out of 2 expected files were present" in caplog.text


def test_mapped_file_list_renames_extensions(tmp_path: Path) -> None:
    _touch(tmp_path, "src/css/Enactors.scss", "src/css/themes/Dark.scss", "src/css/readme.txt")
    mapped = MappedFileList(cwd="src/css", pattern="**/*.scss", dest="dist/assets/css", replace=("scss", "css"))

    assert mapped.paths(tmp_path) == ["dist/assets/css/Enactors.css", "dist/assets/css/themes/Dark.css"]


def test_generated_file_list_evaluates_lazily(tmp_path: Path) -> None:
    produced = []
    generated = GeneratedFileList(lambda: list(produced))
    produced.append("dist/late.js")

    expected = collect_expected([StaticFileList(("README.md",)), generated], tmp_path)

    assert expected == ["README.md", "dist/late.js"]


def test_verify_files_raises_when_incomplete(tmp_path: Path) -> None:
    _touch(tmp_path, "dist/a.js")

    assert verify_files("Verifying", ["dist/a.js"], tmp_path).passed
    with pytest.raises(MissingFileError):
        verify_files("Verifying", ["dist/a.js", "dist/b.js"], tmp_path)
