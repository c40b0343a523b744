"""Tests for bundlegen.config."""

from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path

import pytest

from bundlegen.config import (
    DEFAULT_PREAMBLE,
    BuildMode,
    ConfigError,
    ProjectConfig,
    format_timestamp,
    load_config,
    load_package_info,
    render_preamble,
    resolve_settings,
)
from bundlegen.models import PackageInfo
from bundlegen.modules.loader import DEFAULT_DESCRIPTOR_PATTERNS
from bundlegen.vcs import UNKNOWN_BRANCH, GitMetadata
from bundlegen.verify import MappedFileList, StaticFileList
from tests._fixtures.project_builder import RecordingRunner

NOW = datetime(2026, 10, 16, 15, 4, 5)


def test_load_config_returns_defaults_when_missing(tmp_path: Path) -> None:
    config = load_config(tmp_path)

    assert isinstance(config, ProjectConfig)
    assert config.root == tmp_path.resolve()
    assert config.modules == DEFAULT_DESCRIPTOR_PATTERNS
    assert config.build_dir == "build"
    assert config.dist_dir == "dist"
    assert config.products_dir == "products"
    assert config.preamble == DEFAULT_PREAMBLE
    assert config.minifier.command == ("terser",)
    assert config.stylesheets is None
    assert config.dependencies == ()
    assert config.verify == ()
    assert len(config.distributions) == 12


def test_load_config_parses_expected_fields(tmp_path: Path) -> None:
    config_file = tmp_path / ".bundlegen.yml"
    config_file.write_text(
        """
package:
  name: "infusion"
  version: "4.0.0"
paths:
  build: "out/build"
  dist: "out/dist"
modules:
  - "src/**/*Dependencies.json"
  - "extras/*.deps.json"
necessities: ["README.*"]
minifier:
  command: "npx terser"
stylesheets:
  src: "src/css/sass"
  dest: "src/css"
dependencies:
  - src: "node_modules/jquery/dist/jquery.js"
    dest: "src/lib/jquery/core/js"
assets:
  - "src/**/*.css"
distributions:
  lean:
    include: "framework"
    exclude: ["jQuery", "jQueryUI"]
    expanded: false
verify:
  necessities:
    - "dist/README.md"
  css:
    - cwd: "src/css/sass"
      src: "*.scss"
      dest: "dist/assets/src/css"
      rename:
        from: "scss"
        to: "css"
vcs:
  branch_default: "detached"
""",
        encoding="utf-8",
    )

    config = load_config(config_file)

    assert config.package_name == "infusion"
    assert config.package_version == "4.0.0"
    assert config.build_dir == "out/build"
    assert config.dist_dir == "out/dist"
    assert config.products_dir == "products"
    assert config.modules == ("src/**/*Dependencies.json", "extras/*.deps.json")
    assert config.necessities == ("README.*",)
    assert config.minifier.command == ("npx", "terser")
    assert config.stylesheets is not None
    assert config.stylesheets.command == ("sass",)
    assert config.dependencies[0].dest == "src/lib/jquery/core/js"
    assert config.assets == ("src/**/*.css",)
    assert config.distributions.names() == ["lean"]
    lean = config.distributions.get("lean")
    assert lean.include == frozenset({"framework"})
    assert lean.expanded is False
    necessities, css = config.verify
    assert necessities.sources == (StaticFileList(("dist/README.md",)),)
    assert css.sources == (
        MappedFileList(cwd="src/css/sass", pattern="*.scss", dest="dist/assets/src/css", replace=("scss", "css")),
    )
    assert config.branch_default == "detached"
    assert config.revision_default.startswith("Unknown revision")


def test_load_config_rejects_non_mapping(tmp_path: Path) -> None:
    (tmp_path / ".bundlegen.yml").write_text("- just\n- a list\n", encoding="utf-8")

    with pytest.raises(ConfigError, match="mapping"):
        load_config(tmp_path)


def test_load_config_rejects_invalid_yaml(tmp_path: Path) -> None:
    (tmp_path / ".bundlegen.yml").write_text("paths: [unclosed\n", encoding="utf-8")

    with pytest.raises(ConfigError, match="Failed to parse"):
        load_config(tmp_path)


def test_load_config_rejects_duplicate_distributions(tmp_path: Path) -> None:
    (tmp_path / ".bundlegen.yml").write_text(
        "distributions:\n  - name: uio\n  - name: uio\n", encoding="utf-8"
    )

    with pytest.raises(ConfigError, match="more than once"):
        load_config(tmp_path)


def test_load_package_info_reads_package_json(tmp_path: Path) -> None:
    (tmp_path / "package.json").write_text('{"name": "infusion", "version": "4.0.0"}', encoding="utf-8")

    assert load_package_info(load_config(tmp_path)) == PackageInfo("infusion", "4.0.0")


def test_load_package_info_requires_metadata(tmp_path: Path) -> None:
    with pytest.raises(ConfigError, match="package.json not found"):
        load_package_info(load_config(tmp_path))


def test_format_timestamp_uses_ordinal_days() -> None:
    assert format_timestamp(NOW) == "Friday, October 16th, 2026, 3:04:05 PM"
    assert format_timestamp(datetime(2026, 10, 1, 0, 5, 9)) == "Thursday, October 1st, 2026, 12:05:09 AM"
    assert format_timestamp(datetime(2026, 10, 12, 12, 0, 0)) == "Monday, October 12th, 2026, 12:00:00 PM"
    assert format_timestamp(datetime(2026, 10, 22, 9, 30, 0)) == "Thursday, October 22nd, 2026, 9:30:00 AM"


def test_render_preamble_rejects_unknown_placeholders() -> None:
    with pytest.raises(ConfigError, match="Invalid preamble template"):
        render_preamble(
            "/*! {{ pkg.author }} */",
            package=PackageInfo("infusion", "4.0.0"),
            branch="main",
            revision="abc1234",
            generated_at=NOW,
        )


def _project(tmp_path: Path) -> ProjectConfig:
    (tmp_path / "package.json").write_text('{"name": "infusion", "version": "4.0.0"}', encoding="utf-8")
    return load_config(tmp_path)


def test_resolve_settings_for_custom_build(tmp_path: Path) -> None:
    runner = RecordingRunner()

    settings = resolve_settings(
        _project(tmp_path),
        BuildMode.BUILD,
        target="custom",
        name="myBuild",
        include="framework, uiOptions",
        exclude=["jQuery"],
        git=GitMetadata(runner=runner),
        now=NOW,
    )

    (spec,) = settings.distributions
    assert spec.name == "myBuild"
    assert spec.include == frozenset({"framework", "uiOptions"})
    assert spec.exclude == frozenset({"jQuery"})
    assert spec.expanded is False
    assert settings.preamble == (
        "/*!\n infusion - v4.0.0\n Friday, October 16th, 2026, 3:04:05 PM\n"
        " branch: main revision: abc1234*/\n"
    )
    assert settings.stage_dir("myBuild") == tmp_path.resolve() / "build" / "myBuild"
    assert settings.output_dir("myBuild") == settings.stage_dir("myBuild")


def test_resolve_settings_all_target_ignores_filters(tmp_path: Path) -> None:
    settings = resolve_settings(
        _project(tmp_path),
        BuildMode.BUILD,
        include="framework",
        expanded=True,
        git=GitMetadata(runner=RecordingRunner()),
        now=NOW,
    )

    (spec,) = settings.distributions
    assert spec.name == "all"
    assert spec.include is None
    assert spec.expanded is True


def test_resolve_settings_rejects_unknown_build_target(tmp_path: Path) -> None:
    with pytest.raises(ConfigError, match="Unknown build target"):
        resolve_settings(_project(tmp_path), BuildMode.BUILD, target="nightly", now=NOW)


def test_resolve_settings_selects_one_distribution(tmp_path: Path) -> None:
    settings = resolve_settings(
        _project(tmp_path),
        BuildMode.DISTRIBUTIONS,
        distribution="uio.min",
        git=GitMetadata(runner=RecordingRunner()),
        now=NOW,
    )

    assert [spec.name for spec in settings.distributions] == ["uio.min"]
    assert settings.output_dir("uio.min") == settings.dist_path


def test_resolve_settings_unknown_distribution(tmp_path: Path) -> None:
    with pytest.raises(ConfigError, match="Unknown distribution 'nope'"):
        resolve_settings(_project(tmp_path), BuildMode.DISTRIBUTIONS, distribution="nope", now=NOW)


def test_resolve_settings_verify_skips_git(tmp_path: Path) -> None:
    runner = RecordingRunner()

    settings = resolve_settings(_project(tmp_path), BuildMode.VERIFY, git=GitMetadata(runner=runner), now=NOW)

    assert runner.calls == []
    assert settings.branch == UNKNOWN_BRANCH
    assert len(settings.distributions) == 12


def test_resolve_settings_falls_back_outside_git(tmp_path: Path) -> None:
    settings = resolve_settings(
        _project(tmp_path),
        BuildMode.BUILD,
        git=GitMetadata(runner=RecordingRunner(fail={"git"})),
        now=NOW,
    )

    assert "branch: Unknown branch, not within a git repository" in settings.preamble
    assert "revision: Unknown revision, not within a git repository*/" in settings.preamble


@pytest.mark.parametrize("name", ["../../escape", "nested/build", "win\\build", "..", "_work"])
def test_resolve_settings_rejects_unsafe_build_names(tmp_path: Path, name: str) -> None:
    with pytest.raises(ConfigError, match="Invalid build name"):
        resolve_settings(
            _project(tmp_path),
            BuildMode.BUILD,
            target="custom",
            name=name,
            git=GitMetadata(runner=RecordingRunner()),
            now=NOW,
        )


def test_resolve_settings_logs_vcs_fallbacks(tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level(logging.DEBUG, logger="bundlegen"):
        resolve_settings(
            _project(tmp_path),
            BuildMode.BUILD,
            git=GitMetadata(runner=RecordingRunner(fail={"git"})),
            now=NOW,
        )

    fallbacks = [record.getMessage() for record in caplog.records if "Preamble uses fallback" in record.getMessage()]
    assert len(fallbacks) == 2
    assert "defaulted" in fallbacks[0]


def test_resolve_settings_does_not_log_fallbacks_inside_git(tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level(logging.DEBUG, logger="bundlegen"):
        resolve_settings(_project(tmp_path), BuildMode.BUILD, git=GitMetadata(runner=RecordingRunner()), now=NOW)

    assert "Preamble uses fallback" not in caplog.text
