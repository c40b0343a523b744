"""Project configuration (.bundlegen.yml) and per-run build settings."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, FrozenSet, List, Optional, Sequence, Tuple

import yaml
from jinja2 import Environment, StrictUndefined, TemplateError

from .distributions import DistributionError, DistributionMatrix
from .logging import get_logger
from .models import DistributionSpec, PackageInfo
from .modules.loader import DEFAULT_DESCRIPTOR_PATTERNS, split_tags
from .vcs import UNKNOWN_BRANCH, UNKNOWN_REVISION, GitMetadata
from .verify import ExpectedFiles, MappedFileList, StaticFileList

CONFIG_FILENAME = ".bundlegen.yml"
WORK_DIR_NAME = "_work"

DEFAULT_PREAMBLE = (
    "/*!\n"
    " {{ pkg.name }} - v{{ pkg.version }}\n"
    " {{ timestamp }}\n"
    " branch: {{ branch }} revision: {{ revision }}*/\n"
)

DEFAULT_NECESSITIES = ("README.*", "ReleaseNotes.*", "*-LICENSE.*")

logger = get_logger("config")


class ConfigError(RuntimeError):
    """Raised when the configuration file cannot be parsed."""


class BuildMode(str, Enum):
    BUILD = "build"
    DISTRIBUTIONS = "distributions"
    BUILD_DISTS = "build-dists"
    VERIFY = "verify"
    LOAD_DEPENDENCIES = "load-dependencies"


@dataclass(frozen=True)
class MinifierConfig:
    """External minifier command."""

    command: Tuple[str, ...] = ("terser",)


@dataclass(frozen=True)
class StylesheetConfig:
    """External stylesheet compiler and its source/destination directories."""

    src: str
    dest: str
    command: Tuple[str, ...] = ("sass",)


@dataclass(frozen=True)
class DependencyCopy:
    """Third-party files copied into the source tree before building."""

    src: str
    dest: str


@dataclass(frozen=True)
class VerifyGroup:
    """Named group of expected dist files checked by verification."""

    name: str
    sources: Tuple[ExpectedFiles, ...] = ()


@dataclass(frozen=True)
class ProjectConfig:
    """Represents the settings defined in .bundlegen.yml."""

    root: Path
    package_file: str = "package.json"
    package_name: Optional[str] = None
    package_version: Optional[str] = None
    modules: Tuple[str, ...] = DEFAULT_DESCRIPTOR_PATTERNS
    necessities: Tuple[str, ...] = DEFAULT_NECESSITIES
    build_dir: str = "build"
    dist_dir: str = "dist"
    products_dir: str = "products"
    preamble: str = DEFAULT_PREAMBLE
    minifier: MinifierConfig = field(default_factory=MinifierConfig)
    stylesheets: Optional[StylesheetConfig] = None
    dependencies: Tuple[DependencyCopy, ...] = ()
    assets: Tuple[str, ...] = ()
    verify: Tuple[VerifyGroup, ...] = ()
    distributions: DistributionMatrix = field(default_factory=DistributionMatrix)
    branch_default: str = UNKNOWN_BRANCH
    revision_default: str = UNKNOWN_REVISION


@dataclass(frozen=True)
class BuildSettings:
    """Concrete, read-only configuration bound to one pipeline run."""

    mode: BuildMode
    target: str
    name: str
    include: Optional[FrozenSet[str]]
    exclude: Optional[FrozenSet[str]]
    expanded: bool
    distributions: Tuple[DistributionSpec, ...]
    package: PackageInfo
    branch: str
    revision: str
    preamble: str
    generated_at: datetime
    project: ProjectConfig

    @property
    def root(self) -> Path:
        return self.project.root

    @property
    def build_path(self) -> Path:
        return self.root / self.project.build_dir

    @property
    def dist_path(self) -> Path:
        return self.root / self.project.dist_dir

    @property
    def products_path(self) -> Path:
        return self.root / self.project.products_dir

    def stage_dir(self, distribution: str) -> Path:
        return self.build_path / distribution

    def work_dir(self, distribution: str) -> Path:
        return self.build_path / WORK_DIR_NAME / distribution

    def output_dir(self, distribution: str) -> Path:
        """Bundles land in the stage directory for builds and in dist/ otherwise."""
        if self.mode is BuildMode.BUILD:
            return self.stage_dir(distribution)
        return self.dist_path


def load_config(config_path: Path) -> ProjectConfig:
    """Load configuration from disk, falling back to defaults when absent."""
    config_file = _resolve_config_path(config_path)
    root = config_file.parent.resolve()

    if not config_file.exists():
        return ProjectConfig(root=root)

    data = _read_config(config_file)
    if not isinstance(data, dict):
        raise ConfigError(f"{CONFIG_FILENAME} must contain a mapping at the root")

    package_data = data.get("package")
    package_file = "package.json"
    package_name = package_version = None
    if isinstance(package_data, str):
        package_file = package_data
    elif isinstance(package_data, dict):
        package_file = _as_str(package_data.get("file")) or package_file
        package_name = _as_str(package_data.get("name"))
        package_version = _as_str(package_data.get("version"))

    paths = _as_dict(data.get("paths"))

    minifier_data = _as_dict(data.get("minifier"))
    minifier = MinifierConfig()
    if minifier_data.get("command"):
        minifier = MinifierConfig(command=_as_command(minifier_data["command"], "minifier.command"))

    stylesheets = None
    stylesheet_data = _as_dict(data.get("stylesheets"))
    if stylesheet_data:
        src = _as_str(stylesheet_data.get("src"))
        dest = _as_str(stylesheet_data.get("dest"))
        if not src or not dest:
            raise ConfigError("stylesheets requires both 'src' and 'dest'")
        command = stylesheet_data.get("command")
        stylesheets = StylesheetConfig(
            src=src,
            dest=dest,
            command=_as_command(command, "stylesheets.command") if command else ("sass",),
        )

    dependencies = tuple(_parse_dependency(entry) for entry in _as_list(data.get("dependencies")))

    distributions = DistributionMatrix()
    if data.get("distributions") is not None:
        try:
            distributions = DistributionMatrix.from_config(data["distributions"])
        except DistributionError as exc:
            raise ConfigError(str(exc)) from exc

    verify = tuple(
        _parse_verify_group(str(name), entries)
        for name, entries in _as_dict(data.get("verify")).items()
    )

    vcs_data = _as_dict(data.get("vcs"))
    modules = _as_str_list(data.get("modules"))
    necessities = data.get("necessities")

    return ProjectConfig(
        root=root,
        package_file=package_file,
        package_name=package_name,
        package_version=package_version,
        modules=tuple(modules) or DEFAULT_DESCRIPTOR_PATTERNS,
        necessities=tuple(_as_str_list(necessities)) if necessities is not None else DEFAULT_NECESSITIES,
        build_dir=_as_str(paths.get("build")) or "build",
        dist_dir=_as_str(paths.get("dist")) or "dist",
        products_dir=_as_str(paths.get("products")) or "products",
        preamble=_as_str(data.get("preamble")) or DEFAULT_PREAMBLE,
        minifier=minifier,
        stylesheets=stylesheets,
        dependencies=dependencies,
        assets=tuple(_as_str_list(data.get("assets"))),
        verify=verify,
        distributions=distributions,
        branch_default=_as_str(vcs_data.get("branch_default")) or UNKNOWN_BRANCH,
        revision_default=_as_str(vcs_data.get("revision_default")) or UNKNOWN_REVISION,
    )


def load_package_info(project: ProjectConfig) -> PackageInfo:
    """Return package name and version, preferring explicit config overrides."""
    name, version = project.package_name, project.package_version
    if name and version:
        return PackageInfo(name=name, version=version)

    package_path = project.root / project.package_file
    try:
        data = json.loads(package_path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        raise ConfigError(
            f"{project.package_file} not found; set package.name and package.version in {CONFIG_FILENAME}"
        ) from None
    except (OSError, json.JSONDecodeError) as exc:
        raise ConfigError(f"Failed to read {project.package_file}: {exc}") from exc

    name = name or _as_str(_as_dict(data).get("name"))
    version = version or _as_str(_as_dict(data).get("version"))
    if not name or not version:
        raise ConfigError(f"{project.package_file} must define 'name' and 'version'")
    return PackageInfo(name=name, version=version)


def resolve_settings(
    project: ProjectConfig,
    mode: BuildMode,
    *,
    target: str = "all",
    name: str | None = None,
    include: str | Sequence[str] | None = None,
    exclude: str | Sequence[str] | None = None,
    expanded: bool = False,
    distribution: str | None = None,
    git: GitMetadata | None = None,
    now: datetime | None = None,
) -> BuildSettings:
    """Resolve every templated and derived value once, before any stage runs."""
    include_tags = _as_tag_set(include)
    exclude_tags = _as_tag_set(exclude)
    generated_at = now or datetime.now()

    if mode is BuildMode.BUILD:
        if target == "all":
            build_name = "all"
            distributions: Tuple[DistributionSpec, ...] = (
                DistributionSpec(name=build_name, expanded=expanded),
            )
        elif target == "custom":
            build_name = _validate_build_name(name or "custom")
            distributions = (
                DistributionSpec(
                    name=build_name,
                    include=include_tags,
                    exclude=exclude_tags,
                    expanded=expanded,
                ),
            )
        else:
            raise ConfigError(f"Unknown build target '{target}' (expected 'all' or 'custom')")
    elif mode is BuildMode.LOAD_DEPENDENCIES:
        build_name = target
        distributions = ()
    else:
        build_name = distribution or target
        try:
            distributions = project.distributions.select(distribution)
        except DistributionError as exc:
            raise ConfigError(str(exc)) from exc

    package = load_package_info(project)
    branch, revision = project.branch_default, project.revision_default
    if distributions and mode is not BuildMode.VERIFY:
        git = git or GitMetadata()
        branch_result = git.branch(project.root, project.branch_default)
        revision_result = git.revision(project.root, project.revision_default)
        branch, revision = branch_result.value, revision_result.value
        for result in (branch_result, revision_result):
            if not result.ok:
                logger.debug(
                    "Preamble uses fallback %r (%s: %s)", result.value, result.status.value, result.error
                )

    preamble = render_preamble(
        project.preamble,
        package=package,
        branch=branch,
        revision=revision,
        generated_at=generated_at,
    )
    logger.debug("Resolved %s settings for target '%s' (%d distributions)", mode.value, build_name, len(distributions))

    return BuildSettings(
        mode=mode,
        target=target,
        name=build_name,
        include=include_tags,
        exclude=exclude_tags,
        expanded=expanded,
        distributions=distributions,
        package=package,
        branch=branch,
        revision=revision,
        preamble=preamble,
        generated_at=generated_at,
        project=project,
    )


def render_preamble(
    template: str,
    *,
    package: PackageInfo,
    branch: str,
    revision: str,
    generated_at: datetime,
) -> str:
    env = Environment(undefined=StrictUndefined, keep_trailing_newline=True, autoescape=False)
    try:
        return env.from_string(template).render(
            pkg=package,
            branch=branch,
            revision=revision,
            timestamp=format_timestamp(generated_at),
        )
    except TemplateError as exc:
        raise ConfigError(f"Invalid preamble template: {exc}") from exc


def format_timestamp(moment: datetime) -> str:
    """Format like ``Friday, October 16th, 2026, 3:04:05 PM``."""
    day = moment.day
    if 11 <= day % 100 <= 13:
        suffix = "th"
    else:
        suffix = {1: "st", 2: "nd", 3: "rd"}.get(day % 10, "th")
    hour = moment.hour % 12 or 12
    meridiem = "AM" if moment.hour < 12 else "PM"
    return f"{moment:%A}, {moment:%B} {day}{suffix}, {moment.year}, {hour}:{moment:%M:%S} {meridiem}"


def _resolve_config_path(config_path: Path) -> Path:
    config_path = config_path.expanduser()
    if config_path.is_dir():
        return (config_path / CONFIG_FILENAME).resolve()
    if config_path.name != CONFIG_FILENAME:
        return (config_path.parent / CONFIG_FILENAME).resolve()
    return config_path.resolve()


def _read_config(path: Path) -> Dict[str, Any]:
    text = path.read_text(encoding="utf-8")
    if not text.strip():
        return {}
    try:
        loaded = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Failed to parse {path.name}: {exc}") from exc
    return loaded or {}


def _parse_dependency(entry: Any) -> DependencyCopy:
    data = _as_dict(entry)
    src, dest = _as_str(data.get("src")), _as_str(data.get("dest"))
    if not src or not dest:
        raise ConfigError("dependencies entries require 'src' and 'dest'")
    return DependencyCopy(src=src, dest=dest)


def _parse_verify_group(name: str, entries: Any) -> VerifyGroup:
    static: List[str] = []
    sources: List[ExpectedFiles] = []
    for entry in _as_list(entries):
        if isinstance(entry, str):
            static.append(entry)
            continue
        data = _as_dict(entry)
        cwd, pattern, dest = _as_str(data.get("cwd")), _as_str(data.get("src")), _as_str(data.get("dest"))
        if not cwd or not pattern or not dest:
            raise ConfigError(f"verify.{name} entries need 'cwd', 'src' and 'dest'")
        rename = _as_dict(data.get("rename"))
        replace = None
        if rename:
            old, new = _as_str(rename.get("from")), _as_str(rename.get("to"))
            if old is None or new is None:
                raise ConfigError(f"verify.{name}.rename needs 'from' and 'to'")
            replace = (old, new)
        sources.append(MappedFileList(cwd=cwd, pattern=pattern, dest=dest, replace=replace))
    if static:
        sources.insert(0, StaticFileList(tuple(static)))
    return VerifyGroup(name=name, sources=tuple(sources))


def _validate_build_name(name: str) -> str:
    # Build names become directory and archive names under build/ and products/.
    if "/" in name or "\\" in name or ".." in name or name == WORK_DIR_NAME:
        raise ConfigError(f"Invalid build name '{name}': use a plain name without path separators")
    return name


def _as_tag_set(value: str | Sequence[str] | None) -> Optional[FrozenSet[str]]:
    if value is None:
        return None
    tags = split_tags(value) if isinstance(value, str) else [str(item).strip() for item in value if str(item).strip()]
    return frozenset(tags) if tags else None


def _as_command(value: Any, label: str) -> Tuple[str, ...]:
    if isinstance(value, str):
        parts = value.split()
    elif isinstance(value, list):
        parts = [str(item) for item in value]
    else:
        parts = []
    if not parts:
        raise ConfigError(f"{label} must be a command string or list")
    return tuple(parts)


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _as_list(value: Any) -> List[Any]:
    return value if isinstance(value, list) else []


def _as_str(value: Any) -> Optional[str]:
    return str(value) if isinstance(value, (str, int, float, bool)) else None


def _as_str_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, Sequence):
        return [str(item) for item in value if isinstance(item, (str, int, float, bool))]
    return []


__all__ = [
    "BuildMode",
    "BuildSettings",
    "CONFIG_FILENAME",
    "ConfigError",
    "DependencyCopy",
    "MinifierConfig",
    "ProjectConfig",
    "StylesheetConfig",
    "VerifyGroup",
    "format_timestamp",
    "load_config",
    "load_package_info",
    "render_preamble",
    "resolve_settings",
]
