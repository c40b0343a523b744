"""Sequential build pipeline: clean, stage, resolve, bundle, package and verify."""

from __future__ import annotations

import shutil
import subprocess
import zipfile
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from .bundler import Bundler
from .config import BuildMode, BuildSettings
from .distributions import build_one, expected_outputs
from .logging import get_logger
from .models import BundleArtifacts, ModuleDescriptor, ResolvedFileSet, VerificationReport
from .modules import ResolutionError, load_descriptors, resolve
from .naming import add_minified_segment, archive_filename
from .vcs import default_runner
from .verify import (
    GeneratedFileList,
    MissingFileError,
    collect_expected,
    display_report,
    process_report,
    verify,
)


class Stage(str, Enum):
    CLEAN = "clean"
    STAGE_DEPENDENCIES = "stage-dependencies"
    COMPILE_ASSETS = "compile-assets"
    RESOLVE_MODULES = "resolve-modules"
    STAGE_FILES = "stage-files"
    BUNDLE = "bundle"
    PACKAGE = "package"
    POST_BUILD_CLEAN = "post-build-clean"
    VERIFY = "verify"


class RunStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    DONE = "done"
    FAILED = "failed"


PLANS: Dict[BuildMode, Tuple[Stage, ...]] = {
    BuildMode.BUILD: (
        Stage.CLEAN,
        Stage.STAGE_DEPENDENCIES,
        Stage.COMPILE_ASSETS,
        Stage.RESOLVE_MODULES,
        Stage.STAGE_FILES,
        Stage.BUNDLE,
        Stage.PACKAGE,
        Stage.POST_BUILD_CLEAN,
    ),
    BuildMode.DISTRIBUTIONS: (
        Stage.CLEAN,
        Stage.COMPILE_ASSETS,
        Stage.RESOLVE_MODULES,
        Stage.STAGE_FILES,
        Stage.BUNDLE,
    ),
    BuildMode.BUILD_DISTS: (
        Stage.CLEAN,
        Stage.STAGE_DEPENDENCIES,
        Stage.COMPILE_ASSETS,
        Stage.RESOLVE_MODULES,
        Stage.STAGE_FILES,
        Stage.BUNDLE,
        Stage.VERIFY,
    ),
    BuildMode.VERIFY: (Stage.VERIFY,),
    BuildMode.LOAD_DEPENDENCIES: (Stage.CLEAN, Stage.STAGE_DEPENDENCIES),
}


class StageFailure(RuntimeError):
    """Raised when a stage fails for a reason other than resolution or verification."""

    def __init__(self, stage: Stage, cause: BaseException) -> None:
        self.stage = stage
        self.cause = cause
        super().__init__(f"Stage '{stage.value}' failed: {cause}")


@dataclass
class PipelineContext:
    """Intermediate results produced while one run progresses."""

    settings: BuildSettings
    descriptors: List[ModuleDescriptor] = field(default_factory=list)
    resolved: Dict[str, ResolvedFileSet] = field(default_factory=dict)
    artifacts: List[BundleArtifacts] = field(default_factory=list)
    archives: List[Path] = field(default_factory=list)
    report: Optional[VerificationReport] = None


@dataclass
class PipelineRun:
    """Observable state of one pipeline run."""

    plan: Tuple[Stage, ...]
    context: PipelineContext
    status: RunStatus = RunStatus.PENDING
    current: Optional[Stage] = None
    completed: List[Stage] = field(default_factory=list)
    failed_stage: Optional[Stage] = None


class Pipeline:
    """Runs the stages of one build plan in order, stopping at the first failure.

    Nothing is retried or rolled back; the recovery for a failed run is to run
    again from ``Stage.CLEAN``.
    """

    def __init__(
        self,
        bundler: Bundler | None = None,
        runner: Callable[..., str] | None = None,
    ) -> None:
        self.bundler = bundler or Bundler()
        self._runner = runner or default_runner
        self.logger = get_logger("pipeline")
        self.last_run: Optional[PipelineRun] = None
        self._handlers: Dict[Stage, Callable[[PipelineContext], None]] = {
            Stage.CLEAN: self._clean,
            Stage.STAGE_DEPENDENCIES: self._stage_dependencies,
            Stage.COMPILE_ASSETS: self._compile_assets,
            Stage.RESOLVE_MODULES: self._resolve_modules,
            Stage.STAGE_FILES: self._stage_files,
            Stage.BUNDLE: self._bundle,
            Stage.PACKAGE: self._package,
            Stage.POST_BUILD_CLEAN: self._post_build_clean,
            Stage.VERIFY: self._verify,
        }

    def run(self, settings: BuildSettings, stages: Sequence[Stage] | None = None) -> PipelineRun:
        """Execute ``stages`` (default: the plan for ``settings.mode``) against ``settings``."""
        plan = tuple(stages) if stages is not None else PLANS[settings.mode]
        run = PipelineRun(plan=plan, context=PipelineContext(settings=settings))
        self.last_run = run
        run.status = RunStatus.RUNNING
        self.logger.info(
            "Running %s for '%s': %s",
            settings.mode.value,
            settings.name,
            " -> ".join(stage.value for stage in plan),
        )

        for stage in plan:
            run.current = stage
            self.logger.debug("Entering stage %s", stage.value)
            try:
                self._handlers[stage](run.context)
            except (ResolutionError, MissingFileError, StageFailure):
                self._fail(run, stage)
                raise
            except (OSError, ValueError, RuntimeError, subprocess.SubprocessError) as exc:
                self._fail(run, stage)
                raise StageFailure(stage, exc) from exc
            run.completed.append(stage)

        run.current = None
        run.status = RunStatus.DONE
        self.logger.info("Finished %s for '%s'", settings.mode.value, settings.name)
        return run

    def _fail(self, run: PipelineRun, stage: Stage) -> None:
        run.status = RunStatus.FAILED
        run.failed_stage = stage
        run.current = None
        self.logger.error("Stage %s failed; re-run from clean once the cause is fixed", stage.value)

    # ------------------------------------------------------------------
    # Stages

    def _clean(self, context: PipelineContext) -> None:
        settings = context.settings
        project = settings.project
        if settings.mode is BuildMode.LOAD_DEPENDENCIES:
            targets = [settings.root / copy.dest for copy in project.dependencies]
        else:
            targets = [settings.build_path, settings.products_path]
            if settings.mode is BuildMode.BUILD_DISTS:
                targets.append(settings.dist_path)
        for target in targets:
            if target.is_dir():
                shutil.rmtree(target)
            elif target.exists():
                target.unlink()
            else:
                continue
            self.logger.debug("Removed %s", target)

    def _stage_dependencies(self, context: PipelineContext) -> None:
        root = context.settings.root
        for copy in context.settings.project.dependencies:
            matches = [path for path in sorted(root.glob(copy.src)) if path.is_file()]
            if not matches:
                self.logger.warning("Dependency pattern %s matched no files", copy.src)
                continue
            destination = root / copy.dest
            destination.mkdir(parents=True, exist_ok=True)
            for match in matches:
                shutil.copy2(match, destination / match.name)
            self.logger.debug("Copied %d files from %s to %s", len(matches), copy.src, copy.dest)

    def _compile_assets(self, context: PipelineContext) -> None:
        settings = context.settings
        stylesheets = settings.project.stylesheets
        if stylesheets is None:
            self.logger.debug("No stylesheets configured; skipping asset compilation")
            return

        sources = [
            path
            for path in sorted((settings.root / stylesheets.src).glob("*.scss"))
            if not path.name.startswith("_")
        ]
        if settings.mode is BuildMode.BUILD:
            jobs = [(settings.root / stylesheets.dest, settings.expanded, False)]
        else:
            output_dir = settings.dist_path / "assets" / stylesheets.dest
            flags = sorted({spec.expanded for spec in settings.distributions}, reverse=True)
            jobs = [(output_dir, expanded, not expanded) for expanded in flags]

        for output_dir, expanded, minified_names in jobs:
            output_dir.mkdir(parents=True, exist_ok=True)
            style = "expanded" if expanded else "compressed"
            for source in sources:
                name = f"{source.stem}.css"
                if minified_names:
                    name = add_minified_segment(name)
                args = [*stylesheets.command, f"--style={style}", "--no-source-map", str(source), str(output_dir / name)]
                self._runner(args, cwd=settings.root)
            self.logger.info("Compiled %d stylesheets (%s) into %s", len(sources), style, output_dir)

    def _resolve_modules(self, context: PipelineContext) -> None:
        settings = context.settings
        context.descriptors = load_descriptors(settings.root, settings.project.modules)
        if not context.descriptors:
            self.logger.warning("No module descriptors matched %s", ", ".join(settings.project.modules))
        for spec in settings.distributions:
            resolved = resolve(context.descriptors, spec.include, spec.exclude)
            context.resolved[spec.name] = resolved
            self.logger.info(
                "Resolved %d files from %d modules for '%s'",
                len(resolved),
                len(resolved.modules),
                spec.name,
            )

    def _stage_files(self, context: PipelineContext) -> None:
        settings = context.settings
        root = settings.root
        necessities = [
            path
            for pattern in settings.project.necessities
            for path in sorted(root.glob(pattern))
            if path.is_file()
        ]
        for spec in settings.distributions:
            stage_dir = settings.stage_dir(spec.name)
            stage_dir.mkdir(parents=True, exist_ok=True)
            for relative in context.resolved[spec.name]:
                _copy_into(root / relative, stage_dir / relative)
            for path in necessities:
                _copy_into(path, stage_dir / path.relative_to(root))
            self.logger.debug(
                "Staged %d files and %d necessities for '%s'",
                len(context.resolved[spec.name]),
                len(necessities),
                spec.name,
            )

    def _bundle(self, context: PipelineContext) -> None:
        settings = context.settings
        for spec in settings.distributions:
            artifacts = build_one(
                spec,
                context.descriptors,
                settings,
                bundler=self.bundler,
                output_dir=settings.output_dir(spec.name),
                resolved=context.resolved.get(spec.name),
            )
            context.artifacts.append(artifacts)

        if settings.mode is not BuildMode.BUILD:
            self._copy_dist_assets(settings)

    def _copy_dist_assets(self, settings: BuildSettings) -> None:
        root = settings.root
        assets_dir = settings.dist_path / "assets"
        copied = 0
        for pattern in settings.project.assets:
            for path in sorted(root.glob(pattern)):
                if path.is_file():
                    _copy_into(path, assets_dir / path.relative_to(root))
                    copied += 1
        if copied:
            self.logger.info("Copied %d asset files into %s", copied, assets_dir)

    def _package(self, context: PipelineContext) -> None:
        settings = context.settings
        package = settings.package
        settings.products_path.mkdir(parents=True, exist_ok=True)
        for spec in settings.distributions:
            stage_dir = settings.stage_dir(spec.name)
            archive = settings.products_path / archive_filename(package.name, spec.name, package.version)
            with zipfile.ZipFile(archive, "w", compression=zipfile.ZIP_DEFLATED) as bundle_zip:
                for path in sorted(stage_dir.rglob("*")):
                    if path.is_file():
                        bundle_zip.write(path, f"{package.name}/{path.relative_to(stage_dir).as_posix()}")
            context.archives.append(archive)
            self.logger.info("Packaged %s", archive.name)

    def _post_build_clean(self, context: PipelineContext) -> None:
        """Remove the module sources concatenated into each bundle from its stage directory.

        Runs after packaging, so archives keep the full staged tree while
        build/ is left with bundles, maps and necessity files.
        """
        settings = context.settings
        for spec in settings.distributions:
            stage_dir = settings.stage_dir(spec.name)
            removed = 0
            for relative in context.resolved.get(spec.name, ()):
                path = stage_dir / relative
                if path.is_file():
                    path.unlink()
                    removed += 1
            _prune_empty_dirs(stage_dir)
            self.logger.debug("Removed %d staged sources for '%s'", removed, spec.name)

    def _verify(self, context: PipelineContext) -> None:
        settings = context.settings
        project = settings.project
        groups: List[Tuple[str, List[str]]] = [
            (group.name, collect_expected(group.sources, settings.root)) for group in project.verify
        ]
        js_files = GeneratedFileList(
            lambda: expected_outputs(settings.distributions, settings.package, project.dist_dir)
        )
        groups.append(("js", js_files.paths(settings.root)))

        presence: Dict[str, bool] = {}
        for name, expected in groups:
            self.logger.info('Verifying all "%s" files are in /%s', name, project.dist_dir)
            report = verify(expected, settings.root)
            display_report(report, self.logger)
            presence.update(report.files)

        combined = verify(list(presence), settings.root)
        context.report = combined
        process_report(combined, self.logger)


def _prune_empty_dirs(root: Path) -> None:
    # Deepest first, so parents emptied by their children are removed too.
    directories = [path for path in root.rglob("*") if path.is_dir()]
    for directory in sorted(directories, key=lambda path: len(path.parts), reverse=True):
        if not any(directory.iterdir()):
            directory.rmdir()


def _copy_into(source: Path, destination: Path) -> None:
    destination.parent.mkdir(parents=True, exist_ok=True)
    shutil.copy2(source, destination)


__all__ = [
    "PLANS",
    "Pipeline",
    "PipelineContext",
    "PipelineRun",
    "RunStatus",
    "Stage",
    "StageFailure",
]
