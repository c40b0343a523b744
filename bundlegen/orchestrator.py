"""Command-level orchestration for build, distribution and verification runs."""

from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Callable, Sequence

from .bundler import Bundler, Minifier
from .config import BuildMode, BuildSettings, ProjectConfig, load_config, resolve_settings
from .logging import get_logger
from .models import VerificationReport
from .pipeline import Pipeline, PipelineRun, Stage, StageFailure
from .vcs import GitMetadata


class Orchestrator:
    """Binds one immutable settings object per command and runs its pipeline plan."""

    def __init__(
        self,
        bundler: Bundler | None = None,
        git: GitMetadata | None = None,
        runner: Callable[..., str] | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._bundler = bundler
        self._git = git or GitMetadata(runner=runner)
        self._runner = runner
        self._clock = clock or datetime.now
        self.logger = get_logger("orchestrator")

    def run_build(
        self,
        path: str,
        target: str = "all",
        *,
        name: str | None = None,
        include: str | Sequence[str] | None = None,
        exclude: str | Sequence[str] | None = None,
        source: bool = False,
    ) -> PipelineRun:
        """Build and package the predefined ``all`` target or a ``custom`` selection."""
        project = self._load_project(path)
        settings = self._settings(
            project,
            BuildMode.BUILD,
            target=target,
            name=name,
            include=include,
            exclude=exclude,
            expanded=source,
        )
        return self._pipeline(project).run(settings)

    def run_distributions(self, path: str, target: str | None = None) -> PipelineRun:
        """Build every distribution in the matrix (or only ``target``) into dist/."""
        project = self._load_project(path)
        settings = self._settings(project, BuildMode.DISTRIBUTIONS, distribution=target)
        return self._pipeline(project).run(settings)

    def run_build_dists(self, path: str, target: str | None = None) -> PipelineRun:
        """Clean, build all distributions and verify dist/ before publishing."""
        project = self._load_project(path)
        settings = self._settings(project, BuildMode.BUILD_DISTS, distribution=target)
        return self._pipeline(project).run(settings)

    def run_verify(self, path: str) -> VerificationReport:
        """Verify that dist/ holds every promised artifact."""
        project = self._load_project(path)
        settings = self._settings(project, BuildMode.VERIFY)
        run = self._pipeline(project).run(settings)
        if run.context.report is None:
            raise StageFailure(Stage.VERIFY, RuntimeError("verification produced no report"))
        return run.context.report

    def run_load_dependencies(self, path: str) -> PipelineRun:
        """Refresh third-party files copied into the source tree."""
        project = self._load_project(path)
        settings = self._settings(project, BuildMode.LOAD_DEPENDENCIES, target="dependencies")
        return self._pipeline(project).run(settings)

    # ------------------------------------------------------------------
    # Helpers

    def _load_project(self, path: str) -> ProjectConfig:
        root = Path(path).expanduser().resolve()
        project = load_config(root)
        self.logger.debug("Loaded project configuration from %s", project.root)
        return project

    def _settings(self, project: ProjectConfig, mode: BuildMode, **options: object) -> BuildSettings:
        return resolve_settings(project, mode, git=self._git, now=self._clock(), **options)  # type: ignore[arg-type]

    def _pipeline(self, project: ProjectConfig) -> Pipeline:
        bundler = self._bundler or Bundler(
            Minifier(command=project.minifier.command, runner=self._runner)
        )
        return Pipeline(bundler=bundler, runner=self._runner)


__all__ = ["Orchestrator"]
