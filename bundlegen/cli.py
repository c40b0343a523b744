"""CLI entrypoints for bundlegen commands."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

from .config import ConfigError
from .distributions import DistributionError
from .logging import configure_logging
from .modules import DescriptorError, ResolutionError
from .orchestrator import Orchestrator
from .pipeline import PipelineRun, StageFailure
from .verify import MissingFileError


def _add_verbose_option(
    parser: argparse.ArgumentParser, *, suppress_default: bool = False
) -> None:
    kwargs: dict[str, object] = {
        "action": "store_true",
        "help": "Increase log verbosity, including external command diagnostics.",
    }
    if suppress_default:
        kwargs["default"] = argparse.SUPPRESS
    else:
        kwargs["default"] = False
    parser.add_argument(
        "-v",
        "--verbose",
        **kwargs,
    )


def _add_target_argument(parser: argparse.ArgumentParser, help_text: str) -> None:
    parser.add_argument("target", nargs="?", default=None, help=help_text)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="bundlegen",
        description="Build, package and verify JavaScript distribution bundles from module descriptors.",
    )
    _add_verbose_option(parser)
    parser.add_argument(
        "-C",
        "--project",
        default=".",
        help="Path to the project root (defaults to current directory).",
    )
    parser.add_argument(
        "--log-file",
        type=Path,
        default=None,
        help="Also write log records (with timestamps) to this file.",
    )
    subparsers = parser.add_subparsers(dest="command")
    parser.set_defaults(command="build", target="all")

    build_parser = subparsers.add_parser(
        "build",
        help="Generate a minified or source build for the 'all' or 'custom' target (default command).",
    )
    _add_verbose_option(build_parser, suppress_default=True)
    build_parser.add_argument(
        "target",
        nargs="?",
        default="all",
        choices=("all", "custom"),
        help="Build target (defaults to 'all').",
    )
    build_parser.add_argument("--name", default=None, help="Name of a custom build (defaults to 'custom').")
    build_parser.add_argument(
        "--include",
        default=None,
        help="Comma separated tags to include, e.g. 'framework, uiOptions'.",
    )
    build_parser.add_argument(
        "--exclude",
        default=None,
        help="Comma separated tags to exclude, e.g. 'jQuery, jQueryUI'.",
    )
    build_parser.add_argument(
        "--source",
        action="store_true",
        help="Produce expanded, commented output instead of minified bundles.",
    )

    distributions_parser = subparsers.add_parser(
        "distributions",
        help="Build the distribution matrix into dist/.",
    )
    _add_verbose_option(distributions_parser, suppress_default=True)
    _add_target_argument(distributions_parser, "Only build this distribution.")

    verify_parser = subparsers.add_parser(
        "verify-dist-files",
        aliases=["verifyDistFiles"],
        help="Verify that every expected distribution file exists in dist/.",
    )
    _add_verbose_option(verify_parser, suppress_default=True)

    build_dists_parser = subparsers.add_parser(
        "build-dists",
        aliases=["buildDists"],
        help="Clean, build all distributions and verify them before publishing.",
    )
    _add_verbose_option(build_dists_parser, suppress_default=True)
    _add_target_argument(build_dists_parser, "Only build and verify this distribution.")

    dependencies_parser = subparsers.add_parser(
        "load-dependencies",
        aliases=["loadDependencies"],
        help="Copy third-party library files into the source tree.",
    )
    _add_verbose_option(dependencies_parser, suppress_default=True)

    return parser


_COMMAND_ALIASES = {
    "verifyDistFiles": "verify-dist-files",
    "buildDists": "build-dists",
    "loadDependencies": "load-dependencies",
}


def main(argv: list[str] | None = None) -> None:
    """CLI entrypoint for bundlegen commands."""
    parser = _build_parser()
    args = parser.parse_args(argv)
    command = _COMMAND_ALIASES.get(args.command, args.command)

    configure_logging(verbose=bool(args.verbose), log_file=args.log_file)

    orchestrator = Orchestrator()
    project = args.project

    try:
        if command == "build":
            run = orchestrator.run_build(
                project,
                args.target or "all",
                name=getattr(args, "name", None),
                include=getattr(args, "include", None),
                exclude=getattr(args, "exclude", None),
                source=bool(getattr(args, "source", False)),
            )
            _print_run(run)
        elif command == "distributions":
            _print_run(orchestrator.run_distributions(project, args.target))
        elif command == "build-dists":
            _print_run(orchestrator.run_build_dists(project, args.target))
        elif command == "verify-dist-files":
            report = orchestrator.run_verify(project)
            print(f"{report.expected_count} out of {report.expected_count} expected files were present")
        elif command == "load-dependencies":
            orchestrator.run_load_dependencies(project)
            print("Dependencies loaded")
        else:  # pragma: no cover - argparse enforces choices
            parser.exit(1, "Unknown command\n")
    except MissingFileError as exc:
        missing = "\n".join(f"  - {path}" for path in exc.report.missing)
        parser.exit(
            1,
            f"Verification failed: {exc.report.missing_count} out of {exc.report.expected_count} "
            f"expected files not found\n{missing}\n",
        )
    except (ConfigError, DescriptorError, DistributionError, ResolutionError) as exc:
        parser.exit(1, f"bundlegen {command} failed: {exc}\n")
    except StageFailure as exc:
        parser.exit(1, f"bundlegen {command} failed: {exc}\nRun with --verbose for more details.\n")


def _print_run(run: PipelineRun) -> None:
    for artifacts in run.context.artifacts:
        print(f"{artifacts.distribution}: {_relativize(artifacts.bundle_path)}, {_relativize(artifacts.map_path)}")
    for archive in run.context.archives:
        print(f"Packaged {_relativize(archive)}")
    report = run.context.report
    if report is not None:
        print(f"{report.expected_count} out of {report.expected_count} expected files were present")


def _relativize(path: Path) -> str:
    try:
        return str(path.relative_to(Path.cwd()))
    except ValueError:
        return str(path)


if __name__ == "__main__":
    main(sys.argv[1:])
