"""Bundle concatenation, source maps and the external minifier."""

from __future__ import annotations

import json
import subprocess
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Sequence, Tuple

from .logging import get_logger
from .models import BundleArtifacts, DistributionSpec, PackageInfo, ResolvedFileSet
from .naming import bundle_filename, map_filename

_BASE64 = "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789+/"


class MinifierError(RuntimeError):
    """Raised when the external minifier fails or produces no output."""


def encode_vlq(value: int) -> str:
    """Encode an integer as a base64 VLQ source map field."""
    vlq = ((-value) << 1) | 1 if value < 0 else value << 1
    encoded: List[str] = []
    while True:
        digit = vlq & 31
        vlq >>= 5
        if vlq:
            digit |= 32
        encoded.append(_BASE64[digit])
        if not vlq:
            return "".join(encoded)


def concatenate(
    source_root: Path,
    files: Sequence[str],
    *,
    preamble: str,
    bundle_name: str,
    map_name: str,
) -> Tuple[str, Dict[str, object]]:
    """Join ``files`` behind ``preamble`` and return the bundle text and its source map.

    Every bundled line maps back to column 0 of its original line; preamble
    lines and the trailing ``sourceMappingURL`` comment are unmapped.
    """
    lines: List[str] = split_lines(preamble)
    mappings: List[str] = [""] * len(lines)
    previous_source = 0
    previous_line = 0

    for source_index, relative in enumerate(files):
        text = (source_root / relative).read_text(encoding="utf-8")
        for line_number, line in enumerate(split_lines(text)):
            lines.append(line)
            mappings.append(
                encode_vlq(0)
                + encode_vlq(source_index - previous_source)
                + encode_vlq(line_number - previous_line)
                + encode_vlq(0)
            )
            previous_source = source_index
            previous_line = line_number

    lines.append(f"//# sourceMappingURL={map_name}")
    mappings.append("")

    source_map: Dict[str, object] = {
        "version": 3,
        "file": bundle_name,
        "sources": list(files),
        "names": [],
        "mappings": ";".join(mappings),
    }
    return "\n".join(lines) + "\n", source_map


def split_lines(text: str) -> List[str]:
    """Split on line feeds only, dropping one trailing empty line and CRLF carriage returns.

    ``str.splitlines`` also breaks on U+2028 and other separators that are
    legal inside JavaScript string literals.
    """
    lines = text.split("\n")
    if lines[-1] == "":
        lines.pop()
    return [line[:-1] if line.endswith("\r") else line for line in lines]


class Minifier:
    """Runs an external JavaScript minifier (terser by default).

    Contract: given an expanded bundle and its source map, the command writes
    ``output`` and ``output.map``; the preamble is kept because it is a
    ``/*!`` comment.
    """

    DEFAULT_COMMAND: Tuple[str, ...] = ("terser",)

    def __init__(
        self,
        command: Sequence[str] | None = None,
        runner: Callable[..., str] | None = None,
    ) -> None:
        self.command = tuple(command) if command else self.DEFAULT_COMMAND
        self._runner = runner or self._default_runner

    def minify(self, source: Path, source_map: Path, output: Path, output_map: Path) -> None:
        args = [
            *self.command,
            str(source),
            "--output",
            str(output),
            "--comments",
            "some",
            "--source-map",
            f"content='{source_map}',url='{output_map.name}'",
        ]
        try:
            self._runner(args, cwd=output.parent)
        except (OSError, subprocess.CalledProcessError) as exc:
            raise MinifierError(f"Minifier command failed for {source.name}: {exc}") from exc
        for produced in (output, output_map):
            if not produced.exists():
                raise MinifierError(f"Minifier did not produce {produced}")

    @staticmethod
    def _default_runner(
        args: Iterable[str],
        *,
        cwd: Path,
        capture_output: bool = False,
    ) -> str:
        completed = subprocess.run(
            list(args),
            cwd=str(cwd),
            check=True,
            text=True,
            capture_output=capture_output,
        )
        return completed.stdout if capture_output else ""


class Bundler:
    """Writes the bundle and source map for one distribution."""

    def __init__(self, minifier: Minifier | None = None) -> None:
        self.minifier = minifier or Minifier()
        self.logger = get_logger("bundler")

    def bundle(
        self,
        spec: DistributionSpec,
        resolved: ResolvedFileSet,
        *,
        package: PackageInfo,
        preamble: str,
        source_root: Path,
        work_dir: Path,
        output_dir: Path,
    ) -> BundleArtifacts:
        """Concatenate ``resolved`` and, for minified distributions, run the minifier.

        Intermediate files are written to ``work_dir`` only, which must be
        private to this distribution.
        """
        expanded_name = bundle_filename(package.name, spec.name, expanded=True)
        expanded_map = map_filename(package.name, spec.name, expanded=True)
        text, source_map = concatenate(
            source_root,
            resolved.files,
            preamble=preamble,
            bundle_name=expanded_name,
            map_name=expanded_map,
        )

        output_dir.mkdir(parents=True, exist_ok=True)
        if spec.expanded:
            bundle_path = output_dir / expanded_name
            map_path = output_dir / expanded_map
            _write_bundle(bundle_path, map_path, text, source_map)
        else:
            work_dir.mkdir(parents=True, exist_ok=True)
            intermediate = work_dir / expanded_name
            intermediate_map = work_dir / expanded_map
            _write_bundle(intermediate, intermediate_map, text, source_map)
            bundle_path = output_dir / bundle_filename(package.name, spec.name, expanded=False)
            map_path = output_dir / map_filename(package.name, spec.name, expanded=False)
            self.minifier.minify(intermediate, intermediate_map, bundle_path, map_path)

        self.logger.info(
            "Bundled %d files for '%s' into %s", len(resolved), spec.name, bundle_path.name
        )
        return BundleArtifacts(distribution=spec.name, bundle_path=bundle_path, map_path=map_path)


def _write_bundle(bundle_path: Path, map_path: Path, text: str, source_map: Dict[str, object]) -> None:
    bundle_path.write_text(text, encoding="utf-8")
    map_path.write_text(json.dumps(source_map, indent=None, separators=(",", ":")), encoding="utf-8")


__all__ = ["Bundler", "Minifier", "MinifierError", "concatenate", "encode_vlq", "split_lines"]
