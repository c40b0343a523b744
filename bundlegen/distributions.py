"""The distribution matrix and per-distribution build logic."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, Iterable, Iterator, List, Mapping, Optional, Sequence, Tuple

from .bundler import Bundler
from .models import BundleArtifacts, DistributionSpec, ModuleDescriptor, PackageInfo, ResolvedFileSet
from .modules.loader import split_tags
from .modules.resolver import resolve
from .naming import bundle_filename, map_filename

if TYPE_CHECKING:  # pragma: no cover - typing aid
    from .config import BuildSettings

_NO_JQUERY = frozenset({"jQuery", "jQueryUI"})


def _spec(name: str, include: str | None = None, *, no_jquery: bool = False, expanded: bool = True) -> DistributionSpec:
    return DistributionSpec(
        name=name,
        include=frozenset({include}) if include else None,
        exclude=_NO_JQUERY if no_jquery else None,
        expanded=expanded,
    )


DEFAULT_DISTRIBUTIONS: Tuple[DistributionSpec, ...] = (
    _spec("all"),
    _spec("all.min", expanded=False),
    _spec("all-no-jquery", no_jquery=True),
    _spec("all-no-jquery.min", no_jquery=True, expanded=False),
    _spec("framework", "framework"),
    _spec("framework.min", "framework", expanded=False),
    _spec("framework-no-jquery", "framework", no_jquery=True),
    _spec("framework-no-jquery.min", "framework", no_jquery=True, expanded=False),
    _spec("uio", "uiOptions"),
    _spec("uio.min", "uiOptions", expanded=False),
    _spec("uio-no-jquery", "uiOptions", no_jquery=True),
    _spec("uio-no-jquery.min", "uiOptions", no_jquery=True, expanded=False),
)


class DistributionError(ValueError):
    """Raised when the distribution matrix is malformed."""


class DuplicateDistributionError(DistributionError):
    """Raised when two matrix entries share a name."""


class DistributionMatrix:
    """Enumerable, read-only table of distribution specs keyed by name."""

    def __init__(self, specs: Iterable[DistributionSpec] = DEFAULT_DISTRIBUTIONS) -> None:
        ordered: Dict[str, DistributionSpec] = {}
        for spec in specs:
            if spec.name in ordered:
                raise DuplicateDistributionError(f"Distribution '{spec.name}' is defined more than once")
            ordered[spec.name] = spec
        self._specs = ordered

    @classmethod
    def from_config(cls, data: Any) -> "DistributionMatrix":
        """Build a matrix from a ``name -> options`` mapping or a list of named entries."""
        if isinstance(data, Mapping):
            return cls(parse_distribution(str(name), options) for name, options in data.items())
        if isinstance(data, list):
            specs: List[DistributionSpec] = []
            for entry in data:
                if not isinstance(entry, Mapping) or not entry.get("name"):
                    raise DistributionError("Distribution list entries must be mappings with a name")
                specs.append(parse_distribution(str(entry["name"]), entry))
            return cls(specs)
        raise DistributionError("distributions must be a mapping or a list")

    def __iter__(self) -> Iterator[DistributionSpec]:
        return iter(self._specs.values())

    def __len__(self) -> int:
        return len(self._specs)

    def __contains__(self, name: object) -> bool:
        return name in self._specs

    def names(self) -> List[str]:
        return list(self._specs)

    def get(self, name: str) -> DistributionSpec:
        try:
            return self._specs[name]
        except KeyError:
            known = ", ".join(self._specs)
            raise DistributionError(f"Unknown distribution '{name}' (known: {known})") from None

    def select(self, name: Optional[str] = None) -> Tuple[DistributionSpec, ...]:
        """Return every spec, or only ``name`` when given."""
        if name is None:
            return tuple(self._specs.values())
        return (self.get(name),)


def parse_distribution(name: str, options: Any) -> DistributionSpec:
    """Parse ``{include, exclude, expanded}`` options, also accepting a nested ``options`` key."""
    if options is None:
        options = {}
    if not isinstance(options, Mapping):
        raise DistributionError(f"Distribution '{name}' options must be a mapping")
    if isinstance(options.get("options"), Mapping):
        options = options["options"]
    expanded = options.get("expanded", True)
    if not isinstance(expanded, bool):
        raise DistributionError(f"Distribution '{name}': expanded must be true or false")
    return DistributionSpec(
        name=name,
        include=_tag_set(options.get("include")),
        exclude=_tag_set(options.get("exclude")),
        expanded=expanded,
    )


def _tag_set(value: Any) -> Optional[frozenset]:
    if value is None:
        return None
    if isinstance(value, str):
        tags = split_tags(value)
    elif isinstance(value, Sequence):
        tags = [str(item).strip() for item in value if str(item).strip()]
    else:
        raise DistributionError(f"Tag filters must be strings or lists, got {type(value).__name__}")
    return frozenset(tags) if tags else None


def build_one(
    spec: DistributionSpec,
    descriptors: Sequence[ModuleDescriptor],
    settings: "BuildSettings",
    *,
    bundler: Bundler,
    output_dir: Path,
    resolved: ResolvedFileSet | None = None,
) -> BundleArtifacts:
    """Build the bundle and source map for one distribution.

    Staged sources are read from, and intermediates written to, directories
    owned by ``spec`` alone, so distributions in one run never touch each
    other's files.
    """
    if resolved is None:
        resolved = resolve(descriptors, spec.include, spec.exclude)
    return bundler.bundle(
        spec,
        resolved,
        package=settings.package,
        preamble=settings.preamble,
        source_root=settings.stage_dir(spec.name),
        work_dir=settings.work_dir(spec.name),
        output_dir=output_dir,
    )


def expected_outputs(
    specs: Iterable[DistributionSpec], package: PackageInfo, dist_dir: str
) -> List[str]:
    """Return the bundle and map paths every distribution promises under ``dist_dir``."""
    prefix = dist_dir.rstrip("/")
    expected: List[str] = []
    for spec in specs:
        expected.append(f"{prefix}/{bundle_filename(package.name, spec.name, expanded=spec.expanded)}")
        expected.append(f"{prefix}/{map_filename(package.name, spec.name, expanded=spec.expanded)}")
    return expected


__all__ = [
    "DEFAULT_DISTRIBUTIONS",
    "DistributionError",
    "DistributionMatrix",
    "DuplicateDistributionError",
    "build_one",
    "expected_outputs",
    "parse_distribution",
]
