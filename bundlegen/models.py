"""Core data models shared across bundlegen components."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import FrozenSet, Iterator, Mapping, Optional, Tuple


@dataclass(frozen=True)
class ModuleDescriptor:
    """Declares a module's source files, dependencies and category tags."""

    name: str
    files: Tuple[str, ...]
    dependencies: FrozenSet[str] = frozenset()
    tags: FrozenSet[str] = frozenset()

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("Module descriptor requires a name")
        if not self.files:
            raise ValueError(f"Module '{self.name}' must declare at least one file")


@dataclass(frozen=True)
class DistributionSpec:
    """One entry of the distribution matrix."""

    name: str
    include: Optional[FrozenSet[str]] = None
    exclude: Optional[FrozenSet[str]] = None
    expanded: bool = True


@dataclass(frozen=True)
class ResolvedFileSet:
    """Ordered, de-duplicated file list produced for one tag filter."""

    files: Tuple[str, ...]
    modules: Tuple[str, ...] = ()

    def __iter__(self) -> Iterator[str]:
        return iter(self.files)

    def __len__(self) -> int:
        return len(self.files)

    def __contains__(self, path: object) -> bool:
        return path in self.files


@dataclass(frozen=True)
class VerificationReport:
    """Presence record for a set of expected output files."""

    files: Mapping[str, bool] = field(default_factory=dict)
    missing_count: int = 0
    expected_count: int = 0

    @property
    def passed(self) -> bool:
        return self.missing_count == 0

    @property
    def missing(self) -> Tuple[str, ...]:
        return tuple(path for path, present in self.files.items() if not present)


@dataclass(frozen=True)
class PackageInfo:
    """Package metadata embedded in bundle preambles and archive names."""

    name: str
    version: str


@dataclass(frozen=True)
class BundleArtifacts:
    """Files written for one distribution build."""

    distribution: str
    bundle_path: Path
    map_path: Path
