"""Dependency-aware module selection and ordering."""

from __future__ import annotations

import heapq
from collections import defaultdict
from typing import AbstractSet, Dict, Iterable, List, Optional, Sequence, Set, Tuple

from ..models import ModuleDescriptor, ResolvedFileSet


class ResolutionError(RuntimeError):
    """Raised when a module set cannot be resolved into a file list."""


class CycleError(ResolutionError):
    """Raised when module dependencies form a cycle."""

    def __init__(self, modules: Sequence[str]) -> None:
        self.modules: Tuple[str, ...] = tuple(modules)
        chain = " -> ".join([*self.modules, self.modules[0]]) if self.modules else ""
        super().__init__(f"Dependency cycle detected between modules: {chain}")


class UnknownModuleError(ResolutionError):
    """Raised when a module depends on a name no descriptor declares."""

    def __init__(self, module: str, dependency: str) -> None:
        self.module = module
        self.dependency = dependency
        super().__init__(f"Module '{module}' depends on unknown module '{dependency}'")


class DuplicateModuleError(ResolutionError):
    """Raised when two descriptors share a module name."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Module '{name}' is declared more than once")


_Index = Dict[str, Tuple[int, ModuleDescriptor]]


def resolve(
    descriptors: Sequence[ModuleDescriptor],
    include: Optional[Iterable[str]] = None,
    exclude: Optional[Iterable[str]] = None,
) -> ResolvedFileSet:
    """Return the ordered file list for modules matching the tag filter.

    Selected modules pull in their transitive dependencies regardless of tags,
    except that a dependency matching ``exclude`` is always dropped. Modules
    are ordered so that dependencies come first, including those reached
    through a dropped module, ties following declaration order. Files are
    de-duplicated by first occurrence.
    """
    index = _index_descriptors(descriptors)
    include_tags = frozenset(include) if include is not None else None
    exclude_tags = frozenset(exclude) if exclude is not None else None

    selected = [
        descriptor.name
        for descriptor in descriptors
        if _is_selected(descriptor, include_tags, exclude_tags)
    ]
    closure = _dependency_closure(selected, index, exclude_tags)
    ordered = _topological_order(closure, index)

    files: List[str] = []
    seen: Set[str] = set()
    for name in ordered:
        for path in index[name][1].files:
            if path in seen:
                continue
            seen.add(path)
            files.append(path)
    return ResolvedFileSet(files=tuple(files), modules=tuple(ordered))


def _index_descriptors(descriptors: Sequence[ModuleDescriptor]) -> _Index:
    index: _Index = {}
    for position, descriptor in enumerate(descriptors):
        if descriptor.name in index:
            raise DuplicateModuleError(descriptor.name)
        index[descriptor.name] = (position, descriptor)
    return index


def _is_selected(
    descriptor: ModuleDescriptor,
    include: Optional[AbstractSet[str]],
    exclude: Optional[AbstractSet[str]],
) -> bool:
    if include is not None and not descriptor.tags & include:
        return False
    return not _is_excluded(descriptor, exclude)


def _is_excluded(descriptor: ModuleDescriptor, exclude: Optional[AbstractSet[str]]) -> bool:
    return exclude is not None and bool(descriptor.tags & exclude)


def _dependency_closure(
    selected: Sequence[str],
    index: _Index,
    exclude: Optional[AbstractSet[str]],
) -> Set[str]:
    closure: Set[str] = set()
    stack = list(reversed(selected))
    while stack:
        name = stack.pop()
        if name in closure:
            continue
        closure.add(name)
        for dependency in sorted(index[name][1].dependencies):
            if dependency not in index:
                raise UnknownModuleError(name, dependency)
            if _is_excluded(index[dependency][1], exclude):
                continue
            if dependency not in closure:
                stack.append(dependency)
    return closure


def _topological_order(closure: Set[str], index: _Index) -> List[str]:
    pending: Dict[str, Set[str]] = {
        name: _ordering_dependencies(name, closure, index) for name in closure
    }
    dependents: Dict[str, List[str]] = defaultdict(list)
    for name, dependencies in pending.items():
        for dependency in dependencies:
            dependents[dependency].append(name)

    ready = [(index[name][0], name) for name, deps in pending.items() if not deps]
    heapq.heapify(ready)
    ordered: List[str] = []
    while ready:
        _, name = heapq.heappop(ready)
        ordered.append(name)
        for dependent in dependents[name]:
            remaining = pending[dependent]
            remaining.discard(name)
            if not remaining:
                heapq.heappush(ready, (index[dependent][0], dependent))

    if len(ordered) != len(closure):
        blocked = {name: deps for name, deps in pending.items() if deps}
        raise CycleError(_find_cycle(blocked, index))
    return ordered


def _ordering_dependencies(name: str, closure: Set[str], index: _Index) -> Set[str]:
    """Return the closure modules ``name`` must follow.

    Dependencies dropped by the exclude filter are walked through, so a
    module reached only via an excluded one still comes first.
    """
    found: Set[str] = set()
    seen: Set[str] = set()
    stack = list(index[name][1].dependencies)
    while stack:
        dependency = stack.pop()
        if dependency in seen or dependency not in index:
            continue
        seen.add(dependency)
        if dependency in closure:
            found.add(dependency)
        else:
            stack.extend(index[dependency][1].dependencies)
    found.discard(name)
    return found


def _find_cycle(blocked: Dict[str, Set[str]], index: _Index) -> List[str]:
    # Every blocked module still waits on another blocked module, so walking
    # dependencies from any of them must revisit a module.
    def position(name: str) -> int:
        return index[name][0]

    current = min(blocked, key=position)
    path: List[str] = []
    visited: Dict[str, int] = {}
    while current not in visited:
        visited[current] = len(path)
        path.append(current)
        current = min(blocked[current], key=position)
    return path[visited[current]:]


__all__ = [
    "CycleError",
    "DuplicateModuleError",
    "ResolutionError",
    "UnknownModuleError",
    "resolve",
]
