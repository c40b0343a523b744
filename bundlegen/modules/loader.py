"""Discovery and parsing of module descriptor files."""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Dict, Iterable, List, Sequence

from ..logging import get_logger
from ..models import ModuleDescriptor

DEFAULT_DESCRIPTOR_PATTERNS = ("src/**/*Dependencies.json",)

logger = get_logger("modules")


class DescriptorError(ValueError):
    """Raised when a module descriptor file cannot be parsed."""


def load_descriptors(
    root: Path, patterns: Sequence[str] = DEFAULT_DESCRIPTOR_PATTERNS
) -> List[ModuleDescriptor]:
    """Load every descriptor matching ``patterns`` under ``root``.

    Files are read in sorted path order and modules keep their declaration
    order within a file, which is what the resolver uses to break ties.
    """
    root = root.resolve()
    descriptor_files = sorted({path for pattern in patterns for path in root.glob(pattern)})
    descriptors: List[ModuleDescriptor] = []
    for path in descriptor_files:
        descriptors.extend(parse_descriptor_file(path, root))
    logger.debug(
        "Loaded %d module descriptors from %d files", len(descriptors), len(descriptor_files)
    )
    return descriptors


def parse_descriptor_file(path: Path, root: Path) -> List[ModuleDescriptor]:
    """Parse one descriptor file, rebasing module files onto ``root``."""
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise DescriptorError(f"Failed to read module descriptor {path}: {exc}") from exc

    if isinstance(data, list):
        entries = [(None, item) for item in data]
    elif isinstance(data, dict) and "files" in data:
        entries = [(None, data)]
    elif isinstance(data, dict):
        entries = list(data.items())
    else:
        raise DescriptorError(f"{path} must contain a descriptor object, mapping or list")

    base = path.parent
    return [_build_descriptor(path, base, root, key, body) for key, body in entries]


def _build_descriptor(
    path: Path, base: Path, root: Path, key: str | None, body: Any
) -> ModuleDescriptor:
    if not isinstance(body, dict):
        raise DescriptorError(f"{path}: module entry {key!r} must be a mapping")
    name = key if key is not None else body.get("name")
    if not isinstance(name, str) or not name:
        raise DescriptorError(f"{path}: module entry is missing a name")

    files = [_rebase(path, base, root, item) for item in _as_str_list(body.get("files"))]
    if not files:
        raise DescriptorError(f"{path}: module '{name}' declares no files")

    # Without explicit tags a module can still be selected by its own name.
    raw_tags = body.get("tags")
    tags = split_tags(raw_tags) if isinstance(raw_tags, str) else _as_str_list(raw_tags)
    tags = tags or [name]
    return ModuleDescriptor(
        name=name,
        files=tuple(files),
        dependencies=frozenset(_as_str_list(body.get("dependencies"))),
        tags=frozenset(tags),
    )


def _rebase(path: Path, base: Path, root: Path, file_name: str) -> str:
    absolute = Path(os.path.normpath(base / file_name))
    try:
        return absolute.relative_to(root).as_posix()
    except ValueError as exc:
        raise DescriptorError(f"{path}: file '{file_name}' lies outside {root}") from exc


def _as_str_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, Iterable):
        return [str(item).strip() for item in value if str(item).strip()]
    return []


def split_tags(value: str) -> List[str]:
    """Split a comma separated tag string such as ``"jQuery, jQueryUI"``."""
    return [part.strip() for part in value.split(",") if part.strip()]


__all__ = [
    "DEFAULT_DESCRIPTOR_PATTERNS",
    "DescriptorError",
    "load_descriptors",
    "parse_descriptor_file",
    "split_tags",
]
