"""Artifact naming rules, including the ``.min`` filename convention."""

from __future__ import annotations

_MIN_SEGMENT = "min"


def add_minified_segment(name: str) -> str:
    """Insert ``min`` after the first segment of a dotted filename.

    ``infusion-all.js`` becomes ``infusion-all.min.js`` and
    ``infusion-all.js.map`` becomes ``infusion-all.min.js.map``. Names that
    already carry a ``min`` segment are returned unchanged, as are names whose
    first segment is empty.
    """
    segments = name.split(".")
    if not segments[0] or _MIN_SEGMENT in segments:
        return name
    segments.insert(1, _MIN_SEGMENT)
    return ".".join(segments)


def bundle_filename(package: str, distribution: str, *, expanded: bool) -> str:
    """Return the bundle name for a distribution, e.g. ``infusion-uio.min.js``."""
    name = f"{package}-{distribution}.js"
    return name if expanded else add_minified_segment(name)


def map_filename(package: str, distribution: str, *, expanded: bool) -> str:
    name = f"{package}-{distribution}.js.map"
    return name if expanded else add_minified_segment(name)


def archive_filename(package: str, distribution: str, version: str) -> str:
    return f"{package}-{distribution}-{version}.zip"


__all__ = [
    "add_minified_segment",
    "archive_filename",
    "bundle_filename",
    "map_filename",
]
