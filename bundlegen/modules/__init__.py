"""Module descriptor loading and dependency resolution."""

from .loader import DEFAULT_DESCRIPTOR_PATTERNS, DescriptorError, load_descriptors, split_tags
from .resolver import (
    CycleError,
    DuplicateModuleError,
    ResolutionError,
    UnknownModuleError,
    resolve,
)

__all__ = [
    "DEFAULT_DESCRIPTOR_PATTERNS",
    "CycleError",
    "DescriptorError",
    "DuplicateModuleError",
    "ResolutionError",
    "UnknownModuleError",
    "load_descriptors",
    "resolve",
    "split_tags",
]
