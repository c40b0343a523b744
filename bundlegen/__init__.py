"""Configuration-driven builder for verified JavaScript distribution bundles."""

__version__ = "0.1.0"
