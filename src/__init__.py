# src/__init__.py — v1
"""conveyor: CI/CD pipeline engine with artifact caching, scoped secrets and promotions."""

from conveyor.version import __version__

__all__ = ["__version__"]
