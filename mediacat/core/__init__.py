"""
Core catalog package.

This package contains the storage entities and the access layer of the local
media catalog. It is independent of any UI layer and of the network/extraction
layer that produces the info objects it consumes.

We intentionally keep exports minimal; consumers should usually import from the
specific module they need (e.g. `mediacat.core.catalog_db`).
"""

from __future__ import annotations

__all__: list[str] = [
    "CatalogError",
    "NotFoundError",
    "InvalidPositionError",
]


class CatalogError(Exception):
    """Base class for core-layer exceptions."""


class NotFoundError(CatalogError):
    """Raised when an entity (stream/playlist/subscription/etc.) cannot be found."""


class InvalidPositionError(CatalogError, IndexError):
    """Raised when a playlist position is outside the current membership range."""
