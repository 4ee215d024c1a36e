"""
Internal DB subpackage for the catalog.

This package splits the storage layer into focused units (records, schema and
migrations, ordering fragments, and per-table query groups) while keeping
`CatalogDb` as the single public interface the rest of the codebase imports.

Re-exports here are primarily for convenience inside the `core` package.
External code should import `CatalogDb` from `mediacat.core.catalog_db`.
"""

from __future__ import annotations

# Records
from .models import (
    NotificationMode,
    PlaylistEntity,
    PlaylistMetadataRow,
    PlaylistRemoteEntity,
    PlaylistStreamEntity,
    PlaylistStreamRow,
    StreamEntity,
    SubscriptionEntity,
)

# Schema / migrations
from .schema import SCHEMA_VERSION, ensure_schema, migrate

__all__ = [
    # models
    "NotificationMode",
    "PlaylistEntity",
    "PlaylistMetadataRow",
    "PlaylistRemoteEntity",
    "PlaylistStreamEntity",
    "PlaylistStreamRow",
    "StreamEntity",
    "SubscriptionEntity",
    # schema
    "SCHEMA_VERSION",
    "ensure_schema",
    "migrate",
]
