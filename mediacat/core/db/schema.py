"""
Database schema + migrations for the catalog.

- Connection management and the public `CatalogDb` facade live in
  `mediacat.core.catalog_db`
- Schema creation, schema versioning, and forward-only migrations live here

Design notes:
- We use SQLite `PRAGMA user_version` as the schema version.
- Migrations are forward-only (no downgrade support).
- Table and column names are an on-disk contract shared with other tooling;
  do not rename them.
- Both foreign keys of `playlist_stream_join` are DEFERRABLE INITIALLY
  DEFERRED so a reordering can pass through intermediate states inside one
  transaction. Cascading actions still fire immediately.
"""

from __future__ import annotations

import logging
from typing import Final

import aiosqlite

logger = logging.getLogger(__name__)

# Bump when you change the schema and add a migration in `migrate()`.
SCHEMA_VERSION: Final[int] = 2


async def ensure_schema(conn: aiosqlite.Connection) -> None:
    """
    Create or migrate schema to current version.

    This function assumes:
    - `conn` is an open aiosqlite connection
    - `conn.row_factory` is configured by the caller if desired
    - foreign_keys pragma is enabled by the caller
    """
    cursor = await conn.execute("PRAGMA user_version;")
    row = await cursor.fetchone()
    current = int(row[0]) if row is not None else 0

    if current > SCHEMA_VERSION:
        raise RuntimeError(
            f"Database schema version {current} is newer than supported {SCHEMA_VERSION}."
        )

    if current == SCHEMA_VERSION:
        return

    logger.info("Migrating catalog schema from v%d to v%d", current, SCHEMA_VERSION)
    await migrate(conn, from_version=current, to_version=SCHEMA_VERSION)
    await conn.execute(f"PRAGMA user_version = {SCHEMA_VERSION};")
    await conn.commit()


async def migrate(conn: aiosqlite.Connection, *, from_version: int, to_version: int) -> None:
    """
    Perform forward-only migrations.

    Keep migrations small. If you need a big refactor, create a new DB.
    """
    # v0 -> v1
    if from_version == 0 and to_version >= 1:
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS streams (
                uid INTEGER PRIMARY KEY AUTOINCREMENT,
                service_id INTEGER NOT NULL,
                url TEXT NOT NULL,
                title TEXT NOT NULL,
                live INTEGER NOT NULL DEFAULT 0,
                audio_only INTEGER NOT NULL DEFAULT 0,
                duration INTEGER NOT NULL DEFAULT 0,
                uploader TEXT NOT NULL DEFAULT '',
                uploader_url TEXT,
                thumbnail_url TEXT
            )
            """
        )
        await conn.execute(
            "CREATE UNIQUE INDEX IF NOT EXISTS index_streams_service_id_url "
            "ON streams(service_id, url);"
        )

        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS playlists (
                uid INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT,
                thumbnail_url TEXT
            )
            """
        )
        await conn.execute("CREATE INDEX IF NOT EXISTS index_playlists_name ON playlists(name);")

        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS playlist_stream_join (
                playlist_id INTEGER NOT NULL
                    REFERENCES playlists(uid)
                    ON UPDATE CASCADE ON DELETE CASCADE
                    DEFERRABLE INITIALLY DEFERRED,
                stream_id INTEGER NOT NULL
                    REFERENCES streams(uid)
                    ON UPDATE CASCADE ON DELETE CASCADE
                    DEFERRABLE INITIALLY DEFERRED,
                join_index INTEGER NOT NULL,
                PRIMARY KEY (playlist_id, join_index)
            )
            """
        )
        await conn.execute(
            "CREATE UNIQUE INDEX IF NOT EXISTS index_playlist_stream_join_playlist_id_join_index "
            "ON playlist_stream_join(playlist_id, join_index);"
        )
        await conn.execute(
            "CREATE INDEX IF NOT EXISTS index_playlist_stream_join_stream_id "
            "ON playlist_stream_join(stream_id);"
        )

        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS remote_playlists (
                uid INTEGER PRIMARY KEY AUTOINCREMENT,
                service_id INTEGER NOT NULL,
                name TEXT,
                url TEXT,
                thumbnail_url TEXT,
                uploader TEXT,
                stream_count INTEGER
            )
            """
        )
        await conn.execute(
            "CREATE INDEX IF NOT EXISTS index_remote_playlists_name ON remote_playlists(name);"
        )
        await conn.execute(
            "CREATE UNIQUE INDEX IF NOT EXISTS index_remote_playlists_service_id_url "
            "ON remote_playlists(service_id, url);"
        )

        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS subscriptions (
                uid INTEGER PRIMARY KEY AUTOINCREMENT,
                service_id INTEGER NOT NULL,
                url TEXT,
                name TEXT,
                avatar_url TEXT,
                subscriber_count INTEGER,
                description TEXT
            )
            """
        )
        await conn.execute(
            "CREATE UNIQUE INDEX IF NOT EXISTS index_subscriptions_service_id_url "
            "ON subscriptions(service_id, url);"
        )

        await conn.commit()
        from_version = 1

    # v1 -> v2
    if from_version == 1 and to_version >= 2:
        # Richer stream metadata and per-channel notification preference.
        await conn.execute("ALTER TABLE streams ADD COLUMN view_count INTEGER;")
        await conn.execute("ALTER TABLE streams ADD COLUMN textual_upload_date TEXT;")
        # Epoch milliseconds, UTC.
        await conn.execute("ALTER TABLE streams ADD COLUMN upload_date INTEGER;")
        await conn.execute("ALTER TABLE streams ADD COLUMN is_upload_date_approximation INTEGER;")
        await conn.execute(
            "ALTER TABLE subscriptions ADD COLUMN notification_mode INTEGER NOT NULL DEFAULT 0;"
        )

        await conn.commit()
        from_version = 2

    if from_version != to_version:
        raise RuntimeError(f"No migration path from {from_version} to {to_version}.")
