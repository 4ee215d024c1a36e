"""
Catalog database access layer.

Goals:
- SQLite + aiosqlite, async/await friendly.
- Keep the on-disk table layout stable (other tooling reads it).
- Enforce the catalog invariants the schema alone cannot express:
  natural-key upserts and contiguous playlist positions.

This module is intentionally independent of any UI layer.

Note:
- Records and conversion helpers live in `mediacat.core.db.models`
- Schema/migrations live in `mediacat.core.db.schema`
- Query functions live in `mediacat.core.db.queries_*` modules
- `CatalogDb` remains the public facade used by the rest of the codebase
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Iterable, Sequence

import aiosqlite

from mediacat.core import InvalidPositionError, NotFoundError
from mediacat.core.db import (
    queries_playlists,
    queries_remote_playlists,
    queries_streams,
    queries_subscriptions,
)
from mediacat.core.db.models import (
    NotificationMode,
    PlaylistEntity,
    PlaylistMetadataRow,
    PlaylistRemoteEntity,
    PlaylistStreamEntity,
    PlaylistStreamRow,
    StreamEntity,
    SubscriptionEntity,
    datetime_to_millis,
)
from mediacat.core.db.schema import ensure_schema as ensure_schema_sql

logger = logging.getLogger(__name__)


def merge_with_existing(newer: StreamEntity, existing: StreamEntity) -> StreamEntity:
    """
    Return `newer` with the better-known fields of `existing` carried over.

    Live streams are taken as-is. For other streams a precise stored upload
    date beats a missing or approximate new one, and a known duration or view
    count is not overwritten by an unknown one.
    """
    if newer.is_live:
        return newer

    changes: dict[str, object] = {}
    if existing.upload_date is not None and newer.is_upload_date_approximation is not False:
        changes["upload_date"] = existing.upload_date
        changes["textual_upload_date"] = existing.textual_upload_date
        changes["is_upload_date_approximation"] = existing.is_upload_date_approximation
    if existing.duration > 0 and newer.duration <= 0:
        changes["duration"] = existing.duration
    if existing.view_count is not None and newer.view_count is None:
        changes["view_count"] = existing.view_count

    return dataclasses.replace(newer, **changes) if changes else newer


class CatalogDb:
    """
    Async access layer for the catalog DB.

    Usage:
        db = CatalogDb("catalog.db")
        await db.open()
        await db.ensure_schema()
        ... queries ...
        await db.close()

    Notes:
    - This class is designed to be injected into other components.
    - A single connection is shared. Writes go through `transaction()`, which
      serializes concurrent tasks with a lock, so a playlist's positions are
      never mutated by two tasks at once. Reads from other tasks take the same
      lock and only see committed positions.
    """

    def __init__(
        self,
        db_path: str | Path,
        *,
        journal_mode: str = "WAL",
        synchronous: str = "NORMAL",
        page_size: int = 500,
    ) -> None:
        if page_size <= 0:
            raise ValueError(f"page_size must be positive, got {page_size}")
        self._db_path = str(db_path)
        self._journal_mode = journal_mode
        self._synchronous = synchronous
        self._page_size = page_size
        self._conn: aiosqlite.Connection | None = None
        self._write_lock = asyncio.Lock()
        self._tx_owner: asyncio.Task | None = None
        self._savepoint_seq = 0

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    @property
    def db_path(self) -> str:
        return self._db_path

    @property
    def page_size(self) -> int:
        return self._page_size

    async def open(self) -> None:
        if self._conn is not None:
            return
        self._conn = await aiosqlite.connect(self._db_path)
        self._conn.row_factory = aiosqlite.Row

        # Memberships rely on enforced (deferred) foreign keys.
        await self._conn.execute("PRAGMA foreign_keys = ON;")
        await self._conn.execute(f"PRAGMA journal_mode = {_pragma_word(self._journal_mode)};")
        await self._conn.execute(f"PRAGMA synchronous = {_pragma_word(self._synchronous)};")
        await self._conn.execute("PRAGMA temp_store = MEMORY;")
        logger.info("Opened catalog database %s", self._db_path)

    async def close(self) -> None:
        if self._conn is None:
            return
        await self._conn.close()
        self._conn = None
        logger.info("Closed catalog database %s", self._db_path)

    def _require_conn(self) -> aiosqlite.Connection:
        if self._conn is None:
            raise RuntimeError("CatalogDb is not open. Call await db.open() first.")
        return self._conn

    async def ensure_schema(self) -> None:
        """Create or migrate schema to current version."""
        conn = self._require_conn()
        await ensure_schema_sql(conn)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[aiosqlite.Connection]:
        """
        Run a block of statements atomically.

        The outermost block holds the write lock and runs BEGIN IMMEDIATE ..
        COMMIT. Nested blocks from the same task become savepoints. Any
        exception, including a deferred foreign key failure at COMMIT, rolls
        the block back and is re-raised.
        """
        conn = self._require_conn()
        task = asyncio.current_task()

        if self._tx_owner is not None and self._tx_owner is task:
            self._savepoint_seq += 1
            name = f"catalog_sp_{self._savepoint_seq}"
            await conn.execute(f"SAVEPOINT {name};")
            try:
                yield conn
            except BaseException:
                await conn.execute(f"ROLLBACK TO SAVEPOINT {name};")
                await conn.execute(f"RELEASE SAVEPOINT {name};")
                raise
            await conn.execute(f"RELEASE SAVEPOINT {name};")
            return

        async with self._write_lock:
            self._tx_owner = task
            try:
                await conn.execute("BEGIN IMMEDIATE;")
                try:
                    yield conn
                    await conn.commit()
                except BaseException:
                    await conn.rollback()
                    raise
            finally:
                self._tx_owner = None

    @asynccontextmanager
    async def _reading(self) -> AsyncIterator[aiosqlite.Connection]:
        """
        Connection for a read.

        Reads from a task other than the transaction owner wait for the write
        lock. The owning task reads its own uncommitted state directly.
        """
        conn = self._require_conn()
        if self._tx_owner is not None and self._tx_owner is asyncio.current_task():
            yield conn
            return
        async with self._write_lock:
            yield conn

    # ===========================================================================
    # Streams
    # ===========================================================================

    async def upsert_stream(self, stream: StreamEntity) -> int:
        """
        Insert a stream, or update the existing row with the same
        (service_id, url). Writes the uid back to `stream` and returns it.
        """
        async with self.transaction() as conn:
            existing = await queries_streams.get_stream_by_key(conn, stream.service_id, stream.url)
            merged = merge_with_existing(stream, existing) if existing is not None else stream

            await conn.execute(
                """
                INSERT INTO streams (
                    service_id, url, title, live, audio_only, duration,
                    uploader, uploader_url, thumbnail_url,
                    view_count, textual_upload_date, upload_date, is_upload_date_approximation
                ) VALUES (
                    :service_id, :url, :title, :live, :audio_only, :duration,
                    :uploader, :uploader_url, :thumbnail_url,
                    :view_count, :textual_upload_date, :upload_date, :is_upload_date_approximation
                )
                ON CONFLICT(service_id, url) DO UPDATE SET
                    title                        = excluded.title,
                    live                         = excluded.live,
                    audio_only                   = excluded.audio_only,
                    duration                     = excluded.duration,
                    uploader                     = excluded.uploader,
                    uploader_url                 = excluded.uploader_url,
                    thumbnail_url                = excluded.thumbnail_url,
                    view_count                   = excluded.view_count,
                    textual_upload_date          = excluded.textual_upload_date,
                    upload_date                  = excluded.upload_date,
                    is_upload_date_approximation = excluded.is_upload_date_approximation
                """,
                {
                    "service_id": int(merged.service_id),
                    "url": merged.url,
                    "title": merged.title,
                    "live": 1 if merged.is_live else 0,
                    "audio_only": 1 if merged.is_audio_only else 0,
                    "duration": int(merged.duration),
                    "uploader": merged.uploader,
                    "uploader_url": merged.uploader_url,
                    "thumbnail_url": merged.thumbnail_url,
                    "view_count": merged.view_count,
                    "textual_upload_date": merged.textual_upload_date,
                    "upload_date": datetime_to_millis(merged.upload_date),
                    "is_upload_date_approximation": (
                        None
                        if merged.is_upload_date_approximation is None
                        else int(merged.is_upload_date_approximation)
                    ),
                },
            )

            stream_id = await queries_streams.get_stream_id(conn, stream.service_id, stream.url)
            if stream_id is None:
                raise RuntimeError("Upsert failed: stream row not found after insert/update.")

        stream.uid = stream_id
        logger.debug(
            "Upserted stream %d (%s) %s", stream_id, "updated" if existing else "new", stream.url
        )
        return stream_id

    async def upsert_streams(self, streams: Iterable[StreamEntity]) -> list[int]:
        """Bulk upsert in one transaction. Returns uids in input order."""
        async with self.transaction():
            return [await self.upsert_stream(s) for s in streams]

    async def get_stream_by_id(self, stream_id: int) -> StreamEntity | None:
        async with self._reading() as conn:
            return await queries_streams.get_stream_by_id(conn, stream_id)

    async def get_stream_by_key(self, service_id: int, url: str) -> StreamEntity | None:
        async with self._reading() as conn:
            return await queries_streams.get_stream_by_key(conn, service_id, url)

    async def list_streams(
        self, *, limit: int | None = None, offset: int = 0, order_by: str = "title"
    ) -> list[StreamEntity]:
        """One page of streams. `limit` defaults to the configured page size."""
        if limit is None:
            limit = self._page_size
        async with self._reading() as conn:
            return await queries_streams.list_streams(
                conn, limit=limit, offset=offset, order_by=order_by
            )

    async def count_streams(self) -> int:
        async with self._reading() as conn:
            return await queries_streams.count_streams(conn)

    async def delete_stream(self, stream_id: int, *, compact: bool = True) -> list[int]:
        """
        Delete a stream and, by cascade, all of its memberships.

        Returns the ids of the playlists that contained it. Cascading deletes
        leave gaps in those playlists; with `compact=True` they are closed in
        the same transaction, otherwise the next membership mutation of each
        playlist closes them.
        """
        async with self.transaction() as conn:
            affected = await queries_playlists.list_playlist_ids_for_stream(conn, stream_id)
            if not await queries_streams.delete_stream(conn, stream_id):
                raise NotFoundError(f"Stream {stream_id} not found")
            if compact:
                for playlist_id in affected:
                    await self._compact(conn, playlist_id)

        logger.debug("Deleted stream %d (playlists affected: %s)", stream_id, affected)
        return affected

    async def delete_orphaned_streams(self) -> int:
        async with self.transaction() as conn:
            removed = await queries_streams.delete_orphaned_streams(conn)
        logger.debug("Pruned %d orphaned streams", removed)
        return removed

    # ===========================================================================
    # Local playlists
    # ===========================================================================

    async def create_playlist(self, playlist: PlaylistEntity) -> int:
        async with self.transaction() as conn:
            playlist.uid = await queries_playlists.insert_playlist(conn, playlist)
        logger.debug("Created playlist %d (%r)", playlist.uid, playlist.name)
        return playlist.uid

    async def get_playlist(self, playlist_id: int) -> PlaylistEntity | None:
        async with self._reading() as conn:
            return await queries_playlists.get_playlist_by_id(conn, playlist_id)

    async def list_playlists(self, *, order_by: str = "name") -> list[PlaylistMetadataRow]:
        async with self._reading() as conn:
            return await queries_playlists.list_playlist_metadata(conn, order_by=order_by)

    async def count_playlists(self) -> int:
        async with self._reading() as conn:
            return await queries_playlists.count_playlists(conn)

    async def rename_playlist(self, playlist_id: int, name: str | None) -> None:
        async with self.transaction() as conn:
            if not await queries_playlists.update_playlist_name(conn, playlist_id, name):
                raise NotFoundError(f"Playlist {playlist_id} not found")

    async def change_playlist_thumbnail(self, playlist_id: int, thumbnail_url: str | None) -> None:
        async with self.transaction() as conn:
            if not await queries_playlists.update_playlist_thumbnail(
                conn, playlist_id, thumbnail_url
            ):
                raise NotFoundError(f"Playlist {playlist_id} not found")

    async def delete_playlist(self, playlist_id: int) -> None:
        """Delete a playlist; its memberships are removed by cascade."""
        async with self.transaction() as conn:
            if not await queries_playlists.delete_playlist(conn, playlist_id):
                raise NotFoundError(f"Playlist {playlist_id} not found")
        logger.debug("Deleted playlist %d", playlist_id)

    # ===========================================================================
    # Playlist memberships (ordering)
    # ===========================================================================

    async def count_playlist_streams(self, playlist_id: int) -> int:
        async with self._reading() as conn:
            return await queries_playlists.count_memberships(conn, playlist_id)

    async def get_memberships(self, playlist_id: int) -> list[PlaylistStreamEntity]:
        async with self._reading() as conn:
            return await queries_playlists.list_memberships(conn, playlist_id)

    async def get_playlist_streams(self, playlist_id: int) -> list[PlaylistStreamRow]:
        async with self._reading() as conn:
            return await queries_playlists.list_playlist_streams(conn, playlist_id)

    async def playlists_containing_stream(self, stream_id: int) -> list[int]:
        async with self._reading() as conn:
            return await queries_playlists.list_playlist_ids_for_stream(conn, stream_id)

    async def append_streams(self, playlist_id: int, stream_ids: Sequence[int]) -> list[int]:
        """Append streams at the end of a playlist. Returns their positions."""
        async with self.transaction() as conn:
            count = await self._prepare_mutation(conn, playlist_id)
            positions = list(range(count, count + len(stream_ids)))
            await queries_playlists.insert_memberships(
                conn,
                (
                    PlaylistStreamEntity(playlist_id, stream_id, index)
                    for index, stream_id in zip(positions, stream_ids)
                ),
            )
        logger.debug("Appended %d streams to playlist %d", len(stream_ids), playlist_id)
        return positions

    async def insert_stream_at(self, playlist_id: int, stream_id: int, position: int) -> None:
        """Insert a stream at `position`, moving later entries up by one."""
        async with self.transaction() as conn:
            count = await self._prepare_mutation(conn, playlist_id)
            _check_position(position, count + 1)
            await queries_playlists.shift_up_from(conn, playlist_id, position)
            await queries_playlists.insert_memberships(
                conn, [PlaylistStreamEntity(playlist_id, stream_id, position)]
            )
        logger.debug("Inserted stream %d into playlist %d at %d", stream_id, playlist_id, position)

    async def remove_stream_at(self, playlist_id: int, position: int) -> int:
        """Remove the entry at `position`, closing the gap. Returns its stream id."""
        async with self.transaction() as conn:
            count = await self._prepare_mutation(conn, playlist_id)
            _check_position(position, count)
            stream_id = await queries_playlists.get_stream_id_at(conn, playlist_id, position)
            await queries_playlists.delete_membership_at(conn, playlist_id, position)
            await queries_playlists.shift_down_after(conn, playlist_id, position)
        logger.debug("Removed position %d from playlist %d", position, playlist_id)
        return int(stream_id)

    async def move_stream(self, playlist_id: int, from_position: int, to_position: int) -> None:
        """Move one entry; equivalent to remove at `from_position` then insert at `to_position`."""
        async with self.transaction() as conn:
            count = await self._prepare_mutation(conn, playlist_id)
            _check_position(from_position, count)
            _check_position(to_position, count)
            if from_position == to_position:
                return
            stream_id = await queries_playlists.get_stream_id_at(conn, playlist_id, from_position)
            await queries_playlists.delete_membership_at(conn, playlist_id, from_position)
            await queries_playlists.shift_down_after(conn, playlist_id, from_position)
            await queries_playlists.shift_up_from(conn, playlist_id, to_position)
            await queries_playlists.insert_memberships(
                conn, [PlaylistStreamEntity(playlist_id, int(stream_id), to_position)]
            )
        logger.debug(
            "Moved playlist %d entry %d -> %d", playlist_id, from_position, to_position
        )

    async def replace_playlist_streams(self, playlist_id: int, stream_ids: Sequence[int]) -> None:
        """Replace the whole membership list with `stream_ids` at positions 0..n-1."""
        async with self.transaction() as conn:
            await self._require_playlist(conn, playlist_id)
            await self._replace(conn, playlist_id, stream_ids)
        logger.debug("Replaced playlist %d with %d streams", playlist_id, len(stream_ids))

    async def remove_duplicate_streams(self, playlist_id: int) -> int:
        """Keep the first occurrence of each stream. Returns the number of entries removed."""
        async with self.transaction() as conn:
            await self._require_playlist(conn, playlist_id)
            memberships = await queries_playlists.list_memberships(conn, playlist_id)
            seen: set[int] = set()
            unique: list[int] = []
            for m in memberships:
                if m.stream_uid not in seen:
                    seen.add(m.stream_uid)
                    unique.append(m.stream_uid)
            removed = len(memberships) - len(unique)
            if removed:
                await self._replace(conn, playlist_id, unique)
        return removed

    async def compact_playlist(self, playlist_id: int) -> bool:
        """Renumber positions to 0..n-1 keeping their order. Returns True if anything moved."""
        async with self.transaction() as conn:
            return await self._compact(conn, playlist_id)

    async def compact_all_playlists(self) -> list[int]:
        async with self.transaction() as conn:
            fragmented = await queries_playlists.find_fragmented_playlists(conn)
            for playlist_id in fragmented:
                await self._compact(conn, playlist_id)
        return fragmented

    async def find_fragmented_playlists(self) -> list[int]:
        async with self._reading() as conn:
            return await queries_playlists.find_fragmented_playlists(conn)

    async def _require_playlist(self, conn: aiosqlite.Connection, playlist_id: int) -> None:
        if await queries_playlists.get_playlist_by_id(conn, playlist_id) is None:
            raise NotFoundError(f"Playlist {playlist_id} not found")

    async def _prepare_mutation(self, conn: aiosqlite.Connection, playlist_id: int) -> int:
        """Check the playlist exists, close leftover gaps, return its entry count."""
        await self._require_playlist(conn, playlist_id)
        await self._compact(conn, playlist_id)
        return await queries_playlists.count_memberships(conn, playlist_id)

    async def _compact(self, conn: aiosqlite.Connection, playlist_id: int) -> bool:
        if not await queries_playlists.is_fragmented(conn, playlist_id):
            return False
        memberships = await queries_playlists.list_memberships(conn, playlist_id)
        await self._replace(conn, playlist_id, [m.stream_uid for m in memberships])
        logger.debug("Compacted playlist %d (%d entries)", playlist_id, len(memberships))
        return True

    async def _replace(
        self, conn: aiosqlite.Connection, playlist_id: int, stream_ids: Sequence[int]
    ) -> None:
        await queries_playlists.delete_memberships(conn, playlist_id)
        await queries_playlists.insert_memberships(
            conn,
            (
                PlaylistStreamEntity(playlist_id, int(stream_id), index)
                for index, stream_id in enumerate(stream_ids)
            ),
        )

    # ===========================================================================
    # Remote playlists
    # ===========================================================================

    async def upsert_remote_playlist(self, playlist: PlaylistRemoteEntity) -> int:
        async with self.transaction() as conn:
            playlist.uid = await queries_remote_playlists.upsert_remote_playlist(conn, playlist)
        logger.debug("Upserted remote playlist %d %s", playlist.uid, playlist.url)
        return playlist.uid

    async def update_remote_playlist(self, playlist: PlaylistRemoteEntity) -> None:
        async with self.transaction() as conn:
            if not await queries_remote_playlists.update_remote_playlist(conn, playlist):
                raise NotFoundError(f"Remote playlist {playlist.uid} not found")

    async def get_remote_playlist(self, playlist_id: int) -> PlaylistRemoteEntity | None:
        async with self._reading() as conn:
            return await queries_remote_playlists.get_remote_playlist_by_id(conn, playlist_id)

    async def get_remote_playlist_by_key(
        self, service_id: int, url: str | None
    ) -> PlaylistRemoteEntity | None:
        async with self._reading() as conn:
            return await queries_remote_playlists.get_remote_playlist_by_key(conn, service_id, url)

    async def list_remote_playlists(self, *, order_by: str = "name") -> list[PlaylistRemoteEntity]:
        async with self._reading() as conn:
            return await queries_remote_playlists.list_remote_playlists(conn, order_by=order_by)

    async def count_remote_playlists(self) -> int:
        async with self._reading() as conn:
            return await queries_remote_playlists.count_remote_playlists(conn)

    async def delete_remote_playlist(self, playlist_id: int) -> None:
        async with self.transaction() as conn:
            if not await queries_remote_playlists.delete_remote_playlist(conn, playlist_id):
                raise NotFoundError(f"Remote playlist {playlist_id} not found")

    # ===========================================================================
    # Subscriptions
    # ===========================================================================

    async def upsert_subscription(self, subscription: SubscriptionEntity) -> int:
        async with self.transaction() as conn:
            subscription.uid = await queries_subscriptions.upsert_subscription(conn, subscription)
        return subscription.uid

    async def update_subscription_data(self, subscription: SubscriptionEntity) -> None:
        async with self.transaction() as conn:
            if not await queries_subscriptions.update_subscription_data(conn, subscription):
                raise NotFoundError(f"Subscription {subscription.uid} not found")

    async def set_notification_mode(
        self, service_id: int, url: str | None, mode: NotificationMode
    ) -> None:
        async with self.transaction() as conn:
            if not await queries_subscriptions.update_notification_mode(
                conn, service_id, url, mode
            ):
                raise NotFoundError(f"Subscription ({service_id}, {url}) not found")

    async def get_subscription(self, subscription_id: int) -> SubscriptionEntity | None:
        async with self._reading() as conn:
            return await queries_subscriptions.get_subscription_by_id(conn, subscription_id)

    async def get_subscription_by_key(
        self, service_id: int, url: str | None
    ) -> SubscriptionEntity | None:
        async with self._reading() as conn:
            return await queries_subscriptions.get_subscription_by_key(conn, service_id, url)

    async def list_subscriptions(self, *, order_by: str = "name") -> list[SubscriptionEntity]:
        async with self._reading() as conn:
            return await queries_subscriptions.list_subscriptions(conn, order_by=order_by)

    async def filter_subscriptions_by_name(self, needle: str) -> list[SubscriptionEntity]:
        async with self._reading() as conn:
            return await queries_subscriptions.filter_subscriptions_by_name(conn, needle)

    async def count_subscriptions(self) -> int:
        async with self._reading() as conn:
            return await queries_subscriptions.count_subscriptions(conn)

    async def delete_subscription(self, service_id: int, url: str | None) -> bool:
        async with self.transaction() as conn:
            return await queries_subscriptions.delete_subscription(conn, service_id, url)


def _check_position(position: int, upper: int) -> None:
    """Require 0 <= position < upper."""
    if not 0 <= position < upper:
        raise InvalidPositionError(f"Position {position} out of range [0, {upper})")


def _pragma_word(value: str) -> str:
    # Pragma values cannot be bound as parameters.
    word = value.strip().upper()
    if not word.isalpha():
        raise ValueError(f"Invalid pragma value: {value!r}")
    return word
