"""
Local and remote playlist managers.

These sit between the UI layer and `CatalogDb`:
- `LocalPlaylistManager` turns streams coming from the extraction layer into
  stored records and keeps playlist positions contiguous.
- `RemotePlaylistManager` keeps bookmarked remote playlists in sync with
  freshly fetched info, writing only when something actually changed.
"""

from __future__ import annotations

import logging
from typing import Sequence

from mediacat.config import CompactionPolicy
from mediacat.core import CatalogError, NotFoundError
from mediacat.core.catalog_db import CatalogDb
from mediacat.core.db.models import (
    PlaylistEntity,
    PlaylistMetadataRow,
    PlaylistRemoteEntity,
    PlaylistStreamRow,
    StreamEntity,
)
from mediacat.core.info import PlaylistInfo

logger = logging.getLogger(__name__)


class LocalPlaylistManager:
    def __init__(
        self, db: CatalogDb, *, compaction: CompactionPolicy = CompactionPolicy.EAGER
    ) -> None:
        self._db = db
        self._compaction = compaction

    async def create_playlist(self, name: str, streams: Sequence[StreamEntity]) -> int:
        """
        Create a playlist holding `streams` in order.

        The thumbnail is taken from the first stream. Streams are upserted, so
        ones already in the catalog are reused.
        """
        if not streams:
            raise CatalogError("A new playlist needs at least one stream.")

        async with self._db.transaction():
            stream_ids = await self._db.upsert_streams(streams)
            playlist = PlaylistEntity.seeded_from(name, streams[0])
            playlist_id = await self._db.create_playlist(playlist)
            await self._db.append_streams(playlist_id, stream_ids)

        logger.info("Created playlist %d %r with %d streams", playlist_id, name, len(streams))
        return playlist_id

    async def append_to_playlist(
        self, playlist_id: int, streams: Sequence[StreamEntity]
    ) -> list[int]:
        """Append streams at the end. Returns their positions."""
        async with self._db.transaction():
            stream_ids = await self._db.upsert_streams(streams)
            return await self._db.append_streams(playlist_id, stream_ids)

    async def insert_into_playlist(
        self, playlist_id: int, stream: StreamEntity, position: int
    ) -> None:
        async with self._db.transaction():
            stream_id = await self._db.upsert_stream(stream)
            await self._db.insert_stream_at(playlist_id, stream_id, position)

    async def remove_from_playlist(self, playlist_id: int, position: int) -> int:
        return await self._db.remove_stream_at(playlist_id, position)

    async def move_in_playlist(
        self, playlist_id: int, from_position: int, to_position: int
    ) -> None:
        await self._db.move_stream(playlist_id, from_position, to_position)

    async def update_join(self, playlist_id: int, stream_ids: Sequence[int]) -> None:
        """Store a whole new order for the playlist (e.g. after drag and drop)."""
        await self._db.replace_playlist_streams(playlist_id, stream_ids)

    async def remove_duplicates(self, playlist_id: int) -> int:
        return await self._db.remove_duplicate_streams(playlist_id)

    async def rename_playlist(self, playlist_id: int, name: str) -> None:
        await self._db.rename_playlist(playlist_id, name)

    async def change_playlist_thumbnail(self, playlist_id: int, thumbnail_url: str | None) -> None:
        await self._db.change_playlist_thumbnail(playlist_id, thumbnail_url)

    async def delete_playlist(self, playlist_id: int) -> None:
        await self._db.delete_playlist(playlist_id)

    async def delete_stream(self, stream_id: int) -> list[int]:
        """
        Delete a stream from the catalog and from every playlist containing it.

        Positions are renumbered right away under the eager policy; under the
        lazy one each playlist is renumbered before its next reorder.
        """
        affected = await self._db.delete_stream(
            stream_id, compact=self._compaction == CompactionPolicy.EAGER
        )
        logger.info("Deleted stream %d from %d playlists", stream_id, len(affected))
        return affected

    async def get_playlists(self, *, order_by: str = "name") -> list[PlaylistMetadataRow]:
        return await self._db.list_playlists(order_by=order_by)

    async def get_playlist(self, playlist_id: int) -> PlaylistEntity:
        playlist = await self._db.get_playlist(playlist_id)
        if playlist is None:
            raise NotFoundError(f"Playlist {playlist_id} not found")
        return playlist

    async def get_playlist_streams(self, playlist_id: int) -> list[PlaylistStreamRow]:
        return await self._db.get_playlist_streams(playlist_id)


class RemotePlaylistManager:
    def __init__(self, db: CatalogDb) -> None:
        self._db = db

    async def bookmark(self, info: PlaylistInfo) -> int:
        """Save a remote playlist. Bookmarking it again refreshes the cached copy."""
        playlist = PlaylistRemoteEntity.from_playlist_info(info)
        uid = await self._db.upsert_remote_playlist(playlist)
        logger.info("Bookmarked remote playlist %d %s", uid, info.url)
        return uid

    async def get_playlist(self, info: PlaylistInfo) -> PlaylistRemoteEntity | None:
        return await self._db.get_remote_playlist_by_key(info.service_id, info.url)

    async def get_playlists(self, *, order_by: str = "name") -> list[PlaylistRemoteEntity]:
        return await self._db.list_remote_playlists(order_by=order_by)

    async def refresh(self, playlist_id: int, info: PlaylistInfo) -> bool:
        """
        Reconcile a bookmark with freshly fetched info.

        Returns True if the cached copy was out of date and has been
        overwritten, False if nothing had to be written.
        """
        async with self._db.transaction():
            cached = await self._db.get_remote_playlist(playlist_id)
            if cached is None:
                raise NotFoundError(f"Remote playlist {playlist_id} not found")
            if cached.is_identical_to(info):
                return False

            fresh = PlaylistRemoteEntity.from_playlist_info(info)
            fresh.uid = playlist_id
            await self._db.update_remote_playlist(fresh)

        logger.debug("Refreshed remote playlist %d from %s", playlist_id, info.url)
        return True

    async def unbookmark(self, playlist_id: int) -> None:
        await self._db.delete_remote_playlist(playlist_id)
        logger.info("Removed remote playlist bookmark %d", playlist_id)
