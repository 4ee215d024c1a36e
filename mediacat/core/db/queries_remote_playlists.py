"""
Remote playlist (bookmark) queries used by `CatalogDb`.

- Functions take an open `aiosqlite.Connection` and never commit.
- (service_id, url) is unique; inserts go through `upsert_remote_playlist`.
"""

from __future__ import annotations

import aiosqlite

from mediacat.core.db.models import PlaylistRemoteEntity
from mediacat.core.db.ordering import playlists_order_clause


def _row_to_remote_playlist(row: aiosqlite.Row) -> PlaylistRemoteEntity:
    stream_count = row["stream_count"]
    return PlaylistRemoteEntity(
        uid=int(row["uid"]),
        service_id=int(row["service_id"]),
        name=row["name"],
        url=row["url"],
        thumbnail_url=row["thumbnail_url"],
        uploader=row["uploader"],
        stream_count=int(stream_count) if stream_count is not None else None,
    )


async def upsert_remote_playlist(
    conn: aiosqlite.Connection, playlist: PlaylistRemoteEntity
) -> int:
    """Insert or overwrite the cached snapshot for (service_id, url). Returns the uid."""
    await conn.execute(
        """
        INSERT INTO remote_playlists (
            service_id, name, url, thumbnail_url, uploader, stream_count
        ) VALUES (
            :service_id, :name, :url, :thumbnail_url, :uploader, :stream_count
        )
        ON CONFLICT(service_id, url) DO UPDATE SET
            name          = excluded.name,
            thumbnail_url = excluded.thumbnail_url,
            uploader      = excluded.uploader,
            stream_count  = excluded.stream_count
        """,
        {
            "service_id": int(playlist.service_id),
            "name": playlist.name,
            "url": playlist.url,
            "thumbnail_url": playlist.thumbnail_url,
            "uploader": playlist.uploader,
            "stream_count": playlist.stream_count,
        },
    )
    uid = await get_remote_playlist_id(conn, playlist.service_id, playlist.url)
    if uid is None:
        raise RuntimeError("Upsert failed: remote playlist row not found after insert/update.")
    return uid


async def update_remote_playlist(
    conn: aiosqlite.Connection, playlist: PlaylistRemoteEntity
) -> bool:
    """Overwrite every content field of an existing bookmark by uid."""
    cursor = await conn.execute(
        """
        UPDATE remote_playlists SET
            service_id = ?, name = ?, url = ?, thumbnail_url = ?, uploader = ?, stream_count = ?
        WHERE uid = ?;
        """,
        (
            int(playlist.service_id),
            playlist.name,
            playlist.url,
            playlist.thumbnail_url,
            playlist.uploader,
            playlist.stream_count,
            int(playlist.uid),
        ),
    )
    return cursor.rowcount > 0


async def get_remote_playlist_id(
    conn: aiosqlite.Connection, service_id: int, url: str | None
) -> int | None:
    cursor = await conn.execute(
        "SELECT uid FROM remote_playlists WHERE service_id = ? AND url IS ?;",
        (int(service_id), url),
    )
    row = await cursor.fetchone()
    return int(row["uid"]) if row else None


async def get_remote_playlist_by_id(
    conn: aiosqlite.Connection, playlist_id: int
) -> PlaylistRemoteEntity | None:
    cursor = await conn.execute(
        "SELECT * FROM remote_playlists WHERE uid = ?;", (int(playlist_id),)
    )
    row = await cursor.fetchone()
    return _row_to_remote_playlist(row) if row else None


async def get_remote_playlist_by_key(
    conn: aiosqlite.Connection, service_id: int, url: str | None
) -> PlaylistRemoteEntity | None:
    cursor = await conn.execute(
        "SELECT * FROM remote_playlists WHERE service_id = ? AND url IS ?;",
        (int(service_id), url),
    )
    row = await cursor.fetchone()
    return _row_to_remote_playlist(row) if row else None


async def list_remote_playlists(
    conn: aiosqlite.Connection, *, order_by: str
) -> list[PlaylistRemoteEntity]:
    order_clause = playlists_order_clause(order_by, alias="rp")
    cursor = await conn.execute(f"SELECT * FROM remote_playlists rp {order_clause};")
    rows = await cursor.fetchall()
    return [_row_to_remote_playlist(r) for r in rows]


async def count_remote_playlists(conn: aiosqlite.Connection) -> int:
    cursor = await conn.execute("SELECT COUNT(*) AS c FROM remote_playlists;")
    row = await cursor.fetchone()
    return int(row["c"]) if row else 0


async def delete_remote_playlist(conn: aiosqlite.Connection, playlist_id: int) -> bool:
    cursor = await conn.execute(
        "DELETE FROM remote_playlists WHERE uid = ?;", (int(playlist_id),)
    )
    return cursor.rowcount > 0
