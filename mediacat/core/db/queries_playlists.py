"""
Local playlist and playlist membership queries used by `CatalogDb`.

This module contains queries for:
- Local playlists (`playlists`)
- Ordered memberships (`playlist_stream_join`)

Design:
- Functions are *pure DB helpers*: they take an open `aiosqlite.Connection`.
- They never commit and never open transactions. The multi-statement
  ordering operations in `CatalogDb` wrap them in one transaction.
- These functions assume `conn.row_factory = aiosqlite.Row`.

Important:
- (playlist_id, join_index) is unique and checked per statement, so position
  shifts are applied row by row in an order that never collides:
  descending when moving rows up, ascending when moving rows down.
"""

from __future__ import annotations

from typing import Iterable

import aiosqlite

from mediacat.core.db.models import (
    PlaylistEntity,
    PlaylistMetadataRow,
    PlaylistStreamEntity,
    PlaylistStreamRow,
)
from mediacat.core.db.ordering import playlists_order_clause
from mediacat.core.db.queries_streams import aliased_stream_columns, row_to_stream

# ---------------------------------------------------------------------------
# Playlists
# ---------------------------------------------------------------------------


def _row_to_playlist(row: aiosqlite.Row) -> PlaylistEntity:
    return PlaylistEntity(
        uid=int(row["uid"]),
        name=row["name"],
        thumbnail_url=row["thumbnail_url"],
    )


async def insert_playlist(conn: aiosqlite.Connection, playlist: PlaylistEntity) -> int:
    cursor = await conn.execute(
        "INSERT INTO playlists (name, thumbnail_url) VALUES (?, ?);",
        (playlist.name, playlist.thumbnail_url),
    )
    return int(cursor.lastrowid)


async def get_playlist_by_id(
    conn: aiosqlite.Connection, playlist_id: int
) -> PlaylistEntity | None:
    cursor = await conn.execute("SELECT * FROM playlists WHERE uid = ?;", (int(playlist_id),))
    row = await cursor.fetchone()
    return _row_to_playlist(row) if row else None


async def list_playlist_metadata(
    conn: aiosqlite.Connection, *, order_by: str
) -> list[PlaylistMetadataRow]:
    order_clause = playlists_order_clause(order_by, alias="p")
    cursor = await conn.execute(
        f"""
        SELECT
            p.uid,
            p.name,
            p.thumbnail_url,
            (SELECT COUNT(*) FROM playlist_stream_join j WHERE j.playlist_id = p.uid)
                AS stream_count
        FROM playlists p
        {order_clause};
        """
    )
    rows = await cursor.fetchall()
    return [
        PlaylistMetadataRow(
            uid=int(r["uid"]),
            name=r["name"],
            thumbnail_url=r["thumbnail_url"],
            stream_count=int(r["stream_count"]),
        )
        for r in rows
    ]


async def count_playlists(conn: aiosqlite.Connection) -> int:
    cursor = await conn.execute("SELECT COUNT(*) AS c FROM playlists;")
    row = await cursor.fetchone()
    return int(row["c"]) if row else 0


async def update_playlist_name(
    conn: aiosqlite.Connection, playlist_id: int, name: str | None
) -> bool:
    cursor = await conn.execute(
        "UPDATE playlists SET name = ? WHERE uid = ?;", (name, int(playlist_id))
    )
    return cursor.rowcount > 0


async def update_playlist_thumbnail(
    conn: aiosqlite.Connection, playlist_id: int, thumbnail_url: str | None
) -> bool:
    cursor = await conn.execute(
        "UPDATE playlists SET thumbnail_url = ? WHERE uid = ?;",
        (thumbnail_url, int(playlist_id)),
    )
    return cursor.rowcount > 0


async def delete_playlist(conn: aiosqlite.Connection, playlist_id: int) -> bool:
    """Delete a playlist. Its memberships go with it (ON DELETE CASCADE)."""
    cursor = await conn.execute("DELETE FROM playlists WHERE uid = ?;", (int(playlist_id),))
    return cursor.rowcount > 0


# ---------------------------------------------------------------------------
# Memberships
# ---------------------------------------------------------------------------


async def count_memberships(conn: aiosqlite.Connection, playlist_id: int) -> int:
    cursor = await conn.execute(
        "SELECT COUNT(*) AS c FROM playlist_stream_join WHERE playlist_id = ?;",
        (int(playlist_id),),
    )
    row = await cursor.fetchone()
    return int(row["c"]) if row else 0


async def list_memberships(
    conn: aiosqlite.Connection, playlist_id: int
) -> list[PlaylistStreamEntity]:
    cursor = await conn.execute(
        """
        SELECT playlist_id, stream_id, join_index
        FROM playlist_stream_join
        WHERE playlist_id = ?
        ORDER BY join_index ASC;
        """,
        (int(playlist_id),),
    )
    rows = await cursor.fetchall()
    return [
        PlaylistStreamEntity(
            playlist_uid=int(r["playlist_id"]),
            stream_uid=int(r["stream_id"]),
            index=int(r["join_index"]),
        )
        for r in rows
    ]


async def get_stream_id_at(
    conn: aiosqlite.Connection, playlist_id: int, index: int
) -> int | None:
    cursor = await conn.execute(
        "SELECT stream_id FROM playlist_stream_join WHERE playlist_id = ? AND join_index = ?;",
        (int(playlist_id), int(index)),
    )
    row = await cursor.fetchone()
    return int(row["stream_id"]) if row else None


async def list_playlist_streams(
    conn: aiosqlite.Connection, playlist_id: int
) -> list[PlaylistStreamRow]:
    cursor = await conn.execute(
        f"""
        SELECT j.playlist_id, j.join_index, {aliased_stream_columns("s", "s_")}
        FROM playlist_stream_join j
        INNER JOIN streams s ON s.uid = j.stream_id
        WHERE j.playlist_id = ?
        ORDER BY j.join_index ASC;
        """,
        (int(playlist_id),),
    )
    rows = await cursor.fetchall()
    return [
        PlaylistStreamRow(
            playlist_uid=int(r["playlist_id"]),
            join_index=int(r["join_index"]),
            stream=row_to_stream(r, prefix="s_"),
        )
        for r in rows
    ]


async def insert_memberships(
    conn: aiosqlite.Connection, memberships: Iterable[PlaylistStreamEntity]
) -> None:
    await conn.executemany(
        "INSERT INTO playlist_stream_join (playlist_id, stream_id, join_index) VALUES (?, ?, ?);",
        [(int(m.playlist_uid), int(m.stream_uid), int(m.index)) for m in memberships],
    )


async def delete_membership_at(conn: aiosqlite.Connection, playlist_id: int, index: int) -> bool:
    cursor = await conn.execute(
        "DELETE FROM playlist_stream_join WHERE playlist_id = ? AND join_index = ?;",
        (int(playlist_id), int(index)),
    )
    return cursor.rowcount > 0


async def delete_memberships(conn: aiosqlite.Connection, playlist_id: int) -> int:
    cursor = await conn.execute(
        "DELETE FROM playlist_stream_join WHERE playlist_id = ?;", (int(playlist_id),)
    )
    return int(cursor.rowcount)


async def _indexes_from(
    conn: aiosqlite.Connection, playlist_id: int, first: int, *, descending: bool
) -> list[int]:
    direction = "DESC" if descending else "ASC"
    cursor = await conn.execute(
        f"""
        SELECT join_index FROM playlist_stream_join
        WHERE playlist_id = ? AND join_index >= ?
        ORDER BY join_index {direction};
        """,
        (int(playlist_id), int(first)),
    )
    rows = await cursor.fetchall()
    return [int(r["join_index"]) for r in rows]


async def shift_up_from(conn: aiosqlite.Connection, playlist_id: int, index: int) -> int:
    """Move every membership at `index` or later one position up. Returns rows moved."""
    indexes = await _indexes_from(conn, playlist_id, index, descending=True)
    await conn.executemany(
        "UPDATE playlist_stream_join SET join_index = ? WHERE playlist_id = ? AND join_index = ?;",
        [(i + 1, int(playlist_id), i) for i in indexes],
    )
    return len(indexes)


async def shift_down_after(conn: aiosqlite.Connection, playlist_id: int, index: int) -> int:
    """Move every membership after `index` one position down. Returns rows moved."""
    indexes = await _indexes_from(conn, playlist_id, index + 1, descending=False)
    await conn.executemany(
        "UPDATE playlist_stream_join SET join_index = ? WHERE playlist_id = ? AND join_index = ?;",
        [(i - 1, int(playlist_id), i) for i in indexes],
    )
    return len(indexes)


async def list_playlist_ids_for_stream(conn: aiosqlite.Connection, stream_id: int) -> list[int]:
    """Playlists containing the stream (served by the stream_id index)."""
    cursor = await conn.execute(
        """
        SELECT DISTINCT playlist_id FROM playlist_stream_join
        WHERE stream_id = ?
        ORDER BY playlist_id;
        """,
        (int(stream_id),),
    )
    rows = await cursor.fetchall()
    return [int(r["playlist_id"]) for r in rows]


async def find_fragmented_playlists(conn: aiosqlite.Connection) -> list[int]:
    """
    Playlists whose positions are not exactly 0..n-1.

    Positions are unique per playlist, so MIN = 0 and MAX = n-1 is enough.
    """
    cursor = await conn.execute(
        """
        SELECT playlist_id
        FROM playlist_stream_join
        GROUP BY playlist_id
        HAVING MIN(join_index) != 0 OR MAX(join_index) != COUNT(*) - 1
        ORDER BY playlist_id;
        """
    )
    rows = await cursor.fetchall()
    return [int(r["playlist_id"]) for r in rows]


async def is_fragmented(conn: aiosqlite.Connection, playlist_id: int) -> bool:
    cursor = await conn.execute(
        """
        SELECT MIN(join_index) AS lo, MAX(join_index) AS hi, COUNT(*) AS c
        FROM playlist_stream_join
        WHERE playlist_id = ?;
        """,
        (int(playlist_id),),
    )
    row = await cursor.fetchone()
    if row is None or int(row["c"]) == 0:
        return False
    return int(row["lo"]) != 0 or int(row["hi"]) != int(row["c"]) - 1
