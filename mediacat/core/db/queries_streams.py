"""
Stream-related DB queries used by `mediacat.core.catalog_db.CatalogDb`.

Design:
- Functions are *pure DB helpers*: they take an open `aiosqlite.Connection`
  and return materialized dataclasses.
- These functions assume `conn.row_factory = aiosqlite.Row`.
- They never commit; transaction scope belongs to the caller.

Important:
- Do NOT interpolate user input into SQL. Any dynamic SQL here is limited to
  ORDER BY clauses selected from a small whitelist in `streams_order_clause`.
"""

from __future__ import annotations

import aiosqlite

from mediacat.core.db.models import StreamEntity, millis_to_datetime, normalize_bool
from mediacat.core.db.ordering import streams_order_clause


def row_to_stream(row: aiosqlite.Row, *, prefix: str = "") -> StreamEntity:
    """
    Convert an aiosqlite Row to a StreamEntity.

    `prefix` is used by join queries that alias stream columns (e.g. `s_uid`).
    """
    return StreamEntity(
        uid=int(row[f"{prefix}uid"]),
        service_id=int(row[f"{prefix}service_id"]),
        url=str(row[f"{prefix}url"]),
        title=row[f"{prefix}title"],
        is_live=bool(row[f"{prefix}live"]),
        is_audio_only=bool(row[f"{prefix}audio_only"]),
        duration=int(row[f"{prefix}duration"]),
        uploader=row[f"{prefix}uploader"],
        uploader_url=row[f"{prefix}uploader_url"],
        thumbnail_url=row[f"{prefix}thumbnail_url"],
        view_count=row[f"{prefix}view_count"],
        textual_upload_date=row[f"{prefix}textual_upload_date"],
        upload_date=millis_to_datetime(row[f"{prefix}upload_date"]),
        is_upload_date_approximation=normalize_bool(row[f"{prefix}is_upload_date_approximation"]),
    )


STREAM_COLUMNS = (
    "uid",
    "service_id",
    "url",
    "title",
    "live",
    "audio_only",
    "duration",
    "uploader",
    "uploader_url",
    "thumbnail_url",
    "view_count",
    "textual_upload_date",
    "upload_date",
    "is_upload_date_approximation",
)


def aliased_stream_columns(table_alias: str, prefix: str) -> str:
    """SELECT list with every stream column renamed to `<prefix><column>`."""
    return ", ".join(f"{table_alias}.{c} AS {prefix}{c}" for c in STREAM_COLUMNS)


# ---------------------------------------------------------------------------
# Basic get/list/count
# ---------------------------------------------------------------------------


async def get_stream_by_id(conn: aiosqlite.Connection, stream_id: int) -> StreamEntity | None:
    cursor = await conn.execute("SELECT * FROM streams WHERE uid = ?;", (int(stream_id),))
    row = await cursor.fetchone()
    return row_to_stream(row) if row else None


async def get_stream_by_key(
    conn: aiosqlite.Connection, service_id: int, url: str
) -> StreamEntity | None:
    cursor = await conn.execute(
        "SELECT * FROM streams WHERE service_id = ? AND url = ?;",
        (int(service_id), url),
    )
    row = await cursor.fetchone()
    return row_to_stream(row) if row else None


async def get_stream_id(conn: aiosqlite.Connection, service_id: int, url: str) -> int | None:
    cursor = await conn.execute(
        "SELECT uid FROM streams WHERE service_id = ? AND url = ?;",
        (int(service_id), url),
    )
    row = await cursor.fetchone()
    return int(row["uid"]) if row else None


async def list_streams(
    conn: aiosqlite.Connection,
    *,
    limit: int,
    offset: int,
    order_by: str,
) -> list[StreamEntity]:
    order_clause = streams_order_clause(order_by)
    cursor = await conn.execute(
        f"""
        SELECT * FROM streams s
        {order_clause}
        LIMIT ? OFFSET ?;
        """,
        (int(limit), int(offset)),
    )
    rows = await cursor.fetchall()
    return [row_to_stream(r) for r in rows]


async def count_streams(conn: aiosqlite.Connection) -> int:
    cursor = await conn.execute("SELECT COUNT(*) AS c FROM streams;")
    row = await cursor.fetchone()
    return int(row["c"]) if row else 0


# ---------------------------------------------------------------------------
# Deletes
# ---------------------------------------------------------------------------


async def delete_stream(conn: aiosqlite.Connection, stream_id: int) -> bool:
    """Delete one stream. Its playlist memberships go with it (ON DELETE CASCADE)."""
    cursor = await conn.execute("DELETE FROM streams WHERE uid = ?;", (int(stream_id),))
    return cursor.rowcount > 0


async def delete_orphaned_streams(conn: aiosqlite.Connection) -> int:
    """Delete streams no playlist references. Returns the number removed."""
    cursor = await conn.execute(
        """
        DELETE FROM streams
        WHERE NOT EXISTS (
            SELECT 1 FROM playlist_stream_join j WHERE j.stream_id = streams.uid
        );
        """
    )
    return int(cursor.rowcount)
