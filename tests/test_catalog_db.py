"""
Tests for mediacat.core.catalog_db and the schema module.

These tests verify:
- CatalogDb lifecycle and schema creation/versioning
- Natural-key upserts for streams, remote playlists and subscriptions
- Cascading deletes and the gaps they leave in playlist positions
- Transaction rollback and deferred foreign key checks
"""

from __future__ import annotations

import asyncio
import sqlite3
from datetime import datetime, timezone
from typing import AsyncIterator

import pytest

from mediacat.core import NotFoundError
from mediacat.core.catalog_db import CatalogDb, merge_with_existing
from mediacat.core.db.models import (
    NotificationMode,
    PlaylistEntity,
    PlaylistRemoteEntity,
    StreamEntity,
    SubscriptionEntity,
)
from mediacat.core.db.schema import SCHEMA_VERSION

UPLOADED = datetime(2023, 11, 5, 8, 0, tzinfo=timezone.utc)


def make_stream(name: str, **kwargs: object) -> StreamEntity:
    fields: dict[str, object] = {
        "service_id": 0,
        "url": f"https://example.com/watch?v={name}",
        "title": name,
        "is_live": False,
        "is_audio_only": False,
        "duration": 100,
        "uploader": "Uploader",
        "thumbnail_url": f"https://img.example.com/{name}.jpg",
    }
    fields.update(kwargs)
    return StreamEntity(**fields)  # type: ignore[arg-type]


async def count_rows(db: CatalogDb, table: str) -> int:
    async with db.transaction() as conn:
        cursor = await conn.execute(f"SELECT COUNT(*) AS c FROM {table};")
        row = await cursor.fetchone()
    return int(row["c"])


@pytest.fixture
async def db() -> AsyncIterator[CatalogDb]:
    """Create an in-memory database for testing."""
    db = CatalogDb(":memory:")
    await db.open()
    await db.ensure_schema()
    yield db
    await db.close()


# =============================================================================
# Lifecycle / schema
# =============================================================================


class TestLifecycle:
    async def test_open_close(self) -> None:
        """Test basic open/close lifecycle."""
        db = CatalogDb(":memory:")
        assert not db.is_open

        await db.open()
        assert db.is_open

        await db.close()
        assert not db.is_open

    async def test_requires_open(self) -> None:
        """Queries on a closed database raise RuntimeError.
tests/test_catalog_db.py"""
        db = CatalogDb(":memory:")
        with pytest.raises(RuntimeError):
            await db.count_streams()

    async def test_schema_creates_tables(self, db: CatalogDb) -> None:
        """All five tables exist and start empty."""
        for table in (
            "streams",
            "playlists",
            "remote_playlists",
            "playlist_stream_join",
            "subscriptions",
        ):
            assert await count_rows(db, table) == 0

    async def test_schema_version_recorded(self, db: CatalogDb) -> None:
        """The schema version is stored in PRAGMA user_version."""
        async with db.transaction() as conn:
            cursor = await conn.execute("PRAGMA user_version;")
            row = await cursor.fetchone()
        assert int(row[0]) == SCHEMA_VERSION

    async def test_ensure_schema_is_idempotent(self, db: CatalogDb) -> None:
        """Running ensure_schema twice is harmless."""
        await db.ensure_schema()
        assert await db.count_streams() == 0

    async def test_newer_schema_is_rejected(self, tmp_path) -> None:
        """A database from a newer release is refused."""
        path = tmp_path / "future.db"
        db = CatalogDb(path)
        await db.open()
        await db.ensure_schema()
        async with db.transaction() as conn:
            await conn.execute(f"PRAGMA user_version = {SCHEMA_VERSION + 1};")
        with pytest.raises(RuntimeError):
            await db.ensure_schema()
        await db.close()

    async def test_join_table_indexes(self, db: CatalogDb) -> None:
        """The membership table has a unique (playlist, position) index and a stream index."""
        async with db.transaction() as conn:
            cursor = await conn.execute("PRAGMA index_list('playlist_stream_join');")
            rows = await cursor.fetchall()
        indexes = {r["name"]: int(r["unique"]) for r in rows}
        assert indexes["index_playlist_stream_join_playlist_id_join_index"] == 1
        assert indexes["index_playlist_stream_join_stream_id"] == 0


# =============================================================================
# Streams
# =============================================================================


class TestStreams:
    async def test_upsert_assigns_uid(self, db: CatalogDb) -> None:
        """Test inserting a stream assigns and writes back its uid."""
        stream = make_stream("a")
        uid = await db.upsert_stream(stream)

        assert uid > 0
        assert stream.uid == uid

        stored = await db.get_stream_by_id(uid)
        assert stored is not None
        assert stored.title == "a"
        assert stored.url == "https://example.com/watch?v=a"
        assert stored.is_live is False

    async def test_same_natural_key_resolves_to_same_row(self, db: CatalogDb) -> None:
        """Upserting an existing (service_id, url) updates instead of inserting."""
        uid1 = await db.upsert_stream(make_stream("a", title="Original"))
        uid2 = await db.upsert_stream(make_stream("a", title="Updated"))

        assert uid1 == uid2
        assert await db.count_streams() == 1
        stored = await db.get_stream_by_id(uid1)
        assert stored is not None
        assert stored.title == "Updated"

    async def test_same_url_on_other_service_is_distinct(self, db: CatalogDb) -> None:
        """The natural key includes the service id."""
        uid1 = await db.upsert_stream(make_stream("a", service_id=0))
        uid2 = await db.upsert_stream(make_stream("a", service_id=1))
        assert uid1 != uid2
        assert await db.count_streams() == 2

    async def test_upload_date_round_trip(self, db: CatalogDb) -> None:
        """Upload date, views and textual date survive storage."""
        uid = await db.upsert_stream(
            make_stream(
                "a",
                view_count=42,
                textual_upload_date="1 year ago",
                upload_date=UPLOADED,
                is_upload_date_approximation=True,
            )
        )
        stored = await db.get_stream_by_id(uid)
        assert stored is not None
        assert stored.upload_date == UPLOADED
        assert stored.is_upload_date_approximation is True
        assert stored.view_count == 42
        assert stored.textual_upload_date == "1 year ago"

    async def test_richer_info_is_kept_on_poorer_update(self, db: CatalogDb) -> None:
        """A queue-item style update does not erase views, duration or a precise date."""
        uid = await db.upsert_stream(
            make_stream(
                "a",
                duration=300,
                view_count=10,
                textual_upload_date="2023-11-05",
                upload_date=UPLOADED,
                is_upload_date_approximation=False,
            )
        )
        await db.upsert_stream(make_stream("a", title="Renamed", duration=0))

        stored = await db.get_stream_by_id(uid)
        assert stored is not None
        assert stored.title == "Renamed"
        assert stored.duration == 300
        assert stored.view_count == 10
        assert stored.upload_date == UPLOADED
        assert stored.is_upload_date_approximation is False

    async def test_precise_date_replaces_stored_one(self, db: CatalogDb) -> None:
        """A non-approximate upload date overwrites the stored one."""
        uid = await db.upsert_stream(
            make_stream("a", upload_date=UPLOADED, is_upload_date_approximation=True)
        )
        newer = datetime(2023, 11, 6, tzinfo=timezone.utc)
        await db.upsert_stream(
            make_stream("a", upload_date=newer, is_upload_date_approximation=False)
        )
        stored = await db.get_stream_by_id(uid)
        assert stored is not None
        assert stored.upload_date == newer

    def test_live_streams_are_not_merged(self) -> None:
        """Live streams replace the stored values as-is."""
        existing = make_stream("a", duration=300, view_count=10)
        newer = make_stream("a", is_live=True, duration=0)
        assert merge_with_existing(newer, existing) is newer

    async def test_get_stream_by_key(self, db: CatalogDb) -> None:
        """Test lookup by (service_id, url)."""
        await db.upsert_stream(make_stream("a"))
        assert await db.get_stream_by_key(0, "https://example.com/watch?v=a") is not None
        assert await db.get_stream_by_key(0, "https://example.com/watch?v=zzz") is None

    async def test_list_streams_ordering(self, db: CatalogDb) -> None:
        """Title ordering is case-insensitive."""
        await db.upsert_streams([make_stream("b"), make_stream("C"), make_stream("a")])
        titles = [s.title for s in await db.list_streams(order_by="title")]
        assert titles == ["a", "b", "C"]

    async def test_list_streams_uses_page_size(self) -> None:
        """Without an explicit limit a listing returns one configured page."""
        db = CatalogDb(":memory:", page_size=2)
        await db.open()
        await db.ensure_schema()
        try:
            await db.upsert_streams([make_stream(n) for n in "abcde"])
            assert db.page_size == 2
            assert [s.title for s in await db.list_streams()] == ["a", "b"]
            assert [s.title for s in await db.list_streams(offset=4)] == ["e"]
            assert len(await db.list_streams(limit=10)) == 5
        finally:
            await db.close()

    def test_page_size_must_be_positive(self) -> None:
        """A non-positive page size is rejected up front."""
        with pytest.raises(ValueError):
            CatalogDb(":memory:", page_size=0)

    async def test_delete_orphaned_streams(self, db: CatalogDb) -> None:
        """Only streams no playlist references are pruned."""
        kept, orphan = await db.upsert_streams([make_stream("kept"), make_stream("orphan")])
        playlist_id = await db.create_playlist(PlaylistEntity(name="P"))
        await db.append_streams(playlist_id, [kept])

        assert await db.delete_orphaned_streams() == 1
        assert await db.get_stream_by_id(orphan) is None
        assert await db.get_stream_by_id(kept) is not None

    async def test_delete_missing_stream(self, db: CatalogDb) -> None:
        """Deleting an unknown stream raises NotFoundError."""
        with pytest.raises(NotFoundError):
            await db.delete_stream(12345)


# =============================================================================
# Cascades
# =============================================================================


class TestCascades:
    async def test_deleting_playlist_removes_memberships(self, db: CatalogDb) -> None:
        """Deleting a playlist cascades to its memberships only."""
        ids = await db.upsert_streams([make_stream("a"), make_stream("b"), make_stream("c")])
        playlist_id = await db.create_playlist(PlaylistEntity(name="P"))
        await db.append_streams(playlist_id, ids)
        assert await count_rows(db, "playlist_stream_join") == 3

        await db.delete_playlist(playlist_id)

        assert await count_rows(db, "playlist_stream_join") == 0
        # Streams themselves stay.
        assert await db.count_streams() == 3

    async def test_deleting_stream_leaves_detectable_gaps(self, db: CatalogDb) -> None:
        """Without compaction the cascade leaves holes in both playlists."""
        a, s, b, c = await db.upsert_streams(
            [make_stream("a"), make_stream("s"), make_stream("b"), make_stream("c")]
        )
        p1 = await db.create_playlist(PlaylistEntity(name="P1"))
        p2 = await db.create_playlist(PlaylistEntity(name="P2"))
        await db.append_streams(p1, [a, s, b])
        await db.append_streams(p2, [s, c])

        affected = await db.delete_stream(s, compact=False)

        assert affected == sorted([p1, p2])
        assert [m.index for m in await db.get_memberships(p1)] == [0, 2]
        assert [m.index for m in await db.get_memberships(p2)] == [1]
        assert await db.find_fragmented_playlists() == sorted([p1, p2])

        assert await db.compact_playlist(p1) is True
        assert await db.compact_playlist(p2) is True
        assert [(m.index, m.stream_uid) for m in await db.get_memberships(p1)] == [(0, a), (1, b)]
        assert [(m.index, m.stream_uid) for m in await db.get_memberships(p2)] == [(0, c)]
        assert await db.find_fragmented_playlists() == []

    async def test_deleting_stream_with_compaction(self, db: CatalogDb) -> None:
        """A compacting delete leaves positions contiguous."""
        a, s, b = await db.upsert_streams([make_stream("a"), make_stream("s"), make_stream("b")])
        playlist_id = await db.create_playlist(PlaylistEntity(name="P"))
        await db.append_streams(playlist_id, [s, a, s, b])

        await db.delete_stream(s)

        memberships = await db.get_memberships(playlist_id)
        assert [(m.index, m.stream_uid) for m in memberships] == [(0, a), (1, b)]
        assert await db.find_fragmented_playlists() == []

    async def test_compacting_contiguous_playlist_is_noop(self, db: CatalogDb) -> None:
        """Compacting a contiguous playlist reports no change."""
        ids = await db.upsert_streams([make_stream("a"), make_stream("b")])
        playlist_id = await db.create_playlist(PlaylistEntity(name="P"))
        await db.append_streams(playlist_id, ids)
        assert await db.compact_playlist(playlist_id) is False

    async def test_playlists_containing_stream(self, db: CatalogDb) -> None:
        """Each containing playlist is reported once."""
        (a,) = await db.upsert_streams([make_stream("a")])
        p1 = await db.create_playlist(PlaylistEntity(name="P1"))
        p2 = await db.create_playlist(PlaylistEntity(name="P2"))
        await db.append_streams(p1, [a, a])
        await db.append_streams(p2, [a])
        assert await db.playlists_containing_stream(a) == [p1, p2]


# =============================================================================
# Transactions
# =============================================================================


class TestTransactions:
    async def test_error_rolls_back(self, db: CatalogDb) -> None:
        """An exception inside a transaction discards its writes."""
        with pytest.raises(ValueError):
            async with db.transaction():
                await db.upsert_stream(make_stream("a"))
                raise ValueError("boom")
        assert await db.count_streams() == 0

    async def test_nested_error_rolls_back_inner_only(self, db: CatalogDb) -> None:
        """A failing nested block rolls back to its savepoint."""
        async with db.transaction():
            await db.upsert_stream(make_stream("outer"))
            with pytest.raises(ValueError):
                async with db.transaction():
                    await db.upsert_stream(make_stream("inner"))
                    raise ValueError("boom")
        assert await db.count_streams() == 1
        assert await db.get_stream_by_key(0, "https://example.com/watch?v=outer") is not None

    async def test_dangling_membership_rejected_at_commit(self, db: CatalogDb) -> None:
        """A membership pointing to a missing stream fails when the transaction commits."""
        playlist_id = await db.create_playlist(PlaylistEntity(name="P"))
        with pytest.raises(sqlite3.IntegrityError):
            async with db.transaction() as conn:
                await conn.execute(
                    "INSERT INTO playlist_stream_join (playlist_id, stream_id, join_index) "
                    "VALUES (?, ?, 0);",
                    (playlist_id, 999),
                )
        assert await db.count_playlist_streams(playlist_id) == 0

    async def test_append_of_unknown_stream_rejected(self, db: CatalogDb) -> None:
        """Appending a missing stream fails at commit and leaves no rows."""
        playlist_id = await db.create_playlist(PlaylistEntity(name="P"))
        with pytest.raises(sqlite3.IntegrityError):
            await db.append_streams(playlist_id, [424242])
        assert await db.count_playlist_streams(playlist_id) == 0

    async def test_foreign_keys_are_deferred(self, db: CatalogDb) -> None:
        """A reference may precede its target inside one transaction."""
        playlist_id = await db.create_playlist(PlaylistEntity(name="P"))
        async with db.transaction() as conn:
            await conn.execute(
                "INSERT INTO playlist_stream_join (playlist_id, stream_id, join_index) "
                "VALUES (?, 42, 0);",
                (playlist_id,),
            )
            await conn.execute(
                "INSERT INTO streams (uid, service_id, url, title) VALUES (42, 0, 'late', 'Late');"
            )
        rows = await db.get_playlist_streams(playlist_id)
        assert [r.stream.title for r in rows] == ["Late"]

    async def test_concurrent_appends_are_serialized(self, db: CatalogDb) -> None:
        """Appends from concurrent tasks never produce duplicate positions."""
        ids = await db.upsert_streams([make_stream(f"s{i}") for i in range(10)])
        playlist_id = await db.create_playlist(PlaylistEntity(name="P"))

        await asyncio.gather(*(db.append_streams(playlist_id, [i]) for i in ids))

        memberships = await db.get_memberships(playlist_id)
        assert [m.index for m in memberships] == list(range(10))
        assert sorted(m.stream_uid for m in memberships) == sorted(ids)

    async def test_readers_only_see_committed_positions(self, db: CatalogDb) -> None:
        """Reads from another task never observe a playlist halfway through a shift."""
        ids = await db.upsert_streams([make_stream(f"s{i}") for i in range(30)])
        playlist_id = await db.create_playlist(PlaylistEntity(name="P"))
        await db.append_streams(playlist_id, ids)

        done = asyncio.Event()
        observed: list[list[int]] = []

        async def reorder() -> None:
            try:
                for _ in range(20):
                    await db.move_stream(playlist_id, 0, 29)
                    first = await db.remove_stream_at(playlist_id, 0)
                    await db.insert_stream_at(playlist_id, first, 0)
            finally:
                done.set()

        async def watch() -> None:
            while not done.is_set():
                memberships = await db.get_memberships(playlist_id)
                observed.append([m.index for m in memberships])
                await asyncio.sleep(0)

        await asyncio.gather(reorder(), watch())

        assert observed
        for indexes in observed:
            assert indexes == list(range(len(indexes)))
        assert [m.index for m in await db.get_memberships(playlist_id)] == list(range(30))

    async def test_reads_inside_own_transaction(self, db: CatalogDb) -> None:
        """The task running a transaction reads its own uncommitted rows."""
        async with db.transaction():
            uid = await db.upsert_stream(make_stream("pending"))
            assert await db.get_stream_by_id(uid) is not None
            assert await db.count_streams() == 1


# =============================================================================
# Remote playlists / subscriptions
# =============================================================================


class TestRemotePlaylists:
    async def test_upsert_by_natural_key(self, db: CatalogDb) -> None:
        """Bookmarking the same (service_id, url) again overwrites the snapshot."""
        url = "https://e.com/p"
        first = PlaylistRemoteEntity(service_id=0, name="Old", url=url, stream_count=1)
        second = PlaylistRemoteEntity(service_id=0, name="New", url=url, stream_count=None)

        uid1 = await db.upsert_remote_playlist(first)
        uid2 = await db.upsert_remote_playlist(second)

        assert uid1 == uid2
        assert await db.count_remote_playlists() == 1
        stored = await db.get_remote_playlist(uid1)
        assert stored is not None
        assert stored.name == "New"
        assert stored.stream_count is None

    async def test_delete(self, db: CatalogDb) -> None:
        """Test deleting a remote playlist, then deleting it again."""
        uid = await db.upsert_remote_playlist(
            PlaylistRemoteEntity(service_id=0, name="P", url="https://e.com/p")
        )
        await db.delete_remote_playlist(uid)
        assert await db.get_remote_playlist(uid) is None
        with pytest.raises(NotFoundError):
            await db.delete_remote_playlist(uid)


class TestSubscriptions:
    async def test_upsert_keeps_notification_mode(self, db: CatalogDb) -> None:
        """Re-upserting a subscription leaves its notification mode alone."""
        subscription = SubscriptionEntity(service_id=0, url="https://e.com/c", name="C")
        uid = await db.upsert_subscription(subscription)
        await db.set_notification_mode(0, "https://e.com/c", NotificationMode.ENABLED)

        again = SubscriptionEntity(service_id=0, url="https://e.com/c", name="C2")
        assert await db.upsert_subscription(again) == uid

        stored = await db.get_subscription(uid)
        assert stored is not None
        assert stored.name == "C2"
        assert stored.notification_mode is NotificationMode.ENABLED

    async def test_filter_by_name_escapes_wildcards(self, db: CatalogDb) -> None:
        """LIKE wildcards in the filter are matched literally."""
        await db.upsert_subscription(SubscriptionEntity(service_id=0, url="1", name="100% Music"))
        await db.upsert_subscription(SubscriptionEntity(service_id=0, url="2", name="1000 Music"))

        names = [s.name for s in await db.filter_subscriptions_by_name("0%")]
        assert names == ["100% Music"]

    async def test_set_notification_mode_unknown(self, db: CatalogDb) -> None:
        """Changing the mode of an unknown subscription raises NotFoundError."""
        with pytest.raises(NotFoundError):
            await db.set_notification_mode(0, "nope", NotificationMode.ENABLED)

    async def test_subscription_without_url(self, db: CatalogDb) -> None:
        """A subscription stored with no url can still be updated and removed by key."""
        uid = await db.upsert_subscription(SubscriptionEntity(service_id=0, url=None, name="C"))

        await db.set_notification_mode(0, None, NotificationMode.ENABLED)
        stored = await db.get_subscription_by_key(0, None)
        assert stored is not None
        assert stored.uid == uid
        assert stored.notification_mode is NotificationMode.ENABLED

        assert await db.delete_subscription(0, None) is True
        assert await db.get_subscription(uid) is None
        assert await db.delete_subscription(0, None) is False
