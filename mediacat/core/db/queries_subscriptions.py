"""
Subscription queries used by `CatalogDb`.

- Functions take an open `aiosqlite.Connection` and never commit.
- (service_id, url) is unique; `upsert_subscription` refreshes the content
  fields of an existing row but never its notification mode.
"""

from __future__ import annotations

import aiosqlite

from mediacat.core.db.models import NotificationMode, SubscriptionEntity
from mediacat.core.db.ordering import subscriptions_order_clause


def _row_to_subscription(row: aiosqlite.Row) -> SubscriptionEntity:
    subscriber_count = row["subscriber_count"]
    return SubscriptionEntity(
        uid=int(row["uid"]),
        service_id=int(row["service_id"]),
        url=row["url"],
        name=row["name"],
        avatar_url=row["avatar_url"],
        subscriber_count=int(subscriber_count) if subscriber_count is not None else None,
        description=row["description"],
        notification_mode=NotificationMode(int(row["notification_mode"])),
    )


async def upsert_subscription(conn: aiosqlite.Connection, subscription: SubscriptionEntity) -> int:
    await conn.execute(
        """
        INSERT INTO subscriptions (
            service_id, url, name, avatar_url, subscriber_count, description, notification_mode
        ) VALUES (
            :service_id, :url, :name, :avatar_url, :subscriber_count, :description,
            :notification_mode
        )
        ON CONFLICT(service_id, url) DO UPDATE SET
            name             = excluded.name,
            avatar_url       = excluded.avatar_url,
            subscriber_count = excluded.subscriber_count,
            description      = excluded.description
        """,
        {
            "service_id": int(subscription.service_id),
            "url": subscription.url,
            "name": subscription.name,
            "avatar_url": subscription.avatar_url,
            "subscriber_count": subscription.subscriber_count,
            "description": subscription.description,
            "notification_mode": int(subscription.notification_mode),
        },
    )
    uid = await get_subscription_id(conn, subscription.service_id, subscription.url)
    if uid is None:
        raise RuntimeError("Upsert failed: subscription row not found after insert/update.")
    return uid


async def update_subscription_data(
    conn: aiosqlite.Connection, subscription: SubscriptionEntity
) -> bool:
    """Write back the refreshable fields of an existing subscription by uid."""
    cursor = await conn.execute(
        """
        UPDATE subscriptions SET
            name = ?, avatar_url = ?, description = ?, subscriber_count = ?
        WHERE uid = ?;
        """,
        (
            subscription.name,
            subscription.avatar_url,
            subscription.description,
            subscription.subscriber_count,
            int(subscription.uid),
        ),
    )
    return cursor.rowcount > 0


async def update_notification_mode(
    conn: aiosqlite.Connection, service_id: int, url: str | None, mode: NotificationMode
) -> bool:
    cursor = await conn.execute(
        "UPDATE subscriptions SET notification_mode = ? WHERE service_id = ? AND url IS ?;",
        (int(mode), int(service_id), url),
    )
    return cursor.rowcount > 0


async def get_subscription_id(
    conn: aiosqlite.Connection, service_id: int, url: str | None
) -> int | None:
    cursor = await conn.execute(
        "SELECT uid FROM subscriptions WHERE service_id = ? AND url IS ?;",
        (int(service_id), url),
    )
    row = await cursor.fetchone()
    return int(row["uid"]) if row else None


async def get_subscription_by_key(
    conn: aiosqlite.Connection, service_id: int, url: str | None
) -> SubscriptionEntity | None:
    cursor = await conn.execute(
        "SELECT * FROM subscriptions WHERE service_id = ? AND url IS ?;",
        (int(service_id), url),
    )
    row = await cursor.fetchone()
    return _row_to_subscription(row) if row else None


async def get_subscription_by_id(
    conn: aiosqlite.Connection, subscription_id: int
) -> SubscriptionEntity | None:
    cursor = await conn.execute(
        "SELECT * FROM subscriptions WHERE uid = ?;", (int(subscription_id),)
    )
    row = await cursor.fetchone()
    return _row_to_subscription(row) if row else None


async def list_subscriptions(
    conn: aiosqlite.Connection, *, order_by: str
) -> list[SubscriptionEntity]:
    order_clause = subscriptions_order_clause(order_by)
    cursor = await conn.execute(f"SELECT * FROM subscriptions s {order_clause};")
    rows = await cursor.fetchall()
    return [_row_to_subscription(r) for r in rows]


async def filter_subscriptions_by_name(
    conn: aiosqlite.Connection, needle: str
) -> list[SubscriptionEntity]:
    """Case-insensitive substring match on the channel name."""
    escaped = needle.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    cursor = await conn.execute(
        f"""
        SELECT * FROM subscriptions s
        WHERE s.name LIKE ? ESCAPE '\\'
        {subscriptions_order_clause("name")};
        """,
        (f"%{escaped}%",),
    )
    rows = await cursor.fetchall()
    return [_row_to_subscription(r) for r in rows]


async def count_subscriptions(conn: aiosqlite.Connection) -> int:
    cursor = await conn.execute("SELECT COUNT(*) AS c FROM subscriptions;")
    row = await cursor.fetchone()
    return int(row["c"]) if row else 0


async def delete_subscription(
    conn: aiosqlite.Connection, service_id: int, url: str | None
) -> bool:
    cursor = await conn.execute(
        "DELETE FROM subscriptions WHERE service_id = ? AND url IS ?;",
        (int(service_id), url),
    )
    return cursor.rowcount > 0
