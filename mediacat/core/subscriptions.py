"""
Channel subscription manager.

A subscription is identified by (service_id, url). Fetched channel info
refreshes its content in place; the notification mode only changes through
`set_notification_mode`.
"""

from __future__ import annotations

import logging
from typing import Iterable

from mediacat.core import NotFoundError
from mediacat.core.catalog_db import CatalogDb
from mediacat.core.db.models import NotificationMode, SubscriptionEntity
from mediacat.core.info import ChannelInfo, ChannelInfoItem

logger = logging.getLogger(__name__)


class SubscriptionManager:
    def __init__(self, db: CatalogDb) -> None:
        self._db = db

    async def subscribe(self, info: ChannelInfo) -> int:
        uid = await self._db.upsert_subscription(SubscriptionEntity.from_channel_info(info))
        logger.info("Subscribed to %s (%d)", info.url, uid)
        return uid

    async def subscribe_all(self, infos: Iterable[ChannelInfo]) -> list[int]:
        """Subscribe to several channels at once (e.g. an import)."""
        async with self._db.transaction():
            return [await self.subscribe(info) for info in infos]

    async def update_channel_info(self, info: ChannelInfo) -> SubscriptionEntity:
        """Refresh a subscription from fetched channel info, keeping its notification mode."""
        async with self._db.transaction():
            subscription = await self._db.get_subscription_by_key(info.service_id, info.url)
            if subscription is None:
                raise NotFoundError(f"Not subscribed to ({info.service_id}, {info.url})")
            subscription.set_data(
                info.name, info.avatar_url, info.description, info.subscriber_count
            )
            await self._db.update_subscription_data(subscription)
        return subscription

    async def set_notification_mode(
        self, service_id: int, url: str | None, mode: NotificationMode
    ) -> None:
        await self._db.set_notification_mode(service_id, url, NotificationMode(mode))

    async def unsubscribe(self, service_id: int, url: str | None) -> bool:
        removed = await self._db.delete_subscription(service_id, url)
        if removed:
            logger.info("Unsubscribed from %s", url)
        return removed

    async def is_subscribed(self, service_id: int, url: str | None) -> bool:
        return await self._db.get_subscription_by_key(service_id, url) is not None

    async def get_subscriptions(self, *, order_by: str = "name") -> list[SubscriptionEntity]:
        return await self._db.list_subscriptions(order_by=order_by)

    async def get_channel_items(self) -> list[ChannelInfoItem]:
        """Subscriptions as display items, ordered by name."""
        return [s.to_channel_info_item() for s in await self._db.list_subscriptions()]

    async def filter_by_name(self, needle: str) -> list[SubscriptionEntity]:
        return await self._db.filter_subscriptions_by_name(needle)
