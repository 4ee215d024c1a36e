from __future__ import annotations

import logging
from dataclasses import dataclass

from mediacat.config import CatalogConfig, get_catalog_config
from mediacat.core import CatalogError
from mediacat.core.catalog_db import CatalogDb
from mediacat.core.local_item import LocalItem, merge_playlists
from mediacat.core.playlists import LocalPlaylistManager, RemotePlaylistManager
from mediacat.core.subscriptions import SubscriptionManager

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class CatalogStats:
    streams: int
    playlists: int
    remote_playlists: int
    subscriptions: int
    fragmented_playlists: tuple[int, ...]


class CatalogNotReadyError(CatalogError):
    """Raised when the catalog is used before it is initialized."""


class MediaCatalog:
    """
    High-level facade for the local media catalog.

    Dependencies:
    - `CatalogDb` for persistence
    - `CatalogConfig` for the compaction policy

    The managers are only handed out once `initialize()` has run.
    """

    def __init__(self, *, db: CatalogDb, config: CatalogConfig | None = None) -> None:
        self._db = db
        self._config = config if config is not None else get_catalog_config()
        self._initialized = False
        self._playlists = LocalPlaylistManager(db, compaction=self._config.compaction)
        self._remote_playlists = RemotePlaylistManager(db)
        self._subscriptions = SubscriptionManager(db)

    @classmethod
    def from_config(cls, config: CatalogConfig) -> MediaCatalog:
        db = CatalogDb(
            config.database_path,
            journal_mode=config.journal_mode,
            synchronous=config.synchronous,
            page_size=config.page_size,
        )
        return cls(db=db, config=config)

    @property
    def initialized(self) -> bool:
        return self._initialized

    @property
    def db(self) -> CatalogDb:
        return self._db

    @property
    def config(self) -> CatalogConfig:
        return self._config

    async def initialize(self) -> None:
        """
        Open the database if needed and bring the schema up to date.
        """
        if not self._db.is_open:
            await self._db.open()
        await self._db.ensure_schema()
        self._initialized = True
        logger.info("Catalog ready (%s)", self._db.db_path)

    async def close(self) -> None:
        await self._db.close()
        self._initialized = False

    @property
    def playlists(self) -> LocalPlaylistManager:
        self._require_initialized()
        return self._playlists

    @property
    def remote_playlists(self) -> RemotePlaylistManager:
        self._require_initialized()
        return self._remote_playlists

    @property
    def subscriptions(self) -> SubscriptionManager:
        self._require_initialized()
        return self._subscriptions

    async def merged_playlists(self) -> list[LocalItem]:
        """Local and bookmarked remote playlists in one name-ordered list."""
        self._require_initialized()
        local = await self._db.list_playlists()
        remote = await self._db.list_remote_playlists()
        return merge_playlists(local, remote)

    async def stats(self) -> CatalogStats:
        self._require_initialized()
        return CatalogStats(
            streams=await self._db.count_streams(),
            playlists=await self._db.count_playlists(),
            remote_playlists=await self._db.count_remote_playlists(),
            subscriptions=await self._db.count_subscriptions(),
            fragmented_playlists=tuple(await self._db.find_fragmented_playlists()),
        )

    def _require_initialized(self) -> None:
        if not self._initialized:
            raise CatalogNotReadyError(
                "MediaCatalog is not initialized. Call await MediaCatalog.initialize() first."
            )
