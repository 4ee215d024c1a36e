"""
Catalog records and small conversion helpers.

This module is intentionally lightweight:
- No DB connection knowledge
- No SQL
- Dataclasses + mapping constructors from/to the transient info objects

Records are mutable: `uid` is 0 until the access layer persists the record and
writes the assigned id back, and subscriptions are refreshed in place.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import IntEnum

from mediacat.core.info import (
    ChannelInfo,
    ChannelInfoItem,
    DateWrapper,
    PlaylistInfo,
    PlayQueueItem,
    StreamInfo,
    StreamInfoItem,
)
from mediacat.core.local_item import LocalItemType


_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class NotificationMode(IntEnum):
    """Per-subscription notification preference (owned by the notifier)."""

    DISABLED = 0
    ENABLED = 1


@dataclass(slots=True)
class StreamEntity:
    """
    One remote media item.

    Notes:
    - (`service_id`, `url`) is the natural key; it is unique in the catalog.
    - `duration` is in seconds; 0 or negative means unknown.
    - `upload_date` is timezone-aware when present.
    """

    service_id: int
    url: str
    title: str
    is_live: bool
    is_audio_only: bool
    duration: int
    uploader: str
    uploader_url: str | None = None
    thumbnail_url: str | None = None
    view_count: int | None = None
    textual_upload_date: str | None = None
    upload_date: datetime | None = None
    is_upload_date_approximation: bool | None = None
    uid: int = 0

    @classmethod
    def from_stream_info_item(cls, item: StreamInfoItem) -> StreamEntity:
        """Create a record from a search result or listing entry."""
        return cls(
            service_id=item.service_id,
            url=item.url,
            title=item.name,
            is_live=item.is_live,
            is_audio_only=item.is_audio_only,
            duration=item.duration,
            uploader=item.uploader_name,
            uploader_url=item.uploader_url,
            thumbnail_url=item.thumbnail_url,
            view_count=item.view_count,
            textual_upload_date=item.textual_upload_date,
            upload_date=item.upload_date.offset_date_time if item.upload_date else None,
            is_upload_date_approximation=(
                item.upload_date.is_approximation if item.upload_date else None
            ),
        )

    @classmethod
    def from_stream_info(cls, info: StreamInfo) -> StreamEntity:
        """Create a record from a fully fetched stream."""
        return cls(
            service_id=info.service_id,
            url=info.url,
            title=info.name,
            is_live=info.is_live,
            is_audio_only=info.is_audio_only,
            duration=info.duration,
            uploader=info.uploader_name,
            uploader_url=info.uploader_url,
            thumbnail_url=info.thumbnail_url,
            view_count=info.view_count,
            textual_upload_date=info.textual_upload_date,
            upload_date=info.upload_date.offset_date_time if info.upload_date else None,
            is_upload_date_approximation=(
                info.upload_date.is_approximation if info.upload_date else None
            ),
        )

    @classmethod
    def from_play_queue_item(cls, item: PlayQueueItem) -> StreamEntity:
        """Create a record from playback queue data (no views, no upload date)."""
        return cls(
            service_id=item.service_id,
            url=item.url,
            title=item.title,
            is_live=item.is_live,
            is_audio_only=item.is_audio_only,
            duration=item.duration,
            uploader=item.uploader,
            uploader_url=item.uploader_url,
            thumbnail_url=item.thumbnail_url,
        )

    def to_stream_info_item(self) -> StreamInfoItem:
        upload_date: DateWrapper | None = None
        if self.upload_date is not None:
            upload_date = DateWrapper(
                self.upload_date, bool(self.is_upload_date_approximation)
            )
        return StreamInfoItem(
            service_id=self.service_id,
            url=self.url,
            name=self.title,
            is_live=self.is_live,
            is_audio_only=self.is_audio_only,
            duration=self.duration,
            uploader_name=self.uploader,
            uploader_url=self.uploader_url,
            thumbnail_url=self.thumbnail_url,
            view_count=self.view_count,
            textual_upload_date=self.textual_upload_date,
            upload_date=upload_date,
        )

    @property
    def local_item_type(self) -> LocalItemType:
        return LocalItemType.STREAM_ITEM

    def ordering_key(self) -> str:
        return self.title


@dataclass(slots=True)
class PlaylistEntity:
    """A user-named local playlist. Names are not unique."""

    name: str | None
    thumbnail_url: str | None = None
    uid: int = 0

    @classmethod
    def seeded_from(cls, name: str, stream: StreamEntity) -> PlaylistEntity:
        """Create a playlist whose thumbnail is taken from its first stream."""
        return cls(name=name, thumbnail_url=stream.thumbnail_url)

    @property
    def local_item_type(self) -> LocalItemType:
        return LocalItemType.PLAYLIST_LOCAL_ITEM

    def ordering_key(self) -> str | None:
        return self.name


@dataclass(slots=True)
class PlaylistRemoteEntity:
    """
    Local bookmark of a remote playlist.

    Content fields are a cache snapshot taken when the playlist was last
    fetched; use `is_identical_to` to decide whether a refresh must be written.
    """

    service_id: int
    name: str | None
    url: str | None
    thumbnail_url: str | None = None
    uploader: str | None = None
    stream_count: int | None = None
    uid: int = 0

    @classmethod
    def from_playlist_info(cls, info: PlaylistInfo) -> PlaylistRemoteEntity:
        return cls(
            service_id=info.service_id,
            name=info.name,
            url=info.url,
            thumbnail_url=effective_thumbnail_url(info),
            uploader=info.uploader_name,
            stream_count=info.stream_count,
        )

    def is_identical_to(self, info: PlaylistInfo) -> bool:
        """
        Compare this cached copy with freshly fetched info.

        Returns False if anything visible changed (name, stream count, ...),
        which is the signal to overwrite the cached row. None equals None.
        """
        return (
            self.service_id == info.service_id
            and self.stream_count == info.stream_count
            and self.name == info.name
            and self.url == info.url
            and self.thumbnail_url == effective_thumbnail_url(info)
            and self.uploader == info.uploader_name
        )

    def ordering_name(self) -> str | None:
        return self.name

    @property
    def local_item_type(self) -> LocalItemType:
        return LocalItemType.PLAYLIST_REMOTE_ITEM

    def ordering_key(self) -> str | None:
        return self.name


@dataclass(slots=True)
class PlaylistStreamEntity:
    """
    Membership of a stream in a local playlist.

    (`playlist_uid`, `index`) is the primary key. The same stream may appear
    at several indexes of one playlist.
    """

    playlist_uid: int
    stream_uid: int
    index: int

    @property
    def local_item_type(self) -> LocalItemType:
        return LocalItemType.PLAYLIST_STREAM_ITEM

    def ordering_key(self) -> int:
        return self.index


@dataclass(slots=True)
class SubscriptionEntity:
    """A subscribed channel, unique per (`service_id`, `url`)."""

    service_id: int
    url: str | None = None
    name: str | None = None
    avatar_url: str | None = None
    subscriber_count: int | None = None
    description: str | None = None
    notification_mode: NotificationMode = NotificationMode.DISABLED
    uid: int = 0

    @classmethod
    def from_channel_info(cls, info: ChannelInfo) -> SubscriptionEntity:
        return cls(
            service_id=info.service_id,
            url=info.url,
            name=info.name,
            avatar_url=info.avatar_url,
            description=info.description,
            subscriber_count=info.subscriber_count,
        )

    def set_data(
        self,
        name: str | None,
        avatar_url: str | None,
        description: str | None,
        subscriber_count: int | None,
    ) -> None:
        """Refresh the content fields. Identity and notification mode are untouched."""
        self.name = name
        self.avatar_url = avatar_url
        self.description = description
        self.subscriber_count = subscriber_count

    def to_channel_info_item(self) -> ChannelInfoItem:
        if self.subscriber_count is not None:
            return ChannelInfoItem(
                service_id=self.service_id,
                url=self.url,
                name=self.name,
                thumbnail_url=self.avatar_url,
                description=self.description,
                subscriber_count=self.subscriber_count,
            )
        return ChannelInfoItem(
            service_id=self.service_id,
            url=self.url,
            name=self.name,
            thumbnail_url=self.avatar_url,
            description=self.description,
        )


@dataclass(frozen=True, slots=True)
class PlaylistMetadataRow:
    """Local playlist as listed in the UI, with its membership count."""

    uid: int
    name: str | None
    thumbnail_url: str | None
    stream_count: int

    @property
    def local_item_type(self) -> LocalItemType:
        return LocalItemType.PLAYLIST_LOCAL_ITEM

    def ordering_key(self) -> str | None:
        return self.name


@dataclass(frozen=True, slots=True)
class PlaylistStreamRow:
    """A stream together with its position in a playlist."""

    playlist_uid: int
    join_index: int
    stream: StreamEntity


def effective_thumbnail_url(info: PlaylistInfo) -> str | None:
    """Playlist thumbnail, falling back to the uploader avatar when missing."""
    if info.thumbnail_url is None:
        return info.uploader_avatar_url
    return info.thumbnail_url


def datetime_to_millis(value: datetime | None) -> int | None:
    """Convert an upload date to epoch milliseconds (naive values are taken as UTC)."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return (value - _EPOCH) // timedelta(milliseconds=1)


def millis_to_datetime(value: int | None) -> datetime | None:
    if value is None:
        return None
    return _EPOCH + timedelta(milliseconds=int(value))


def normalize_bool(value: int | bool | None) -> bool | None:
    """SQLite stores booleans as 0/1; keep None as unknown."""
    if value is None:
        return None
    return bool(value)
