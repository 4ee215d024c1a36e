"""
Transient info objects exchanged with the extraction, playback and UI layers.

Inbound:
- `StreamInfoItem`: a stream as it appears in a search result or a listing
- `StreamInfo`: a fully fetched stream
- `PlayQueueItem`: the minimal stream data known to the playback queue
- `PlaylistInfo`: a fetched remote playlist
- `ChannelInfo`: a fetched remote channel

Outbound:
- `StreamInfoItem` doubles as the list-item projection of a stored stream
- `ChannelInfoItem`: the list-item projection of a subscription

All of these are plain immutable value bags. None always means "unknown".
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True, slots=True)
class DateWrapper:
    """A structured upload date plus a flag telling whether it is an estimate."""

    offset_date_time: datetime
    is_approximation: bool = False


@dataclass(frozen=True, slots=True)
class StreamInfoItem:
    service_id: int
    url: str
    name: str
    is_live: bool = False
    is_audio_only: bool = False
    duration: int = -1
    uploader_name: str = ""
    uploader_url: str | None = None
    thumbnail_url: str | None = None
    view_count: int | None = None
    textual_upload_date: str | None = None
    upload_date: DateWrapper | None = None


@dataclass(frozen=True, slots=True)
class StreamInfo:
    """
    Full stream info as returned by a stream page fetch.

    Only the fields the catalog persists are modelled here.
    """

    service_id: int
    url: str
    name: str
    is_live: bool = False
    is_audio_only: bool = False
    duration: int = -1
    uploader_name: str = ""
    uploader_url: str | None = None
    thumbnail_url: str | None = None
    view_count: int | None = None
    textual_upload_date: str | None = None
    upload_date: DateWrapper | None = None
    description: str | None = None


@dataclass(frozen=True, slots=True)
class PlayQueueItem:
    """
    Minimal stream data carried by the playback queue.

    Text fields are never None; missing values are coerced to "" on creation
    (except `uploader_url`, which stays optional).
    """

    service_id: int
    url: str
    title: str
    duration: int = 0
    thumbnail_url: str = ""
    uploader: str = ""
    uploader_url: str | None = None
    is_live: bool = False
    is_audio_only: bool = False

    @classmethod
    def from_stream_info(cls, info: StreamInfo) -> PlayQueueItem:
        return cls._create(
            info.service_id,
            info.url,
            info.name,
            info.duration,
            info.thumbnail_url,
            info.uploader_name,
            info.uploader_url,
            info.is_live,
            info.is_audio_only,
        )

    @classmethod
    def from_stream_info_item(cls, item: StreamInfoItem) -> PlayQueueItem:
        return cls._create(
            item.service_id,
            item.url,
            item.name,
            item.duration,
            item.thumbnail_url,
            item.uploader_name,
            item.uploader_url,
            item.is_live,
            item.is_audio_only,
        )

    @classmethod
    def _create(
        cls,
        service_id: int,
        url: str | None,
        title: str | None,
        duration: int,
        thumbnail_url: str | None,
        uploader: str | None,
        uploader_url: str | None,
        is_live: bool,
        is_audio_only: bool,
    ) -> PlayQueueItem:
        return cls(
            service_id=service_id,
            url=url or "",
            title=title or "",
            duration=duration,
            thumbnail_url=thumbnail_url or "",
            uploader=uploader or "",
            uploader_url=uploader_url,
            is_live=is_live,
            is_audio_only=is_audio_only,
        )


@dataclass(frozen=True, slots=True)
class PlaylistInfo:
    service_id: int
    url: str
    name: str
    thumbnail_url: str | None = None
    uploader_name: str | None = None
    uploader_avatar_url: str | None = None
    stream_count: int | None = None


@dataclass(frozen=True, slots=True)
class ChannelInfo:
    service_id: int
    url: str
    name: str
    avatar_url: str | None = None
    description: str | None = None
    subscriber_count: int | None = None


@dataclass(frozen=True, slots=True)
class ChannelInfoItem:
    """Display projection of a subscribed channel."""

    service_id: int
    url: str | None
    name: str | None
    thumbnail_url: str | None = None
    description: str | None = None
    subscriber_count: int = 0
