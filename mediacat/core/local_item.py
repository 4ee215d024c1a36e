"""
Common capability shared by every record stored in the catalog.

Records do not inherit from a base class. Instead each record exposes:
- `local_item_type`: a discriminant from the closed `LocalItemType` set
- `ordering_key()`: the value UI lists sort by

`merge_playlists` relies on this to show local and bookmarked remote playlists
in a single alphabetical list.
"""

from __future__ import annotations

from enum import Enum
from typing import Iterable, Protocol, runtime_checkable


class LocalItemType(Enum):
    """Kinds of locally stored items."""

    STREAM_ITEM = "stream"
    PLAYLIST_LOCAL_ITEM = "playlist_local"
    PLAYLIST_REMOTE_ITEM = "playlist_remote"
    PLAYLIST_STREAM_ITEM = "playlist_stream"


@runtime_checkable
class LocalItem(Protocol):
    @property
    def local_item_type(self) -> LocalItemType: ...

    def ordering_key(self) -> str | int | None: ...


PLAYLIST_ITEM_TYPES: frozenset[LocalItemType] = frozenset(
    {LocalItemType.PLAYLIST_LOCAL_ITEM, LocalItemType.PLAYLIST_REMOTE_ITEM}
)


def _name_sort_key(item: LocalItem) -> tuple[int, str]:
    # Unnamed playlists go last.
    key = item.ordering_key()
    if key is None:
        return (1, "")
    return (0, str(key).casefold())


def merge_playlists(
    local: Iterable[LocalItem],
    remote: Iterable[LocalItem],
) -> list[LocalItem]:
    """
    Merge local and remote playlists into one list ordered by name.

    The sort is case-insensitive and stable, so on equal names local
    playlists stay ahead of remote ones.
    """
    merged: list[LocalItem] = []
    for item in (*local, *remote):
        if item.local_item_type not in PLAYLIST_ITEM_TYPES:
            raise TypeError(f"Not a playlist item: {item.local_item_type}")
        merged.append(item)
    merged.sort(key=_name_sort_key)
    return merged
