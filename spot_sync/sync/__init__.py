"""
Reconciliation of the local library with Spotify.

    aligner   align(): insertions that turn a Spotify playlist into the local one
    items     PlaylistSync / AlbumSync state machines (sync, find, commit)
    library   LibrarySync: session lifecycle and library-wide passes
"""

from spot_sync.sync.aligner import align, levenshtein
from spot_sync.sync.items import (
    AlbumSync,
    ItemStatus,
    MusicItem,
    PlaylistSync,
    SyncPhase,
    create_items,
)
from spot_sync.sync.library import LibrarySync

__all__ = [
    "align",
    "levenshtein",
    "AlbumSync",
    "ItemStatus",
    "MusicItem",
    "PlaylistSync",
    "SyncPhase",
    "create_items",
    "LibrarySync",
]
