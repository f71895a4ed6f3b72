"""
Spotify Web API access for spot-sync.

    gateway   RequestGateway: authenticated, FIFO-serialized, retrying calls
    batching  BatchCoordinator: single-id calls coalesced into batch requests
    paging    PagingFetcher: complete paged collections
    client    RemoteLibraryClient: the library operations built on the above
    models    Track, Album, Playlist and the Spotify handles
"""

from spot_sync.spotify.batching import BatchCoordinator
from spot_sync.spotify.client import CacheState, PlaylistListingCache, RemoteLibraryClient
from spot_sync.spotify.gateway import RequestGateway, Session
from spot_sync.spotify.models import (
    Album,
    InsertionOp,
    MatchState,
    PlatformId,
    Playlist,
    RemoteAlbum,
    RemotePlaylist,
    Track,
    UserProfile,
)
from spot_sync.spotify.paging import PagingFetcher

__all__ = [
    "BatchCoordinator",
    "CacheState",
    "PlaylistListingCache",
    "RemoteLibraryClient",
    "RequestGateway",
    "Session",
    "PagingFetcher",
    # Models
    "Album",
    "InsertionOp",
    "MatchState",
    "PlatformId",
    "Playlist",
    "RemoteAlbum",
    "RemotePlaylist",
    "Track",
    "UserProfile",
]
