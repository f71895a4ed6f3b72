"""
Typed Spotify library operations for spot-sync.

RemoteLibraryClient is the only place that knows Spotify endpoint paths
and response shapes. It builds on:

    RequestGateway     every call (authentication, FIFO admission, retries)
    PagingFetcher      collections spread over several pages
    BatchCoordinator   album lookups and library membership/saves, which
                       Spotify accepts for many ids at once

Batched operations:
    fetch_album            GET albums?ids=...              (20 ids, 2s window)
    is_album_in_library    GET me/albums/contains?ids=...  (50 ids, 10ms window)
    add_album_to_library   PUT me/albums                   (50 ids, 10ms window)

Playlist lookup:
    Playlists are matched by name against the user's full playlist listing.
    The listing is fetched once per "find cycle" and shared by all lookups of
    that cycle; reset_found_playlists() starts a new cycle.

Usage:
    client = RemoteLibraryClient(gateway, config)

    match = await client.find_track(track)
    if match is not None:
        print(match.platform_id.value)

    playlist = await client.create_playlist("Road Trip", "Imported")
    await client.insert_playlist_tracks(playlist, [InsertionOp(0, ("id1", "id2"))])
"""

import asyncio
from enum import Enum
from typing import Any, Awaitable, Callable

from spot_sync.core.config import Config
from spot_sync.core.exceptions import AmbiguousMatchError
from spot_sync.core.logger import get_logger
from spot_sync.spotify.batching import BatchCoordinator
from spot_sync.spotify.gateway import RequestGateway
from spot_sync.spotify.models import (
    Album,
    InsertionOp,
    RemoteAlbum,
    RemotePlaylist,
    Track,
    UserProfile,
)
from spot_sync.spotify.paging import PagingFetcher
from spot_sync.utils import chunk

logger = get_logger(__name__)


# Page size of the playlist listing (API maximum)
PLAYLIST_PAGE_LIMIT = 50


class CacheState(Enum):
    """Lifecycle of a one-shot cache."""
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    READY = "ready"


class PlaylistListingCache:
    """
    One-shot cache of the user's playlists, grouped by name.

    The first get() starts the load; concurrent get() calls await the same
    load instead of starting their own. A failed load is forgotten so that
    the next get() tries again, and every waiter of the failed load gets
    its exception. invalidate() forgets the listing.
    """

    def __init__(self, loader: Callable[[], Awaitable[dict[str, list[RemotePlaylist]]]]) -> None:
        self._loader = loader
        self._load: asyncio.Future | None = None

    @property
    def state(self) -> CacheState:
        if self._load is None:
            return CacheState.NOT_STARTED
        if not self._load.done():
            return CacheState.IN_PROGRESS
        return CacheState.READY

    async def get(self) -> dict[str, list[RemotePlaylist]]:
        if self._load is None:
            self._load = asyncio.ensure_future(self._loader())
        load = self._load

        try:
            # shield: a cancelled waiter must not cancel the shared load
            return await asyncio.shield(load)
        except Exception:
            if self._load is load:
                self._load = None
            raise

    def invalidate(self) -> None:
        self._load = None


class RemoteLibraryClient:
    """
    Spotify operations needed to reconcile the local library.

    Attributes:
        fetch_album: Batched album lookup, `await client.fetch_album(id)`.
        is_album_in_library: Batched saved-album check.
        add_album_to_library: Batched album save.
    """

    def __init__(self, gateway: RequestGateway, config: Config) -> None:
        self._gateway = gateway
        self._config = config
        self._pager = PagingFetcher(gateway)
        self._profile: UserProfile | None = None
        self._playlists = PlaylistListingCache(self._load_playlists)

        batching = config.batching
        self.fetch_album: BatchCoordinator[str, RemoteAlbum] = BatchCoordinator(
            self._fetch_albums,
            batching.album_batch_size,
            batching.album_batch_timeout,
            name="albums"
        )
        self.is_album_in_library: BatchCoordinator[str, bool] = BatchCoordinator(
            self._albums_in_library,
            batching.library_batch_size,
            batching.library_batch_timeout,
            name="albums-contains"
        )
        self.add_album_to_library: BatchCoordinator[str, None] = BatchCoordinator(
            self._add_albums,
            batching.library_batch_size,
            batching.library_batch_timeout,
            name="albums-save"
        )

    @property
    def is_authenticated(self) -> bool:
        return self._gateway.is_authenticated

    # =========================================================================
    # User
    # =========================================================================

    async def current_user(self) -> UserProfile:
        """Profile of the logged in user, fetched once per session."""
        if self._profile is None:
            data = await self._gateway.call("GET", "me")
            self._profile = UserProfile.from_spotify_api(data)
        return self._profile

    def reset_session_cache(self) -> None:
        """Forget everything tied to the current session (on logout)."""
        self._profile = None
        self.reset_found_playlists()

    # =========================================================================
    # Search
    # =========================================================================

    async def find_track(self, track: Track) -> Track | None:
        """
        Search Spotify for a local track.

        Args:
            track: Local track; its title and artists form the query.

        Returns:
            The first search hit as a matched Track, or None without hits.
        """
        query = _field_query("track", track.title, track.artists)
        data = await self._gateway.call("GET", "search", params={
            "q": query,
            "type": "track",
            "market": self._config.spotify.market,
        })
        items = data["tracks"]["items"]
        if not items:
            return None
        return Track.from_spotify_api(items[0])

    async def find_album(self, album: Album) -> str | None:
        """
        Search Spotify for a local album.

        Returns:
            Spotify id of the first hit, or None without hits.
        """
        query = _field_query("album", album.name, album.artists)
        data = await self._gateway.call("GET", "search", params={
            "q": query,
            "type": "album",
            "market": self._config.spotify.market,
        })
        items = data["albums"]["items"]
        if not items:
            return None
        return items[0]["id"]

    # =========================================================================
    # Albums
    # =========================================================================

    async def fetch_album_tracks(self, album_id: str) -> list[Track]:
        """Every track of a Spotify album, in album order."""
        album = await self.fetch_album(album_id)
        return list(album.tracks)

    async def _fetch_albums(self, album_ids: list[str]) -> list[RemoteAlbum]:
        data = await self._gateway.call("GET", "albums", params={
            "ids": ",".join(album_ids),
            "market": self._config.spotify.market,
        })
        albums = []
        for album_data in data["albums"]:
            track_items = await self._pager.fetch_all(album_data["tracks"])
            albums.append(RemoteAlbum.from_spotify_api(album_data, track_items))
        return albums

    async def _albums_in_library(self, album_ids: list[str]) -> list[bool]:
        return await self._gateway.call("GET", "me/albums/contains", params={
            "ids": ",".join(album_ids),
        })

    async def _add_albums(self, album_ids: list[str]) -> list[None]:
        await self._gateway.call("PUT", "me/albums", body=album_ids)
        logger.info(f"Saved {len(album_ids)} album(s) to the Spotify library")
        return [None] * len(album_ids)

    # =========================================================================
    # Playlists
    # =========================================================================

    async def find_playlist_by_name(self, name: str) -> RemotePlaylist | None:
        """
        Find the user's Spotify playlist with the given name.

        Returns:
            The matching playlist, or None if no playlist has that name.

        Raises:
            AmbiguousMatchError: If several playlists have that name.
        """
        listing = await self._playlists.get()
        matches = listing.get(name, [])
        if not matches:
            return None
        if len(matches) > 1:
            raise AmbiguousMatchError(name, len(matches))
        return matches[0]

    def reset_found_playlists(self) -> None:
        """Start a new find cycle: the next lookup refetches the listing."""
        self._playlists.invalidate()

    async def _load_playlists(self) -> dict[str, list[RemotePlaylist]]:
        items = await self._pager.fetch("me/playlists", params={"limit": str(PLAYLIST_PAGE_LIMIT)})
        listing: dict[str, list[RemotePlaylist]] = {}
        for item in items:
            playlist = RemotePlaylist.from_spotify_api(item)
            listing.setdefault(playlist.name, []).append(playlist)
        logger.debug(f"Loaded {len(items)} playlists from the Spotify library")
        return listing

    async def create_playlist(self, name: str, description: str) -> RemotePlaylist:
        """Create an empty playlist in the user's account."""
        profile = await self.current_user()
        data = await self._gateway.call("POST", f"users/{profile.id}/playlists", body={
            "name": name,
            "public": self._config.playlists.public,
            "description": description,
        })
        logger.info(f"Created playlist: {name}")
        return RemotePlaylist.from_spotify_api(data)

    async def fetch_playlist_tracks(self, playlist: RemotePlaylist) -> list[Track | None]:
        """
        Every track of a Spotify playlist, in playlist order.

        Local files (and removed tracks) have no Spotify id and are returned
        as None, keeping positions aligned with the remote playlist.
        """
        items = await self._pager.fetch(playlist.tracks_href)
        return [_playlist_item_track(item) for item in items]

    async def insert_playlist_tracks(self, playlist: RemotePlaylist, insertions: list[InsertionOp]) -> None:
        """
        Apply insertions to a Spotify playlist.

        Args:
            playlist: Target playlist.
            insertions: Operations in descending position order, applied in
                        the given order. Each operation is split into chunks
                        of playlists.insert_chunk_size URIs which are inserted
                        last chunk first, all at the operation's position, so
                        they end up in their original order.
        """
        chunk_size = self._config.playlists.insert_chunk_size
        for op in insertions:
            uris = [f"spotify:track:{track_id}" for track_id in op.elements]
            for uri_chunk in reversed(chunk(uris, chunk_size)):
                await self._gateway.call("POST", f"playlists/{playlist.id}/tracks", body={
                    "uris": uri_chunk,
                    "position": op.position,
                })
        added = sum(len(op.elements) for op in insertions)
        logger.info(f"Added {added} track(s) to playlist: {playlist.name}")


def _field_query(field_name: str, value: str, artists: list[str]) -> str:
    """Build a field-filtered search query, e.g. track:"Song" artist:"A B"."""
    query = f'{field_name}:"{value}"'
    if artists:
        query += f' artist:"{" ".join(artists)}"'
    return query


def _playlist_item_track(item: dict[str, Any]) -> Track | None:
    track_data = item.get("track")
    if item.get("is_local") or not track_data or not track_data.get("id"):
        return None
    return Track.from_spotify_api(track_data)
