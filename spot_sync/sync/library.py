"""
Library-wide orchestration of the sync items.

LibrarySync owns the items of the loaded library and the Spotify session
lifecycle: login, auto-logout when the token expires, logout (manual or
forced by the gateway), and the fan-out passes over all items.

Fan-out passes run every item concurrently (in reverse item order, which
puts albums ahead of playlists in the gateway queue) and join them. Items
report their own failures, so a pass always completes.

Usage:
    library = LibrarySync(client, gateway, on_update=render, on_error=toast)
    library.load(playlists, albums)

    await library.login(token, expires_in=3600)
    await library.match_and_check()
    if library.has_pending_work():
        await library.commit_all()
"""

import asyncio
from typing import Awaitable, Callable

from spot_sync.core.logger import get_logger
from spot_sync.spotify.client import RemoteLibraryClient
from spot_sync.spotify.gateway import RequestGateway, Session
from spot_sync.spotify.models import Album, Playlist, UserProfile
from spot_sync.sync.items import (
    AlbumSync,
    ErrorCallback,
    MusicItem,
    PlaylistSync,
    UpdateCallback,
    create_items,
)

logger = get_logger(__name__)

ProgressCallback = Callable[[MusicItem], None]


class LibrarySync:
    """
    The loaded library and its connection to Spotify.

    Attributes:
        profile: The logged in user, None when logged out.
    """

    def __init__(
        self,
        client: RemoteLibraryClient,
        gateway: RequestGateway,
        on_update: UpdateCallback | None = None,
        on_error: ErrorCallback | None = None
    ) -> None:
        self._client = client
        self._gateway = gateway
        self._on_update = on_update
        self._on_error = on_error
        self._items: list[MusicItem] = []
        self._auto_logout: asyncio.TimerHandle | None = None
        self.profile: UserProfile | None = None

        gateway.on_session_invalidated(self.logout)

    # =========================================================================
    # Library data
    # =========================================================================

    def load(self, playlists: list[Playlist], albums: list[Album]) -> None:
        """Replace the library with new playlists and albums."""
        self._items = create_items(playlists, albums, self._client, self._on_update, self._on_error)
        logger.info(f"Loaded library: {len(playlists)} playlists, {len(albums)} albums")

    @property
    def items(self) -> list[MusicItem]:
        return list(self._items)

    @property
    def playlists(self) -> list[PlaylistSync]:
        return [item for item in self._items if isinstance(item, PlaylistSync)]

    @property
    def albums(self) -> list[AlbumSync]:
        return [item for item in self._items if isinstance(item, AlbumSync)]

    def snapshot(self) -> tuple[list[Playlist], list[Album]]:
        """The library data, including every match found so far."""
        return [item.data for item in self.playlists], [item.data for item in self.albums]

    def has_pending_work(self) -> bool:
        return any(item.has_pending_work() for item in self._items)

    # =========================================================================
    # Session
    # =========================================================================

    @property
    def is_authenticated(self) -> bool:
        return self._gateway.is_authenticated

    async def login(self, token: str, expires_in: float) -> UserProfile:
        """
        Start a Spotify session with a freshly acquired token.

        Args:
            token: OAuth bearer token.
            expires_in: Token lifetime in seconds.

        Returns:
            The logged in user's profile.

        Raises:
            SpotifyError: If the profile cannot be fetched; the session is
                          dropped again before the error propagates.
        """
        session = self._gateway.open_session(token, expires_in)
        return await self._start(session)

    async def restore_session(self, session: Session) -> UserProfile | None:
        """
        Resume a persisted session.

        Returns:
            The user's profile, or None if the session had expired (which
            leaves the library logged out).
        """
        if not self._gateway.restore_session(session):
            self.logout()
            return None
        return await self._start(session)

    async def _start(self, session: Session) -> UserProfile:
        self._schedule_auto_logout(session)
        self._client.reset_session_cache()
        try:
            self.profile = await self._client.current_user()
        except Exception:
            self.logout()
            raise

        logger.info(f"Logged in as {self.profile.display_name}")
        self._notify_all()
        return self.profile

    def logout(self) -> None:
        """
        End the Spotify session.

        Calls already admitted by the gateway run to completion. Runs both
        for a manual logout and when the gateway drops a rejected session.
        """
        if self._auto_logout is not None:
            self._auto_logout.cancel()
            self._auto_logout = None

        was_authenticated = self.profile is not None
        self._gateway.close_session()
        self._client.reset_session_cache()
        self.profile = None

        # Pending work of the items is kept for a commit after the next login
        if was_authenticated:
            logger.info("Logged out")
        self._notify_all()

    def _schedule_auto_logout(self, session: Session) -> None:
        if self._auto_logout is not None:
            self._auto_logout.cancel()
        loop = asyncio.get_running_loop()
        self._auto_logout = loop.call_later(max(session.seconds_left, 0), self._expire)

    def _expire(self) -> None:
        self._auto_logout = None
        logger.warning("Spotify session expired")
        self.logout()

    def _notify_all(self) -> None:
        for item in self._items:
            item.notify()

    # =========================================================================
    # Fan-out passes
    # =========================================================================

    async def sync_all(self, progress: ProgressCallback | None = None) -> None:
        """Match every item to Spotify."""
        await self._fan_out(lambda item: item.sync(), progress)
        logger.info("Finished matching")

    async def find_all(self, progress: ProgressCallback | None = None) -> None:
        """Look every item up in the Spotify library, starting a new find cycle."""
        self._client.reset_found_playlists()
        await self._fan_out(lambda item: item.find(), progress)
        logger.info("Finished finding")

    async def match_and_check(self, progress: ProgressCallback | None = None) -> None:
        """Match everything, then check the Spotify library."""
        if not self.is_authenticated:
            return
        await self.sync_all(progress)
        await self.find_all(progress)

    async def commit_all(self, progress: ProgressCallback | None = None) -> None:
        """Apply the pending work of every item."""
        await self._fan_out(lambda item: item.commit(), progress)
        logger.info("Finished adding to library")

    async def _fan_out(self, operation: Callable[[MusicItem], Awaitable[None]], progress: ProgressCallback | None) -> None:
        async def run(item: MusicItem) -> None:
            await operation(item)
            if progress is not None:
                progress(item)

        await asyncio.gather(*(run(item) for item in reversed(self._items)))
