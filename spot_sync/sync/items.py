"""
Per-item synchronization state machines.

Every playlist and album of the local library is wrapped in a MusicItem
that knows how to bring it in line with the user's Spotify library in
three user-triggered steps:

    sync()     match the item's tracks (and album) to Spotify ids
    find()     look the item up in the user's Spotify library and work out
               what is missing
    commit()   apply the missing work (create/extend a playlist, save an album)

Phases:
    UNMATCHED -> MATCHING -> MATCHED -> FINDING -> COMMITTING -> SETTLED

    MATCHING, FINDING and COMMITTING are transient: they last while the
    corresponding operation runs. When an operation ends (successfully or
    not) the item falls back to the resting phase derived from its data.

Error handling:
    A SpotSyncError raised while an operation runs is logged and reported
    through on_error(message); the item keeps whatever state it had before
    the failing step. on_update(item) is emitted after every operation.

Without a live Spotify session every operation is a no-op.
"""

import asyncio
from abc import ABC, abstractmethod
from collections import Counter
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Generic, TypeVar

from spot_sync.core.exceptions import AmbiguousMatchError, SpotSyncError
from spot_sync.core.logger import get_logger, log_unmatched_track
from spot_sync.spotify.client import RemoteLibraryClient
from spot_sync.spotify.models import (
    Album,
    InsertionOp,
    MatchState,
    PlatformId,
    Playlist,
    RemotePlaylist,
    Track,
)
from spot_sync.sync.aligner import align
from spot_sync.utils import filter_missing

logger = get_logger(__name__)

DataT = TypeVar("DataT", Playlist, Album)


class SyncPhase(Enum):
    """Where an item stands in its sync lifecycle."""
    UNMATCHED = "unmatched"
    MATCHING = "matching"
    MATCHED = "matched"
    FINDING = "finding"
    COMMITTING = "committing"
    SETTLED = "settled"


@dataclass(frozen=True)
class ItemStatus:
    """
    Presentation snapshot of a MusicItem.

    Attributes:
        kind: "playlist" or "album".
        name: Item name.
        phase: Current phase.
        match_state: Remote match of the playlist/album itself.
        matched_tracks: Tracks with a Spotify id.
        total_tracks: All tracks of the item.
        pending_insertions: Tracks waiting to be added to the Spotify playlist.
        in_library: Whether the album is saved (None until checked, always
                    None for playlists).
        can_commit: Whether commit() has work to do.
    """
    kind: str
    name: str
    phase: SyncPhase
    match_state: MatchState
    matched_tracks: int
    total_tracks: int
    pending_insertions: int
    in_library: bool | None
    can_commit: bool

    @property
    def label(self) -> str:
        """Short human readable state, e.g. "Matched 3 of 4 tracks"."""
        if self.phase in (SyncPhase.MATCHING, SyncPhase.FINDING, SyncPhase.COMMITTING):
            return f"{self.phase.value.capitalize()}..."
        if self.can_commit:
            if self.kind == "album":
                return "Add to library"
            if self.match_state is MatchState.MATCHED:
                return f"Add {self.pending_insertions} track(s)"
            return "Create playlist"
        if self.phase is SyncPhase.SETTLED:
            return "In library"
        if self.phase is SyncPhase.UNMATCHED:
            return "Unknown"
        if self.kind == "album":
            return "Matched" if self.match_state is MatchState.MATCHED else "Unmatched"
        return f"Matched {self.matched_tracks} of {self.total_tracks} tracks"


UpdateCallback = Callable[["MusicItem"], None]
ErrorCallback = Callable[[str], None]


def _ignore_update(item: "MusicItem") -> None:
    pass


def _ignore_error(message: str) -> None:
    pass


class MusicItem(ABC, Generic[DataT]):
    """
    Base class of the item state machines.

    Attributes:
        data: The library entry (owned by the library, updated in place).
        phase: Current phase.
    """

    kind = "item"

    def __init__(
        self,
        data: DataT,
        client: RemoteLibraryClient,
        on_update: UpdateCallback | None = None,
        on_error: ErrorCallback | None = None
    ) -> None:
        self.data = data
        self._client = client
        self._on_update = on_update or _ignore_update
        self._on_error = on_error or _ignore_error
        self._busy: SyncPhase | None = None

    @property
    def name(self) -> str:
        return self.data.name

    @property
    def phase(self) -> SyncPhase:
        if self._busy is not None:
            return self._busy
        return self._resting_phase()

    # =========================================================================
    # Operations
    # =========================================================================

    async def sync(self) -> None:
        """Match unattempted entries to Spotify ids."""
        if self._client.is_authenticated and self._needs_sync():
            await self._run(SyncPhase.MATCHING, self._sync)

    async def find(self) -> None:
        """Check the item against the Spotify library and compute pending work."""
        if self._client.is_authenticated and self._can_find():
            await self._run(SyncPhase.FINDING, self._find)

    async def commit(self) -> None:
        """Apply the pending work to the Spotify library."""
        if self._client.is_authenticated and self.has_pending_work():
            await self._run(SyncPhase.COMMITTING, self._commit)

    def notify(self) -> None:
        """Emit on_update, e.g. after the session changed."""
        self._on_update(self)

    async def _run(self, phase: SyncPhase, operation: Callable[[], Awaitable[None]]) -> None:
        self._busy = phase
        self.notify()
        try:
            await operation()
        except SpotSyncError as e:
            logger.error(f"{phase.value.capitalize()} {self.kind} '{self.name}' failed: {e}")
            self._on_error(str(e))
        finally:
            self._busy = None
            self.notify()

    # =========================================================================
    # Per kind behavior
    # =========================================================================

    @abstractmethod
    def _needs_sync(self) -> bool:
        ...

    @abstractmethod
    def _can_find(self) -> bool:
        ...

    @abstractmethod
    def has_pending_work(self) -> bool:
        """Whether commit() would change the Spotify library."""

    @abstractmethod
    def status(self) -> ItemStatus:
        ...

    @abstractmethod
    def _resting_phase(self) -> SyncPhase:
        ...

    @abstractmethod
    async def _sync(self) -> None:
        ...

    @abstractmethod
    async def _find(self) -> None:
        ...

    @abstractmethod
    async def _commit(self) -> None:
        ...


# =============================================================================
# Playlists
# =============================================================================

class PlaylistSync(MusicItem[Playlist]):
    """
    Keeps a local playlist and its same-named Spotify playlist in step.

    Attributes:
        match_state: UNATTEMPTED until find() ran, then MATCHED (remote holds
                     the Spotify playlist) or ABSENT (no usable playlist with
                     that name: none, or several).
        remote: The matched Spotify playlist.
        insertions: Pending InsertionOps, in descending position order.
    """

    kind = "playlist"

    def __init__(
        self,
        data: Playlist,
        client: RemoteLibraryClient,
        on_update: UpdateCallback | None = None,
        on_error: ErrorCallback | None = None
    ) -> None:
        super().__init__(data, client, on_update, on_error)
        self.match_state = MatchState.UNATTEMPTED
        self.remote: RemotePlaylist | None = None
        self.insertions: list[InsertionOp] = []

    def _needs_sync(self) -> bool:
        return any(track.platform_id.is_unattempted for track in self.data.tracks)

    def _can_find(self) -> bool:
        return True

    def has_pending_work(self) -> bool:
        if self.match_state is MatchState.ABSENT:
            return True
        return self.match_state is MatchState.MATCHED and bool(self.insertions)

    def _resting_phase(self) -> SyncPhase:
        if self._needs_sync():
            return SyncPhase.UNMATCHED
        if self.match_state is MatchState.MATCHED and not self.insertions:
            return SyncPhase.SETTLED
        return SyncPhase.MATCHED

    def status(self) -> ItemStatus:
        tracks = self.data.tracks
        return ItemStatus(
            kind=self.kind,
            name=self.name,
            phase=self.phase,
            match_state=self.match_state,
            matched_tracks=sum(1 for track in tracks if track.platform_id.is_matched),
            total_tracks=len(tracks),
            pending_insertions=sum(len(op.elements) for op in self.insertions),
            in_library=None,
            can_commit=self.has_pending_work(),
        )

    async def _sync(self) -> None:
        pending = [i for i, track in enumerate(self.data.tracks) if track.platform_id.is_unattempted]
        results = await asyncio.gather(
            *(self._client.find_track(self.data.tracks[i]) for i in pending),
            return_exceptions=True
        )

        # Keep every answer that came back, even if some lookups failed
        tracks = list(self.data.tracks)
        failures = []
        for i, result in zip(pending, results):
            if isinstance(result, BaseException):
                failures.append(result)
            elif result is None:
                tracks[i].platform_id = PlatformId.absent()
                log_unmatched_track(tracks[i].title, tracks[i].artists, self.name)
            else:
                tracks[i] = result
        self.data.tracks = tracks

        matched = sum(1 for track in tracks if track.platform_id.is_matched)
        logger.info(f"Playlist '{self.name}': matched {matched} of {len(tracks)} tracks")

        if failures:
            raise failures[0]

    async def _find(self) -> None:
        try:
            remote = await self._client.find_playlist_by_name(self.name)
        except AmbiguousMatchError as e:
            logger.warning(f"{e}, treating it as missing")
            self._on_error(str(e))
            remote = None

        local_ids = [track.platform_id.value for track in self.data.tracks]
        if remote is None:
            self.match_state = MatchState.ABSENT
            self.remote = None
            elements = tuple(filter_missing(local_ids))
            self.insertions = [InsertionOp(0, elements)]
            logger.debug(f"Playlist '{self.name}' not on Spotify, {len(elements)} track(s) to add")
            return

        remote_tracks = await self._client.fetch_playlist_tracks(remote)
        remote_ids = [track.platform_id.value if track is not None else None for track in remote_tracks]
        self.match_state = MatchState.MATCHED
        self.remote = remote
        self.insertions = align(local_ids, remote_ids)
        logger.debug(f"Playlist '{self.name}' found on Spotify, {len(self.insertions)} insertion(s) pending")

    async def _commit(self) -> None:
        if self.remote is None:
            self.remote = await self._client.create_playlist(self.name, self.data.description)
            self.match_state = MatchState.MATCHED

        # Drop each op as soon as it is applied so a failure leaves only the rest
        while self.insertions:
            op = self.insertions[0]
            if op.elements:
                await self._client.insert_playlist_tracks(self.remote, [op])
            # A find() during the insert may have replaced the pending list
            if self.insertions and self.insertions[0] is op:
                self.insertions.pop(0)
            else:
                break


# =============================================================================
# Albums
# =============================================================================

class AlbumSync(MusicItem[Album]):
    """
    Matches a local album to a Spotify album and saves it to the library.

    Attributes:
        in_library: None until find() ran, then whether the matched album
                    is saved in the user's library.
    """

    kind = "album"

    def __init__(
        self,
        data: Album,
        client: RemoteLibraryClient,
        on_update: UpdateCallback | None = None,
        on_error: ErrorCallback | None = None
    ) -> None:
        super().__init__(data, client, on_update, on_error)
        self.in_library: bool | None = None

    def _needs_sync(self) -> bool:
        return self.data.platform_id.is_unattempted

    def _can_find(self) -> bool:
        return self.data.platform_id.is_matched

    def has_pending_work(self) -> bool:
        return self.in_library is False and self.data.platform_id.is_matched

    def _resting_phase(self) -> SyncPhase:
        if self.data.platform_id.is_unattempted:
            return SyncPhase.UNMATCHED
        if self.in_library:
            return SyncPhase.SETTLED
        return SyncPhase.MATCHED

    def status(self) -> ItemStatus:
        tracks = self.data.tracks
        return ItemStatus(
            kind=self.kind,
            name=self.name,
            phase=self.phase,
            match_state=self.data.platform_id.state,
            matched_tracks=sum(1 for track in tracks if track.platform_id.is_matched),
            total_tracks=len(tracks),
            pending_insertions=0,
            in_library=self.in_library,
            can_commit=self.has_pending_work(),
        )

    async def _sync(self) -> None:
        album_id = await self._client.find_album(self.data)
        if album_id is None:
            album_id = await self._album_id_from_tracks()

        if album_id is None:
            self.data.platform_id = PlatformId.absent()
            logger.info(f"Album '{self.name}' not found on Spotify")
            return

        await self._update_data(album_id)
        logger.info(f"Album '{self.name}' matched to {album_id}")

    async def _album_id_from_tracks(self) -> str | None:
        """
        Majority vote over the albums of the individually matched tracks.

        Returns:
            The album id holding more than half of the matched tracks, or None.
        """
        results = await asyncio.gather(*(self._client.find_track(track) for track in self.data.tracks))
        found = filter_missing(results)
        if not found:
            return None

        # Counter keeps first-seen order, so ties go to the earliest track
        votes = Counter(track.album_id for track in found if track.album_id is not None)
        if not votes:
            return None
        album_id, count = votes.most_common(1)[0]
        if count > len(found) / 2:
            return album_id
        logger.debug(f"Album '{self.name}': no majority among {len(found)} matched tracks")
        return None

    async def _update_data(self, album_id: str) -> None:
        album = await self._client.fetch_album(album_id)
        if album.art is not None:
            self.data.art = album.art
        self.data.artists = list(album.artists)
        self.data.platform_id = PlatformId.matched(album.id)
        self.data.name = album.name
        self.data.num_tracks = len(album.tracks)
        self.data.tracks = list(album.tracks)

    async def _find(self) -> None:
        self.in_library = await self._client.is_album_in_library(self.data.platform_id.value)

    async def _commit(self) -> None:
        await self._client.add_album_to_library(self.data.platform_id.value)
        self.in_library = True
        logger.info(f"Album '{self.name}' added to library")


def create_items(
    playlists: list[Playlist],
    albums: list[Album],
    client: RemoteLibraryClient,
    on_update: UpdateCallback | None = None,
    on_error: ErrorCallback | None = None
) -> list[MusicItem]:
    """Wrap library entries in items, playlists first."""
    items: list[MusicItem] = [PlaylistSync(p, client, on_update, on_error) for p in playlists]
    items.extend(AlbumSync(a, client, on_update, on_error) for a in albums)
    return items
