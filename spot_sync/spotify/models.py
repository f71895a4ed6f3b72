"""
Data models for the local library and Spotify entities.

Local library:
    Track, Album and Playlist are the user's own library entries. They are
    plain mutable dataclasses: the library owns them and the sync items
    update them in place as matches are found.

Spotify handles:
    RemotePlaylist, RemoteAlbum and UserProfile are read-only views of
    Spotify API objects, created with their from_spotify_api() factories.

Match state:
    Every library entry carries a PlatformId, a three-way tagged value:

        PlatformId.unattempted()   never looked up on Spotify
        PlatformId.absent()        looked up, confirmed to have no match
        PlatformId.matched(id)     matched to Spotify id

    Absent ids are never looked up again, Unattempted ones are looked up
    on the next sync.

Alignment result:
    InsertionOp describes a run of track ids to insert into an existing
    Spotify playlist before a given index.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class MatchState(Enum):
    """Whether an entry has been looked up on Spotify, and with what outcome."""
    UNATTEMPTED = "unattempted"
    ABSENT = "absent"
    MATCHED = "matched"


@dataclass(frozen=True)
class PlatformId:
    """
    Tri-state Spotify identifier of a library entry.

    Attributes:
        state: The match state.
        value: The Spotify id when state is MATCHED, None otherwise.

    Example:
        pid = PlatformId.matched("4cOdK2wGLETKBW3PvgPWqT")
        if pid.is_matched:
            uri = f"spotify:track:{pid.value}"
    """
    state: MatchState = MatchState.UNATTEMPTED
    value: str | None = None

    def __post_init__(self) -> None:
        if (self.state is MatchState.MATCHED) != (self.value is not None):
            raise ValueError(f"PlatformId {self.state.value} cannot carry value {self.value!r}")

    @classmethod
    def unattempted(cls) -> "PlatformId":
        return cls(MatchState.UNATTEMPTED)

    @classmethod
    def absent(cls) -> "PlatformId":
        return cls(MatchState.ABSENT)

    @classmethod
    def matched(cls, spotify_id: str) -> "PlatformId":
        return cls(MatchState.MATCHED, spotify_id)

    @property
    def is_unattempted(self) -> bool:
        return self.state is MatchState.UNATTEMPTED

    @property
    def is_absent(self) -> bool:
        return self.state is MatchState.ABSENT

    @property
    def is_matched(self) -> bool:
        return self.state is MatchState.MATCHED


def _smallest_image_url(images: list[dict[str, Any]]) -> str | None:
    """Return the url of the smallest image (by area), or None without images."""
    if not images:
        return None
    smallest = min(
        images,
        key=lambda img: (img.get("width") or 0) * (img.get("height") or 0)
    )
    return smallest.get("url")


@dataclass
class Track:
    """
    A track of the local library.

    Attributes:
        title: Track title.
        artists: Artist names, in credit order.
        duration_ms: Duration in milliseconds, if known.
        explicit: Explicit flag, if known.
        track_number: Position on its album, if known.
        album_id: Spotify id of the album the matched track belongs to.
                  Only set on tracks created from Spotify data.
        platform_id: Spotify match state of the track.
    """
    title: str
    artists: list[str] = field(default_factory=list)
    duration_ms: int | None = None
    explicit: bool | None = None
    track_number: int | None = None
    album_id: str | None = None
    platform_id: PlatformId = field(default_factory=PlatformId.unattempted)

    @classmethod
    def from_spotify_api(cls, track_data: dict[str, Any], album_id: str | None = None) -> "Track":
        """
        Create a matched Track from a Spotify track object.

        Args:
            track_data: Full or simplified track object from the Spotify API.
            album_id: Album id to use when track_data has no embedded album
                      (the simplified tracks of an album object).

        Returns:
            Track with platform_id matched to the Spotify track id.
        """
        album = track_data.get("album") or {}
        return cls(
            title=track_data["name"],
            artists=[artist["name"] for artist in track_data.get("artists", [])],
            duration_ms=track_data.get("duration_ms"),
            explicit=track_data.get("explicit"),
            track_number=track_data.get("track_number"),
            album_id=album.get("id", album_id),
            platform_id=PlatformId.matched(track_data["id"]),
        )


@dataclass
class Album:
    """
    An album of the local library.

    Attributes:
        name: Album name.
        artists: Album artist names.
        tracks: Album tracks in order.
        platform_id: Spotify match state of the album.
        art: URL of the cover art (smallest Spotify image once matched).
        num_tracks: Number of tracks on the matched Spotify album.
    """
    name: str
    artists: list[str] = field(default_factory=list)
    tracks: list[Track] = field(default_factory=list)
    platform_id: PlatformId = field(default_factory=PlatformId.unattempted)
    art: str | None = None
    num_tracks: int | None = None


@dataclass
class Playlist:
    """
    A playlist of the local library.

    The Spotify counterpart of a playlist is found by name, so playlists
    carry no PlatformId of their own; the match lives on PlaylistSync.
    """
    name: str
    description: str = ""
    tracks: list[Track] = field(default_factory=list)


@dataclass(frozen=True)
class InsertionOp:
    """
    Insert `elements` immediately before index `position` of a Spotify playlist.

    `position` refers to the playlist as it was when the alignment was
    computed. Lists of InsertionOp are kept in descending position order
    so that applying one never shifts the position of the ones after it.
    """
    position: int
    elements: tuple[str, ...]


@dataclass(frozen=True)
class RemotePlaylist:
    """
    Handle of a playlist in the user's Spotify account.

    Attributes:
        id: Spotify playlist id.
        name: Playlist name.
        owner_id: Spotify user id of the owner.
        tracks_href: API URL of the playlist's track pager.
    """
    id: str
    name: str
    owner_id: str
    tracks_href: str

    @classmethod
    def from_spotify_api(cls, data: dict[str, Any]) -> "RemotePlaylist":
        tracks = data.get("tracks") or {}
        return cls(
            id=data["id"],
            name=data.get("name", ""),
            owner_id=(data.get("owner") or {}).get("id", ""),
            tracks_href=tracks.get("href") or f"playlists/{data['id']}/tracks",
        )


@dataclass(frozen=True)
class RemoteAlbum:
    """
    A Spotify album with its complete track list.

    Attributes:
        id: Spotify album id.
        name: Album name.
        artists: Album artist names.
        art: URL of the smallest cover image, if any.
        tracks: All album tracks, already converted to matched Tracks.
    """
    id: str
    name: str
    artists: tuple[str, ...]
    art: str | None
    tracks: tuple[Track, ...]

    @classmethod
    def from_spotify_api(cls, data: dict[str, Any], track_items: list[dict[str, Any]]) -> "RemoteAlbum":
        """
        Create a RemoteAlbum from an album object and its fully paged track items.

        Args:
            data: Album object from the "get several albums" endpoint.
            track_items: Every simplified track of the album, in order.
        """
        return cls(
            id=data["id"],
            name=data.get("name", ""),
            artists=tuple(artist["name"] for artist in data.get("artists", [])),
            art=_smallest_image_url(data.get("images") or []),
            tracks=tuple(Track.from_spotify_api(item, album_id=data["id"]) for item in track_items),
        )


@dataclass(frozen=True)
class UserProfile:
    """The logged in Spotify user."""
    id: str
    display_name: str
    image_url: str | None = None

    @classmethod
    def from_spotify_api(cls, data: dict[str, Any]) -> "UserProfile":
        images = data.get("images") or []
        return cls(
            id=data["id"],
            display_name=data.get("display_name") or data["id"],
            image_url=images[0].get("url") if images else None,
        )
