"""
JSON persistence of the library and the Spotify session.

Two snapshots are stored in the storage directory:

    library.json    {"playlists": [...], "albums": [...]}
    session.json    {"token": "...", "expires_at": "<ISO-8601>"}

The library format is also the import format. Track and album match
states live in an "ids" object:

    {"ids": {}}                     never looked up on Spotify
    {"ids": {"spotify": null}}      looked up, not on Spotify
    {"ids": {"spotify": "4uLU6h"}}  matched

Parsing validates the complete snapshot before anything is returned, so a
malformed file never yields a half-loaded library.

Usage:
    playlists, albums = load_library_file(Path("export.json"))

    store = LibraryStore(config.storage.directory)
    store.save_library(playlists, albums)
    session = store.load_session()
"""

import json
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from spot_sync.core.exceptions import MalformedInputError, StorageError
from spot_sync.core.logger import get_logger
from spot_sync.spotify.gateway import Session
from spot_sync.spotify.models import Album, PlatformId, Playlist, Track
from spot_sync.utils import ensure_directory

logger = get_logger(__name__)


LIBRARY_FILENAME = "library.json"
SESSION_FILENAME = "session.json"

# Key of the Spotify id inside an "ids" object
PLATFORM_KEY = "spotify"


# =============================================================================
# Parsing
# =============================================================================

def parse_library(data: Any) -> tuple[list[Playlist], list[Album]]:
    """
    Parse and validate a library snapshot.

    Args:
        data: Decoded JSON document.

    Returns:
        Tuple of (playlists, albums).

    Raises:
        MalformedInputError: If any part of the snapshot is invalid. The
                             details name the offending location.
    """
    if not isinstance(data, dict):
        raise MalformedInputError(
            "Library must be a JSON object with 'playlists' and 'albums'",
            details={"type": type(data).__name__}
        )

    playlists = [
        _parse_playlist(entry, f"playlists[{i}]")
        for i, entry in enumerate(_list_field(data, "playlists", "library"))
    ]
    albums = [
        _parse_album(entry, f"albums[{i}]")
        for i, entry in enumerate(_list_field(data, "albums", "library"))
    ]
    return playlists, albums


def _malformed(location: str, problem: str) -> MalformedInputError:
    return MalformedInputError(f"Invalid library: {location} {problem}", details={"location": location})


def _object(value: Any, location: str) -> dict[str, Any]:
    if not isinstance(value, dict):
        raise _malformed(location, "must be an object")
    return value


def _list_field(data: dict[str, Any], key: str, location: str) -> list[Any]:
    value = data.get(key, [])
    if not isinstance(value, list):
        raise _malformed(f"{location}.{key}", "must be a list")
    return value


def _string_field(data: dict[str, Any], key: str, location: str, default: str | None = None) -> str:
    value = data.get(key, default)
    if not isinstance(value, str):
        raise _malformed(f"{location}.{key}", "must be a string")
    return value


def _optional_field(data: dict[str, Any], key: str, location: str, expected: type) -> Any:
    value = data.get(key)
    # bool is an int subclass, keep the two apart
    if value is not None and (not isinstance(value, expected) or (expected is int and isinstance(value, bool))):
        raise _malformed(f"{location}.{key}", f"must be {expected.__name__} or null")
    return value


def _parse_artists(data: dict[str, Any], location: str) -> list[str]:
    names = []
    for i, artist in enumerate(_list_field(data, "artists", location)):
        artist_location = f"{location}.artists[{i}]"
        names.append(_string_field(_object(artist, artist_location), "name", artist_location))
    return names


def _parse_platform_id(data: dict[str, Any], location: str) -> PlatformId:
    ids = _object(data.get("ids", {}), f"{location}.ids")
    if PLATFORM_KEY not in ids:
        return PlatformId.unattempted()
    value = ids[PLATFORM_KEY]
    if value is None:
        return PlatformId.absent()
    if not isinstance(value, str) or not value:
        raise _malformed(f"{location}.ids.{PLATFORM_KEY}", "must be a non-empty string or null")
    return PlatformId.matched(value)


def _parse_track(value: Any, location: str) -> Track:
    data = _object(value, location)
    return Track(
        title=_string_field(data, "title", location),
        artists=_parse_artists(data, location),
        duration_ms=_optional_field(data, "duration_ms", location, int),
        explicit=_optional_field(data, "explicit", location, bool),
        track_number=_optional_field(data, "track", location, int),
        platform_id=_parse_platform_id(data, location),
    )


def _parse_tracks(data: dict[str, Any], location: str) -> list[Track]:
    return [
        _parse_track(track, f"{location}.tracks[{i}]")
        for i, track in enumerate(_list_field(data, "tracks", location))
    ]


def _parse_playlist(value: Any, location: str) -> Playlist:
    data = _object(value, location)
    return Playlist(
        name=_string_field(data, "name", location),
        description=_string_field(data, "description", location, default=""),
        tracks=_parse_tracks(data, location),
    )


def _parse_album(value: Any, location: str) -> Album:
    data = _object(value, location)
    return Album(
        name=_string_field(data, "name", location),
        artists=_parse_artists(data, location),
        tracks=_parse_tracks(data, location),
        platform_id=_parse_platform_id(data, location),
        art=_optional_field(data, "art", location, str),
        num_tracks=_optional_field(data, "num_tracks", location, int),
    )


# =============================================================================
# Serialization
# =============================================================================

def _ids_to_json(platform_id: PlatformId) -> dict[str, Any]:
    if platform_id.is_unattempted:
        return {}
    return {PLATFORM_KEY: platform_id.value}


def _artists_to_json(artists: list[str]) -> list[dict[str, str]]:
    return [{"name": name} for name in artists]


def track_to_json(track: Track) -> dict[str, Any]:
    return {
        "title": track.title,
        "artists": _artists_to_json(track.artists),
        "duration_ms": track.duration_ms,
        "explicit": track.explicit,
        "track": track.track_number,
        "ids": _ids_to_json(track.platform_id),
    }


def library_to_json(playlists: list[Playlist], albums: list[Album]) -> dict[str, Any]:
    """Convert the library to its JSON snapshot (inverse of parse_library)."""
    return {
        "playlists": [
            {
                "name": playlist.name,
                "description": playlist.description,
                "tracks": [track_to_json(track) for track in playlist.tracks],
            }
            for playlist in playlists
        ],
        "albums": [
            {
                "name": album.name,
                "artists": _artists_to_json(album.artists),
                "art": album.art,
                "num_tracks": album.num_tracks,
                "ids": _ids_to_json(album.platform_id),
                "tracks": [track_to_json(track) for track in album.tracks],
            }
            for album in albums
        ],
    }


# =============================================================================
# Files
# =============================================================================

def _read_json(path: Path) -> Any:
    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except json.JSONDecodeError as e:
        raise MalformedInputError(
            f"Invalid JSON in {path.name}: {e}",
            details={"file": str(path), "line": e.lineno, "column": e.colno}
        ) from e
    except OSError as e:
        raise StorageError(
            f"Cannot read {path}: {e}",
            details={"file": str(path), "original_error": str(e)}
        ) from e


def _write_json_atomic(path: Path, data: Any) -> None:
    """Write JSON next to path, then move it in place."""
    ensure_directory(path.parent)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
        os.replace(tmp_name, path)
    except OSError as e:
        Path(tmp_name).unlink(missing_ok=True)
        raise StorageError(
            f"Cannot write {path}: {e}",
            details={"file": str(path), "original_error": str(e)}
        ) from e


def load_library_file(path: Path) -> tuple[list[Playlist], list[Album]]:
    """
    Load a library export for import.

    Args:
        path: Path of a .json library snapshot.

    Returns:
        Tuple of (playlists, albums).

    Raises:
        MalformedInputError: If the file is not .json or its content is invalid.
        StorageError: If the file cannot be read.
    """
    if path.suffix.lower() != ".json":
        raise MalformedInputError(
            "Only json files are supported for import",
            details={"file": str(path)}
        )
    return parse_library(_read_json(path))


class LibraryStore:
    """
    The persisted library and session of one storage directory.

    Attributes:
        directory: Storage directory.
        library_path: Path of library.json.
        session_path: Path of session.json.
    """

    def __init__(self, directory: Path) -> None:
        self.directory = directory
        self.library_path = directory / LIBRARY_FILENAME
        self.session_path = directory / SESSION_FILENAME

    def load_library(self) -> tuple[list[Playlist], list[Album]]:
        """
        Load the stored library.

        Returns:
            Tuple of (playlists, albums), both empty if nothing is stored yet.

        Raises:
            MalformedInputError: If the stored library is corrupt.
        """
        if not self.library_path.exists():
            return [], []
        return parse_library(_read_json(self.library_path))

    def save_library(self, playlists: list[Playlist], albums: list[Album]) -> None:
        _write_json_atomic(self.library_path, library_to_json(playlists, albums))
        logger.debug(f"Saved library to {self.library_path}")

    def load_session(self) -> Session | None:
        """
        Load the stored session.

        Returns:
            The stored Session (possibly expired), or None if there is none
            or it cannot be understood.
        """
        if not self.session_path.exists():
            return None

        try:
            data = _read_json(self.session_path)
        except MalformedInputError as e:
            logger.warning(f"Ignoring unreadable session file: {e}")
            return None

        try:
            expires_at = datetime.fromisoformat(data["expires_at"])
            token = data["token"]
        except (TypeError, KeyError, ValueError) as e:
            logger.warning(f"Ignoring unreadable session file {self.session_path}: {e}")
            return None

        if not isinstance(token, str) or not token:
            logger.warning(f"Ignoring session file without token: {self.session_path}")
            return None
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        return Session(token=token, expires_at=expires_at)

    def save_session(self, session: Session | None) -> None:
        """Persist the session, or remove the stored one when None."""
        if session is None:
            self.session_path.unlink(missing_ok=True)
            logger.debug("Removed stored session")
            return
        _write_json_atomic(self.session_path, {
            "token": session.token,
            "expires_at": session.expires_at.isoformat(),
        })
        logger.debug(f"Saved session to {self.session_path}")
