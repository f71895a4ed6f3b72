"""Test library and session persistence"""

import json
from datetime import datetime, timedelta, timezone

import pytest

from spot_sync.core.exceptions import MalformedInputError
from spot_sync.core.storage import (
    LibraryStore,
    library_to_json,
    load_library_file,
    parse_library,
    track_to_json,
)
from spot_sync.spotify.gateway import Session
from spot_sync.spotify.models import Album, MatchState, PlatformId, Playlist, Track


SAMPLE_LIBRARY = {
    'playlists': [
        {
            'name': 'Road Trip',
            'description': 'Summer 2024',
            'tracks': [
                {'title': 'Song A', 'artists': [{'name': 'Artist'}], 'duration_ms': 201000,
                 'explicit': False, 'track': 3, 'ids': {'spotify': 't1'}},
                {'title': 'Song B', 'artists': [], 'ids': {'spotify': None}},
                {'title': 'Song C', 'ids': {}},
            ],
        }
    ],
    'albums': [
        {
            'name': 'Abbey Road',
            'artists': [{'name': 'The Beatles'}],
            'art': 'https://img.test/64',
            'num_tracks': 17,
            'ids': {'spotify': 'al1'},
            'tracks': [{'title': 'Come Together', 'artists': [{'name': 'The Beatles'}]}],
        }
    ],
}


class TestParseLibrary:
    """Test parse_library"""

    def test_valid_library(self):
        """Test playlists, albums and the three id states are parsed"""
        playlists, albums = parse_library(SAMPLE_LIBRARY)

        playlist = playlists[0]
        assert playlist.name == 'Road Trip'
        assert playlist.description == 'Summer 2024'
        states = [track.platform_id.state for track in playlist.tracks]
        assert states == [MatchState.MATCHED, MatchState.ABSENT, MatchState.UNATTEMPTED]
        first = playlist.tracks[0]
        assert first.platform_id.value == 't1'
        assert first.artists == ['Artist']
        assert first.duration_ms == 201000
        assert first.track_number == 3

        album = albums[0]
        assert album.platform_id == PlatformId.matched('al1')
        assert album.artists == ['The Beatles']
        assert album.num_tracks == 17
        assert album.tracks[0].platform_id.is_unattempted

    def test_empty_library(self):
        """Test missing sections are empty"""
        assert parse_library({}) == ([], [])

    @pytest.mark.parametrize("data,location", [
        ([], None),
        ({'playlists': {}}, "library.playlists"),
        ({'playlists': [{'tracks': []}]}, "playlists[0].name"),
        ({'playlists': [{'name': 'P', 'tracks': ['song']}]}, "playlists[0].tracks[0]"),
        ({'playlists': [{'name': 'P', 'tracks': [{'title': 'S', 'ids': {'spotify': 5}}]}]},
         "playlists[0].tracks[0].ids.spotify"),
        ({'albums': [{'name': 'A', 'artists': [{'id': 'x'}]}]}, "albums[0].artists[0].name"),
        ({'albums': [{'name': 'A', 'num_tracks': True}]}, "albums[0].num_tracks"),
        ({'albums': [{'name': 'A', 'ids': []}]}, "albums[0].ids"),
    ])
    def test_malformed_library(self, data, location):
        """Test invalid snapshots are rejected with the offending location"""
        with pytest.raises(MalformedInputError) as exc_info:
            parse_library(data)

        if location is not None:
            assert exc_info.value.details['location'] == location

    def test_nothing_returned_on_late_error(self):
        """Test an error in the last album rejects the whole snapshot"""
        data = dict(SAMPLE_LIBRARY, albums=SAMPLE_LIBRARY['albums'] + [{'name': 7}])

        with pytest.raises(MalformedInputError):
            parse_library(data)


class TestSerialization:
    """Test JSON conversion of library data"""

    def test_track_ids(self):
        """Test each id state has its own JSON form"""
        assert track_to_json(Track(title="a"))['ids'] == {}
        assert track_to_json(Track(title="a", platform_id=PlatformId.absent()))['ids'] == {'spotify': None}
        assert track_to_json(Track(title="a", platform_id=PlatformId.matched("t1")))['ids'] == {'spotify': 't1'}

    def test_library_survives_reload(self):
        """Test serialized data parses back to the same library"""
        playlists, albums = parse_library(SAMPLE_LIBRARY)

        assert parse_library(library_to_json(playlists, albums)) == (playlists, albums)


class TestLoadLibraryFile:
    """Test importing library files"""

    def test_load_json(self, temp_dir):
        """Test a .json export is loaded"""
        path = temp_dir / "export.json"
        path.write_text(json.dumps(SAMPLE_LIBRARY), encoding="utf-8")

        playlists, albums = load_library_file(path)

        assert [p.name for p in playlists] == ['Road Trip']
        assert [a.name for a in albums] == ['Abbey Road']

    def test_rejects_other_suffixes(self, temp_dir):
        """Test only json files are accepted"""
        path = temp_dir / "export.xml"
        path.write_text("<library/>", encoding="utf-8")

        with pytest.raises(MalformedInputError, match="Only json files"):
            load_library_file(path)

    def test_invalid_json(self, temp_dir):
        """Test unparsable content is a malformed input"""
        path = temp_dir / "export.json"
        path.write_text("{'playlists': ", encoding="utf-8")

        with pytest.raises(MalformedInputError) as exc_info:
            load_library_file(path)
        assert exc_info.value.details['line'] == 1


class TestLibraryStore:
    """Test LibraryStore"""

    def test_missing_library_is_empty(self, temp_dir):
        """Test a fresh storage directory holds an empty library"""
        assert LibraryStore(temp_dir / "new").load_library() == ([], [])

    def test_save_and_load_library(self, temp_dir):
        """Test the saved library is loaded back, creating the directory"""
        store = LibraryStore(temp_dir / "store")
        playlists = [Playlist(name="Mix", tracks=[Track(title="a", platform_id=PlatformId.matched("t1"))])]
        albums = [Album(name="Album", platform_id=PlatformId.absent())]

        store.save_library(playlists, albums)

        assert store.library_path.exists()
        assert store.load_library() == (playlists, albums)
        assert list(store.directory.glob(".library.json.*")) == []

    def test_session_round_trip(self, temp_dir):
        """Test a session is stored and removed"""
        store = LibraryStore(temp_dir)
        session = Session("token", datetime.now(timezone.utc) + timedelta(hours=1))

        assert store.load_session() is None
        store.save_session(session)
        assert store.load_session() == session

        store.save_session(None)
        assert not store.session_path.exists()
        assert store.load_session() is None

    def test_naive_expiry_is_utc(self, temp_dir):
        """Test expiry times without a timezone are read as UTC"""
        store = LibraryStore(temp_dir)
        store.session_path.write_text(
            json.dumps({'token': 'abc', 'expires_at': '2030-01-01T12:00:00'}), encoding="utf-8"
        )

        session = store.load_session()

        assert session.expires_at == datetime(2030, 1, 1, 12, tzinfo=timezone.utc)

    @pytest.mark.parametrize("content", [
        "not json",
        json.dumps({'token': 'abc'}),
        json.dumps({'token': '', 'expires_at': '2030-01-01T12:00:00+00:00'}),
        json.dumps({'token': 'abc', 'expires_at': 'tomorrow'}),
        json.dumps(["abc"]),
    ])
    def test_unreadable_session_is_ignored(self, temp_dir, content):
        """Test a corrupt session file counts as logged out"""
        store = LibraryStore(temp_dir)
        store.session_path.write_text(content, encoding="utf-8")

        assert store.load_session() is None
