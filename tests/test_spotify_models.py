"""Test Spotify data models"""

import pytest

from spot_sync.spotify.models import (
    InsertionOp,
    MatchState,
    PlatformId,
    RemoteAlbum,
    RemotePlaylist,
    Track,
    UserProfile,
)

from tests.conftest import API, playlist_object, spotify_track


class TestPlatformId:
    """Test the tri-state id"""

    def test_states(self):
        """Test each constructor gives its state"""
        assert PlatformId().is_unattempted
        assert PlatformId.unattempted().value is None
        assert PlatformId.absent().is_absent
        matched = PlatformId.matched("t1")
        assert matched.is_matched
        assert matched.value == "t1"
        assert matched.state is MatchState.MATCHED

    def test_equality(self):
        assert PlatformId.matched("t1") == PlatformId.matched("t1")
        assert PlatformId.absent() != PlatformId.unattempted()

    @pytest.mark.parametrize("state,value", [
        (MatchState.MATCHED, None),
        (MatchState.ABSENT, "t1"),
        (MatchState.UNATTEMPTED, "t1"),
    ])
    def test_value_must_match_state(self, state, value):
        """Test only matched ids carry a value"""
        with pytest.raises(ValueError):
            PlatformId(state, value)


class TestSpotifyModels:
    """Test conversion of Spotify API objects"""

    def test_track_from_search_result(self):
        """Test a full track object becomes a matched Track"""
        track = Track.from_spotify_api(spotify_track('t1', 'Song', artists=('A', 'B'), album_id='al1', number=4))

        assert track.title == 'Song'
        assert track.artists == ['A', 'B']
        assert track.album_id == 'al1'
        assert track.track_number == 4
        assert track.duration_ms == 200000
        assert track.platform_id == PlatformId.matched('t1')

    def test_album_track_uses_given_album(self):
        """Test simplified album tracks take the album id passed in"""
        data = {'id': 't2', 'name': 'Other', 'artists': []}

        assert Track.from_spotify_api(data, album_id='al9').album_id == 'al9'

    def test_album_picks_smallest_image(self):
        """Test the cover art is the smallest image"""
        data = {
            'id': 'al1',
            'name': 'Abbey Road',
            'artists': [{'name': 'The Beatles'}],
            'images': [
                {'url': 'https://img.test/640', 'width': 640, 'height': 640},
                {'url': 'https://img.test/64', 'width': 64, 'height': 64},
                {'url': 'https://img.test/300', 'width': 300, 'height': 300},
            ],
        }
        items = [{'id': 's1', 'name': 'Come Together', 'artists': [{'name': 'The Beatles'}]}]

        album = RemoteAlbum.from_spotify_api(data, items)

        assert album.art == 'https://img.test/64'
        assert album.artists == ('The Beatles',)
        assert album.tracks[0].album_id == 'al1'
        assert album.tracks[0].platform_id.value == 's1'

    def test_album_without_images(self):
        album = RemoteAlbum.from_spotify_api({'id': 'al1', 'name': 'X', 'images': []}, [])

        assert album.art is None
        assert album.tracks == ()

    def test_playlist(self):
        """Test playlist handles keep their track pager URL"""
        playlist = RemotePlaylist.from_spotify_api(playlist_object('p1', 'Road Trip', owner='someone'))

        assert playlist.owner_id == 'someone'
        assert playlist.tracks_href == f'{API}/playlists/p1/tracks'

    def test_playlist_without_tracks_href(self):
        """Test the pager URL falls back to the playlist's tracks resource"""
        playlist = RemotePlaylist.from_spotify_api({'id': 'p1', 'name': 'Road Trip'})

        assert playlist.tracks_href == 'playlists/p1/tracks'
        assert playlist.owner_id == ''

    def test_user_profile(self):
        """Test display name falls back to the user id"""
        full = UserProfile.from_spotify_api({
            'id': 'user1', 'display_name': 'Test User', 'images': [{'url': 'https://img.test/me'}]
        })
        bare = UserProfile.from_spotify_api({'id': 'user2', 'display_name': None})

        assert full.image_url == 'https://img.test/me'
        assert bare.display_name == 'user2'
        assert bare.image_url is None

    def test_insertion_op_is_hashable(self):
        assert len({InsertionOp(1, ("a",)), InsertionOp(1, ("a",))}) == 1
