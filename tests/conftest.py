"""Test configuration and fixtures"""

import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable

import pytest

from spot_sync.core.config import (
    BatchingConfig,
    Config,
    GatewayConfig,
    SpotifyConfig,
    StorageConfig,
)
from spot_sync.spotify.client import RemoteLibraryClient
from spot_sync.spotify.gateway import RequestGateway

API = "https://api.test/v1"


@dataclass
class Call:
    """One request received by FakeSpotify"""
    method: str
    path: str
    body: Any
    params: dict | None


class FakeSpotify:
    """
    Scripted stand-in for the Spotify Web API.

    Installed in place of RequestGateway._send. Routes are keyed by method
    and path relative to the API base URL. A route is either a handler
    called with (body, params), or a list of responses served in order
    (the last one repeats). A response is a payload (served as 200 OK) or
    a (status, reason, payload) tuple.
    """

    def __init__(self):
        self.routes: dict[tuple[str, str], Any] = {}
        self.calls: list[Call] = []

    def add(self, method: str, path: str, *responses: Any) -> None:
        self.routes.setdefault((method, path), []).extend(responses)

    def on(self, method: str, path: str, handler: Callable[[Any, dict | None], Any]) -> None:
        self.routes[(method, path)] = handler

    def calls_to(self, method: str, path: str) -> list[Call]:
        return [call for call in self.calls if call.method == method and call.path == path]

    async def send(self, method, url, token, body, params):
        path = url[len(API) + 1:] if url.startswith(API) else url
        self.calls.append(Call(method, path, body, params))

        route = self.routes.get((method, path))
        if route is None:
            return 404, "Not Found", {"error": {"status": 404, "message": "No route"}}
        if callable(route):
            response = route(body, params)
        else:
            response = route.pop(0) if len(route) > 1 else route[0]

        if isinstance(response, tuple):
            return response
        return 200, "OK", response


def spotify_track(track_id: str, name: str, artists=("Artist",), album_id: str = "album1", number: int = 1) -> dict:
    """Spotify track object as returned by search"""
    return {
        'id': track_id,
        'name': name,
        'artists': [{'id': f'{a.lower()}_id', 'name': a} for a in artists],
        'album': {'id': album_id, 'name': 'Some Album'},
        'duration_ms': 200000,
        'explicit': False,
        'track_number': number,
    }


def search_page(kind: str, items: list) -> dict:
    return {kind: {'items': items, 'next': None}}


def playlist_object(playlist_id: str, name: str, owner: str = "user1") -> dict:
    return {
        'id': playlist_id,
        'name': name,
        'owner': {'id': owner},
        'tracks': {'href': f'{API}/playlists/{playlist_id}/tracks', 'total': 0},
    }


def page(items: list, next_url: str | None = None) -> dict:
    return {'items': items, 'next': next_url}


@pytest.fixture
def temp_dir():
    """Create temporary directory for tests"""
    with tempfile.TemporaryDirectory() as temp_dir:
        yield Path(temp_dir)


@pytest.fixture
def config(temp_dir):
    """Configuration with short waits so retry and batching tests run fast"""
    return Config(
        spotify=SpotifyConfig(api_base_url=API),
        gateway=GatewayConfig(rate_limit_backoff=0.02, server_error_delay=0.03),
        batching=BatchingConfig(album_batch_timeout=0.02, library_batch_timeout=0.01),
        storage=StorageConfig(directory=temp_dir),
    )


@pytest.fixture
def fake_spotify():
    """Fake Spotify API with the logged in user's profile"""
    fake = FakeSpotify()
    fake.add("GET", "me", {'id': 'user1', 'display_name': 'Test User', 'images': []})
    return fake


@pytest.fixture
def gateway(config, fake_spotify):
    """Logged in gateway talking to fake_spotify"""
    gateway = RequestGateway(config)
    gateway._send = fake_spotify.send
    gateway.open_session("test-token", 3600)
    return gateway


@pytest.fixture
def client(gateway, config):
    return RemoteLibraryClient(gateway, config)
