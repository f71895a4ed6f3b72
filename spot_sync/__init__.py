"""
spot-sync: Bring a local music library into a Spotify account.

This package reconciles playlists and albums exported from a local music
library with the user's Spotify library. It matches tracks and albums to
Spotify ids, finds the same-named Spotify playlists, computes the tracks
missing from them, and applies those additions without ever removing or
reordering what the user already has.

Architecture:
    spotify/    - Request gateway, batching, paging and the typed client
    sync/       - Sequence aligner, per-item state machines, library passes
    core/       - Configuration, storage, logging, exceptions
    utils/      - Small helpers
    cli.py      - Command-line interface

Usage:
    Command Line:
        spot-sync import export.json
        spot-sync login --token "BQD..."
        spot-sync sync --apply

    Python API:
        from spot_sync.core import load_config, LibraryStore
        from spot_sync.spotify import RequestGateway, RemoteLibraryClient
        from spot_sync.sync import LibrarySync

        config = load_config()
        store = LibraryStore(config.storage.directory)

        async with RequestGateway(config) as gateway:
            library = LibrarySync(RemoteLibraryClient(gateway, config), gateway)
            library.load(*store.load_library())
            await library.login(token, expires_in=3600)
            await library.match_and_check()
            await library.commit_all()
            store.save_library(*library.snapshot())

Dependencies:
    - aiohttp: HTTP client of the request gateway
    - click / rich-click: CLI framework and colors
    - tqdm: Progress bars
    - pyyaml: Configuration file parsing
"""

__version__ = "0.1.0"
__author__ = "spot-sync"
__license__ = "MIT"

# Convenience imports for common usage
from spot_sync.core import (
    Config,
    ConfigError,
    LibraryStore,
    SpotifyError,
    SpotSyncError,
    get_logger,
    load_config,
    setup_logging,
)
from spot_sync.spotify import Album, Playlist, RemoteLibraryClient, RequestGateway, Track
from spot_sync.sync import LibrarySync, align

__all__ = [
    # Version
    "__version__",
    # Core
    "Config",
    "load_config",
    "LibraryStore",
    "setup_logging",
    "get_logger",
    # Exceptions
    "SpotSyncError",
    "ConfigError",
    "SpotifyError",
    # Spotify
    "RequestGateway",
    "RemoteLibraryClient",
    "Track",
    "Album",
    "Playlist",
    # Sync
    "LibrarySync",
    "align",
]
