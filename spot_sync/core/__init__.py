"""
Core module for spot-sync.

This module provides the foundational components used throughout the application:
    - exceptions: Custom exception classes for error handling
    - config: Configuration loading and validation
    - storage: JSON snapshots of the library and the Spotify session
    - logger: Logging system with multiple outputs

Usage:
    from spot_sync.core import (
        Config, load_config,
        LibraryStore, load_library_file,
        setup_logging, get_logger,
        SpotSyncError, ConfigError, SpotifyError
    )
"""

from spot_sync.core.config import (
    BatchingConfig,
    Config,
    GatewayConfig,
    PlaylistConfig,
    SpotifyConfig,
    StorageConfig,
    load_config,
)
from spot_sync.core.exceptions import (
    AmbiguousMatchError,
    ConfigError,
    MalformedInputError,
    NetworkError,
    RateLimitedError,
    RemoteRejectedError,
    RemoteUnavailableError,
    SpotifyError,
    SpotSyncError,
    StorageError,
    UnauthorizedError,
)
from spot_sync.core.logger import (
    get_logger,
    log_unmatched_track,
    setup_logging,
    shutdown_logging,
)
from spot_sync.core.storage import LibraryStore, load_library_file, parse_library

__all__ = [
    # Config
    "Config",
    "SpotifyConfig",
    "GatewayConfig",
    "BatchingConfig",
    "PlaylistConfig",
    "StorageConfig",
    "load_config",
    # Storage
    "LibraryStore",
    "load_library_file",
    "parse_library",
    # Exceptions
    "SpotSyncError",
    "ConfigError",
    "StorageError",
    "MalformedInputError",
    "SpotifyError",
    "NetworkError",
    "UnauthorizedError",
    "RateLimitedError",
    "RemoteUnavailableError",
    "RemoteRejectedError",
    "AmbiguousMatchError",
    # Logger
    "setup_logging",
    "get_logger",
    "log_unmatched_track",
    "shutdown_logging",
]
