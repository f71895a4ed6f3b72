"""
Configuration management for spot-sync.

This module handles loading, validating, and providing access to the
application configuration stored in config.yaml.

The configuration file contains:
    - Spotify Web API base URL and search market
    - Retry policy of the request gateway
    - Batch sizes and idle windows for batched library calls
    - Playlist write settings (insert chunk size, visibility)
    - Storage directory for the library and session snapshots

Configuration File Location:
    By default config.yaml is looked up in the current working directory.
    Unlike an explicitly given path, a missing default file is not an
    error: every setting has a default.

Example config.yaml:
    spotify:
      api_base_url: "https://api.spotify.com/v1"
      market: "from_token"

    gateway:
      rate_limit_backoff: 2.0   # first wait on HTTP 429, doubled each time
      server_error_delay: 5.0   # wait on HTTP 5xx
      max_retries: null         # null = retry transient errors forever
      request_timeout: 30.0

    batching:
      album_batch_size: 20
      album_batch_timeout: 2.0
      library_batch_size: 50
      library_batch_timeout: 0.01

    playlists:
      insert_chunk_size: 100
      public: false

    storage:
      directory: "~/.spot-sync"
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from spot_sync.core.exceptions import ConfigError


# Default configuration file name (looked up in current working directory)
CONFIG_FILENAME = "config.yaml"

DEFAULT_API_BASE_URL = "https://api.spotify.com/v1"
DEFAULT_STORAGE_DIRECTORY = "~/.spot-sync"


@dataclass(frozen=True)
class SpotifyConfig:
    """
    Spotify Web API endpoint configuration.

    Attributes:
        api_base_url: Base URL that relative API resources are joined to.
        market: Market passed to search and album lookups.
                "from_token" uses the market of the logged in user.
    """
    api_base_url: str = DEFAULT_API_BASE_URL
    market: str = "from_token"


@dataclass(frozen=True)
class GatewayConfig:
    """
    Retry policy of the request gateway.

    Attributes:
        rate_limit_backoff: Seconds to wait after the first HTTP 429.
                            Doubled after each further 429 of the same call.
        server_error_delay: Seconds to wait after each HTTP 5xx.
        max_retries: Maximum number of retries of a single call, or None
                     to retry rate limits and server errors indefinitely.
        request_timeout: Total timeout in seconds of one HTTP attempt.
    """
    rate_limit_backoff: float = 2.0
    server_error_delay: float = 5.0
    max_retries: int | None = None
    request_timeout: float = 30.0


@dataclass(frozen=True)
class BatchingConfig:
    """
    Sizes and idle windows of the batched remote operations.

    Attributes:
        album_batch_size: Max album ids per "get several albums" call (API limit 20).
        album_batch_timeout: Seconds a partial album batch waits for more ids.
        library_batch_size: Max ids per library membership check / add (API limit 50).
        library_batch_timeout: Seconds a partial library batch waits for more ids.
    """
    album_batch_size: int = 20
    album_batch_timeout: float = 2.0
    library_batch_size: int = 50
    library_batch_timeout: float = 0.01


@dataclass(frozen=True)
class PlaylistConfig:
    """
    Playlist write settings.

    Attributes:
        insert_chunk_size: Max track URIs per insert call (API limit 100).
        public: Visibility of playlists created by spot-sync.
    """
    insert_chunk_size: int = 100
    public: bool = False


@dataclass(frozen=True)
class StorageConfig:
    """
    Storage configuration.

    Attributes:
        directory: Absolute path of the directory holding library.json,
                   session.json and the logs subdirectory.
    """
    directory: Path = field(
        default_factory=lambda: Path(DEFAULT_STORAGE_DIRECTORY).expanduser().resolve()
    )


@dataclass(frozen=True)
class Config:
    """
    Complete application configuration.

    This is the main configuration object that aggregates all configuration
    sections. It is created by load_config() and should be treated as
    immutable (frozen dataclass).

    Example:
        config = load_config()
        print(f"Library stored in: {config.storage.directory}")
        print(f"Album batches of {config.batching.album_batch_size}")
    """
    spotify: SpotifyConfig = field(default_factory=SpotifyConfig)
    gateway: GatewayConfig = field(default_factory=GatewayConfig)
    batching: BatchingConfig = field(default_factory=BatchingConfig)
    playlists: PlaylistConfig = field(default_factory=PlaylistConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)


def load_config(config_path: Path | None = None) -> Config:
    """
    Load and validate configuration from config.yaml.

    Args:
        config_path: Optional explicit path to config file.
                     If None, looks for config.yaml in current working directory
                     and falls back to defaults when it does not exist.

    Returns:
        Config: A frozen dataclass containing all configuration values.

    Raises:
        ConfigError: If an explicit config file is not found, has invalid YAML
                     syntax, or contains invalid values.

    Example:
        try:
            config = load_config()
        except ConfigError as e:
            print(f"Configuration error: {e.message}")
            sys.exit(1)
    """
    if config_path is None:
        config_path = Path.cwd() / CONFIG_FILENAME
        if not config_path.exists():
            return Config()
    elif not config_path.exists():
        raise ConfigError(
            f"Configuration file not found: {config_path}",
            details={"file_path": str(config_path)}
        )

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            content = f.read()
    except IOError as e:
        raise ConfigError(
            f"Failed to read configuration file: {e}",
            details={"file_path": str(config_path), "original_error": str(e)}
        ) from e

    try:
        raw_config = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise ConfigError(
            f"Invalid YAML syntax in configuration file: {e}",
            details={"file_path": str(config_path), "original_error": str(e)}
        ) from e

    # An empty file is a valid "all defaults" configuration
    if raw_config is None:
        return Config()

    if not isinstance(raw_config, dict):
        raise ConfigError(
            "Configuration file must contain a YAML dictionary",
            details={"file_path": str(config_path)}
        )

    return parse_config(raw_config)


def parse_config(raw_config: dict[str, Any]) -> Config:
    """
    Build a Config from an already parsed YAML dictionary.

    Args:
        raw_config: Dictionary parsed from config.yaml.

    Returns:
        Config with defaults applied for missing sections and fields.

    Raises:
        ConfigError: If a section is not a dictionary or a value is invalid.
    """
    return Config(
        spotify=_parse_spotify_config(_section(raw_config, "spotify")),
        gateway=_parse_gateway_config(_section(raw_config, "gateway")),
        batching=_parse_batching_config(_section(raw_config, "batching")),
        playlists=_parse_playlist_config(_section(raw_config, "playlists")),
        storage=_parse_storage_config(_section(raw_config, "storage")),
    )


def _section(raw_config: dict[str, Any], name: str) -> dict[str, Any]:
    """Return a config section, or an empty one when it is absent."""
    section = raw_config.get(name)
    if section is None:
        return {}
    if not isinstance(section, dict):
        raise ConfigError(
            f"Section '{name}' must be a dictionary",
            details={"section": name}
        )
    return section


def _positive_int(section: dict[str, Any], name: str, key: str, default: int) -> int:
    value = section.get(key, default)
    # bool is an int subclass, but "true" is never a meaningful size
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise ConfigError(
            f"'{name}.{key}' must be a positive integer",
            details={"field": f"{name}.{key}", "value": value}
        )
    return value


def _non_negative_number(section: dict[str, Any], name: str, key: str, default: float) -> float:
    value = section.get(key, default)
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value < 0:
        raise ConfigError(
            f"'{name}.{key}' must be a non-negative number",
            details={"field": f"{name}.{key}", "value": value}
        )
    return float(value)


def _non_empty_string(section: dict[str, Any], name: str, key: str, default: str) -> str:
    value = section.get(key, default)
    if not isinstance(value, str) or not value.strip():
        raise ConfigError(
            f"'{name}.{key}' must be a non-empty string",
            details={"field": f"{name}.{key}"}
        )
    return value.strip()


def _parse_spotify_config(section: dict[str, Any]) -> SpotifyConfig:
    api_base_url = _non_empty_string(section, "spotify", "api_base_url", DEFAULT_API_BASE_URL)
    market = _non_empty_string(section, "spotify", "market", "from_token")

    return SpotifyConfig(
        api_base_url=api_base_url.rstrip("/"),
        market=market
    )


def _parse_gateway_config(section: dict[str, Any]) -> GatewayConfig:
    """
    Parse the retry policy.

    max_retries may be null (unbounded, the default) or a non-negative integer.
    """
    max_retries = section.get("max_retries")
    if max_retries is not None:
        if isinstance(max_retries, bool) or not isinstance(max_retries, int) or max_retries < 0:
            raise ConfigError(
                "'gateway.max_retries' must be a non-negative integer or null",
                details={"field": "gateway.max_retries", "value": max_retries}
            )

    request_timeout = _non_negative_number(section, "gateway", "request_timeout", 30.0)
    if request_timeout == 0:
        raise ConfigError(
            "'gateway.request_timeout' must be greater than zero",
            details={"field": "gateway.request_timeout"}
        )

    return GatewayConfig(
        rate_limit_backoff=_non_negative_number(section, "gateway", "rate_limit_backoff", 2.0),
        server_error_delay=_non_negative_number(section, "gateway", "server_error_delay", 5.0),
        max_retries=max_retries,
        request_timeout=request_timeout
    )


def _parse_batching_config(section: dict[str, Any]) -> BatchingConfig:
    return BatchingConfig(
        album_batch_size=_positive_int(section, "batching", "album_batch_size", 20),
        album_batch_timeout=_non_negative_number(section, "batching", "album_batch_timeout", 2.0),
        library_batch_size=_positive_int(section, "batching", "library_batch_size", 50),
        library_batch_timeout=_non_negative_number(section, "batching", "library_batch_timeout", 0.01),
    )


def _parse_playlist_config(section: dict[str, Any]) -> PlaylistConfig:
    public = section.get("public", False)
    if not isinstance(public, bool):
        raise ConfigError(
            "'playlists.public' must be true or false",
            details={"field": "playlists.public", "value": public}
        )

    return PlaylistConfig(
        insert_chunk_size=_positive_int(section, "playlists", "insert_chunk_size", 100),
        public=public
    )


def _parse_storage_config(section: dict[str, Any]) -> StorageConfig:
    """
    Parse the storage section.

    Expands ~ to home directory and converts to absolute Path.
    Does NOT create the directory (that happens on first write).
    """
    directory = _non_empty_string(section, "storage", "directory", DEFAULT_STORAGE_DIRECTORY)
    return StorageConfig(directory=Path(directory).expanduser().resolve())
