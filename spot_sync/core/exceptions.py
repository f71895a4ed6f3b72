"""
Exception classes for spot-sync.

This module defines all custom exceptions used throughout the application.
Each exception is designed to provide clear, actionable error messages
and to distinguish between different failure modes.

Exception Hierarchy:
    SpotSyncError (base)
        ConfigError - Configuration file issues
        StorageError - Library/session snapshot issues
            MalformedInputError - Unparsable or invalid library snapshot
        SpotifyError - Spotify API issues
            NetworkError - Transport failure, no HTTP response
            UnauthorizedError - No live session
            RateLimitedError - 429 retries exhausted (only with a retry ceiling)
            RemoteUnavailableError - 5xx retries exhausted (only with a retry ceiling)
            RemoteRejectedError - Any other non-2xx response
            AmbiguousMatchError - Several remote playlists share a name
"""


class SpotSyncError(Exception):
    """
    Base exception for all spot-sync errors.

    All custom exceptions in this project inherit from this class,
    allowing callers to catch all spot-sync errors with a single
    except clause if desired.

    Attributes:
        message: Human-readable error description.
        details: Optional dictionary with additional context (e.g., status, URLs).

    Example:
        try:
            await item.commit()
        except SpotSyncError as e:
            logger.error(f"Operation failed: {e.message}")
            if e.details:
                logger.debug(f"Details: {e.details}")
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        """
        Initialize the base exception.

        Args:
            message: Human-readable error description that will be shown to the user.
            details: Optional dictionary containing additional context about the error.
                     Common keys include:
                     - 'url': URL that caused the error
                     - 'status': HTTP status code
                     - 'original_error': The underlying exception if wrapping another error
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        """Return the error message for display."""
        return self.message


class ConfigError(SpotSyncError):
    """
    Raised when there's an issue with the configuration file.

    This is a CRITICAL error that should stop program execution.

    Common causes:
        - An explicitly given config file does not exist
        - config.yaml has invalid YAML syntax
        - Invalid field values (e.g., negative batch size)

    Example:
        raise ConfigError(
            "'batching.album_batch_size' must be a positive integer",
            details={'field': 'batching.album_batch_size', 'value': -1}
        )
    """
    pass


class StorageError(SpotSyncError):
    """
    Raised when the library or session snapshot cannot be read or written.

    Common causes:
        - Permission denied when reading/writing the storage directory
        - Disk full
    """
    pass


class MalformedInputError(StorageError):
    """
    Raised when a library snapshot cannot be parsed or fails validation.

    The operation that received the snapshot is aborted and no library
    state is modified: snapshots are fully validated before any item
    is built from them.

    Example:
        raise MalformedInputError(
            "Track 3 of playlist 'Road Trip' has no title",
            details={'path': 'playlists[0].tracks[3].title'}
        )
    """
    pass


class SpotifyError(SpotSyncError):
    """
    Raised when there's an issue with the Spotify API.

    Transient conditions (429, 5xx) are retried by the request gateway and
    never reach callers unless a retry ceiling is configured.

    Attributes:
        status: HTTP status code of the failing response, if there was one.
    """

    def __init__(
        self,
        message: str,
        details: dict | None = None,
        status: int | None = None
    ) -> None:
        """
        Initialize Spotify error with the response status.

        Args:
            message: Human-readable error description.
            details: Optional dictionary with additional context.
            status: HTTP status code, None when no response was received.
        """
        super().__init__(message, details)
        self.status = status


class NetworkError(SpotifyError):
    """Raised when a request fails before any HTTP response is received."""
    pass


class UnauthorizedError(SpotifyError):
    """
    Raised when a request is attempted without a live session.

    Callers should treat this as "logged out": the session is either
    missing, expired, or was invalidated by a rejected request.
    """
    pass


class RateLimitedError(SpotifyError):
    """Raised when HTTP 429 persists past the configured retry ceiling."""
    pass


class RemoteUnavailableError(SpotifyError):
    """Raised when HTTP 5xx persists past the configured retry ceiling."""
    pass


class RemoteRejectedError(SpotifyError):
    """
    Raised for any non-retryable, non-success response.

    The gateway invalidates the session before raising this error,
    so the user has to log in again.
    """
    pass


class AmbiguousMatchError(SpotifyError):
    """
    Raised when a playlist name matches more than one remote playlist.

    This is a NON-CRITICAL diagnostic: the playlist is treated as having
    no usable remote match.

    Attributes:
        name: The playlist name that was looked up.
        count: Number of remote playlists carrying that name.
    """

    def __init__(self, name: str, count: int) -> None:
        super().__init__(
            f"Found {count} playlists named {name}",
            details={"name": name, "count": count}
        )
        self.name = name
        self.count = count
