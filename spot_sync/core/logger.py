"""
Logging configuration for spot-sync.

This module sets up the logging system with multiple outputs:
    - Console: Real-time status with tqdm-compatible formatting
    - log_full_{timestamp}.log: Complete log of all events (DEBUG and above)
    - log_errors_{timestamp}.log: Only ERROR and CRITICAL level messages
    - unmatched_tracks_{timestamp}.log: Tracks that have no Spotify match

Everything printed to the screen is also saved to file, then filtered
into the specialized files.

Usage:
    from spot_sync.core.logger import setup_logging, get_logger

    setup_logging(storage_dir / "logs")  # Call once at startup
    logger = get_logger(__name__)        # Get logger for each module

    logger.info("Matching library")
    log_unmatched_track("Song Title", ["Artist"], "Road Trip")
"""

import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import TextIO

from tqdm import tqdm


# Log format for file output (detailed with timestamp)
FILE_LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
FILE_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class Colors:
    """ANSI color codes for terminal output."""
    RESET = "\033[0m"
    RED = "\033[31m"
    GREEN = "\033[32m"
    YELLOW = "\033[33m"
    BLUE = "\033[34m"
    CYAN = "\033[36m"
    WHITE = "\033[37m"
    BOLD = "\033[1m"


class ColoredConsoleFormatter(logging.Formatter):
    """
    Custom formatter that adds colors to console output.

    Colors:
        - DEBUG: Blue
        - INFO: Green
        - WARNING: Yellow
        - ERROR: Red
        - CRITICAL: Bold Red
    """

    LEVEL_COLORS = {
        logging.DEBUG: Colors.BLUE,
        logging.INFO: Colors.GREEN,
        logging.WARNING: Colors.YELLOW,
        logging.ERROR: Colors.RED,
        logging.CRITICAL: Colors.BOLD + Colors.RED,
    }

    def format(self, record: logging.LogRecord) -> str:
        color = self.LEVEL_COLORS.get(record.levelno, Colors.WHITE)
        colored_levelname = f"{color}{record.levelname}{Colors.RESET}"
        return f"{colored_levelname}: {record.getMessage()}"


class TqdmLoggingHandler(logging.Handler):
    """
    Logging handler that writes to console without breaking tqdm progress bars.

    tqdm progress bars write to stderr and use carriage returns to update in-place.
    Standard logging to stderr interferes with this; tqdm.write() prints the
    message above any active progress bar instead.
    """

    def __init__(self, stream: TextIO = sys.stderr) -> None:
        super().__init__()
        self.stream = stream

    def emit(self, record: logging.LogRecord) -> None:
        try:
            msg = self.format(record)
            tqdm.write(msg, file=self.stream)
        except Exception:
            self.handleError(record)


class UnmatchedTrackHandler(logging.Handler):
    """
    Handler that collects tracks with no Spotify match into a report file.

    The report lets the user fix titles/artists of unmatched tracks by hand:

        Song Title - Artist Name, Other Artist  [Road Trip]
        Another Song - Another Artist  [Greatest Hits]

    The handler looks for specific extra fields in log records:
        - 'unmatched_track_title': Title of the track
        - 'unmatched_track_artists': Comma separated artist names
        - 'unmatched_track_item': Name of the playlist/album holding the track

    Only records containing these fields are written to the report.

    Usage:
        log_unmatched_track("Song Title", ["Artist Name"], "Road Trip")
    """

    def __init__(self, report_path: Path) -> None:
        """
        Initialize the unmatched track handler.

        Args:
            report_path: Path to the report file. File will be created/overwritten.
        """
        super().__init__()
        self.report_path = report_path
        self.report_file: TextIO | None = None

    def open(self) -> None:
        """
        Open the report file for writing.

        Called by setup_logging() after handler is created.
        """
        self.report_file = open(self.report_path, "w", encoding="utf-8")

    def emit(self, record: logging.LogRecord) -> None:
        if not hasattr(record, "unmatched_track_title"):
            return

        if self.report_file is None:
            return

        try:
            title = getattr(record, "unmatched_track_title", "Unknown")
            artists = getattr(record, "unmatched_track_artists", "")
            item = getattr(record, "unmatched_track_item", "")

            line = f"{title} - {artists}" if artists else title
            if item:
                line += f"  [{item}]"

            self.report_file.write(f"{line}\n")
            self.report_file.flush()
        except Exception:
            self.handleError(record)

    def close(self) -> None:
        """
        Close the report file handle.

        Safe to call multiple times.
        """
        if self.report_file is not None:
            try:
                self.report_file.close()
            except OSError:
                pass
            self.report_file = None
        super().close()


class ErrorOnlyFilter(logging.Filter):
    """
    Filter that only allows ERROR and CRITICAL level records.

    Used by the error log file handler to exclude DEBUG, INFO, and WARNING.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        return record.levelno >= logging.ERROR


def setup_logging(log_dir: Path, verbose: bool = False) -> None:
    """
    Configure the logging system for the application.

    This function should be called ONCE at application startup, after
    the configuration is loaded but before any other operations.

    Args:
        log_dir: Directory where log files will be created.
                 Created if it doesn't exist.
        verbose: If True, the console also shows DEBUG messages
                 (every request the gateway sends).

    Behavior:
        1. Create log_dir if it doesn't exist
        2. Generate timestamp for this run's log files
        3. Configure root logger level to DEBUG
        4. Console handler (TqdmLoggingHandler), INFO or DEBUG, compact colored format
        5. Full log file handler, DEBUG, detailed format
        6. Error-only log file handler, filtered to ERROR+ by ErrorOnlyFilter
        7. Unmatched tracks report handler
    """
    log_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y-%m-%d_%H-%M-%S")

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)

    # Remove any existing handlers
    root_logger.handlers.clear()

    console_handler = TqdmLoggingHandler()
    console_handler.setLevel(logging.DEBUG if verbose else logging.INFO)
    console_handler.setFormatter(ColoredConsoleFormatter())
    root_logger.addHandler(console_handler)

    full_log_path = log_dir / f"log_full_{timestamp}.log"
    full_handler = logging.FileHandler(full_log_path, mode="w", encoding="utf-8")
    full_handler.setLevel(logging.DEBUG)
    full_handler.setFormatter(logging.Formatter(FILE_LOG_FORMAT, FILE_DATE_FORMAT))
    root_logger.addHandler(full_handler)

    error_log_path = log_dir / f"log_errors_{timestamp}.log"
    error_handler = logging.FileHandler(error_log_path, mode="w", encoding="utf-8")
    error_handler.setLevel(logging.DEBUG)  # Filter handles the level restriction
    error_handler.setFormatter(logging.Formatter(FILE_LOG_FORMAT, FILE_DATE_FORMAT))
    error_handler.addFilter(ErrorOnlyFilter())
    root_logger.addHandler(error_handler)

    unmatched_path = log_dir / f"unmatched_tracks_{timestamp}.log"
    unmatched_handler = UnmatchedTrackHandler(unmatched_path)
    unmatched_handler.open()
    root_logger.addHandler(unmatched_handler)

    # aiohttp's own debug output duplicates the gateway's request log
    logging.getLogger("aiohttp").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance for a module.

    Args:
        name: The logger name, typically __name__ of the calling module.

    Returns:
        logging.Logger: A logger instance configured by setup_logging().

    Note:
        Loggers obtained before setup_logging() is called have no
        handlers of their own and propagate to the root logger.
    """
    return logging.getLogger(name)


def log_unmatched_track(title: str, artists: list[str], item_name: str) -> None:
    """
    Log a track that has no match on Spotify.

    The record goes to the normal logs as a warning and is picked up by
    UnmatchedTrackHandler for the unmatched tracks report.

    Args:
        title: Title of the local track.
        artists: Artist names of the local track.
        item_name: Name of the playlist or album the track belongs to.
    """
    artist_text = ", ".join(artists)
    logger = get_logger("spot_sync.unmatched")
    logger.warning(
        f"No match for: {title}" + (f" by {artist_text}" if artist_text else ""),
        extra={
            "unmatched_track_title": title,
            "unmatched_track_artists": artist_text,
            "unmatched_track_item": item_name,
        }
    )


def shutdown_logging() -> None:
    """
    Properly shut down the logging system.

    Flushes and closes all handlers, then removes them from the root logger.
    Typically called in a finally block at application exit.
    """
    root_logger = logging.getLogger()

    for handler in root_logger.handlers[:]:
        try:
            handler.flush()
            handler.close()
        except OSError:
            pass
        root_logger.removeHandler(handler)
