"""
Command-line interface for spot-sync.

This module implements the CLI using Click, providing the commands to
import a local library and reconcile it with a Spotify account.
rich-click is used for the output colors.

Commands:
    spot-sync import <library.json>         Store a library export
    spot-sync login --token <token>         Start a Spotify session
    spot-sync logout                        Drop the stored session
    spot-sync status                        Show the stored library
    spot-sync sync                          Match and check the library
    spot-sync sync --apply                  ...then add what is missing

Usage:
    # Import a library export and log in with an OAuth access token
    spot-sync import ~/export.json
    SPOTIFY_ACCESS_TOKEN=BQD... spot-sync login --expires-in 3600

    # See what is missing from Spotify, then add it
    spot-sync sync
    spot-sync sync --apply

Configuration:
    An optional config.yaml in the current directory (or --config) sets
    the storage directory, retry policy and batching windows. See
    spot_sync.core.config for every setting.

Exit codes:
    1  configuration or unexpected error
    2  storage error (unreadable or malformed library)
    3  Spotify error (login failed, not logged in)
    130  interrupted
"""

import asyncio
import sys
from pathlib import Path
from typing import Callable

import rich_click as click
from tqdm import tqdm

# Configure rich-click for better help formatting
click.rich_click.USE_RICH_MARKUP = True
click.rich_click.SHOW_ARGUMENTS = True
click.rich_click.STYLE_ERRORS_SUGGESTION = "magenta italic"
click.rich_click.MAX_WIDTH = 100

from spot_sync import __version__
from spot_sync.core import (
    Config,
    ConfigError,
    LibraryStore,
    SpotifyError,
    SpotSyncError,
    StorageError,
    UnauthorizedError,
    get_logger,
    load_config,
    load_library_file,
    setup_logging,
    shutdown_logging,
)
from spot_sync.spotify import RemoteLibraryClient, RequestGateway
from spot_sync.sync import LibrarySync, MusicItem

logger = get_logger(__name__)


# Environment variable holding the access token for `login`
TOKEN_ENV_VAR = "SPOTIFY_ACCESS_TOKEN"

# Default token lifetime of Spotify access tokens, in seconds
DEFAULT_EXPIRES_IN = 3600


@click.group()
@click.option(
    "--config", "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    metavar="<config.yaml>",
    help="Configuration file (default: ./config.yaml if present)"
)
@click.option(
    "--verbose", "-v",
    is_flag=True,
    help="Show every request sent to Spotify"
)
@click.version_option(__version__, prog_name="spot-sync")
@click.pass_context
def cli(ctx: click.Context, config_path: Path | None, verbose: bool) -> None:
    """
    spot-sync: Bring a local music library into your Spotify account.

    Matches the playlists and albums of a library export to Spotify,
    then creates the missing playlists, inserts the missing tracks
    (without touching what is already there) and saves the missing albums.

    \b
    TYPICAL SESSION:
        spot-sync import export.json
        spot-sync login --token "BQD..."
        spot-sync sync --apply
    """
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    ctx.obj["verbose"] = verbose


# =============================================================================
# Commands
# =============================================================================

@cli.command("import")
@click.argument("library_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.pass_context
def import_command(ctx: click.Context, library_file: Path) -> None:
    """Validate a library export and store it, replacing the stored library."""
    def run(config: Config, store: LibraryStore) -> None:
        playlists, albums = load_library_file(library_file)
        store.save_library(playlists, albums)
        logger.info(f"Imported {len(playlists)} playlists and {len(albums)} albums from {library_file.name}")

    _run_command(ctx, run)


@cli.command()
@click.option(
    "--token",
    envvar=TOKEN_ENV_VAR,
    required=True,
    metavar="<access-token>",
    help=f"Spotify OAuth access token (or set {TOKEN_ENV_VAR})"
)
@click.option(
    "--expires-in",
    type=click.IntRange(min=1),
    default=DEFAULT_EXPIRES_IN,
    show_default=True,
    help="Token lifetime in seconds"
)
@click.pass_context
def login(ctx: click.Context, token: str, expires_in: int) -> None:
    """Verify an access token and store the session."""
    def run(config: Config, store: LibraryStore) -> None:
        async def verify() -> None:
            async with RequestGateway(config) as gateway:
                library = LibrarySync(RemoteLibraryClient(gateway, config), gateway)
                await library.login(token, expires_in)
                store.save_session(gateway.session)

        asyncio.run(verify())

    _run_command(ctx, run)


@cli.command()
@click.pass_context
def logout(ctx: click.Context) -> None:
    """Forget the stored Spotify session."""
    def run(config: Config, store: LibraryStore) -> None:
        store.save_session(None)
        logger.info("Logged out")

    _run_command(ctx, run)


@cli.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show the match state of the stored library."""
    def run(config: Config, store: LibraryStore) -> None:
        playlists, albums = store.load_library()

        # No session needed, statuses come from the stored matches
        async def show() -> None:
            async with RequestGateway(config) as gateway:
                library = LibrarySync(RemoteLibraryClient(gateway, config), gateway)
                library.load(playlists, albums)
                _print_statuses(library)

        asyncio.run(show())

    _run_command(ctx, run)


@cli.command()
@click.option(
    "--apply",
    is_flag=True,
    help="Create playlists, insert missing tracks and save missing albums"
)
@click.pass_context
def sync(ctx: click.Context, apply: bool) -> None:
    """Match the stored library to Spotify and check what is missing."""
    def run(config: Config, store: LibraryStore) -> None:
        asyncio.run(_sync_library(config, store, apply))

    _run_command(ctx, run)


# =============================================================================
# Workflow
# =============================================================================

async def _sync_library(config: Config, store: LibraryStore, apply: bool) -> None:
    """
    Restore the session, match and check every item, optionally commit.

    The library is saved even when the run fails halfway, so matches found
    so far are not looked up again.

    Raises:
        UnauthorizedError: If no usable session is stored.
    """
    session = store.load_session()
    if session is None:
        raise UnauthorizedError("Not logged in, run `spot-sync login` first")

    playlists, albums = store.load_library()
    errors: list[str] = []

    async with RequestGateway(config) as gateway:
        library = LibrarySync(RemoteLibraryClient(gateway, config), gateway, on_error=errors.append)
        library.load(playlists, albums)

        try:
            profile = await library.restore_session(session)
            if profile is None:
                raise UnauthorizedError("Stored session has expired, log in again")

            items = library.items
            with tqdm(total=len(items) * 2, desc="Matching", unit="item") as progress:
                await library.match_and_check(progress=_advance(progress))

            _print_statuses(library)

            if apply and library.has_pending_work():
                pending = sum(1 for item in items if item.has_pending_work())
                with tqdm(total=pending, desc="Adding", unit="item") as progress:
                    await library.commit_all(progress=_advance(progress))
                _print_statuses(library)
            elif library.has_pending_work():
                logger.info("Run with --apply to add the missing items to Spotify")
        finally:
            store.save_library(*library.snapshot())
            store.save_session(gateway.session)

    if errors:
        logger.warning(f"{len(errors)} item(s) reported errors, see the error log")


def _advance(progress: tqdm) -> Callable[[MusicItem], None]:
    def update(item: MusicItem) -> None:
        progress.update(1)
    return update


def _print_statuses(library: LibrarySync) -> None:
    """
    Print one line per item, followed by totals.

    Output:
        [playlist] Road Trip: Add 2 track(s)
        [album]    Abbey Road: In library
    """
    items = library.items
    logger.info("=" * 60)
    logger.info("LIBRARY STATUS")
    logger.info("=" * 60)
    for item in items:
        item_status = item.status()
        logger.info(f"{'[' + item_status.kind + ']':<10} {item_status.name}: {item_status.label}")
    logger.info("=" * 60)
    logger.info(f"Items:             {len(items)}")
    logger.info(f"Pending:           {sum(1 for item in items if item.has_pending_work())}")
    logger.info("=" * 60)


def _run_command(ctx: click.Context, command: Callable[[Config, LibraryStore], None]) -> None:
    """
    Run a command with configuration, logging and error reporting in place.

    Args:
        ctx: Click context holding the group options.
        command: Receives the loaded Config and the LibraryStore.

    Raises:
        SystemExit: On errors (with appropriate exit code).
    """
    try:
        config = load_config(ctx.obj["config_path"])
    except ConfigError as e:
        click.echo(f"Configuration error: {e.message}", err=True)
        sys.exit(1)

    setup_logging(config.storage.directory / "logs", verbose=ctx.obj["verbose"])
    store = LibraryStore(config.storage.directory)

    try:
        command(config, store)

    except StorageError as e:
        click.echo(f"Storage error: {e.message}", err=True)
        logger.error(f"Storage error: {e.message}", exc_info=True)
        sys.exit(2)

    except SpotifyError as e:
        click.echo(f"Spotify error: {e.message}", err=True)
        logger.error(f"Spotify error: {e.message}", exc_info=True)
        sys.exit(3)

    except SpotSyncError as e:
        click.echo(f"Error: {e.message}", err=True)
        logger.error(f"Error: {e.message}", exc_info=True)
        sys.exit(1)

    except KeyboardInterrupt:
        click.echo("\nInterrupted by user", err=True)
        logger.info("Interrupted by user")
        sys.exit(130)

    except Exception as e:
        click.echo(f"Unexpected error: {e}", err=True)
        logger.exception("Unexpected error")
        sys.exit(1)

    finally:
        shutdown_logging()


def main() -> None:
    """
    Entry point for the CLI.

    This function is called when running `spot-sync` from the command line.
    It invokes the Click CLI group.
    """
    cli()


if __name__ == "__main__":
    main()
