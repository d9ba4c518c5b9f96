"""
Command-line interface for spotifiling.

Loads your liked songs and playlists, files tracks into playlists and
reports what is still unfiled. Playlist writes are batched and survive
interruptions: anything not yet sent is retried on the next run.
"""

import argparse
import asyncio
import sys
from pathlib import Path
from typing import Optional

import yaml
from tqdm import tqdm

from .auth import open_spotify_session
from .errors import (
    CatalogError,
    LibraryLoadError,
    RateLimited,
    StorageError,
    TransientError,
    UnknownPlaylistError,
)
from .logging_utils import SyncLogger, UserErrors
from .session import FilingSession
from .store import LibraryStore


def load_config(config_path: str) -> dict:
    """Load configuration from YAML file."""
    path = Path(config_path)
    if not path.exists():
        return {}
    with open(path) as f:
        return yaml.safe_load(f) or {}


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser with all CLI options."""
    parser = argparse.ArgumentParser(
        description="File your Spotify liked songs into playlists",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  spotifiling --status                          # Liked / unfiled / pending counts
  spotifiling --unfiled --limit 20              # List 20 unfiled liked songs
  spotifiling --file TRACK_ID --to Chill Focus  # File a track into two playlists
  spotifiling --create-playlist "New Finds"     # Create a playlist
  spotifiling --unlike TRACK_ID                 # Remove a track from liked songs
  spotifiling --flush                           # Send pending playlist writes now

Tips:
  Your library is cached - repeated runs only fetch what changed
  Playlist writes are queued locally and never lost if a run is interrupted
""",
    )

    parser.add_argument(
        "--config",
        "-c",
        default="config.yml",
        help="Path to config file (default: config.yml)",
    )
    parser.add_argument(
        "--status", "-s", action="store_true", help="Show library and queue status"
    )
    parser.add_argument(
        "--unfiled", "-u", action="store_true", help="List liked songs not in any playlist"
    )
    parser.add_argument(
        "--limit",
        type=int,
        default=None,
        metavar="N",
        help="Limit the number of unfiled songs listed",
    )
    parser.add_argument("--file", "-f", metavar="TRACK", help="Track ID or URI to file")
    parser.add_argument(
        "--to",
        nargs="+",
        metavar="PLAYLIST",
        default=[],
        help="Destination playlists (ID, URI or exact name) for --file",
    )
    parser.add_argument(
        "--unlike", metavar="TRACK", help="Remove a track (ID or URI) from liked songs"
    )
    parser.add_argument(
        "--create-playlist", metavar="NAME", help="Create a new private playlist"
    )
    parser.add_argument(
        "--flush", action="store_true", help="Send pending playlist writes now"
    )
    parser.add_argument(
        "--discard-pending",
        action="store_true",
        help="Drop all pending playlist writes without sending them",
    )
    parser.add_argument(
        "--verbose", "-v", action="store_true", help="Enable verbose debug output"
    )
    parser.add_argument(
        "--quiet",
        "-q",
        action="store_true",
        help="Quiet mode - only show errors",
    )
    parser.add_argument(
        "--no-color",
        action="store_true",
        help="Disable colored output",
    )

    return parser


class LikedSongsProgress:
    """tqdm progress bar fed by (loaded, total) updates."""

    def __init__(self, disable: bool = False):
        self._bar: Optional[tqdm] = None
        self._disable = disable

    def __call__(self, loaded: int, total: int):
        if self._bar is None:
            self._bar = tqdm(total=total, desc="Loading liked songs", disable=self._disable)
        if total != self._bar.total:
            self._bar.total = total
            self._bar.refresh()
        self._bar.update(loaded - self._bar.n)

    def close(self):
        if self._bar is not None:
            self._bar.close()
            self._bar = None


def _track_id(ref: str) -> str:
    return ref.split(":")[-1]  # Handle URIs


def show_status(session: FilingSession, logger: SyncLogger):
    """Show library and write-queue status."""
    status = session.status()
    logger.info("")
    logger.info("━" * 50)
    logger.info("📊 Library Status")
    logger.info("━" * 50)
    logger.info(f"   Liked songs:        {status['liked']}")
    logger.info(f"   Writable playlists: {status['playlists']}")
    logger.info(f"   Unfiled songs:      {status['unfiled']}")
    logger.info(f"   Pending writes:     {status['pending']}")
    if status["last_error"]:
        logger.warning(f"   Last error: {status['last_error']}")

    counts = session.store.get_filing_counts()
    top = [p for p in session.library.playlists if counts.get(p.id)][:5]
    if top:
        logger.info("")
        logger.info("🗂  Most used playlists:")
        for playlist in top:
            logger.info(f"   {counts[playlist.id]:>4}  {playlist.name}")
    logger.info("━" * 50)


def show_unfiled(session: FilingSession, logger: SyncLogger, limit: Optional[int] = None):
    """List unfiled songs, oldest like first as returned by Spotify."""
    unfiled = session.library.unfiled_songs
    shown = unfiled[:limit] if limit else unfiled
    logger.info(f"{len(unfiled)} unfiled songs")
    for track in shown:
        logger.info(f"   {track.id}  {track.artist_names} - {track.name}")
    if len(shown) < len(unfiled):
        logger.info(f"   ... and {len(unfiled) - len(shown)} more")


async def run_command(args, session: FilingSession, logger: SyncLogger) -> int:
    """Run the requested action. Returns the process exit code."""
    if args.discard_pending:
        count = session.writer.discard_pending()
        logger.success(f"Discarded {count} pending writes")
        return 0

    if args.flush:
        result = await session.flush()
        if result.delivered_count:
            logger.success(f"Sent {result.delivered_count} pending writes")
        for playlist_id, error in result.failed.items():
            logger.error(f"Playlist {playlist_id}: {error}")
        if not result.delivered and not result.failed:
            logger.info("Nothing pending")
        return 0 if result.ok else 1

    async with session:
        if args.create_playlist:
            playlist = await session.create_playlist(args.create_playlist)
            logger.info(f"   {playlist.id}  {playlist.name}")

        if args.file:
            track = session.find_track(_track_id(args.file))
            if track is None:
                logger.error(f"Track {args.file} is not in your liked songs")
                return 1
            if not args.to:
                logger.error("--file needs at least one playlist after --to")
                return 1
            try:
                playlists = session.find_playlists(args.to)
            except UnknownPlaylistError as e:
                logger.error(e.message)
                return 1
            queued = await session.file_track(track, [p.id for p in playlists])
            logger.debug(f"{queued} new writes queued")

        if args.unlike:
            track = session.find_track(_track_id(args.unlike))
            if track is None:
                logger.error(f"Track {args.unlike} is not in your liked songs")
                return 1
            await session.unlike_track(track)

        if args.unfiled:
            show_unfiled(session, logger, args.limit)

        if args.status:
            show_status(session, logger)

    return 0


def main():
    parser = create_parser()
    args = parser.parse_args()

    # Initialize logger
    logger = SyncLogger(
        verbose=args.verbose,
        quiet=args.quiet,
        use_color=not args.no_color,
    )

    actions = (
        args.status,
        args.unfiled,
        args.file,
        args.unlike,
        args.create_playlist,
        args.flush,
        args.discard_pending,
    )
    if not any(actions):
        logger.warning("No action specified. Use --help to see options.")
        parser.print_help()
        return

    # Load config
    config = load_config(args.config)
    if not config and not Path(args.config).exists():
        if args.config != "config.yml":
            # User specified a config file that doesn't exist
            logger.error(UserErrors.config_not_found(args.config))
            sys.exit(1)
        else:
            logger.debug("No config.yml found, using environment variables")

    library_config = config.get("library", {})
    data_dir = Path(library_config.get("data_dir", "./library"))
    data_dir.mkdir(parents=True, exist_ok=True)

    # Connect to Spotify, token cache lives next to the library cache
    logger.progress("Connecting to Spotify...")
    try:
        spotify = open_spotify_session(
            config.get("spotify", {}), cache_path=str(data_dir / ".spotify_cache")
        )
        user = spotify.current_user()
        username = user["display_name"] or user["id"]
        logger.success(f"Connected to Spotify as {username}")
    except ValueError as e:
        logger.error(UserErrors.spotify_auth_failed(str(e)))
        sys.exit(1)
    except Exception as e:
        if "connection" in str(e).lower() or "network" in str(e).lower():
            logger.error(UserErrors.network_error(str(e)))
        else:
            logger.error(UserErrors.spotify_auth_failed(str(e)))
        sys.exit(1)

    store = LibraryStore(str(data_dir))
    batch_config = config.get("batch", {})
    catalog_config = config.get("catalog", {})
    progress = LikedSongsProgress(disable=args.quiet)

    session = FilingSession(
        spotify,
        store=store,
        max_concurrent=catalog_config.get("max_concurrent", 4),
        rate_limit=catalog_config.get("rate_limit", 5),
        read_attempts=catalog_config.get("read_attempts", 3),
        flush_interval=batch_config.get("flush_interval", 10),
        flush_threshold=batch_config.get("flush_threshold", 20),
        logger=logger,
        liked_progress=progress,
    )
    logger.debug(f"Using data dir: {data_dir}")

    try:
        exit_code = asyncio.run(run_command(args, session, logger))
    except KeyboardInterrupt:
        logger.warning("Cancelled by user")
        logger.info("Queued playlist writes are saved and will be sent on the next run.")
        sys.exit(1)
    except (LibraryLoadError, CatalogError, StorageError) as e:
        cause = e.__cause__ if isinstance(e, LibraryLoadError) else e
        if isinstance(cause, RateLimited):
            logger.error(UserErrors.rate_limited(cause.retry_after))
        elif isinstance(cause, TransientError):
            logger.error(UserErrors.network_error(cause.message))
        elif isinstance(e, LibraryLoadError):
            logger.error(UserErrors.load_failed(str(cause) if cause else e.message))
        else:
            logger.error(f"❌ {e.message}")

        if args.verbose:
            import traceback

            traceback.print_exc()
        sys.exit(1)
    finally:
        progress.close()

    pending = store.pending_count()
    if pending:
        logger.warning(UserErrors.writes_pending(pending, session.writer.last_error))

    logger.debug(logger.format_summary())
    if exit_code:
        sys.exit(exit_code)


if __name__ == "__main__":
    main()
