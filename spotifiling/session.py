"""FilingSession: wires the catalog, store, synchronizer and batcher together.

This is the surface a front end drives: load the library, file the current
track into some playlists, unlike it, or create a new playlist.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Callable, Iterable, List, Optional

import spotipy

from .batcher import FLUSH_INTERVAL_SECONDS, FLUSH_THRESHOLD, FlushResult, WriteBatcher
from .catalog_client import CatalogClient
from .errors import UnknownPlaylistError
from .models import Playlist, Track
from .rate_limiter import RateLimiter
from .store import LibraryStore
from .synchronizer import LibrarySynchronizer

if TYPE_CHECKING:
    from .logging_utils import SyncLogger

logger = logging.getLogger(__name__)


class FilingSession:
    """One user's filing session against Spotify."""

    def __init__(
        self,
        spotify: spotipy.Spotify,
        store: Optional[LibraryStore] = None,
        max_concurrent: int = 4,
        rate_limit: float = 5,
        read_attempts: int = 3,
        flush_interval: float = FLUSH_INTERVAL_SECONDS,
        flush_threshold: int = FLUSH_THRESHOLD,
        logger: Optional["SyncLogger"] = None,
        catalog: Optional[CatalogClient] = None,
        liked_progress: Optional[Callable[[int, int], None]] = None,
    ):
        self._logger = logger
        self.store = store or LibraryStore()

        def log_progress(msg: str):
            self._log("progress", msg)

        self.catalog = catalog or CatalogClient(
            spotify,
            rate_limiter=RateLimiter(max_concurrent, rate_limit),
            read_attempts=read_attempts,
            progress_callback=lambda msg: self._log("debug", msg),
        )
        self.library = LibrarySynchronizer(
            self.catalog,
            self.store,
            progress_callback=log_progress,
            liked_progress_callback=liked_progress,
        )
        self.writer = WriteBatcher(
            self.catalog,
            self.store,
            flush_interval=flush_interval,
            flush_threshold=flush_threshold,
            on_delivered=self.library.record_delivery,
        )

    def _log(self, level: str, message: str):
        if self._logger:
            getattr(self._logger, level)(message)
        else:
            getattr(logger, "info" if level in ("progress", "success") else level)(message)

    # ---------------------------------------------------------------------
    # Lifecycle
    # ---------------------------------------------------------------------

    async def open(self) -> None:
        """Load the library and start the periodic flush."""
        await self.library.load()
        await self.writer.start()

    async def close(self) -> None:
        """Stop the timer and make a best-effort final flush."""
        await self.writer.close()

    async def __aenter__(self) -> "FilingSession":
        try:
            await self.open()
        except BaseException:
            await self.close()
            raise
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()
        return False

    # ---------------------------------------------------------------------
    # Filing actions
    # ---------------------------------------------------------------------

    async def file_track(self, track: Track, playlist_ids: Iterable[str]) -> int:
        """
        Queue ``track`` for every playlist in ``playlist_ids``.

        The track leaves the unfiled view right away, before the batched
        writes reach Spotify. Returns the number of newly queued writes.
        """
        targets = list(dict.fromkeys(playlist_ids))
        queued = 0
        for playlist_id in targets:
            if await self.writer.queue_write(track.uri, playlist_id):
                queued += 1

        if targets:
            self.library.remove_from_unfiled(track.id)
            self.library.resort_playlists()
            self._log("success", f"Filed '{track.name}' into {len(targets)} playlist(s)")
        return queued

    async def unlike_track(self, track: Track) -> None:
        """Remove ``track`` from liked songs on Spotify, then from the local views."""
        await self.catalog.remove_from_liked_songs(track.id)
        self.library.remove_from_liked(track.id)
        self._log("success", f"Removed '{track.name}' from your library")

    async def create_playlist(self, name: str) -> Playlist:
        playlist = await self.catalog.create_playlist(name)
        self.library.add_playlist(playlist)
        self._log("success", f"Created playlist '{playlist.name}'")
        return playlist

    async def flush(self) -> FlushResult:
        return await self.writer.flush()

    def next_track(self, exclude: Optional[str] = None) -> Optional[Track]:
        return self.library.pick_random_unfiled(exclude=exclude)

    def find_track(self, track_id: str) -> Optional[Track]:
        for track in self.library.liked_songs:
            if track.id == track_id:
                return track
        return None

    def find_playlists(self, refs: Iterable[str]) -> List[Playlist]:
        """
        Resolve playlist ids, URIs or exact names against the loaded playlists.

        Raises UnknownPlaylistError for the first reference that matches nothing.
        """
        by_id = {p.id: p for p in self.library.playlists}
        by_name = {p.name: p for p in self.library.playlists}
        found = []
        for ref in refs:
            key = ref.split(":")[-1]  # Handle URIs
            playlist = by_id.get(key) or by_name.get(ref)
            if playlist is None:
                raise UnknownPlaylistError(ref)
            found.append(playlist)
        return found

    def status(self) -> dict:
        return {
            "liked": len(self.library.liked_songs),
            "playlists": len(self.library.playlists),
            "unfiled": len(self.library.unfiled_songs),
            "pending": self.writer.pending_count,
            "last_error": self.writer.last_error,
        }
