"""
Spotify catalog client.

Provides paginated fetching of the liked-songs library, playlists and
playlist membership, plus the few mutating calls the filing flow needs.
Blocking spotipy calls run in worker threads; every failure comes out as
a CatalogError subclass (see retry_utils.classify_error).
"""

import logging
from typing import Callable, List, Optional, Sequence

import spotipy

from .models import Playlist, Track
from .rate_limiter import RateLimiter
from .retry_utils import call_catalog, retry_async_call

logger = logging.getLogger(__name__)

LIKED_PAGE_SIZE = 50
PLAYLIST_PAGE_SIZE = 50
MEMBERS_PAGE_SIZE = 100
# The API accepts at most 100 uris per add request
ADD_CHUNK_SIZE = 100

MEMBER_FIELDS = "items(track(id)),total,next"
PLAYLIST_FIELDS = "id,name,uri,snapshot_id,owner(id),collaborative,tracks(total)"
PLAYLIST_DESCRIPTION = "Created by spotifiling"


class CatalogClient:
    """Wrapper for the Spotify API with paginated data fetching."""

    def __init__(
        self,
        session: spotipy.Spotify,
        rate_limiter: Optional[RateLimiter] = None,
        read_attempts: int = 3,
        progress_callback: Optional[Callable[[str], None]] = None,
    ):
        """
        Initialize the catalog client.

        Args:
            session: Authenticated Spotify client
            rate_limiter: Optional pacing for all remote calls
            read_attempts: Attempts per read call on transient failures (writes never retry)
            progress_callback: Optional callback for progress messages
        """
        self.session = session
        self.rate_limiter = rate_limiter or RateLimiter()
        self.read_attempts = read_attempts
        self._progress_callback = progress_callback
        self._user_id: Optional[str] = None

    def _log_progress(self, message: str):
        """Report progress if callback is available."""
        if self._progress_callback:
            self._progress_callback(message)

    async def _read(self, func: Callable, *args, **kwargs):
        return await retry_async_call(
            func,
            *args,
            max_attempts=self.read_attempts,
            limiter=self.rate_limiter,
            **kwargs,
        )

    async def _write(self, func: Callable, *args, **kwargs):
        return await call_catalog(func, *args, limiter=self.rate_limiter, **kwargs)

    async def _paginate(
        self,
        method: Callable,
        page_size: int,
        extract: Callable[[dict], object],
        on_page: Optional[Callable[[int, int], None]] = None,
        **params,
    ) -> list:
        """
        Collect every page of a paginated collection.

        The ``next`` cursor decides when to stop. Responses without a
        ``next`` key fall back to comparing the offset against ``total``.
        """
        items = []
        offset = 0
        results = await self._read(method, limit=page_size, offset=0, **params)

        while results:
            page_items = results.get("items") or []
            for raw in page_items:
                item = extract(raw)
                if item is not None:
                    items.append(item)
            offset += len(page_items)
            total = results.get("total", offset)

            if on_page:
                on_page(len(items), total)

            if "next" in results:
                if not results["next"]:
                    break
                results = await self._read(self.session.next, results)
            else:
                if not page_items or offset >= total:
                    break
                results = await self._read(method, limit=page_size, offset=offset, **params)

        return items

    # =========================================================================
    # Reads
    # =========================================================================

    async def current_user_id(self) -> str:
        """Id of the authenticated user (cached after the first call)."""
        if self._user_id is None:
            user = await self._read(self.session.current_user)
            self._user_id = user["id"]
        return self._user_id

    async def count_liked_songs(self) -> int:
        """Authoritative liked-songs count, using the smallest possible page."""
        results = await self._read(self.session.current_user_saved_tracks, limit=1, offset=0)
        return int(results["total"])

    async def fetch_all_liked_songs(
        self, on_progress: Optional[Callable[[int, int], None]] = None
    ) -> List[Track]:
        """Get all saved/liked tracks, reporting (loaded, total) after every page."""

        def extract(item: dict) -> Optional[Track]:
            track = item.get("track")
            if not track or not track.get("id"):
                return None
            return Track.from_spotify(track, added_at=item.get("added_at"))

        def on_page(loaded: int, total: int):
            self._log_progress(f"Fetching liked songs: {loaded}/{total}...")
            if on_progress:
                on_progress(loaded, total)

        return await self._paginate(
            self.session.current_user_saved_tracks, LIKED_PAGE_SIZE, extract, on_page
        )

    async def fetch_all_playlists(self) -> List[Playlist]:
        """Get all playlists in the user's library."""

        def extract(item: dict) -> Optional[Playlist]:
            if not item or not item.get("id"):
                return None
            return Playlist.from_spotify(item)

        def on_page(loaded: int, total: int):
            self._log_progress(f"Fetching playlists: {loaded}/{total}...")

        return await self._paginate(
            self.session.current_user_playlists, PLAYLIST_PAGE_SIZE, extract, on_page
        )

    async def fetch_playlist_member_ids(self, playlist_id: str) -> List[str]:
        """Get the track ids in a playlist (ids only, local files and episodes skipped)."""

        def extract(item: dict) -> Optional[str]:
            track = item.get("track") if item else None
            if not track:
                return None
            return track.get("id")

        return await self._paginate(
            self.session.playlist_items,
            MEMBERS_PAGE_SIZE,
            extract,
            playlist_id=playlist_id,
            fields=MEMBER_FIELDS,
            additional_types=("track",),
        )

    async def fetch_playlist(self, playlist_id: str) -> Playlist:
        """Get a single playlist's metadata, including its current snapshot token."""
        data = await self._read(self.session.playlist, playlist_id, fields=PLAYLIST_FIELDS)
        return Playlist.from_spotify(data)

    # =========================================================================
    # Writes (never retried here)
    # =========================================================================

    async def add_tracks_to_playlist(self, playlist_id: str, track_uris: Sequence[str]) -> None:
        """Add tracks to a playlist. Adding an already-present uri is harmless."""
        uris = list(track_uris)
        for i in range(0, len(uris), ADD_CHUNK_SIZE):
            await self._write(
                self.session.playlist_add_items, playlist_id, uris[i : i + ADD_CHUNK_SIZE]
            )
        logger.debug(f"Added {len(uris)} tracks to playlist {playlist_id}")

    async def create_playlist(self, name: str, public: bool = False) -> Playlist:
        """Create a new playlist owned by the current user."""
        user_id = await self.current_user_id()
        data = await self._write(
            self.session.user_playlist_create,
            user_id,
            name,
            public=public,
            description=PLAYLIST_DESCRIPTION,
        )
        logger.info(f"Created playlist '{name}' ({data['id']})")
        return Playlist.from_spotify(data)

    async def remove_from_liked_songs(self, track_id: str) -> None:
        """Remove a track from the user's liked songs."""
        await self._write(self.session.current_user_saved_tracks_delete, tracks=[track_id])
