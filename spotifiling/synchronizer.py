"""
Library synchronizer.

Loads the liked-songs library and the membership of every writable
playlist, reusing the local store wherever the catalog says nothing has
changed, and derives the set of liked tracks not filed anywhere yet.

Cache validity:
- Liked songs: the whole snapshot is valid only while its total equals
  the live count. There is no partial invalidation.
- Playlist membership: valid per playlist while the stored snapshot token
  equals the live one.
"""

from __future__ import annotations

import logging
import random
from enum import Enum
from types import MappingProxyType
from typing import Callable, Dict, FrozenSet, Iterable, List, Mapping, Optional, Set, Tuple

from .catalog_client import CatalogClient
from .errors import LibraryLoadError
from .models import Playlist, Track, sort_by_filing_count
from .store import LibraryStore

logger = logging.getLogger(__name__)


class LoadState(Enum):
    IDLE = "idle"
    CHECKING_COUNT = "checking_count"
    LOADING_LIKED = "loading_liked"
    LOADING_PLAYLISTS = "loading_playlists"
    LOADING_MEMBERSHIP = "loading_membership"
    COMPUTING = "computing"
    READY = "ready"
    FAILED = "failed"


def compute_unfiled(liked: Iterable[Track], memberships: Iterable[Iterable[str]]) -> List[Track]:
    """Liked tracks present in none of the given member-id sets, in liked order."""
    filed: Set[str] = set()
    for member_ids in memberships:
        filed.update(member_ids)

    unfiled = []
    seen: Set[str] = set()
    for track in liked:
        if track.id in filed or track.id in seen:
            continue
        seen.add(track.id)
        unfiled.append(track)
    return unfiled


class LibrarySynchronizer:
    """Owns the in-memory liked/unfiled/playlist views."""

    def __init__(
        self,
        catalog: CatalogClient,
        store: LibraryStore,
        progress_callback: Optional[Callable[[str], None]] = None,
        liked_progress_callback: Optional[Callable[[int, int], None]] = None,
    ):
        self.catalog = catalog
        self.store = store
        self._progress_callback = progress_callback
        self._liked_progress_callback = liked_progress_callback

        self.state = LoadState.IDLE
        self.error: Optional[str] = None
        self.status = ""

        self._liked: List[Track] = []
        self._playlists: List[Playlist] = []
        self._membership: Dict[str, FrozenSet[str]] = {}
        self._unfiled: List[Track] = []

    # ---------------------------------------------------------------------
    # Read-only views
    # ---------------------------------------------------------------------

    @property
    def is_ready(self) -> bool:
        return self.state == LoadState.READY

    @property
    def liked_songs(self) -> Tuple[Track, ...]:
        return tuple(self._liked)

    @property
    def playlists(self) -> Tuple[Playlist, ...]:
        return tuple(self._playlists)

    @property
    def playlist_membership(self) -> Mapping[str, FrozenSet[str]]:
        return MappingProxyType(dict(self._membership))

    @property
    def unfiled_songs(self) -> Tuple[Track, ...]:
        return tuple(self._unfiled)

    # ---------------------------------------------------------------------
    # Full load
    # ---------------------------------------------------------------------

    def _enter(self, state: LoadState, status: str):
        self.state = state
        self._report(status)

    def _report(self, status: str):
        self.status = status
        logger.debug(status)
        if self._progress_callback:
            self._progress_callback(status)

    async def load(self) -> None:
        """
        Run the full load sequence from the top.

        On failure the synchronizer ends in FAILED, the previously loaded
        views and the store are left as they were, and LibraryLoadError is
        raised. Calling load() again is the retry.
        """
        self.error = None
        try:
            liked = await self._load_liked_songs()
            playlists = await self._load_playlists()
            membership = await self._load_membership(playlists)

            self._enter(LoadState.COMPUTING, "Computing unfiled songs...")
            unfiled = compute_unfiled(liked, membership.values())
            sorted_playlists = sort_by_filing_count(playlists, self.store.get_filing_counts())
        except Exception as e:
            reason = getattr(e, "message", None) or str(e) or type(e).__name__
            failed_during = self.state.value
            self.state = LoadState.FAILED
            self.error = reason
            self.status = ""
            logger.error(f"Library load failed during {failed_during}: {reason}")
            raise LibraryLoadError(f"Failed to load library: {reason}") from e

        self._liked = liked
        self._playlists = sorted_playlists
        self._membership = membership
        self._unfiled = unfiled
        self.state = LoadState.READY
        self.status = ""
        logger.info(
            f"Library ready: {len(liked)} liked, {len(playlists)} playlists, "
            f"{len(unfiled)} unfiled"
        )

    async def _load_liked_songs(self) -> List[Track]:
        self._enter(LoadState.CHECKING_COUNT, "Checking library...")
        count = await self.catalog.count_liked_songs()

        self._enter(LoadState.LOADING_LIKED, "Loading liked songs...")
        cached = self.store.get_liked_songs(count)
        if cached is not None:
            logger.debug(f"Using cached liked songs ({count})")
            return cached

        def on_progress(loaded: int, total: int):
            self._report(f"Loading liked songs... {loaded}/{total}")
            if self._liked_progress_callback:
                self._liked_progress_callback(loaded, total)

        tracks = await self.catalog.fetch_all_liked_songs(on_progress)
        self.store.put_liked_songs(tracks, count)
        return tracks

    async def _load_playlists(self) -> List[Playlist]:
        self._enter(LoadState.LOADING_PLAYLISTS, "Loading playlists...")
        user_id = await self.catalog.current_user_id()
        playlists = await self.catalog.fetch_all_playlists()
        writable = [p for p in playlists if p.is_writable_by(user_id)]
        logger.debug(f"{len(writable)} of {len(playlists)} playlists are writable")
        return writable

    async def _load_membership(self, playlists: List[Playlist]) -> Dict[str, FrozenSet[str]]:
        self.state = LoadState.LOADING_MEMBERSHIP
        membership: Dict[str, FrozenSet[str]] = {}
        total = len(playlists)

        for i, playlist in enumerate(playlists, start=1):
            self._report(f"Loading playlist {i}/{total}: {playlist.name}")

            track_ids = self.store.get_playlist_members(playlist.id, playlist.snapshot_id)
            if track_ids is None:
                track_ids = await self.catalog.fetch_playlist_member_ids(playlist.id)
                self.store.put_playlist_members(playlist.id, track_ids, playlist.snapshot_id)

            membership[playlist.id] = frozenset(track_ids)

        return membership

    # ---------------------------------------------------------------------
    # Incremental updates after a filing decision
    # ---------------------------------------------------------------------

    def remove_from_unfiled(self, track_id: str) -> None:
        """Hide a track from the unfiled view. Persisted membership is untouched."""
        self._unfiled = [t for t in self._unfiled if t.id != track_id]

    def remove_from_liked(self, track_id: str) -> None:
        """Drop a track from the liked and unfiled views (after an unlike)."""
        self._liked = [t for t in self._liked if t.id != track_id]
        self.remove_from_unfiled(track_id)

    def resort_playlists(self) -> None:
        self._playlists = sort_by_filing_count(self._playlists, self.store.get_filing_counts())

    def add_playlist(self, playlist: Playlist) -> None:
        """Make a freshly created playlist selectable before any membership fetch."""
        self._playlists = [playlist] + [p for p in self._playlists if p.id != playlist.id]
        self._membership[playlist.id] = frozenset()

    def record_delivery(self, playlist_id: str, track_uris: Iterable[str]) -> None:
        """Reflect a confirmed remote add in the in-memory membership."""
        uris = set(track_uris)
        delivered_ids = {t.id for t in self._liked if t.uri in uris}
        if not delivered_ids:
            return
        current = self._membership.get(playlist_id, frozenset())
        self._membership[playlist_id] = current | delivered_ids
        self._unfiled = [t for t in self._unfiled if t.id not in delivered_ids]

    def pick_random_unfiled(
        self, exclude: Optional[str] = None, rng: Optional[random.Random] = None
    ) -> Optional[Track]:
        """A random unfiled track, optionally skipping one id. None when nothing is left."""
        candidates = [t for t in self._unfiled if t.id != exclude]
        if not candidates:
            return None
        return (rng or random).choice(candidates)
