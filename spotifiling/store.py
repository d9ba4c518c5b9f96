"""
Local persistence for the library mirror, filing counts and pending writes.

Uses JSON files in a data directory for persistence across runs (optional).
Snapshot caches are best-effort: any read or write problem is logged and
treated as a cache miss. The pending-write queue is not best-effort,
because losing a queued intent loses a user's decision, so its failures
raise StorageError.
"""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from .errors import StorageError
from .models import LikedSongsSnapshot, PendingWrite, PlaylistMembership, Track

logger = logging.getLogger(__name__)

CACHE_FILE = "cache.json"
FILING_COUNTS_FILE = "filing_counts.json"
PENDING_WRITES_FILE = "pending_writes.json"


class LibraryStore:
    """
    Store for the liked-songs snapshot, playlist memberships, filing counts
    and the pending-write queue.

    For CLI: Pass data_dir to persist between runs.
    For tests: Use without data_dir for in-memory only (no disk writes).

    Each document is loaded lazily on first access.
    """

    def __init__(self, data_dir: Optional[str] = None):
        self._data_dir = Path(data_dir) if data_dir else None
        self._cache: Optional[dict] = None
        self._filing_counts: Optional[Dict[str, int]] = None
        # Insertion-ordered set: dict keys with None values
        self._pending: Optional[Dict[PendingWrite, None]] = None

    @property
    def data_dir(self) -> Optional[Path]:
        return self._data_dir

    # =========================================================================
    # File helpers
    # =========================================================================

    def _path(self, name: str) -> Optional[Path]:
        return self._data_dir / name if self._data_dir else None

    def _read_json(self, name: str):
        """Read a JSON document. Returns None when it does not exist yet."""
        path = self._path(name)
        if path is None or not path.exists():
            return None
        with open(path) as f:
            return json.load(f)

    def _write_json(self, name: str, data) -> None:
        """Atomically replace a JSON document."""
        path = self._path(name)
        if path is None:
            return
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=f".{name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w") as f:
                json.dump(data, f, indent=2)
            os.replace(tmp, path)
        except BaseException:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise

    # =========================================================================
    # Snapshot cache (best-effort)
    # =========================================================================

    def _get_cache(self) -> dict:
        if self._cache is None:
            try:
                data = self._read_json(CACHE_FILE) or {}
                if not isinstance(data, dict):
                    raise ValueError("cache document is not an object")
            except (json.JSONDecodeError, OSError, ValueError) as e:
                # Invalid or unreadable file, start fresh
                logger.warning(f"Ignoring unreadable library cache: {e}")
                data = {}
            data.setdefault("liked_songs", None)
            if not isinstance(data.get("playlists"), dict):
                data["playlists"] = {}
            self._cache = data
        return self._cache

    def _save_cache(self) -> None:
        try:
            self._write_json(CACHE_FILE, self._get_cache())
        except (OSError, TypeError, ValueError) as e:
            logger.warning(f"Could not save library cache: {e}")

    def get_liked_songs(self, current_total: int) -> Optional[List[Track]]:
        """Cached liked tracks, or None unless the cached total equals ``current_total``."""
        raw = self._get_cache().get("liked_songs")
        if not raw:
            return None
        try:
            snapshot = LikedSongsSnapshot.from_dict(raw)
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            logger.warning(f"Discarding malformed liked songs snapshot: {e}")
            return None
        if snapshot.total != current_total:
            logger.debug(
                f"Liked songs cache stale: cached {snapshot.total}, remote {current_total}"
            )
            return None
        return snapshot.tracks

    def put_liked_songs(self, tracks: List[Track], total: int) -> None:
        """Replace the liked-songs snapshot."""
        self._get_cache()["liked_songs"] = LikedSongsSnapshot(list(tracks), total).to_dict()
        self._save_cache()

    def get_playlist_members(self, playlist_id: str, snapshot_id: str) -> Optional[List[str]]:
        """Cached member ids, or None unless the stored snapshot token matches."""
        raw = self._get_cache()["playlists"].get(playlist_id)
        if not isinstance(raw, dict):
            return None
        try:
            membership = PlaylistMembership.from_dict(playlist_id, raw)
        except (AttributeError, KeyError, TypeError) as e:
            logger.warning(f"Discarding malformed membership for {playlist_id}: {e}")
            return None
        if membership.snapshot_id != snapshot_id:
            return None
        return list(membership.member_track_ids)

    def put_playlist_members(
        self, playlist_id: str, track_ids: Iterable[str], snapshot_id: str
    ) -> None:
        """Store a playlist's member ids under its snapshot token."""
        membership = PlaylistMembership(playlist_id, frozenset(track_ids), snapshot_id)
        self._get_cache()["playlists"][playlist_id] = membership.to_dict()
        self._save_cache()

    # =========================================================================
    # Filing counts (best-effort, never invalidated by snapshots)
    # =========================================================================

    def get_filing_counts(self) -> Dict[str, int]:
        if self._filing_counts is None:
            try:
                data = self._read_json(FILING_COUNTS_FILE) or {}
                self._filing_counts = {str(k): int(v) for k, v in data.items()}
            except (json.JSONDecodeError, OSError, AttributeError, TypeError, ValueError) as e:
                logger.warning(f"Ignoring unreadable filing counts: {e}")
                self._filing_counts = {}
        return dict(self._filing_counts)

    def get_filing_count(self, playlist_id: str) -> int:
        return self.get_filing_counts().get(playlist_id, 0)

    def increment_filing_count(self, playlist_id: str, by: int = 1) -> int:
        self.get_filing_counts()
        self._filing_counts[playlist_id] = self._filing_counts.get(playlist_id, 0) + by
        try:
            self._write_json(FILING_COUNTS_FILE, self._filing_counts)
        except OSError as e:
            logger.warning(f"Could not save filing counts: {e}")
        return self._filing_counts[playlist_id]

    # =========================================================================
    # Pending writes (failures are surfaced)
    # =========================================================================

    def _get_pending(self) -> Dict[PendingWrite, None]:
        if self._pending is None:
            try:
                data = self._read_json(PENDING_WRITES_FILE) or []
                self._pending = dict.fromkeys(PendingWrite.from_dict(w) for w in data)
            except (json.JSONDecodeError, OSError, KeyError, TypeError) as e:
                raise StorageError(f"Could not read pending writes: {e}") from e
        return self._pending

    def _save_pending(self, pending: Dict[PendingWrite, None]) -> None:
        try:
            self._write_json(PENDING_WRITES_FILE, [w.to_dict() for w in pending])
        except OSError as e:
            raise StorageError(f"Could not save pending writes: {e}") from e
        self._pending = pending

    def get_pending_writes(self) -> List[PendingWrite]:
        return list(self._get_pending())

    def pending_count(self) -> int:
        return len(self._get_pending())

    def add_pending_write(self, track_uri: str, playlist_id: str) -> bool:
        """Queue a write. Returns False if the pair was already pending."""
        write = PendingWrite(track_uri, playlist_id)
        pending = self._get_pending()
        if write in pending:
            return False
        updated = dict(pending)
        updated[write] = None
        # Only commit in memory once it is on disk
        self._save_pending(updated)
        return True

    def remove_pending_writes(self, writes: Iterable[PendingWrite]) -> None:
        to_remove = set(writes)
        pending = self._get_pending()
        self._save_pending({w: None for w in pending if w not in to_remove})

    def clear_pending_writes(self) -> None:
        self._save_pending({})

    # =========================================================================
    # Maintenance
    # =========================================================================

    def get_stats(self) -> dict:
        """Get store statistics."""
        cache = self._get_cache()
        liked = cache.get("liked_songs") or {}
        return {
            "cached_liked_songs": len(liked.get("tracks", [])),
            "cached_playlists": len(cache["playlists"]),
            "filing_counts": len(self.get_filing_counts()),
            "pending_writes": self.pending_count(),
        }
