"""
Data models for the liked-songs library and playlist membership.

Uses dataclasses for clean, minimal definitions with
Spotify factory methods and dict round-tripping for the local store.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import FrozenSet, Iterable, List, NamedTuple, Optional, Tuple


@dataclass(frozen=True)
class Track:
    """A liked track. Identity is ``id``; ``uri`` is what write requests use."""

    id: str
    uri: str
    name: str = ""
    artists: Tuple[str, ...] = ()
    album: str = ""
    duration_ms: int = 0
    added_at: Optional[str] = None

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "id": self.id,
            "uri": self.uri,
            "name": self.name,
            "artists": list(self.artists),
            "album": self.album,
            "duration_ms": self.duration_ms,
            "added_at": self.added_at,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Track":
        """Create from dictionary."""
        return cls(
            id=data["id"],
            uri=data.get("uri") or f"spotify:track:{data['id']}",
            name=data.get("name", ""),
            artists=tuple(data.get("artists", [])),
            album=data.get("album", ""),
            duration_ms=data.get("duration_ms", 0),
            added_at=data.get("added_at"),
        )

    @classmethod
    def from_spotify(cls, spotify_track: dict, added_at: Optional[str] = None) -> "Track":
        """Create Track from a Spotify track object (the ``track`` of a saved item)."""
        return cls(
            id=spotify_track["id"],
            uri=spotify_track.get("uri") or f"spotify:track:{spotify_track['id']}",
            name=spotify_track.get("name", ""),
            artists=tuple(a["name"] for a in spotify_track.get("artists", [])),
            album=(spotify_track.get("album") or {}).get("name", ""),
            duration_ms=spotify_track.get("duration_ms", 0),
            added_at=added_at,
        )

    @property
    def artist_names(self) -> str:
        return ", ".join(self.artists)


@dataclass(frozen=True)
class Playlist:
    """A playlist as listed by the catalog."""

    id: str
    name: str
    snapshot_id: str
    uri: str = ""
    total: int = 0
    owner_id: Optional[str] = None
    collaborative: bool = False

    def is_writable_by(self, user_id: Optional[str]) -> bool:
        """Whether ``user_id`` may add tracks to this playlist."""
        if self.collaborative:
            return True
        return user_id is not None and self.owner_id == user_id

    @classmethod
    def from_spotify(cls, spotify_playlist: dict) -> "Playlist":
        """Create Playlist from Spotify API response."""
        return cls(
            id=spotify_playlist["id"],
            name=spotify_playlist.get("name", ""),
            snapshot_id=spotify_playlist.get("snapshot_id", ""),
            uri=spotify_playlist.get("uri", ""),
            total=(spotify_playlist.get("tracks") or {}).get("total", 0),
            owner_id=(spotify_playlist.get("owner") or {}).get("id"),
            collaborative=bool(spotify_playlist.get("collaborative", False)),
        )


@dataclass
class LikedSongsSnapshot:
    """Cached copy of the liked-songs library, valid while ``total`` matches."""

    tracks: List[Track]
    total: int
    fetched_at: str = field(default_factory=lambda: datetime.now().isoformat())

    def to_dict(self) -> dict:
        return {
            "tracks": [t.to_dict() for t in self.tracks],
            "total": self.total,
            "fetched_at": self.fetched_at,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "LikedSongsSnapshot":
        return cls(
            tracks=[Track.from_dict(t) for t in data.get("tracks", [])],
            total=int(data["total"]),
            fetched_at=data.get("fetched_at") or datetime.now().isoformat(),
        )


@dataclass(frozen=True)
class PlaylistMembership:
    """Member track ids of one playlist, valid while ``snapshot_id`` matches."""

    playlist_id: str
    member_track_ids: FrozenSet[str]
    snapshot_id: str

    def to_dict(self) -> dict:
        # Sorted so the cache file is stable between runs
        return {
            "track_ids": sorted(self.member_track_ids),
            "snapshot_id": self.snapshot_id,
        }

    @classmethod
    def from_dict(cls, playlist_id: str, data: dict) -> "PlaylistMembership":
        return cls(
            playlist_id=playlist_id,
            member_track_ids=frozenset(data.get("track_ids", [])),
            snapshot_id=data["snapshot_id"],
        )


class PendingWrite(NamedTuple):
    """A queued intent to add ``track_uri`` to ``playlist_id``."""

    track_uri: str
    playlist_id: str

    def to_dict(self) -> dict:
        return {"track_uri": self.track_uri, "playlist_id": self.playlist_id}

    @classmethod
    def from_dict(cls, data: dict) -> "PendingWrite":
        return cls(track_uri=data["track_uri"], playlist_id=data["playlist_id"])


def sort_by_filing_count(playlists: Iterable[Playlist], counts: dict) -> List[Playlist]:
    """Most-filed playlists first. Ties keep their current relative order."""
    # sorted() is stable, so equal counts never swap
    return sorted(playlists, key=lambda p: counts.get(p.id, 0), reverse=True)
