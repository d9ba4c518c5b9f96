"""Shared fakes for the spotipy session and catalog."""

import pytest

from spotifiling.catalog_client import CatalogClient
from spotifiling.rate_limiter import RateLimiter
from spotifiling.store import LibraryStore


def make_track(n) -> dict:
    track_id = f"t{n}"
    return {
        "id": track_id,
        "uri": f"spotify:track:{track_id}",
        "name": f"Song {n}",
        "artists": [{"id": "ar1", "name": "Artist"}],
        "album": {"id": "al1", "name": "Album"},
        "duration_ms": 180000,
    }


def make_playlist(playlist_id: str, snapshot_id: str = "s1", owner: str = "me", **extra) -> dict:
    data = {
        "id": playlist_id,
        "name": extra.pop("name", playlist_id.upper()),
        "uri": f"spotify:playlist:{playlist_id}",
        "snapshot_id": snapshot_id,
        "owner": {"id": owner},
        "collaborative": False,
        "tracks": {"total": 0},
    }
    data.update(extra)
    return data


class FakeSpotify:
    """
    In-memory stand-in for spotipy.Spotify.

    Serves offset-paginated pages with ``next`` cursors and records every
    call in ``calls`` as (method, details...).
    """

    def __init__(self, liked=None, playlists=None, members=None, user_id="me"):
        self.liked = list(liked or [])
        self.playlists = list(playlists or [])
        self.members = {pid: list(ids) for pid, ids in (members or {}).items()}
        self.user_id = user_id
        self.calls = []
        self.added = []
        self.add_errors = {}
        self.unliked = []
        self.created = []

    def count(self, method: str) -> int:
        return sum(1 for c in self.calls if c[0] == method)

    def _page(self, kind, items, limit, offset, **extra):
        next_offset = offset + limit
        return {
            "items": items[offset:next_offset],
            "total": len(items),
            "limit": limit,
            "offset": offset,
            "next": f"{kind}?offset={next_offset}" if next_offset < len(items) else None,
            "_kind": kind,
            "_extra": extra,
        }

    def current_user(self):
        self.calls.append(("current_user",))
        return {"id": self.user_id, "display_name": "Me"}

    def current_user_saved_tracks(self, limit=20, offset=0, market=None):
        self.calls.append(("current_user_saved_tracks", limit, offset))
        items = [{"added_at": "2024-01-01T00:00:00Z", "track": t} for t in self.liked]
        return self._page("current_user_saved_tracks", items, limit, offset)

    def current_user_playlists(self, limit=50, offset=0):
        self.calls.append(("current_user_playlists", limit, offset))
        return self._page("current_user_playlists", self.playlists, limit, offset)

    def playlist_items(
        self, playlist_id, fields=None, limit=100, offset=0, market=None, additional_types=None
    ):
        self.calls.append(("playlist_items", playlist_id, offset))
        items = [{"track": {"id": i} if i else None} for i in self.members.get(playlist_id, [])]
        return self._page(
            "playlist_items", items, limit, offset, playlist_id=playlist_id, fields=fields
        )

    def next(self, results):
        self.calls.append(("next", results["_kind"]))
        offset = results["offset"] + results["limit"]
        method = getattr(self, results["_kind"])
        return method(limit=results["limit"], offset=offset, **results["_extra"])

    def playlist_add_items(self, playlist_id, items, position=None):
        self.calls.append(("playlist_add_items", playlist_id, list(items)))
        error = self.add_errors.get(playlist_id)
        if error is not None:
            raise error
        self.added.append((playlist_id, list(items)))
        return {"snapshot_id": "new"}

    def user_playlist_create(self, user, name, public=True, collaborative=False, description=""):
        self.calls.append(("user_playlist_create", user, name))
        playlist = make_playlist(f"new{len(self.created) + 1}", name=name, owner=user)
        self.created.append(playlist)
        return playlist

    def current_user_saved_tracks_delete(self, tracks=None):
        self.calls.append(("current_user_saved_tracks_delete", list(tracks)))
        self.unliked.extend(tracks)
        return None  # 204 No Content

    def playlist(self, playlist_id, fields=None, market=None, additional_types=("track",)):
        self.calls.append(("playlist", playlist_id))
        for p in self.playlists:
            if p["id"] == playlist_id:
                return p
        raise KeyError(playlist_id)


@pytest.fixture
def spotify():
    """A small library: 5 liked songs, two owned playlists and one followed."""
    return FakeSpotify(
        liked=[make_track(i) for i in range(1, 6)],
        playlists=[
            make_playlist("pa", "sa1", name="Chill"),
            make_playlist("pb", "sb1", name="Focus"),
            make_playlist("other", "so1", owner="someone-else", name="Followed"),
        ],
        members={"pa": ["t1"], "pb": ["t2", "t9"], "other": ["t3"]},
    )


@pytest.fixture
def catalog(spotify):
    return CatalogClient(spotify, rate_limiter=RateLimiter(10, 0), read_attempts=1)


@pytest.fixture
def memory_store():
    """In-memory store (no file persistence)."""
    return LibraryStore()


@pytest.fixture
def disk_store(tmp_path):
    return LibraryStore(str(tmp_path / "library"))
