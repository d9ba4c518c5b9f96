"""
spotifiling - File your Spotify liked songs into playlists.

Features:
- Local cache of liked songs and playlist membership (snapshot-validated)
- Unfiled-songs view: liked tracks that are in none of your playlists
- Batched, crash-safe playlist writes (timer, threshold and teardown flush)
- Playlists ranked by how often you file into them
"""

import logging

from .auth import open_spotify_session
from .batcher import FlushResult, WriteBatcher
from .catalog_client import CatalogClient
from .errors import (
    CatalogError,
    LibraryLoadError,
    RateLimited,
    SpotifilingError,
    StorageError,
    TerminalRequestError,
    TransientError,
    UnknownPlaylistError,
)
from .session import FilingSession
from .store import LibraryStore
from .synchronizer import LibrarySynchronizer, LoadState


__all__ = [
    "CatalogClient",
    "CatalogError",
    "FilingSession",
    "FlushResult",
    "LibraryLoadError",
    "LibraryStore",
    "LibrarySynchronizer",
    "LoadState",
    "RateLimited",
    "SpotifilingError",
    "StorageError",
    "TerminalRequestError",
    "TransientError",
    "UnknownPlaylistError",
    "WriteBatcher",
    "open_spotify_session",
]

__version__ = "1.0.0"

logging.getLogger(__name__).addHandler(logging.NullHandler())
