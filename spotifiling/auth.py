"""
Authentication helper for Spotify.
"""

import logging
import os
from typing import Optional

import requests
import spotipy
from spotipy.oauth2 import SpotifyOAuth

logger = logging.getLogger(__name__)

SPOTIFY_SCOPES = (
    "user-library-read "
    "user-library-modify "
    "playlist-read-private "
    "playlist-read-collaborative "
    "playlist-modify-private "
    "playlist-modify-public"
)


def open_spotify_session(
    config: dict, cache_path: Optional[str] = None
) -> spotipy.Spotify:
    """
    Open a Spotify session using OAuth.

    Config can contain:
        - client_id: Spotify app client ID
        - client_secret: Spotify app client secret
        - redirect_uri: OAuth redirect URI (default: http://127.0.0.1:8888/callback)
        - open_browser: Whether to open browser for auth (default: True)

    The client is built by spotify_client(), so HTTP errors reach the
    caller with their real status and headers.

    Args:
        config: Configuration dictionary
        cache_path: Path to store OAuth token cache
    """
    # Allow environment variables to override config
    client_id = config.get("client_id") or os.environ.get("SPOTIFY_CLIENT_ID")
    client_secret = config.get("client_secret") or os.environ.get(
        "SPOTIFY_CLIENT_SECRET"
    )
    redirect_uri = config.get("redirect_uri") or os.environ.get(
        "SPOTIFY_REDIRECT_URI", "http://127.0.0.1:8888/callback"
    )

    if not client_id or not client_secret:
        raise ValueError(
            "Spotify client_id and client_secret are required. "
            "Set them in config.yml or via SPOTIFY_CLIENT_ID and "
            "SPOTIFY_CLIENT_SECRET env vars. "
            "Get them from https://developer.spotify.com/dashboard"
        )

    auth_manager = SpotifyOAuth(
        client_id=client_id,
        client_secret=client_secret,
        redirect_uri=redirect_uri,
        scope=SPOTIFY_SCOPES,
        open_browser=config.get("open_browser", True),
        cache_path=cache_path,
    )

    return spotify_client(auth_manager=auth_manager)


def spotify_client(auth_manager=None, auth: Optional[str] = None) -> spotipy.Spotify:
    """
    Build a spotipy client without spotipy's urllib3 retry adapter.

    With the adapter mounted, a 429 or 5xx either gets retried inside
    spotipy or comes out as a headerless ``SpotifyException(429)`` once
    retries run out. A plain requests session makes every error response
    surface as ``SpotifyException(status, headers=...)`` instead, which
    retry_utils.classify_error relies on.
    """
    return spotipy.Spotify(
        auth=auth, auth_manager=auth_manager, requests_session=requests.Session()
    )
