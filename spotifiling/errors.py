"""
Exception hierarchy for spotifiling.

Catalog errors are classified by how a caller should react to them:
retry later, back off, or give up. Storage errors are only raised for the
pending-write queue; snapshot caches degrade to a refetch instead.
"""

from typing import Optional


class SpotifilingError(Exception):
    """Base exception for all spotifiling errors."""

    def __init__(self, message: str, *args):
        super().__init__(message, *args)
        self.message = message


class CatalogError(SpotifilingError):
    """A call to the remote catalog failed."""


class TransientError(CatalogError):
    """Network failure or 5xx response. Safe to retry later."""


class RateLimited(CatalogError):
    """The catalog asked us to slow down (HTTP 429)."""

    def __init__(self, retry_after: Optional[float] = None, message: Optional[str] = None):
        if message is None:
            if retry_after is not None:
                message = f"Rate limited. Retry after {retry_after:g}s"
            else:
                message = "Rate limited"
        super().__init__(message)
        self.retry_after = retry_after


class TerminalRequestError(CatalogError):
    """A 4xx response other than 429. Retrying the same request will not help."""

    def __init__(self, status: int, message: Optional[str] = None):
        super().__init__(message or f"API error: {status}")
        self.status = status


class StorageError(SpotifilingError):
    """Local persistence of the pending-write queue failed."""


class LibraryLoadError(SpotifilingError):
    """A full library load failed; the synchronizer is in the FAILED state."""


class UnknownPlaylistError(SpotifilingError):
    """A playlist reference matched none of the writable playlists."""

    def __init__(self, ref: str):
        super().__init__(f"Unknown or read-only playlist: {ref}")
        self.ref = ref
