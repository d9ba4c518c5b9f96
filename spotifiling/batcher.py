"""
Batched, durable delivery of filing decisions.

Filing a track only records a (track uri, playlist id) intent in the
store. Intents are delivered later, one add request per destination
playlist, when one of three triggers fires:

- a periodic timer (only when something is pending),
- the pending count reaching a threshold (checked on enqueue and after
  every flush that delivered something),
- session teardown (best effort).

All triggers go through the same single-flight flush(): a trigger that
arrives while a flush is running does nothing, and whatever is left over
is picked up by the next timer tick. Failed groups stay pending and are
retried as a whole, which gives at-least-once delivery.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Set

from .catalog_client import CatalogClient
from .errors import CatalogError
from .models import PendingWrite
from .store import LibraryStore

logger = logging.getLogger(__name__)

FLUSH_INTERVAL_SECONDS = 10.0
FLUSH_THRESHOLD = 20


@dataclass
class FlushResult:
    """Outcome of one flush attempt."""

    delivered: Dict[str, List[str]] = field(default_factory=dict)  # playlist_id -> uris
    failed: Dict[str, str] = field(default_factory=dict)  # playlist_id -> error message
    skipped: bool = False  # another flush was already running

    @property
    def delivered_count(self) -> int:
        return sum(len(uris) for uris in self.delivered.values())

    @property
    def ok(self) -> bool:
        return not self.failed


class WriteBatcher:
    """Owns the pending-write queue and the filing counts."""

    def __init__(
        self,
        catalog: CatalogClient,
        store: LibraryStore,
        flush_interval: float = FLUSH_INTERVAL_SECONDS,
        flush_threshold: int = FLUSH_THRESHOLD,
        on_delivered: Optional[Callable[[str, List[str]], None]] = None,
    ):
        self.catalog = catalog
        self.store = store
        self.flush_interval = flush_interval
        self.flush_threshold = flush_threshold
        self._on_delivered = on_delivered

        self.last_error: Optional[str] = None
        self._lock: Optional[asyncio.Lock] = None
        self._timer_task: Optional[asyncio.Task] = None
        self._stop_event: Optional[asyncio.Event] = None
        self._tasks: Set[asyncio.Task] = set()

    def _flush_lock(self) -> asyncio.Lock:
        if self._lock is None:
            self._lock = asyncio.Lock()
        return self._lock

    @property
    def pending_count(self) -> int:
        return self.store.pending_count()

    @property
    def is_flushing(self) -> bool:
        return self._lock is not None and self._lock.locked()

    def status_message(self) -> str:
        """Short indicator text, e.g. "3 changes pending"."""
        parts = []
        count = self.pending_count
        if count:
            parts.append(f"{count} change{'s' if count != 1 else ''} pending")
        if self.last_error:
            parts.append(f"last error: {self.last_error}")
        return " | ".join(parts)

    # ---------------------------------------------------------------------
    # Enqueue
    # ---------------------------------------------------------------------

    async def queue_write(self, track_uri: str, playlist_id: str) -> bool:
        """
        Durably record an intent to add ``track_uri`` to ``playlist_id``.

        Returns False when the same pair was already pending. Raises
        StorageError if the intent could not be persisted.
        """
        added = self.store.add_pending_write(track_uri, playlist_id)
        if added:
            logger.debug(f"Queued {track_uri} -> {playlist_id}")
            self._check_threshold()
        return added

    def discard_pending(self) -> int:
        """Drop every pending write without delivering it. Returns how many were dropped."""
        count = self.pending_count
        self.store.clear_pending_writes()
        self.last_error = None
        if count:
            logger.warning(f"Discarded {count} pending writes")
        return count

    def _check_threshold(self) -> None:
        if self.pending_count >= self.flush_threshold and not self.is_flushing:
            self._spawn(self._run_flush("threshold"))

    def _spawn(self, coro) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    # ---------------------------------------------------------------------
    # Flush
    # ---------------------------------------------------------------------

    async def flush(self) -> FlushResult:
        """
        Deliver everything pending, one add request per playlist.

        Returns immediately (skipped=True) if a flush is already running.
        """
        lock = self._flush_lock()
        if lock.locked():
            logger.debug("Flush already in progress, skipping")
            return FlushResult(skipped=True)

        async with lock:
            result = await self._deliver_pending()

        if result.delivered:
            self._check_threshold()
        return result

    async def _deliver_pending(self) -> FlushResult:
        writes = self.store.get_pending_writes()
        if not writes:
            return FlushResult()

        groups: Dict[str, List[PendingWrite]] = {}
        for write in writes:
            groups.setdefault(write.playlist_id, []).append(write)

        logger.info(f"Flushing {len(writes)} pending writes to {len(groups)} playlists")
        result = FlushResult()

        for playlist_id, group in groups.items():
            uris = [w.track_uri for w in group]
            try:
                await self.catalog.add_tracks_to_playlist(playlist_id, uris)
            except CatalogError as e:
                result.failed[playlist_id] = e.message
                logger.warning(
                    f"Failed to add {len(uris)} tracks to playlist {playlist_id}: {e.message}"
                )
                continue

            self.store.remove_pending_writes(group)
            self.store.increment_filing_count(playlist_id, len(uris))
            result.delivered[playlist_id] = uris
            if self._on_delivered:
                self._on_delivered(playlist_id, uris)

        self.last_error = list(result.failed.values())[-1] if result.failed else None
        logger.info(
            f"Flush done: {result.delivered_count} delivered, "
            f"{len(result.failed)} playlists failed, {self.pending_count} still pending"
        )
        return result

    async def _run_flush(self, trigger: str, if_pending: bool = False) -> Optional[FlushResult]:
        """Flush from a background trigger; failures are logged, never raised."""
        try:
            if if_pending and self.pending_count == 0:
                return None
            logger.debug(f"Flush triggered by {trigger}")
            return await self.flush()
        except Exception as e:
            self.last_error = str(e)
            logger.error(f"Flush ({trigger}) failed: {e}")
            return None

    # ---------------------------------------------------------------------
    # Lifecycle
    # ---------------------------------------------------------------------

    async def start(self) -> None:
        """Start the periodic flush timer."""
        if self._timer_task is not None and not self._timer_task.done():
            return
        self._stop_event = asyncio.Event()
        self._timer_task = asyncio.get_running_loop().create_task(self._run_timer())

    async def _run_timer(self) -> None:
        while not self._stop_event.is_set():
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.flush_interval)
            except asyncio.TimeoutError:
                await self._run_flush("timer", if_pending=True)

    async def close(self) -> None:
        """
        Stop the timer and make one last flush attempt.

        Pending writes are already on disk, so a teardown flush that does
        not finish loses nothing.
        """
        if self._timer_task is not None:
            self._stop_event.set()
            await self._timer_task
            self._timer_task = None

        # A finishing flush may spawn another threshold flush
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

        await self._run_flush("teardown", if_pending=True)

    async def __aenter__(self) -> "WriteBatcher":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()
        return False
