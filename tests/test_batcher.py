import asyncio

import pytest
from spotipy.exceptions import SpotifyException

from spotifiling.batcher import WriteBatcher
from spotifiling.errors import StorageError, TerminalRequestError, TransientError
from spotifiling.models import PendingWrite
from spotifiling.store import LibraryStore


class GatedCatalog:
    """Catalog whose add calls block until ``gate`` is set."""

    def __init__(self):
        self.gate = asyncio.Event()
        self.started = asyncio.Event()
        self.calls = []

    async def add_tracks_to_playlist(self, playlist_id, uris):
        self.calls.append((playlist_id, list(uris)))
        self.started.set()
        await self.gate.wait()


def test_queue_write_is_idempotent(catalog, memory_store):
    batcher = WriteBatcher(catalog, memory_store)

    async def run():
        assert await batcher.queue_write("spotify:track:t1", "pa") is True
        assert await batcher.queue_write("spotify:track:t1", "pa") is False

    asyncio.run(run())
    assert batcher.pending_count == 1


def test_flush_groups_by_playlist(spotify, catalog, memory_store):
    delivered = []
    batcher = WriteBatcher(catalog, memory_store, on_delivered=lambda pid, uris: delivered.append((pid, uris)))

    async def run():
        await batcher.queue_write("spotify:track:t3", "pa")
        await batcher.queue_write("spotify:track:t4", "pb")
        await batcher.queue_write("spotify:track:t5", "pa")
        return await batcher.flush()

    result = asyncio.run(run())

    assert spotify.added == [
        ("pa", ["spotify:track:t3", "spotify:track:t5"]),
        ("pb", ["spotify:track:t4"]),
    ]
    assert result.ok
    assert result.delivered_count == 3
    assert delivered == [("pa", ["spotify:track:t3", "spotify:track:t5"]), ("pb", ["spotify:track:t4"])]
    assert memory_store.pending_count() == 0
    assert memory_store.get_filing_counts() == {"pa": 2, "pb": 1}


def test_flush_with_nothing_pending_makes_no_calls(spotify, catalog, memory_store):
    result = asyncio.run(WriteBatcher(catalog, memory_store).flush())

    assert result.delivered == {}
    assert spotify.count("playlist_add_items") == 0


def test_failed_group_stays_pending_and_is_retried(spotify, catalog, memory_store):
    spotify.add_errors["pa"] = SpotifyException(503, -1, "unavailable")
    batcher = WriteBatcher(catalog, memory_store)

    async def run():
        await batcher.queue_write("spotify:track:t3", "pa")
        first = await batcher.flush()
        assert "pa" in first.failed
        assert memory_store.get_pending_writes() == [PendingWrite("spotify:track:t3", "pa")]
        assert memory_store.get_filing_count("pa") == 0

        del spotify.add_errors["pa"]
        return await batcher.flush()

    second = asyncio.run(run())

    assert second.delivered == {"pa": ["spotify:track:t3"]}
    assert spotify.count("playlist_add_items") == 2
    assert memory_store.pending_count() == 0
    assert memory_store.get_filing_count("pa") == 1
    assert batcher.last_error is None


def test_partial_failure_is_isolated_per_playlist(spotify, catalog, memory_store):
    spotify.add_errors["pb"] = SpotifyException(403, -1, "forbidden")
    batcher = WriteBatcher(catalog, memory_store)

    async def run():
        await batcher.queue_write("spotify:track:t3", "pa")
        await batcher.queue_write("spotify:track:t4", "pb")
        return await batcher.flush()

    result = asyncio.run(run())

    assert result.delivered == {"pa": ["spotify:track:t3"]}
    assert list(result.failed) == ["pb"]
    assert memory_store.get_pending_writes() == [PendingWrite("spotify:track:t4", "pb")]
    assert memory_store.get_filing_counts() == {"pa": 1}
    assert "403" in batcher.last_error
    assert batcher.status_message() == f"1 change pending | last error: {batcher.last_error}"


def test_concurrent_flush_is_skipped(memory_store):
    async def run():
        catalog = GatedCatalog()
        batcher = WriteBatcher(catalog, memory_store)
        await batcher.queue_write("u1", "p1")

        first = asyncio.create_task(batcher.flush())
        await catalog.started.wait()
        assert batcher.is_flushing

        second = await batcher.flush()
        catalog.gate.set()
        return catalog, second, await first

    catalog, second, first = asyncio.run(run())

    assert second.skipped is True
    assert first.delivered == {"p1": ["u1"]}
    assert len(catalog.calls) == 1


def test_threshold_spawns_background_flush(spotify, catalog, memory_store):
    batcher = WriteBatcher(catalog, memory_store, flush_interval=60, flush_threshold=2)

    async def run():
        await batcher.queue_write("spotify:track:t3", "pa")
        await asyncio.sleep(0)
        assert spotify.count("playlist_add_items") == 0

        await batcher.queue_write("spotify:track:t4", "pa")
        await asyncio.gather(*list(batcher._tasks))

    asyncio.run(run())

    assert spotify.added == [("pa", ["spotify:track:t3", "spotify:track:t4"])]
    assert memory_store.pending_count() == 0


def test_timer_flushes_pending_writes(spotify, catalog, memory_store):
    batcher = WriteBatcher(catalog, memory_store, flush_interval=0.01, flush_threshold=100)

    async def run():
        await batcher.start()
        await batcher.queue_write("spotify:track:t3", "pa")
        for _ in range(100):
            if memory_store.pending_count() == 0:
                break
            await asyncio.sleep(0.01)
        await batcher.close()

    asyncio.run(run())

    assert spotify.added == [("pa", ["spotify:track:t3"])]


def test_timer_does_not_call_remote_when_idle(spotify, catalog, memory_store):
    batcher = WriteBatcher(catalog, memory_store, flush_interval=0.01)

    async def run():
        async with batcher:
            await asyncio.sleep(0.05)

    asyncio.run(run())

    assert spotify.count("playlist_add_items") == 0


def test_close_flushes_remaining_writes(spotify, catalog, memory_store):
    batcher = WriteBatcher(catalog, memory_store, flush_interval=60)

    async def run():
        async with batcher:
            await batcher.queue_write("spotify:track:t5", "pb")

    asyncio.run(run())

    assert spotify.added == [("pb", ["spotify:track:t5"])]


def test_failed_teardown_keeps_writes_for_next_run(spotify, catalog, tmp_path):
    spotify.add_errors["pb"] = TransientError("Network error: timed out")
    store = LibraryStore(str(tmp_path))
    batcher = WriteBatcher(catalog, store, flush_interval=60)

    async def run():
        async with batcher:
            await batcher.queue_write("spotify:track:t5", "pb")

    asyncio.run(run())

    assert LibraryStore(str(tmp_path)).get_pending_writes() == [PendingWrite("spotify:track:t5", "pb")]
    assert batcher.last_error == "Network error: timed out"


def test_background_flush_swallows_storage_errors(catalog, memory_store, monkeypatch):
    batcher = WriteBatcher(catalog, memory_store)

    def broken():
        raise StorageError("Failed to read pending writes")

    monkeypatch.setattr(memory_store, "pending_count", broken)

    assert asyncio.run(batcher._run_flush("timer", if_pending=True)) is None
    assert batcher.last_error == "Failed to read pending writes"


def test_terminal_failures_stay_pending_until_discarded(spotify, catalog, memory_store):
    spotify.add_errors["pa"] = TerminalRequestError(404, "API error: 404 not found")
    batcher = WriteBatcher(catalog, memory_store)

    async def run():
        await batcher.queue_write("spotify:track:t3", "pa")
        await batcher.flush()
        await batcher.flush()

    asyncio.run(run())
    assert memory_store.pending_count() == 1

    assert batcher.discard_pending() == 1
    assert memory_store.pending_count() == 0
    assert batcher.last_error is None
    assert batcher.status_message() == ""


def test_queue_write_surfaces_storage_errors(catalog, memory_store, monkeypatch):
    batcher = WriteBatcher(catalog, memory_store)

    def _fail(*_args, **_kwargs):
        raise StorageError("disk full")

    monkeypatch.setattr(memory_store, "add_pending_write", _fail)

    with pytest.raises(StorageError):
        asyncio.run(batcher.queue_write("u", "p"))
