"""Unit tests for the scan manager."""

import asyncio
from datetime import datetime, timezone

import pytest

from catalogsync.core.scan_manager import ScanManager
from catalogsync.exceptions import AdapterError, ScanInProgressError


async def _wait_until_finished(manager, source_id, timeout=2.0):
    async def poll():
        while manager.get_status(source_id).is_running:
            await asyncio.sleep(0.01)

    await asyncio.wait_for(poll(), timeout)


@pytest.fixture
def blocking_adapter(fake_adapter):
    """FakeAdapter whose first page waits for ``release`` to be set."""

    class BlockingAdapter(fake_adapter):
        def __init__(self, *args, **kwargs):
            super().__init__(*args, **kwargs)
            self.started = asyncio.Event()
            self.release = asyncio.Event()

        async def get_library_items(self, library_id, pagination, since=None):
            self.started.set()
            await self.release.wait()
            return await super().get_library_items(library_id, pagination, since)

    return BlockingAdapter


class TestRunScan:
    """Test synchronous scans."""

    @pytest.mark.asyncio
    async def test_run_scan_completes(self, default_config, store, movie, fake_adapter):
        """Should scan the source, record state and close the adapter."""
        adapter = fake_adapter({"movies": [movie("1"), movie("2")]})
        manager = ScanManager(default_config, store, adapter_factory=lambda s, c: adapter)
        progress = []

        result = await manager.run_scan("src1", on_progress=progress.append)

        assert result.success
        assert result.items_added == 2
        assert adapter.closed
        state = manager.get_status("src1")
        assert state.status == "completed"
        assert state.result is result
        assert state.finished_at is not None
        assert state.progress is progress[-1]

    @pytest.mark.asyncio
    async def test_incremental_uses_last_scan_time(self, default_config, store, movie, fake_adapter):
        """Should pass the stored scan time as since."""
        adapter = fake_adapter({"movies": [movie("1")]})
        manager = ScanManager(default_config, store, adapter_factory=lambda s, c: adapter)

        await manager.run_scan("src1", incremental=True)
        assert adapter.page_requests[-1][2] is None
        last_scan = store.get_library_scan_time("src1", "movies")

        await manager.run_scan("src1", incremental=True)
        assert adapter.page_requests[-1][2] == last_scan

    @pytest.mark.asyncio
    async def test_selected_libraries(self, default_config, store, movie, fake_adapter):
        """Should restrict the scan to the given libraries."""
        adapter = fake_adapter({"movies": [movie("1")], "tv": [movie("2")]})
        manager = ScanManager(default_config, store, adapter_factory=lambda s, c: adapter)

        await manager.run_scan("src1", library_ids=["tv"])

        assert {lib for lib, _, _ in adapter.page_requests} == {"tv"}
        assert manager.get_status("src1").library_ids == ["tv"]

    @pytest.mark.asyncio
    async def test_unknown_source(self, default_config, store):
        """Should raise KeyError."""
        manager = ScanManager(default_config, store)

        with pytest.raises(KeyError):
            await manager.run_scan("nope")

    @pytest.mark.asyncio
    async def test_adapter_factory_error_fails_scan(self, default_config, store):
        """Should mark the scan failed when no adapter can be built."""

        def factory(source, config):
            raise ValueError("Unsupported source type")

        manager = ScanManager(default_config, store, adapter_factory=factory)

        result = await manager.run_scan("src1")

        assert not result.success
        assert manager.get_status("src1").status == "failed"
        assert not manager.get_status("src1").is_running

    @pytest.mark.asyncio
    async def test_failed_scan_status(self, default_config, store, movie, fake_adapter):
        """Should report failed when the source errors."""
        adapter = fake_adapter({"movies": [movie("1")]}, fail_at_start=0)
        manager = ScanManager(default_config, store, adapter_factory=lambda s, c: adapter)

        result = await manager.run_scan("src1")

        assert not result.success
        assert manager.get_status("src1").status == "failed"
        assert adapter.closed


class TestBackgroundScans:
    """Test background scans and cancellation."""

    @pytest.mark.asyncio
    async def test_second_scan_of_same_source_refused(
        self, default_config, store, movie, blocking_adapter
    ):
        """Should allow only one running scan per source."""
        adapter = blocking_adapter({"movies": [movie("1")]})
        manager = ScanManager(default_config, store, adapter_factory=lambda s, c: adapter)

        state = await manager.start_scan("src1")
        await asyncio.wait_for(adapter.started.wait(), 2.0)

        with pytest.raises(ScanInProgressError):
            await manager.start_scan("src1")

        adapter.release.set()
        await _wait_until_finished(manager, "src1")
        assert state.status == "completed"

        await manager.start_scan("src1")
        await _wait_until_finished(manager, "src1")

    @pytest.mark.asyncio
    async def test_cancel_running_scan(self, default_config, store, movie, blocking_adapter):
        """Should stop at the next checkpoint and report cancelled."""
        adapter = blocking_adapter({"movies": [movie("1"), movie("2")]})
        manager = ScanManager(default_config, store, adapter_factory=lambda s, c: adapter)

        await manager.start_scan("src1")
        await asyncio.wait_for(adapter.started.wait(), 2.0)

        assert manager.cancel_scan("src1") is True
        adapter.release.set()
        await _wait_until_finished(manager, "src1")

        state = manager.get_status("src1")
        assert state.status == "cancelled"
        assert state.result.cancelled
        assert store.get_media_items() == []
        assert manager.cancel_scan("src1") is False

    @pytest.mark.asyncio
    async def test_cancel_without_scan(self, default_config, store):
        """Should return False when nothing is running."""
        manager = ScanManager(default_config, store)

        assert manager.cancel_scan("src1") is False
        assert manager.get_status("src1") is None

    @pytest.mark.asyncio
    async def test_shutdown_cancels_running_scans(
        self, default_config, store, movie, blocking_adapter
    ):
        """Should cancel and wait for background scans."""
        adapter = blocking_adapter({"movies": [movie("1")]})
        manager = ScanManager(default_config, store, adapter_factory=lambda s, c: adapter)

        await manager.start_scan("src1")
        await asyncio.wait_for(adapter.started.wait(), 2.0)
        adapter.release.set()

        await manager.shutdown()

        assert not manager.get_status("src1").is_running
        assert adapter.closed


class TestScanAll:
    """Test scanning every source."""

    @pytest.mark.asyncio
    async def test_skips_disabled_sources(self, default_config, store, movie, fake_adapter):
        """Should scan enabled sources only."""
        default_config.sources[1].enabled = False
        manager = ScanManager(
            default_config,
            store,
            adapter_factory=lambda s, c: fake_adapter({"movies": [movie("1")]}, source_id=s.source_id),
        )

        results = await manager.scan_all()

        assert list(results) == ["src1"]
        assert results["src1"].success

    @pytest.mark.asyncio
    async def test_failed_source_does_not_stop_others(self, default_config, store, movie, fake_adapter):
        """Should report each source's result."""

        def factory(source, config):
            if source.source_id == "src1":
                return fake_adapter({"movies": [movie("1")]}, fail_at_start=0)
            return fake_adapter({"movies": [movie("2")]}, source_id=source.source_id)

        manager = ScanManager(default_config, store, adapter_factory=factory)

        results = await manager.scan_all()

        assert not results["src1"].success
        assert results["jf"].success
        assert [s.source_id for s in manager.list_status()] == ["src1", "jf"]


class TestPolling:
    """Test periodic incremental scans."""

    @pytest.mark.asyncio
    async def test_poll_once_runs_incremental_scans(self, default_config, store, movie, fake_adapter):
        """Should scan each enabled source incrementally from its last scan time."""
        adapters = {}

        def factory(source, config):
            adapters[source.source_id] = fake_adapter(
                {"movies": [movie("1")]}, source_id=source.source_id
            )
            return adapters[source.source_id]

        manager = ScanManager(default_config, store, adapter_factory=factory)
        await manager.run_scan("src1")
        last_scan = store.get_library_scan_time("src1", "movies")

        results = await manager.poll_once()

        assert list(results) == ["src1", "jf"]
        assert manager.get_status("src1").incremental
        assert adapters["src1"].page_requests[-1][2] == last_scan
        assert adapters["jf"].page_requests[-1][2] is None

    @pytest.mark.asyncio
    async def test_poll_skips_busy_source(self, default_config, store, movie, blocking_adapter, fake_adapter):
        """Should leave a source alone while its scan is running."""
        busy = blocking_adapter({"movies": [movie("1")]})

        def factory(source, config):
            if source.source_id == "src1":
                return busy
            return fake_adapter({"movies": [movie("2")]}, source_id=source.source_id)

        manager = ScanManager(default_config, store, adapter_factory=factory)
        await manager.start_scan("src1")
        await asyncio.wait_for(busy.started.wait(), 2.0)

        results = await manager.poll_once()

        assert list(results) == ["jf"]
        busy.release.set()
        await _wait_until_finished(manager, "src1")

    @pytest.mark.asyncio
    async def test_polling_loop_and_shutdown(self, default_config, store, movie, fake_adapter):
        """Should keep polling until shutdown."""
        default_config.sources[1].enabled = False
        adapter = fake_adapter({"movies": [movie("1")]})
        manager = ScanManager(default_config, store, adapter_factory=lambda s, c: adapter)

        manager.start_polling(0.01)

        async def wait_for_two_scans():
            while len(adapter.page_requests) < 2:
                await asyncio.sleep(0.01)

        await asyncio.wait_for(wait_for_two_scans(), 2.0)
        await manager.shutdown()

        assert manager._poll_task is None
        assert store.get_source_scan_time("src1") is not None


class TestIncrementalAfterPartialFailure:
    """Test that a failed library does not lose changes to later incremental scans."""

    @pytest.mark.asyncio
    async def test_changes_in_failed_library_are_picked_up_later(
        self, default_config, store, movie, fake_adapter
    ):
        """Should re-fetch a library from its own last success after it failed."""

        class FlakyAdapter(fake_adapter):
            failing_library = None

            async def get_library_items(self, library_id, pagination, since=None):
                if library_id == self.failing_library:
                    self.page_requests.append((library_id, pagination.start, since))
                    raise AdapterError("shows request timed out")
                return await super().get_library_items(library_id, pagination, since)

        adapter = FlakyAdapter({"movies": [movie("m1")], "shows": [movie("s1")]})
        manager = ScanManager(default_config, store, adapter_factory=lambda s, c: adapter)
        await manager.run_scan("src1")

        adapter.items["shows"] = [
            movie("s1", title="Renamed", modified_at=datetime.now(timezone.utc))
        ]
        adapter.failing_library = "shows"
        partial = await manager.run_scan("src1", incremental=True)
        assert not partial.success

        adapter.failing_library = None
        result = await manager.run_scan("src1", incremental=True)

        assert result.success
        titles = {i.provider_item_id: i.title for i in store.get_media_items()}
        assert titles["s1"] == "Renamed"
        assert titles["m1"] == "Movie m1"


@pytest.mark.asyncio
async def test_close_failure_does_not_leave_scan_running(default_config, store, movie, fake_adapter):
    """Should finish the scan state even when closing the adapter fails."""

    class BadCloseAdapter(fake_adapter):
        async def close(self):
            raise RuntimeError("client already closed")

    manager = ScanManager(
        default_config,
        store,
        adapter_factory=lambda s, c: BadCloseAdapter({"movies": [movie("1")]}),
    )

    result = await manager.run_scan("src1")

    assert result.success
    assert manager.get_status("src1").status == "completed"
    assert (await manager.run_scan("src1")).success
