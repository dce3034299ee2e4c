"""
Tests for the refresh scheduler and the event bus.
"""
import pytest

from livetv.services.events import CATALOG_UPDATED, EventBus
from livetv.services.scheduler_service import RefreshScheduler


class FakeCache:
    def __init__(self, epg_source=None, error=None):
        self._epg_source = epg_source
        self.error = error
        self.refreshes = 0

    def epg_source(self):
        return self._epg_source

    async def refresh(self, force=False):
        self.refreshes += 1
        if self.error is not None:
            raise self.error


class FakeGuide:
    def __init__(self):
        self.sources = []

    async def refresh(self, source):
        self.sources.append(source)
        return True


class TestRefreshScheduler:

    @pytest.mark.asyncio
    async def test_start_registers_jobs(self, settings):
        scheduler = RefreshScheduler(settings, FakeCache(), FakeGuide())
        assert scheduler.get_next_run_time() is None

        scheduler.start()
        try:
            assert scheduler.running
            assert scheduler.scheduler.get_job(RefreshScheduler.EPG_JOB_ID) is not None
            assert scheduler.scheduler.get_job(RefreshScheduler.CATALOG_JOB_ID) is not None
            assert scheduler.get_next_run_time() is not None

            scheduler.start()  # idempotent
            assert scheduler.running
        finally:
            scheduler.shutdown()

        assert not scheduler.running
        assert scheduler.get_next_run_time() is None

    @pytest.mark.asyncio
    async def test_epg_job_skipped_when_disabled(self, settings):
        settings.enable_epg = False
        scheduler = RefreshScheduler(settings, FakeCache(), FakeGuide())
        scheduler.start()
        try:
            assert scheduler.get_next_run_time() is None
            assert scheduler.get_next_run_time(RefreshScheduler.CATALOG_JOB_ID) is not None
        finally:
            scheduler.shutdown()

    @pytest.mark.asyncio
    async def test_epg_job_uses_cache_source(self, settings):
        guide = FakeGuide()
        scheduler = RefreshScheduler(settings, FakeCache(epg_source="http://epg.test/guide.xml"), guide)

        await scheduler._epg_job()
        assert guide.sources == ["http://epg.test/guide.xml"]

    @pytest.mark.asyncio
    async def test_epg_job_without_source(self, settings):
        guide = FakeGuide()
        scheduler = RefreshScheduler(settings, FakeCache(), guide)

        await scheduler._epg_job()
        assert guide.sources == []

    @pytest.mark.asyncio
    async def test_catalog_job_logs_failures(self, settings):
        cache = FakeCache(error=RuntimeError("boom"))
        scheduler = RefreshScheduler(settings, cache, FakeGuide())

        await scheduler._catalog_job()
        assert cache.refreshes == 1


class TestEventBus:

    def test_subscribers_called_in_order(self):
        bus = EventBus()
        seen = []
        bus.subscribe(CATALOG_UPDATED, lambda payload: seen.append(("a", payload)))
        bus.subscribe(CATALOG_UPDATED, lambda payload: seen.append(("b", payload)))

        bus.publish(CATALOG_UPDATED, 1)
        assert seen == [("a", 1), ("b", 1)]

    def test_failing_subscriber_does_not_stop_others(self):
        bus = EventBus()
        seen = []

        def broken(payload):
            raise ValueError("bad subscriber")

        bus.subscribe(CATALOG_UPDATED, broken)
        bus.subscribe(CATALOG_UPDATED, seen.append)
        bus.publish(CATALOG_UPDATED, "v2")

        assert seen == ["v2"]

    def test_unsubscribe(self):
        bus = EventBus()
        seen = []
        bus.subscribe(CATALOG_UPDATED, seen.append)
        bus.unsubscribe(CATALOG_UPDATED, seen.append)
        bus.unsubscribe(CATALOG_UPDATED, seen.append)

        bus.publish(CATALOG_UPDATED, 1)
        assert seen == []
