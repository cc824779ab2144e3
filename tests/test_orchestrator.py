"""
Tests for pipeline runs and the single-flight orchestrator
"""
import asyncio
from datetime import datetime, timezone

import pytest

from conftest import FakeScraper, make_project, page_of, upstream_failure
from analytics import AnalyticsProcessor
from config import Settings
from extraction import GenomeExtractor
from models import ExtractionMode, MasterDataset, RunOutcome, TaxonomicDomain
from orchestrator import GenomePipeline, PipelineOrchestrator, build_orchestrator, next_scheduled_run
from storage import GenomeDataStore, MemoryObjectStore
from storage.genome_store import CACHE_OVERVIEW, CURRENT_ANALYTICS_KEY, MASTER_KEY
from utils.exceptions import PipelineBusyError, StorageError


A = TaxonomicDomain.ARCHAEA
B = TaxonomicDomain.BACTERIA


class FailingMasterStore(MemoryObjectStore):
    def put(self, key, data, content_type="application/json"):
        if key == MASTER_KEY:
            raise StorageError("disk full", key=key)
        super().put(key, data, content_type)


class BlockingScraper(FakeScraper):
    """Holds the first page until released, so a run stays in flight."""

    def __init__(self, pages):
        super().__init__(pages)
        self.release = asyncio.Event()

    async def fetch_page(self, domain, page_number, page_size=None, extracted_at=None):
        await self.release.wait()
        return await super().fetch_page(domain, page_number, page_size, extracted_at)


def _pipeline(scraper, object_store, cache, extraction_settings, storage_settings, analytics_settings):
    data_store = GenomeDataStore(object_store, cache, storage_settings)
    extractor = GenomeExtractor(scraper, data_store, extraction_settings, page_size=50)
    return GenomePipeline(extractor, data_store, AnalyticsProcessor(data_store, analytics_settings))


@pytest.fixture
def build(object_store, cache, extraction_settings, storage_settings, analytics_settings):
    def _build(scraper, store=None):
        return _pipeline(
            scraper,
            store or object_store,
            cache,
            extraction_settings,
            storage_settings,
            analytics_settings,
        )

    return _build


class TestGenomePipeline:
    """单次运行"""

    @pytest.mark.asyncio
    async def test_first_run_builds_master_and_snapshot(self, build, cache):
        pages = {
            (B, 1): page_of(B, "b", 3, 3),
            (A, 1): page_of(A, "a", 1, 1),
        }
        pipeline = build(FakeScraper(pages))

        report = await pipeline.run(ExtractionMode.INCREMENTAL)

        assert report.status == RunOutcome.SUCCESS
        assert report.records_extracted == 4
        assert report.new_count == 4
        assert report.updated_count == 0
        assert report.total_projects == 4
        assert report.overview_deltas["totalProjects"] == 4

        overview = await pipeline.store.get_overview()
        assert overview.bacteria_projects == 3
        assert overview.archaea_projects == 1
        assert cache.get(CACHE_OVERVIEW)["total_projects"] == 4

        history = await pipeline.store.load_run_history()
        assert history.total_runs == 1
        assert history.runs[0].status == RunOutcome.SUCCESS

        activity = await pipeline.store.get_recent_activity()
        assert [event.type for event in activity] == ["analysis", "processing", "extraction"]
        health = await pipeline.store.get_pipeline_health()
        assert health.status == "healthy"
        assert health.extraction_count == 1

    @pytest.mark.asyncio
    async def test_partial_run_still_reconciles(self, build):
        pages = {
            (A, 1): page_of(A, "a1-", 50, 500),
            (A, 2): upstream_failure(A, 2),
            (B, 1): page_of(B, "b1-", 50, 100),
            (B, 2): page_of(B, "b2-", 50, 100),
        }
        pipeline = build(FakeScraper(pages))

        report = await pipeline.run(ExtractionMode.FULL)

        assert report.status == RunOutcome.PARTIAL
        assert report.new_count == 150
        assert report.per_domain_stats["Archaea"].stopped_early
        overview = await pipeline.store.get_overview()
        assert overview.archaea_projects == 50
        assert overview.bacteria_projects == 100

    @pytest.mark.asyncio
    async def test_second_run_counts_updates(self, build):
        first = build(FakeScraper({(B, 1): page_of(B, "b", 2, 2)}))
        await first.run()

        changed = make_project("b0", gene_count=999)
        second = build(FakeScraper({(B, 1): page_of(B, "b", 2, 2)}))
        second.extractor.scraper.pages[(B, 1)].projects[0] = changed

        report = await second.run()

        assert report.new_count == 0
        assert report.updated_count == 1
        assert report.overview_deltas["totalProjects"] == 0
        assert (await second.store.load_run_history()).total_runs == 2

    @pytest.mark.asyncio
    async def test_master_write_failure_is_fatal(self, build, cache):
        store = FailingMasterStore()
        good = build(FakeScraper({(B, 1): page_of(B, "b", 1, 1)}), store=store)
        store.put(CURRENT_ANALYTICS_KEY, b'{"overview": {"total_projects": 7}}')

        report = await good.run()

        assert report.status == RunOutcome.FAILURE
        assert report.new_count == 0
        assert any("disk full" in error for error in report.errors)
        assert (await good.store.load_current_snapshot()).overview.total_projects == 7
        assert cache.get(CACHE_OVERVIEW) is None
        history = await good.store.load_run_history()
        assert history.runs[-1].status == RunOutcome.FAILURE

    @pytest.mark.asyncio
    async def test_corrupt_master_aborts_without_overwrite(self, build, object_store):
        object_store.put(MASTER_KEY, b"not json")
        pipeline = build(FakeScraper({(B, 1): page_of(B, "b", 1, 1)}))

        report = await pipeline.run()

        assert report.status == RunOutcome.FAILURE
        assert object_store.get(MASTER_KEY) == b"not json"

    @pytest.mark.asyncio
    async def test_extraction_crash_is_recorded_in_history(self, build):
        pipeline = build(FakeScraper({}))

        async def explode(*args, **kwargs):
            raise RuntimeError("scraper wiring broken")

        pipeline.extractor.extract = explode

        with pytest.raises(RuntimeError):
            await pipeline.run(run_id="run_crashed")

        history = await pipeline.store.load_run_history()
        assert [run.run_id for run in history.runs] == ["run_crashed"]
        assert history.runs[0].status == RunOutcome.FAILURE
        assert history.runs[0].completed_at is not None

        await pipeline.store.store_snapshot(
            await pipeline.analytics.build_snapshot(MasterDataset.empty(), history, now=history.runs[0].completed_at)
        )
        health = await pipeline.store.get_pipeline_health()
        assert health.extraction_count == 1
        assert health.error_rate == 1.0
        activity = {event.id: event for event in await pipeline.store.get_recent_activity()}
        assert activity["processing_run_crashed"].status == "error"

    @pytest.mark.asyncio
    async def test_aclose_closes_scraper(self, build):
        scraper = FakeScraper({})
        await build(scraper).aclose()
        assert scraper.closed


class TestPipelineOrchestrator:
    """单飞控制与运行句柄"""

    @pytest.mark.asyncio
    async def test_trigger_returns_observable_handle(self, build):
        orchestrator = PipelineOrchestrator(build(FakeScraper({(B, 1): page_of(B, "b", 2, 2)})))

        handle = orchestrator.trigger(full_extraction=True)
        assert handle.status().state in ("queued", "running")

        status = await handle.wait()

        assert status.state == "completed"
        assert status.mode == ExtractionMode.FULL
        assert status.report.new_count == 2
        assert orchestrator.get_run_status(handle.run_id).state == "completed"
        assert not orchestrator.is_running
        events = [event["event"] for event in orchestrator.list_events(handle.run_id)]
        assert events == ["queued", "running", "completed"]

    @pytest.mark.asyncio
    async def test_second_trigger_while_busy_is_rejected(self, build):
        scraper = BlockingScraper({(B, 1): page_of(B, "b", 1, 1)})
        orchestrator = PipelineOrchestrator(build(scraper))

        handle = orchestrator.trigger()
        with pytest.raises(PipelineBusyError) as excinfo:
            orchestrator.trigger(full_extraction=True)
        assert excinfo.value.active_run_id == handle.run_id

        assert await orchestrator.run_scheduled() is None

        scraper.release.set()
        status = await handle.wait()
        assert status.state == "completed"

        follow_up = orchestrator.trigger()
        assert (await follow_up.wait()).state == "completed"

    @pytest.mark.asyncio
    async def test_scheduled_run_is_incremental(self, build):
        orchestrator = PipelineOrchestrator(build(FakeScraper({})))

        status = await orchestrator.run_scheduled()

        assert status.trigger == "scheduled"
        assert status.mode == ExtractionMode.INCREMENTAL
        assert status.state == "completed"

    @pytest.mark.asyncio
    async def test_storage_failure_marks_run_failed(self, build):
        orchestrator = PipelineOrchestrator(build(FakeScraper({(B, 1): page_of(B, "b", 1, 1)}), store=FailingMasterStore()))

        status = await orchestrator.trigger().wait()

        assert status.state == "failed"
        assert status.report.status == RunOutcome.FAILURE
        assert not orchestrator.is_running

    @pytest.mark.asyncio
    async def test_crash_releases_guard(self, build):
        pipeline = build(FakeScraper({(B, 1): page_of(B, "b", 1, 1)}))

        async def explode(*args, **kwargs):
            raise RuntimeError("boom")

        pipeline.analytics.build_snapshot = explode
        orchestrator = PipelineOrchestrator(pipeline)

        handle = orchestrator.trigger()
        status = await handle.wait()

        assert status.state == "failed"
        assert "boom" in status.errors[-1]
        assert not orchestrator.is_running

        history = await pipeline.store.load_run_history()
        assert history.total_runs == 1
        assert history.runs[-1].run_id == handle.run_id
        assert history.runs[-1].status == RunOutcome.FAILURE
        assert history.runs[-1].errors == ["RuntimeError: boom"]

    @pytest.mark.asyncio
    async def test_scraper_crash_is_a_partial_run(self, build):
        class ExplodingScraper(FakeScraper):
            async def fetch_page(self, *args, **kwargs):
                raise RuntimeError("boom")

        orchestrator = PipelineOrchestrator(build(ExplodingScraper({})))

        status = await orchestrator.trigger().wait()

        assert status.state == "completed"
        assert status.report.status == RunOutcome.PARTIAL
        assert any("RuntimeError: boom" in error for error in status.report.errors)
        assert not orchestrator.is_running

    @pytest.mark.asyncio
    async def test_pipeline_status(self, build):
        orchestrator = PipelineOrchestrator(build(FakeScraper({})))
        await orchestrator.run_scheduled()

        status = await orchestrator.get_pipeline_status(now=datetime(2024, 6, 15, 7, 30, tzinfo=timezone.utc))

        assert not status.is_running
        assert status.last_run is not None
        assert status.next_scheduled_run == datetime(2024, 6, 16, 6, 0, tzinfo=timezone.utc)


def test_next_scheduled_run_same_day():
    now = datetime(2024, 6, 15, 5, 59, tzinfo=timezone.utc)
    assert next_scheduled_run(now) == datetime(2024, 6, 15, 6, 0, tzinfo=timezone.utc)


def test_build_orchestrator_wires_filesystem_backends(tmp_path):
    settings = Settings()
    settings.storage.object_store_path = str(tmp_path / "objects")
    settings.storage.cache_path = str(tmp_path / "cache")

    orchestrator = build_orchestrator(settings)

    assert isinstance(orchestrator.data_store, GenomeDataStore)
    assert (tmp_path / "objects").is_dir()
    assert not orchestrator.is_running
