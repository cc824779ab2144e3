"""Orchestrator service layer for scheduled and manual pipeline runs."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta
import logging
from threading import Lock
from typing import Dict, List, Optional

from pydantic import BaseModel

from analytics import AnalyticsProcessor
from config import Settings
from extraction import GenomeExtractor
from models import ExtractionMode, ExtractionRun, RunOutcome
from scrapers import JGIPortalScraper
from storage import GenomeDataStore, get_cache, get_object_store
from utils.exceptions import PipelineBusyError, StorageError
from utils.timeutils import utcnow

from .pipeline import GenomePipeline
from .store import InMemoryRunStore, PipelineRunStatus


logger = logging.getLogger(__name__)

SCHEDULED_HOUR_UTC = 6


def next_scheduled_run(now: Optional[datetime] = None, hour: int = SCHEDULED_HOUR_UTC) -> datetime:
    """Next daily run at `hour`:00 UTC strictly after `now`."""
    now = now or utcnow()
    candidate = now.replace(hour=hour, minute=0, second=0, microsecond=0)
    if candidate <= now:
        candidate += timedelta(days=1)
    return candidate


class PipelineStatus(BaseModel):
    """Snapshot of the orchestrator for status displays."""

    is_running: bool
    active_run_id: Optional[str] = None
    last_run: Optional[ExtractionRun] = None
    next_scheduled_run: datetime


class RunHandle:
    """Observable handle for a run started in the background."""

    def __init__(self, run_id: str, task: "asyncio.Task[PipelineRunStatus]", store: InMemoryRunStore) -> None:
        self.run_id = run_id
        self._task = task
        self._store = store

    def status(self) -> Optional[PipelineRunStatus]:
        return self._store.get_status(self.run_id)

    def done(self) -> bool:
        return self._task.done()

    async def wait(self) -> PipelineRunStatus:
        return await asyncio.shield(self._task)


class PipelineOrchestrator:
    """
    Single-flight orchestrator: at most one run touches the master dataset at a time.

    The guard is claimed synchronously in trigger()/run_scheduled() before any task is
    scheduled, so two triggers in the same event-loop tick cannot both start.
    """

    def __init__(
        self,
        pipeline: GenomePipeline,
        *,
        store: Optional[InMemoryRunStore] = None,
        scheduled_hour_utc: int = SCHEDULED_HOUR_UTC,
    ) -> None:
        self._pipeline = pipeline
        self._store = store or InMemoryRunStore()
        self._scheduled_hour = scheduled_hour_utc
        self._active_run_id: Optional[str] = None
        self._tasks: Dict[str, asyncio.Task] = {}
        self._lock = Lock()

    @property
    def data_store(self) -> GenomeDataStore:
        return self._pipeline.store

    @property
    def is_running(self) -> bool:
        with self._lock:
            return self._active_run_id is not None

    def _claim(self, mode: ExtractionMode, trigger: str) -> str:
        with self._lock:
            if self._active_run_id is not None:
                raise PipelineBusyError(
                    "a pipeline run is already in progress",
                    active_run_id=self._active_run_id,
                )
            run_id = self._store.create(mode, trigger=trigger)
            self._active_run_id = run_id
            return run_id

    def _release(self, run_id: str) -> None:
        with self._lock:
            if self._active_run_id == run_id:
                self._active_run_id = None

    def trigger(self, full_extraction: bool = False) -> RunHandle:
        """
        Start a manual run in the background and return its handle.

        Raises PipelineBusyError when another run holds the guard.
        """
        mode = ExtractionMode.FULL if full_extraction else ExtractionMode.INCREMENTAL
        run_id = self._claim(mode, "manual")
        task = asyncio.get_running_loop().create_task(self._execute(run_id, mode))
        self._tasks[run_id] = task
        task.add_done_callback(lambda _t: self._tasks.pop(run_id, None))
        self._store.append_event(run_id, "queued", f"manual {mode.value} run queued")
        return RunHandle(run_id, task, self._store)

    async def run_scheduled(self) -> Optional[PipelineRunStatus]:
        """Scheduled entry point: always incremental, skipped when a run is in progress."""
        try:
            run_id = self._claim(ExtractionMode.INCREMENTAL, "scheduled")
        except PipelineBusyError as e:
            logger.info(f"[Pipeline] Scheduled run skipped, run {e.active_run_id} still in progress")
            return None
        self._store.append_event(run_id, "queued", "scheduled incremental run queued")
        return await self._execute(run_id, ExtractionMode.INCREMENTAL)

    async def _execute(self, run_id: str, mode: ExtractionMode) -> PipelineRunStatus:
        self._store.update_running(run_id)
        self._store.append_event(run_id, "running", f"{mode.value} extraction started")
        try:
            report = await self._pipeline.run(mode, run_id=run_id)
        except Exception as exc:
            logger.exception(f"[Pipeline] Run {run_id} crashed")
            self._store.append_event(run_id, "failed", str(exc))
            return self._store.update_failed(run_id, f"{type(exc).__name__}: {exc}")
        finally:
            self._release(run_id)

        if report.status == RunOutcome.FAILURE:
            self._store.append_event(run_id, "failed", "; ".join(report.errors))
            return self._store.update_failed(run_id, "", report=report)

        self._store.append_event(
            run_id,
            "completed",
            f"{report.status.value}: {report.records_extracted} extracted, "
            f"{report.new_count} new, {report.updated_count} updated",
        )
        return self._store.update_completed(run_id, report)

    def get_run_status(self, run_id: str) -> Optional[PipelineRunStatus]:
        return self._store.get_status(run_id)

    def list_events(self, run_id: str) -> List[Dict[str, str]]:
        return self._store.list_events(run_id)

    async def get_pipeline_status(self, now: Optional[datetime] = None) -> PipelineStatus:
        try:
            history = await self.data_store.load_run_history()
            last_run = history.last_run
        except StorageError as e:
            logger.warning(f"[Pipeline] Run history unreadable: {e}")
            last_run = None

        with self._lock:
            active = self._active_run_id
        return PipelineStatus(
            is_running=active is not None,
            active_run_id=active,
            last_run=last_run,
            next_scheduled_run=next_scheduled_run(now, self._scheduled_hour),
        )

    async def aclose(self) -> None:
        pending = [task for task in self._tasks.values() if not task.done()]
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        await self._pipeline.aclose()


def build_orchestrator(settings: Settings) -> PipelineOrchestrator:
    """Wire the default components from settings (filesystem object store, configured cache)."""
    object_store = get_object_store("filesystem", settings.storage.object_store_path)
    cache = get_cache(settings.storage.cache_provider, cache_dir=settings.storage.cache_path)
    data_store = GenomeDataStore(object_store, cache, settings.storage)

    extractor = GenomeExtractor(
        JGIPortalScraper(settings.jgi),
        data_store,
        settings.extraction,
        page_size=settings.jgi.page_size,
    )
    pipeline = GenomePipeline(extractor, data_store, AnalyticsProcessor(data_store, settings.analytics))
    return PipelineOrchestrator(pipeline)
