"""
Genome Pipeline
一次完整运行：抽取 → 原始落盘 → 合并 → 主数据集 → 分析快照 → 运行历史
"""
from datetime import datetime
import logging
from typing import List, Optional

from analytics import AnalyticsProcessor, overview_deltas
from extraction import GenomeExtractor, new_run_id
from models import (
    ExtractionMode,
    ExtractionRun,
    GenomeProject,
    Overview,
    PipelineReport,
    RunOutcome,
)
from processing import reconcile
from storage import GenomeDataStore
from utils.exceptions import StorageError
from utils.timeutils import utcnow


logger = logging.getLogger(__name__)


class GenomePipeline:
    """
    流水线运行器

    存储失败对本次运行是致命的：运行标记为 failure，current 快照与概览缓存保持上一次的结果。
    其他异常同样以 failure 写入运行历史，然后继续抛出。
    不负责并发控制，由 PipelineOrchestrator 保证同一时间只有一个运行。
    """

    def __init__(
        self,
        extractor: GenomeExtractor,
        store: GenomeDataStore,
        analytics: AnalyticsProcessor,
    ):
        self.extractor = extractor
        self.store = store
        self.analytics = analytics

    async def run(
        self,
        mode: ExtractionMode = ExtractionMode.INCREMENTAL,
        run_id: Optional[str] = None,
    ) -> PipelineReport:
        mode = ExtractionMode(mode)
        started_at = utcnow()
        run_id = run_id or new_run_id(started_at)

        before = await self.store.get_overview()

        try:
            batch, run = await self.extractor.extract(mode, run_id=run_id, started_at=started_at)
        except Exception as e:
            logger.error(f"[Pipeline] Run {run_id} crashed during extraction: {e!r}")
            await self._record_failure(ExtractionRun(run_id=run_id, mode=mode, started_at=started_at), e)
            raise

        try:
            after = await self._persist(batch, run, started_at)
        except StorageError as e:
            logger.error(f"[Pipeline] Run {run_id} failed: {e}")
            await self._record_failure(run, e)
            return self._report(run, before, before)
        except Exception as e:
            logger.error(f"[Pipeline] Run {run_id} crashed after extraction: {e!r}")
            await self._record_failure(run, e)
            raise

        return self._report(run, before, after)

    async def _persist(self, batch: List[GenomeProject], run: ExtractionRun, started_at: datetime) -> Overview:
        await self.store.store_raw_data(batch, started_at)

        existing = await self.store.load_master_dataset()
        merged, stats = reconcile(existing, batch, now=utcnow())
        run.merge_stats = stats
        await self.store.store_master_dataset(merged)

        run.completed_at = utcnow()
        run.status = RunOutcome.PARTIAL if run.stopped_early else RunOutcome.SUCCESS

        history = await self.store.load_run_history()
        preview = history.with_run(run, self.store.settings.run_history_limit)
        snapshot = await self.analytics.build_snapshot(merged, preview, now=run.completed_at)
        await self.store.store_snapshot(snapshot, now=run.completed_at)

        await self.store.append_run(run)
        logger.info(f"[Pipeline] Run {run.run_id} completed with {run.status.value}")
        return snapshot.overview

    async def _record_failure(self, run: ExtractionRun, error: Exception) -> None:
        """失败的运行也写入运行历史，健康度与最近活动依赖它"""
        run.status = RunOutcome.FAILURE
        run.completed_at = utcnow()
        run.errors.append(str(error) if isinstance(error, StorageError) else f"{type(error).__name__}: {error}")
        try:
            await self.store.append_run(run)
        except StorageError as e:
            logger.error(f"[Pipeline] Could not record failed run {run.run_id}: {e}")

    @staticmethod
    def _report(run: ExtractionRun, before: Overview, after: Overview) -> PipelineReport:
        stats = run.merge_stats
        succeeded = run.status != RunOutcome.FAILURE
        return PipelineReport(
            run_id=run.run_id,
            mode=run.mode,
            status=run.status or RunOutcome.FAILURE,
            records_extracted=run.records_extracted,
            new_count=stats.new_count if stats and succeeded else 0,
            updated_count=stats.updated_count if stats and succeeded else 0,
            total_projects=after.total_projects,
            overview_deltas=overview_deltas(before, after),
            per_domain_stats=run.per_domain_stats,
            errors=list(run.errors),
            duration_ms=run.duration_ms,
        )

    async def aclose(self) -> None:
        close = getattr(self.extractor.scraper, "close", None)
        if close is not None:
            await close()
