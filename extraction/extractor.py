"""
Genome Extractor
按域并发、域内按页顺序抓取，汇总为一个批次和运行统计
"""
import asyncio
from datetime import datetime
from typing import List, Optional, Protocol, Tuple
import logging
from uuid import uuid4

from config import ExtractionSettings
from models import (
    DomainStats,
    ExtractionMode,
    ExtractionRun,
    GenomeProject,
    RunOutcome,
    TaxonomicDomain,
)
from scrapers import PageResult
from storage import GenomeDataStore
from utils.exceptions import ConfigurationError, UpstreamError
from utils.timeutils import to_iso, utcnow


logger = logging.getLogger(__name__)

DOMAINS = (TaxonomicDomain.ARCHAEA, TaxonomicDomain.BACTERIA)


class PageSource(Protocol):
    async def fetch_page(
        self,
        domain: TaxonomicDomain,
        page_number: int,
        page_size: Optional[int] = None,
        extracted_at: Optional[str] = None,
    ) -> PageResult:
        ...


def new_run_id(now: Optional[datetime] = None) -> str:
    now = now or utcnow()
    return f"run_{now.strftime('%Y%m%d_%H%M%S')}_{uuid4().hex[:8]}"


class GenomeExtractor:
    """
    基因组抽取器

    - 两个域并发抓取，互不影响
    - 某个域的某一页失败 (或该域抓取意外崩溃) 时，该域停止并保留已抓到的记录，运行标记为 partial
    - ConfigurationError 属于编程错误，直接抛出
    - 完成 (success 或 partial) 后通过数据存储写入 last_extraction
    """

    def __init__(
        self,
        scraper: PageSource,
        store: GenomeDataStore,
        settings: ExtractionSettings,
        page_size: int = 100,
    ):
        self.scraper = scraper
        self.store = store
        self.settings = settings
        self.page_size = page_size

    def max_pages_for(self, mode: ExtractionMode) -> int:
        if mode == ExtractionMode.FULL:
            return self.settings.full_max_pages
        return self.settings.incremental_max_pages

    async def extract(
        self,
        mode: ExtractionMode,
        run_id: Optional[str] = None,
        started_at: Optional[datetime] = None,
    ) -> Tuple[List[GenomeProject], ExtractionRun]:
        """
        执行一次抽取

        Args:
            mode: full / incremental
            run_id: 运行 ID (缺省自动生成)
            started_at: 运行开始时间，同时作为每条记录的 extracted_at

        Returns:
            (批次, 运行记录)
        """
        mode = ExtractionMode(mode)
        started_at = started_at or utcnow()
        run = ExtractionRun(
            run_id=run_id or new_run_id(started_at),
            mode=mode,
            started_at=started_at,
        )
        extracted_at = to_iso(started_at)
        max_pages = self.max_pages_for(mode)

        logger.info(f"[Extractor] Starting {mode.value} extraction {run.run_id} (max {max_pages} pages/domain)")

        results = await asyncio.gather(
            *(self._extract_domain(domain, max_pages, extracted_at) for domain in DOMAINS),
            return_exceptions=True,
        )

        batch: List[GenomeProject] = []
        for domain, result in zip(DOMAINS, results):
            if isinstance(result, ConfigurationError):
                raise result
            if isinstance(result, BaseException):
                logger.error(f"[Extractor] {domain.value} extraction crashed: {result!r}")
                stats = DomainStats(
                    domain=domain,
                    stopped_early=True,
                    error=f"{type(result).__name__}: {result}",
                )
                run.per_domain_stats[domain.value] = stats
                continue
            projects, stats = result
            batch.extend(projects)
            run.per_domain_stats[stats.domain.value] = stats

        run.extraction_completed_at = utcnow()
        run.status = RunOutcome.PARTIAL if run.stopped_early else RunOutcome.SUCCESS
        for stats in run.per_domain_stats.values():
            if stats.error:
                run.errors.append(f"{stats.domain.value}: {stats.error}")

        self.store.record_last_extraction(run.extraction_completed_at)

        logger.info(
            f"[Extractor] Extraction {run.run_id} finished with {run.status.value}: "
            f"{len(batch)} records"
        )
        return batch, run

    async def _extract_domain(
        self,
        domain: TaxonomicDomain,
        max_pages: int,
        extracted_at: str,
    ) -> Tuple[List[GenomeProject], DomainStats]:
        stats = DomainStats(domain=domain)
        projects: List[GenomeProject] = []
        page_number = 1

        while stats.pages_fetched < max_pages:
            try:
                page = await self.scraper.fetch_page(
                    domain,
                    page_number,
                    page_size=self.page_size,
                    extracted_at=extracted_at,
                )
            except ConfigurationError:
                raise
            except UpstreamError as e:
                stats.stopped_early = True
                stats.error = str(e)
                logger.error(
                    f"[Extractor] {domain.value} stopped at page {page_number}, "
                    f"keeping {len(projects)} records: {e}"
                )
                break
            except Exception as e:
                stats.stopped_early = True
                stats.error = f"{type(e).__name__}: {e}"
                logger.exception(
                    f"[Extractor] {domain.value} page {page_number} crashed, "
                    f"keeping {len(projects)} records"
                )
                break

            stats.pages_fetched += 1
            stats.records_fetched += len(page.projects)
            stats.records_failed += page.failed_count
            stats.total_available = page.total_available
            projects.extend(page.projects)

            if page.raw_count == 0:
                break
            if stats.pages_fetched * self.page_size >= page.total_available:
                break
            page_number += 1

        logger.info(
            f"[Extractor] {domain.value}: {stats.records_fetched} records from "
            f"{stats.pages_fetched} pages ({stats.records_failed} rejected)"
        )
        return projects, stats
