"""
Analytics Processor
由主数据集和运行历史整体重算分析快照
"""
from collections import Counter
from datetime import datetime, timedelta
import logging
import math
from typing import Dict, List, Optional, Tuple

from config import AnalyticsSettings
from models import (
    ActivityEvent,
    AnalyticsSnapshot,
    DailyTrendPoint,
    ExtractionRun,
    MasterDataset,
    MonthlyTrendPoint,
    Overview,
    PipelineHealth,
    RunHistory,
    RunOutcome,
    TaxonomicDomain,
    Trends,
    YearlyTrendPoint,
)
from storage.genome_store import GenomeDataStore
from utils.timeutils import parse_iso, previous_date_key, to_iso, utcnow


logger = logging.getLogger(__name__)

# 每个桶内的行顺序
TREND_DOMAINS = (TaxonomicDomain.BACTERIA, TaxonomicDomain.ARCHAEA)


def growth_rate(total: int, previous_total: Optional[float]) -> float:
    """
    计算增长率 (百分比，保留两位小数)

    previous_total 缺失、为 0 或非有限数时返回 0
    """
    if not previous_total:
        return 0.0
    try:
        previous = float(previous_total)
    except (TypeError, ValueError):
        return 0.0
    if previous == 0 or not math.isfinite(previous):
        return 0.0
    return round((total - previous) / previous * 100, 2)


def build_overview(
    dataset: MasterDataset,
    previous_total: Optional[float],
    now: datetime,
    window_days: int = 7,
) -> Overview:
    counts: Counter = Counter()
    new_this_week = 0
    window_start = now - timedelta(days=window_days)

    for project in dataset.projects.values():
        counts[project.domain] += 1
        submitted = parse_iso(project.submission_date)
        if submitted is not None and window_start <= submitted <= now:
            new_this_week += 1

    total = dataset.total_count
    return Overview(
        total_projects=total,
        archaea_projects=counts[TaxonomicDomain.ARCHAEA],
        bacteria_projects=counts[TaxonomicDomain.BACTERIA],
        last_updated=dataset.last_updated or to_iso(now),
        growth_rate=growth_rate(total, previous_total),
        new_projects_this_week=new_this_week,
    )


def build_trends(dataset: MasterDataset, now: datetime, daily_window_days: int = 30) -> Trends:
    """
    日趋势：截至昨天的固定窗口 (不含当天)，空日补零，每天每个域一行
    月/年趋势：只包含有观测的桶，按键升序，每个桶每个域一行
    """
    daily: Counter = Counter()
    monthly: Counter = Counter()
    yearly: Counter = Counter()

    for project in dataset.projects.values():
        submitted = parse_iso(project.submission_date)
        if submitted is None:
            continue
        day = submitted.strftime("%Y-%m-%d")
        daily[(day, project.domain)] += 1
        monthly[(day[:7], project.domain)] += 1
        yearly[(day[:4], project.domain)] += 1

    trends = Trends()
    for offset in range(daily_window_days, 0, -1):
        day = (now - timedelta(days=offset)).strftime("%Y-%m-%d")
        for domain in TREND_DOMAINS:
            trends.daily.append(DailyTrendPoint(date=day, count=daily[(day, domain)], domain=domain.value))

    for month in sorted({key for key, _ in monthly}):
        for domain in TREND_DOMAINS:
            trends.monthly.append(MonthlyTrendPoint(month=month, count=monthly[(month, domain)], domain=domain.value))

    for year in sorted({key for key, _ in yearly}):
        for domain in TREND_DOMAINS:
            trends.yearly.append(YearlyTrendPoint(year=year, count=yearly[(year, domain)], domain=domain.value))

    return trends


def _latest_run_timestamp(history: RunHistory) -> Optional[datetime]:
    stamps = [
        run.extraction_completed_at or run.completed_at
        for run in history.runs
        if run.status in (RunOutcome.SUCCESS, RunOutcome.PARTIAL)
    ]
    stamps = [s for s in stamps if s is not None]
    return max(stamps) if stamps else None


def build_health(
    history: RunHistory,
    last_extraction: Optional[str],
    now: datetime,
    settings: AnalyticsSettings,
) -> PipelineHealth:
    """
    健康度：按距上次抽取的小时数分级；错误率/耗时/可用率取自有界运行历史
    """
    last = parse_iso(last_extraction) if last_extraction else None
    if last is None:
        # 缓存只是加速，缺失时回退到运行历史
        last = _latest_run_timestamp(history)

    if last is None:
        status = "error"
    else:
        hours = (now - last).total_seconds() / 3600
        if hours < settings.healthy_hours:
            status = "healthy"
        elif hours < settings.warning_hours:
            status = "warning"
        else:
            status = "error"

    finished = [run for run in history.runs if run.status is not None]
    failures = sum(1 for run in finished if run.status == RunOutcome.FAILURE)
    durations = [run.duration_ms for run in finished if run.duration_ms is not None]

    return PipelineHealth(
        status=status,
        last_extraction=to_iso(last) if last else None,
        extraction_count=history.total_runs,
        error_rate=round(failures / len(finished), 4) if finished else 0.0,
        avg_processing_time=round(sum(durations) / len(durations), 2) if durations else 0.0,
        uptime=round((len(finished) - failures) / len(finished) * 100, 2) if finished else 100.0,
    )


def _run_events(run: ExtractionRun) -> List[Tuple[datetime, int, ActivityEvent]]:
    events: List[Tuple[datetime, int, ActivityEvent]] = []
    failed = run.status == RunOutcome.FAILURE
    finished_at = run.completed_at or run.extraction_completed_at or run.started_at

    extracted_at = run.extraction_completed_at
    if extracted_at is not None:
        events.append((
            extracted_at,
            0,
            ActivityEvent(
                id=f"extraction_{run.run_id}",
                type="extraction",
                status="warning" if run.stopped_early else "success",
                message=f"Extracted {run.records_extracted} genome records ({run.mode.value} mode)",
                timestamp=to_iso(extracted_at),
                metadata={
                    "mode": run.mode.value,
                    "recordsExtracted": run.records_extracted,
                    "pagesFetched": {k: v.pages_fetched for k, v in run.per_domain_stats.items()},
                    "stoppedEarly": run.stopped_early,
                },
            ),
        ))

    if run.merge_stats is not None or failed:
        if failed:
            reason = run.errors[-1] if run.errors else "unknown error"
            processing = ActivityEvent(
                id=f"processing_{run.run_id}",
                type="processing",
                status="error",
                message=f"Processing failed: {reason}",
                timestamp=to_iso(finished_at),
                metadata={"errors": list(run.errors)},
            )
        else:
            stats = run.merge_stats
            processing = ActivityEvent(
                id=f"processing_{run.run_id}",
                type="processing",
                status="success",
                message=f"Merged {stats.new_count} new and {stats.updated_count} updated genomes",
                timestamp=to_iso(finished_at),
                metadata={
                    "newGenomes": stats.new_count,
                    "updatedGenomes": stats.updated_count,
                    "unchangedGenomes": stats.unchanged_count,
                },
            )
        events.append((finished_at, 1, processing))

    if not failed and run.status is not None:
        events.append((
            finished_at,
            2,
            ActivityEvent(
                id=f"analysis_{run.run_id}",
                type="analysis",
                status="success",
                message="Analytics snapshot generated",
                timestamp=to_iso(finished_at),
                metadata={"runId": run.run_id},
            ),
        ))
    return events


def build_recent_activity(history: RunHistory, limit: int = 10) -> List[ActivityEvent]:
    """由运行历史派生最近活动，最新在前"""
    events: List[Tuple[datetime, int, ActivityEvent]] = []
    for run in history.runs:
        events.extend(_run_events(run))
    events.sort(key=lambda item: (item[0], item[1]), reverse=True)
    return [event for _, _, event in events[:max(0, limit)]]


def aggregate(
    dataset: MasterDataset,
    run_history: RunHistory,
    *,
    previous_total: Optional[float] = None,
    last_extraction: Optional[str] = None,
    now: Optional[datetime] = None,
    settings: Optional[AnalyticsSettings] = None,
) -> AnalyticsSnapshot:
    """
    计算完整分析快照 (纯函数)

    Args:
        dataset: 主数据集
        run_history: 运行历史 (应包含本次运行)
        previous_total: 前一天归档快照的项目总数
        last_extraction: 最近一次抽取时间 (ISO-8601)
        now: 计算时间
        settings: 分析配置

    Returns:
        AnalyticsSnapshot
    """
    settings = settings or AnalyticsSettings()
    now = now or utcnow()

    return AnalyticsSnapshot(
        overview=build_overview(dataset, previous_total, now, settings.new_projects_window_days),
        trends=build_trends(dataset, now, settings.daily_window_days),
        pipeline_health=build_health(run_history, last_extraction, now, settings),
        recent_activity=build_recent_activity(run_history, settings.max_recent_activity),
    )


class AnalyticsProcessor:
    """
    分析处理器
    从存储读取前一天的总数和最近抽取时间，再调用 aggregate
    """

    def __init__(self, store: GenomeDataStore, settings: AnalyticsSettings):
        self.store = store
        self.settings = settings

    async def build_snapshot(
        self,
        dataset: MasterDataset,
        run_history: RunHistory,
        now: Optional[datetime] = None,
    ) -> AnalyticsSnapshot:
        now = now or utcnow()
        previous = await self.store.load_history_overview(previous_date_key(now))
        previous_total = previous.total_projects if previous else None

        snapshot = aggregate(
            dataset,
            run_history,
            previous_total=previous_total,
            last_extraction=self.store.get_last_extraction(),
            now=now,
            settings=self.settings,
        )
        logger.info(
            f"[Analytics] Snapshot: {snapshot.overview.total_projects} projects, "
            f"growth {snapshot.overview.growth_rate}%, health {snapshot.pipeline_health.status}"
        )
        return snapshot


def overview_deltas(before: Overview, after: Overview) -> Dict[str, float]:
    """两个概览之间的数值变化"""
    return {
        "totalProjects": after.total_projects - before.total_projects,
        "archaeaProjects": after.archaea_projects - before.archaea_projects,
        "bacteriaProjects": after.bacteria_projects - before.bacteria_projects,
        "newProjectsThisWeek": after.new_projects_this_week - before.new_projects_this_week,
        "growthRate": round(after.growth_rate - before.growth_rate, 2),
    }
