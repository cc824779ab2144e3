"""
Reconciler
将一次抽取批次合并进主数据集 (按 id 去重，带变更检测)
"""
from datetime import datetime, timezone
from typing import Dict, Iterable, Optional, Tuple
import logging

from models import GenomeProject, MasterDataset, MergeStats
from utils.timeutils import parse_iso, to_iso, utcnow


logger = logging.getLogger(__name__)

# 参与变更检测的字段；其余字段 (名称、链接、抓取时间等) 的变化不算更新
TRACKED_FIELDS = ("sequence_length", "gene_count", "status", "metadata")


def has_changed(existing: GenomeProject, incoming: GenomeProject) -> bool:
    """比较跟踪字段，metadata 做结构相等比较"""
    return any(getattr(existing, name) != getattr(incoming, name) for name in TRACKED_FIELDS)


def _observation_rank(project: GenomeProject) -> Tuple[datetime, str]:
    observed = parse_iso(project.extracted_at) or datetime.min.replace(tzinfo=timezone.utc)
    return observed, project.model_dump_json()


def _collapse_batch(incoming: Iterable[GenomeProject]) -> Dict[str, GenomeProject]:
    """
    同一批次内重复出现的 id 只保留一条：extracted_at 最新者胜出，
    相同时按序列化内容比较，结果与批次顺序无关
    """
    batch: Dict[str, GenomeProject] = {}
    for project in incoming:
        current = batch.get(project.id)
        if current is None or _observation_rank(project) > _observation_rank(current):
            batch[project.id] = project
    return dict(sorted(batch.items()))


def reconcile(
    existing: MasterDataset,
    incoming: Iterable[GenomeProject],
    now: Optional[datetime] = None,
) -> Tuple[MasterDataset, MergeStats]:
    """
    合并批次到主数据集

    纯内存计算，不修改 existing；submission_date 以首次观测为准。

    Args:
        existing: 当前主数据集
        incoming: 本次抽取的记录
        now: 合并时间 (写入 last_updated)

    Returns:
        (合并后的数据集, 合并统计)
    """
    projects: Dict[str, GenomeProject] = dict(existing.projects)
    stats = MergeStats()

    for project_id, project in _collapse_batch(incoming).items():
        current = projects.get(project_id)
        if current is None:
            projects[project_id] = project
            stats.new_count += 1
            continue

        if not has_changed(current, project):
            stats.unchanged_count += 1
            continue

        if current.domain != project.domain:
            logger.warning(
                f"[Reconciler] Genome {project_id} moved from {current.domain.value} "
                f"to {project.domain.value}"
            )
        projects[project_id] = project.model_copy(update={"submission_date": current.submission_date})
        stats.updated_count += 1

    changed = stats.new_count + stats.updated_count > 0
    merged = MasterDataset(
        projects=projects,
        last_updated=to_iso(now or utcnow()) if changed else existing.last_updated,
        last_merge_stats=stats,
    )

    logger.info(
        f"[Reconciler] {stats.new_count} new, {stats.updated_count} updated, "
        f"{stats.unchanged_count} unchanged; {merged.total_count} total"
    )
    return merged, stats
