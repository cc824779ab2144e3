"""
Genome Data Store
对象存储中的逻辑布局 (原始抓取、主数据集、分析快照、运行历史) 与热缓存，
以及给展示层使用的只读接口
"""
from __future__ import annotations

import asyncio
from datetime import datetime, timedelta
import json
import logging
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from config import StorageSettings
from models import (
    AnalyticsSnapshot,
    ExtractionRun,
    GenomeProject,
    MasterDataset,
    MergeStats,
    Overview,
    PipelineHealth,
    RunHistory,
    Trends,
    ActivityEvent,
)
from utils.exceptions import CacheError, StorageError
from utils.timeutils import date_key, parse_iso, to_iso, utcnow

from .cache import BaseCache
from .object_store import BaseObjectStore


logger = logging.getLogger(__name__)

RAW_PREFIX = "raw/jgi-responses/"
MASTER_KEY = "master/genomes.json"
CURRENT_ANALYTICS_KEY = "analytics/current.json"
HISTORY_PREFIX = "analytics/history/"
RUN_HISTORY_KEY = "pipeline/runs.json"

CACHE_LAST_EXTRACTION = "last_extraction"
CACHE_OVERVIEW = "analytics_overview"
CACHE_MASTER_METADATA = "master_metadata"

JSON_CONTENT_TYPE = "application/json"


def raw_key(day: str) -> str:
    return f"{RAW_PREFIX}{day}.json"


def history_key(day: str) -> str:
    return f"{HISTORY_PREFIX}{day}.json"


def _project_document(project: GenomeProject) -> Dict[str, Any]:
    return project.model_dump(mode="json", by_alias=True)


class GenomeDataStore:
    """
    基因组数据存储管理器

    对象存储读写通过线程池执行；缓存只作加速，失败时记录日志并回退到对象存储。
    """

    def __init__(self, object_store: BaseObjectStore, cache: BaseCache, settings: StorageSettings):
        self._objects = object_store
        self._cache = cache
        self.settings = settings

    # ------------------------------------------------------------------ raw I/O

    async def _read_json(self, key: str) -> Optional[Any]:
        data = await asyncio.to_thread(self._objects.get, key)
        if data is None:
            return None
        try:
            return json.loads(data.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise StorageError(f"corrupt object at {key}: {e}", key=key) from e

    async def _write_json(self, key: str, payload: Any) -> None:
        body = json.dumps(payload, ensure_ascii=False, indent=2).encode("utf-8")
        try:
            await asyncio.to_thread(self._objects.put, key, body, JSON_CONTENT_TYPE)
        except StorageError:
            raise
        except OSError as e:
            raise StorageError(f"failed to write {key}: {e}", key=key) from e

    def _cache_get(self, key: str) -> Optional[Any]:
        try:
            return self._cache.get(key)
        except CacheError as e:
            logger.warning(f"[Storage] Cache read failed for {key}: {e}")
            return None

    def _cache_set(self, key: str, value: Any, ttl: int) -> bool:
        try:
            self._cache.set(key, value, ttl=ttl)
            return True
        except CacheError as e:
            logger.warning(f"[Storage] Cache write failed for {key}: {e}")
            return False

    # ------------------------------------------------------------- extraction

    async def store_raw_data(self, projects: List[GenomeProject], extracted_at: datetime) -> str:
        """保存本次抽取的原始批次 (按运行日期)"""
        key = raw_key(date_key(extracted_at))
        await self._write_json(
            key,
            {
                "extractedAt": to_iso(extracted_at),
                "projectCount": len(projects),
                "projects": [_project_document(p) for p in projects],
            },
        )
        logger.info(f"[Storage] Raw batch stored at {key} ({len(projects)} projects)")
        return key

    async def load_raw_data(self, day: str) -> List[GenomeProject]:
        document = await self._read_json(raw_key(day))
        if not document:
            return []
        return self._parse_projects(document.get("projects") or [], raw_key(day))

    def record_last_extraction(self, when: datetime) -> bool:
        return self._cache_set(CACHE_LAST_EXTRACTION, to_iso(when), self.settings.last_extraction_ttl)

    def get_last_extraction(self) -> Optional[str]:
        value = self._cache_get(CACHE_LAST_EXTRACTION)
        return str(value) if value else None

    # ---------------------------------------------------------- master dataset

    @staticmethod
    def _parse_projects(items: List[Any], key: str) -> List[GenomeProject]:
        try:
            return [GenomeProject.model_validate(item) for item in items]
        except ValidationError as e:
            raise StorageError(f"invalid project in {key}: {e}", key=key) from e

    async def load_master_dataset(self) -> MasterDataset:
        """
        读取主数据集

        不存在时返回空数据集；内容损坏时抛 StorageError，不当作空数据集
        """
        document = await self._read_json(MASTER_KEY)
        if document is None:
            logger.info("[Storage] No master dataset yet, starting empty")
            return MasterDataset.empty()
        if not isinstance(document, dict):
            raise StorageError("master dataset is not an object", key=MASTER_KEY)

        projects: Dict[str, GenomeProject] = {}
        for project in self._parse_projects(document.get("projects") or [], MASTER_KEY):
            projects[project.id] = project

        metadata = document.get("metadata") or {}
        return MasterDataset(
            projects=projects,
            last_updated=document.get("lastUpdated"),
            last_merge_stats=MergeStats(
                new_count=int(metadata.get("newGenomes") or 0),
                updated_count=int(metadata.get("updatedGenomes") or 0),
                unchanged_count=int(metadata.get("unchangedGenomes") or 0),
            ),
        )

    async def store_master_dataset(self, dataset: MasterDataset) -> None:
        """整体写回主数据集，失败抛 StorageError"""
        stats = dataset.last_merge_stats
        await self._write_json(
            MASTER_KEY,
            {
                "projects": [_project_document(p) for p in dataset.projects.values()],
                "totalCount": dataset.total_count,
                "lastUpdated": dataset.last_updated,
                "metadata": {
                    "newGenomes": stats.new_count,
                    "updatedGenomes": stats.updated_count,
                    "unchangedGenomes": stats.unchanged_count,
                },
            },
        )
        self._cache_set(
            CACHE_MASTER_METADATA,
            {
                "totalCount": dataset.total_count,
                "lastUpdated": dataset.last_updated,
                "newCount": stats.new_count,
                "updatedCount": stats.updated_count,
            },
            self.settings.master_metadata_ttl,
        )
        logger.info(
            f"[Storage] Master dataset updated: {dataset.total_count} total genomes "
            f"({stats.new_count} new, {stats.updated_count} updated)"
        )

    # --------------------------------------------------------------- snapshots

    async def load_current_snapshot(self) -> Optional[AnalyticsSnapshot]:
        document = await self._read_json(CURRENT_ANALYTICS_KEY)
        if document is None:
            return None
        try:
            return AnalyticsSnapshot.model_validate(document)
        except ValidationError as e:
            raise StorageError(f"invalid analytics snapshot: {e}", key=CURRENT_ANALYTICS_KEY) from e

    async def load_history_overview(self, day: str) -> Optional[Overview]:
        """读取某天归档快照的概览，缺失或损坏时返回 None"""
        try:
            document = await self._read_json(history_key(day))
        except StorageError as e:
            logger.warning(f"[Storage] Could not read historical snapshot for {day}: {e}")
            return None
        if not isinstance(document, dict) or not isinstance(document.get("overview"), dict):
            return None
        try:
            return Overview.model_validate(document["overview"])
        except ValidationError as e:
            logger.warning(f"[Storage] Invalid historical overview for {day}: {e}")
            return None

    async def list_history_dates(self) -> List[str]:
        keys = await asyncio.to_thread(self._objects.list, HISTORY_PREFIX)
        return [k[len(HISTORY_PREFIX):-len(".json")] for k in keys if k.endswith(".json")]

    async def store_snapshot(self, snapshot: AnalyticsSnapshot, now: Optional[datetime] = None) -> None:
        """
        先归档旧快照，再覆盖 current，最后刷新概览热缓存
        """
        now = now or utcnow()
        today = date_key(now)

        try:
            previous = await self.load_current_snapshot()
        except StorageError as e:
            logger.warning(f"[Storage] Previous snapshot unreadable, not archived: {e}")
            previous = None

        if previous is not None:
            previous_at = parse_iso(previous.overview.last_updated)
            previous_day = date_key(previous_at) if previous_at else None
            if previous_day and previous_day != today:
                existing = await asyncio.to_thread(self._objects.get, history_key(previous_day))
                if existing is None:
                    await self._write_json(history_key(previous_day), previous.model_dump(mode="json"))
                    logger.info(f"[Storage] Archived previous snapshot under {previous_day}")

        document = snapshot.model_dump(mode="json")
        await self._write_json(CURRENT_ANALYTICS_KEY, document)
        await self._write_json(history_key(today), document)

        self._cache_set(CACHE_OVERVIEW, snapshot.overview.model_dump(mode="json"), self.settings.overview_ttl)

    # ------------------------------------------------------------- run history

    async def load_run_history(self) -> RunHistory:
        document = await self._read_json(RUN_HISTORY_KEY)
        if document is None:
            return RunHistory()
        try:
            return RunHistory.model_validate(document)
        except ValidationError as e:
            raise StorageError(f"invalid run history: {e}", key=RUN_HISTORY_KEY) from e

    async def append_run(self, run: ExtractionRun) -> RunHistory:
        """追加一条运行记录，只保留最近 run_history_limit 条"""
        history = await self.load_run_history()
        updated = history.with_run(run, self.settings.run_history_limit)
        await self._write_json(RUN_HISTORY_KEY, updated.model_dump(mode="json"))
        return updated

    # ------------------------------------------------------- read interfaces

    async def _snapshot_or_none(self) -> Optional[AnalyticsSnapshot]:
        try:
            return await self.load_current_snapshot()
        except StorageError as e:
            logger.error(f"[Storage] Failed to read current snapshot: {e}")
            return None

    async def get_overview(self) -> Overview:
        """热缓存 → current 快照 → 全零概览"""
        cached = self._cache_get(CACHE_OVERVIEW)
        if isinstance(cached, dict):
            try:
                return Overview.model_validate(cached)
            except ValidationError:
                logger.warning("[Storage] Ignoring malformed cached overview")

        snapshot = await self._snapshot_or_none()
        if snapshot is not None:
            return snapshot.overview
        return Overview()

    async def get_trends(self) -> Trends:
        snapshot = await self._snapshot_or_none()
        return snapshot.trends if snapshot else Trends()

    async def get_pipeline_health(self) -> PipelineHealth:
        snapshot = await self._snapshot_or_none()
        return snapshot.pipeline_health if snapshot else PipelineHealth()

    async def get_recent_activity(self) -> List[ActivityEvent]:
        snapshot = await self._snapshot_or_none()
        return list(snapshot.recent_activity) if snapshot else []

    async def get_latest_metadata(self, now: Optional[datetime] = None) -> List[GenomeProject]:
        """主数据集优先，尚未建立时回退到今天/昨天的原始抓取"""
        master = await self.load_master_dataset()
        if master.projects:
            return list(master.projects.values())

        now = now or utcnow()
        for day in (date_key(now), date_key(now - timedelta(days=1))):
            projects = await self.load_raw_data(day)
            if projects:
                return projects
        return []

    async def search_metadata(self, query: str, now: Optional[datetime] = None) -> List[GenomeProject]:
        """
        简单子串检索：每个词都必须出现在名称/物种/属/种/域中 (不区分大小写)
        """
        latest = await self.get_latest_metadata(now=now)
        terms = [t for t in str(query or "").lower().split() if t]
        if not terms:
            return latest

        matches = []
        for project in latest:
            searchable = " ".join(
                part for part in (
                    project.name,
                    project.organism,
                    project.metadata.genus,
                    project.metadata.species,
                    project.metadata.domain.value,
                )
                if part
            ).lower()
            if all(term in searchable for term in terms):
                matches.append(project)
        return matches
