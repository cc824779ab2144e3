"""
Data Models / Schemas
基因组记录、主数据集与运行记录的统一数据结构
"""
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class TaxonomicDomain(str, Enum):
    """分类学域 (不是网络域名)"""
    ARCHAEA = "Archaea"
    BACTERIA = "Bacteria"

    @classmethod
    def parse(cls, value: str) -> "TaxonomicDomain":
        """大小写不敏感地解析 'archaea' / 'Bacteria' 等写法"""
        text = str(value or "").strip().lower()
        for member in cls:
            if member.value.lower() == text:
                return member
        raise ValueError(f"Unknown taxonomic domain: {value!r}")


class ExtractionMode(str, Enum):
    """抽取深度"""
    FULL = "full"
    INCREMENTAL = "incremental"


class RunOutcome(str, Enum):
    """一次运行的最终状态"""
    SUCCESS = "success"
    PARTIAL = "partial"
    FAILURE = "failure"


class GenomeMetadata(BaseModel):
    """分类学信息"""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    domain: TaxonomicDomain
    phylum: Optional[str] = None
    class_: Optional[str] = Field(None, alias="class")
    order: Optional[str] = None
    family: Optional[str] = None
    genus: Optional[str] = None
    species: Optional[str] = None
    strain: Optional[str] = None


class GenomeUrls(BaseModel):
    """门户链接"""
    model_config = ConfigDict(frozen=True)

    portal: str
    download: Optional[str] = None


class GenomeProject(BaseModel):
    """
    一次观测到的基因组项目

    生成后不可变；同 id 的后续观测会整体替换，而不是原地修改。
    """
    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="上游稳定标识")
    name: str = Field(..., description="项目名称")
    organism: str = Field(..., description="物种名")
    sequence_type: str = Field(..., description="序列类型")
    status: str = Field(..., description="上游状态")
    submission_date: str = Field(..., description="提交日期 (ISO-8601)")
    release_date: Optional[str] = Field(None, description="发布日期 (ISO-8601)")
    sequence_length: Optional[int] = Field(None, description="序列长度 (bp)")
    gene_count: Optional[int] = Field(None, description="基因数")
    metadata: GenomeMetadata
    urls: GenomeUrls
    extracted_at: str = Field(..., description="本次观测的抓取时间 (ISO-8601)")

    @field_validator("id", mode="before")
    @classmethod
    def _non_empty_id(cls, value) -> str:
        text = str(value if value is not None else "").strip()
        if not text:
            raise ValueError("id is required")
        return text

    @property
    def domain(self) -> TaxonomicDomain:
        return self.metadata.domain


class MergeStats(BaseModel):
    """合并统计"""
    new_count: int = 0
    updated_count: int = 0
    unchanged_count: int = 0


class MasterDataset(BaseModel):
    """去重后的全量基因组集合，按 id 索引"""
    projects: Dict[str, GenomeProject] = Field(default_factory=dict)
    last_updated: Optional[str] = None
    last_merge_stats: MergeStats = Field(default_factory=MergeStats)

    @property
    def total_count(self) -> int:
        return len(self.projects)

    @classmethod
    def empty(cls) -> "MasterDataset":
        return cls()


class DomainStats(BaseModel):
    """单个域的抽取统计"""
    domain: TaxonomicDomain
    pages_fetched: int = 0
    records_fetched: int = 0
    records_failed: int = 0
    total_available: Optional[int] = None
    stopped_early: bool = False
    error: Optional[str] = None


class ExtractionRun(BaseModel):
    """一次流水线运行"""
    run_id: str
    mode: ExtractionMode
    started_at: datetime
    extraction_completed_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    per_domain_stats: Dict[str, DomainStats] = Field(default_factory=dict)
    merge_stats: Optional[MergeStats] = None
    status: Optional[RunOutcome] = None
    errors: List[str] = Field(default_factory=list)

    @property
    def stopped_early(self) -> bool:
        return any(stats.stopped_early for stats in self.per_domain_stats.values())

    @property
    def records_extracted(self) -> int:
        return sum(stats.records_fetched for stats in self.per_domain_stats.values())

    @property
    def duration_ms(self) -> Optional[float]:
        if self.completed_at is None:
            return None
        return (self.completed_at - self.started_at).total_seconds() * 1000.0


class RunHistory(BaseModel):
    """有界的运行历史 (最新在后) 与累计运行次数"""
    total_runs: int = 0
    runs: List[ExtractionRun] = Field(default_factory=list)

    def with_run(self, run: ExtractionRun, limit: int) -> "RunHistory":
        """返回追加 (或替换同 run_id) 后的新历史，只保留最近 limit 条"""
        runs = [r for r in self.runs if r.run_id != run.run_id]
        is_new = len(runs) == len(self.runs)
        runs.append(run)
        return RunHistory(
            total_runs=self.total_runs + (1 if is_new else 0),
            runs=runs[-max(1, limit):],
        )

    @property
    def last_run(self) -> Optional[ExtractionRun]:
        return self.runs[-1] if self.runs else None


class PipelineReport(BaseModel):
    """一次运行对触发方的汇报"""
    run_id: str
    mode: ExtractionMode
    status: RunOutcome
    records_extracted: int = 0
    new_count: int = 0
    updated_count: int = 0
    total_projects: int = 0
    overview_deltas: Dict[str, float] = Field(default_factory=dict)
    per_domain_stats: Dict[str, DomainStats] = Field(default_factory=dict)
    errors: List[str] = Field(default_factory=list)
    duration_ms: Optional[float] = None
