"""
Analytics Models
派生的只读分析快照
"""
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field


class Overview(BaseModel):
    """概览指标"""
    total_projects: int = 0
    archaea_projects: int = 0
    bacteria_projects: int = 0
    last_updated: Optional[str] = None
    growth_rate: float = 0.0
    new_projects_this_week: int = 0


class DailyTrendPoint(BaseModel):
    date: str
    count: int
    domain: str


class MonthlyTrendPoint(BaseModel):
    month: str
    count: int
    domain: str


class YearlyTrendPoint(BaseModel):
    year: str
    count: int
    domain: str


class Trends(BaseModel):
    """按日/月/年分桶的提交趋势"""
    daily: List[DailyTrendPoint] = Field(default_factory=list)
    monthly: List[MonthlyTrendPoint] = Field(default_factory=list)
    yearly: List[YearlyTrendPoint] = Field(default_factory=list)


class PipelineHealth(BaseModel):
    """流水线健康度"""
    status: Literal["healthy", "warning", "error"] = "error"
    last_extraction: Optional[str] = None
    extraction_count: int = 0
    error_rate: float = 0.0
    avg_processing_time: float = 0.0
    uptime: float = 100.0


class ActivityEvent(BaseModel):
    """最近活动条目"""
    id: str
    type: Literal["extraction", "processing", "analysis"]
    status: Literal["success", "error", "warning"]
    message: str
    timestamp: str
    metadata: Dict[str, Any] = Field(default_factory=dict)


class AnalyticsSnapshot(BaseModel):
    """分析快照 - 每次成功合并后整体重算"""
    overview: Overview = Field(default_factory=Overview)
    trends: Trends = Field(default_factory=Trends)
    pipeline_health: PipelineHealth = Field(default_factory=PipelineHealth)
    recent_activity: List[ActivityEvent] = Field(default_factory=list)
