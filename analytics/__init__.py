"""
Analytics Module
分析模块 - 概览、趋势、健康度与最近活动
"""
from .processor import (
    AnalyticsProcessor,
    aggregate,
    build_overview,
    build_trends,
    build_health,
    build_recent_activity,
    growth_rate,
    overview_deltas,
)

__all__ = [
    "AnalyticsProcessor",
    "aggregate",
    "build_overview",
    "build_trends",
    "build_health",
    "build_recent_activity",
    "growth_rate",
    "overview_deltas",
]
