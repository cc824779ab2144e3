"""
Data Models
"""
from .schemas import (
    TaxonomicDomain,
    ExtractionMode,
    RunOutcome,
    GenomeMetadata,
    GenomeUrls,
    GenomeProject,
    MergeStats,
    MasterDataset,
    DomainStats,
    ExtractionRun,
    RunHistory,
    PipelineReport,
)
from .analytics import (
    Overview,
    DailyTrendPoint,
    MonthlyTrendPoint,
    YearlyTrendPoint,
    Trends,
    PipelineHealth,
    ActivityEvent,
    AnalyticsSnapshot,
)

__all__ = [
    "TaxonomicDomain",
    "ExtractionMode",
    "RunOutcome",
    "GenomeMetadata",
    "GenomeUrls",
    "GenomeProject",
    "MergeStats",
    "MasterDataset",
    "DomainStats",
    "ExtractionRun",
    "RunHistory",
    "PipelineReport",
    "Overview",
    "DailyTrendPoint",
    "MonthlyTrendPoint",
    "YearlyTrendPoint",
    "Trends",
    "PipelineHealth",
    "ActivityEvent",
    "AnalyticsSnapshot",
]
