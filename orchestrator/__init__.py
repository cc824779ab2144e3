"""Pipeline orchestration: single-flight runs, run handles and status tracking."""

from .pipeline import GenomePipeline
from .service import (
    PipelineOrchestrator,
    PipelineStatus,
    RunHandle,
    build_orchestrator,
    next_scheduled_run,
)
from .store import InMemoryRunStore, PipelineRunStatus

__all__ = [
    "GenomePipeline",
    "InMemoryRunStore",
    "PipelineOrchestrator",
    "PipelineRunStatus",
    "PipelineStatus",
    "RunHandle",
    "build_orchestrator",
    "next_scheduled_run",
]
