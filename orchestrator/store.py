"""In-memory run store for pipeline status tracking."""

from __future__ import annotations

from datetime import datetime
from threading import Lock
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from extraction import new_run_id
from models import ExtractionMode, PipelineReport
from utils.timeutils import utcnow


RunState = Literal["queued", "running", "completed", "failed"]


class PipelineRunStatus(BaseModel):
    """Observable status of one triggered run."""

    run_id: str
    mode: ExtractionMode
    trigger: Literal["manual", "scheduled"] = "manual"
    state: RunState = "queued"
    created_at: datetime = Field(default_factory=utcnow)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    report: Optional[PipelineReport] = None
    errors: List[str] = Field(default_factory=list)


class InMemoryRunStore:
    """Thread-safe store for run statuses and their event logs."""

    def __init__(self) -> None:
        self._statuses: Dict[str, PipelineRunStatus] = {}
        self._events: Dict[str, List[Dict[str, str]]] = {}
        self._lock = Lock()

    def create(self, mode: ExtractionMode, *, trigger: str = "manual") -> str:
        with self._lock:
            run_id = new_run_id()
            self._statuses[run_id] = PipelineRunStatus(run_id=run_id, mode=mode, trigger=trigger)
            self._events[run_id] = []
            return run_id

    def get_status(self, run_id: str) -> Optional[PipelineRunStatus]:
        with self._lock:
            status = self._statuses.get(run_id)
            return status.model_copy(deep=True) if status else None

    def update_running(self, run_id: str) -> Optional[PipelineRunStatus]:
        with self._lock:
            status = self._statuses.get(run_id)
            if not status:
                return None
            now = utcnow()
            status.state = "running"
            status.started_at = status.started_at or now
            status.updated_at = now
            return status.model_copy(deep=True)

    def append_event(self, run_id: str, event: str, message: str) -> bool:
        with self._lock:
            if run_id not in self._statuses:
                return False
            self._events.setdefault(run_id, []).append(
                {
                    "ts": utcnow().isoformat(timespec="seconds"),
                    "event": str(event or "").strip() or "event",
                    "message": str(message or "").strip(),
                }
            )
            return True

    def list_events(self, run_id: str) -> List[Dict[str, str]]:
        with self._lock:
            return [dict(item) for item in list(self._events.get(run_id, []))]

    def update_completed(self, run_id: str, report: PipelineReport) -> Optional[PipelineRunStatus]:
        with self._lock:
            status = self._statuses.get(run_id)
            if not status:
                return None
            now = utcnow()
            status.state = "completed"
            status.report = report
            status.errors.extend(report.errors)
            status.completed_at = now
            status.updated_at = now
            return status.model_copy(deep=True)

    def update_failed(
        self,
        run_id: str,
        error: str,
        report: Optional[PipelineReport] = None,
    ) -> Optional[PipelineRunStatus]:
        with self._lock:
            status = self._statuses.get(run_id)
            if not status:
                return None
            now = utcnow()
            status.state = "failed"
            status.report = report
            if report is not None:
                status.errors.extend(report.errors)
            if error and error not in status.errors:
                status.errors.append(str(error))
            status.completed_at = now
            status.updated_at = now
            return status.model_copy(deep=True)
