from __future__ import annotations

import logging
import threading
import uuid
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from plantswap.workflow.models import Candidate, EditSpec, LogEntry, StepResult

logger = logging.getLogger(__name__)


class JobStatus(str, Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    ERROR = "error"


class Job:
    """
    Live state of one edit chain.

    Only the chain's worker thread writes progress fields. ``cancel`` and ``select``
    are the two entry points other threads may call.
    """

    def __init__(self, job_id: str, edits: Sequence[EditSpec]) -> None:
        self.id = job_id
        self.edits: List[EditSpec] = list(edits)
        self.status = JobStatus.RUNNING
        self.current_step = 0
        self.current_attempt = 0
        self.results: List[StepResult] = []
        self.logs: List[LogEntry] = []
        self.live_candidates: List[Candidate] = []
        self.pending_selection = False
        self.final_image: Optional[bytes] = None
        self.error: Optional[str] = None
        self.output_dir: Optional[str] = None

        self._cancelled = threading.Event()
        self._cond = threading.Condition()
        self._selection: Optional[tuple[int, str]] = None
        self._step_open = False

    @property
    def total_steps(self) -> int:
        return len(self.edits)

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    @property
    def selected_label(self) -> Optional[str]:
        selection = self._selection
        return selection[1] if selection else None

    @property
    def progress(self) -> int:
        if self.status == JobStatus.COMPLETED:
            return 100
        if not self.total_steps:
            return 0
        return round(len(self.results) / self.total_steps * 100)

    @property
    def finished(self) -> bool:
        return self.status != JobStatus.RUNNING

    def log(self, msg: str) -> LogEntry:
        entry = LogEntry.now(msg)
        with self._cond:
            self.logs.append(entry)
        logger.info("[%s] %s", self.id, msg)
        return entry

    def cancel(self) -> None:
        if self.finished:
            return
        self._cancelled.set()
        self.log("Job cancelled by user")
        with self._cond:
            self._cond.notify_all()

    def select(self, step_index: int, label: str) -> bool:
        """
        Record a manual candidate choice for the running step. Last call wins.
        Labels that no published candidate of this step carries are rejected.
        """
        with self._cond:
            if self.finished or not self._step_open or step_index != self.current_step:
                return False
            known = any(c.label == label for c in self.live_candidates)
            if known:
                self._selection = (step_index, label)
                self.pending_selection = False
                self._cond.notify_all()
        if not known:
            self.log(f"Selected version {label} does not exist for this step")
            return False
        self.log(f"User selected version {label}")
        return True

    def selection_for(self, step_index: int) -> Optional[str]:
        selection = self._selection
        if selection and selection[0] == step_index:
            return selection[1]
        return None

    def wait_for_selection(self, step_index: int, timeout: float) -> Optional[str]:
        with self._cond:
            self._cond.wait_for(
                lambda: self.cancelled or self.selection_for(step_index) is not None,
                timeout=timeout,
            )
            return self.selection_for(step_index)

    def sleep(self, seconds: float) -> bool:
        """Cancellable delay. Returns True when the job was cancelled."""
        if seconds > 0:
            return self._cancelled.wait(seconds)
        return self.cancelled

    def begin_step(self, step_index: int) -> None:
        with self._cond:
            self.current_step = step_index
            self.current_attempt = 0
            self.live_candidates = []
            self._selection = None
            self.pending_selection = False
            self._step_open = True

    def end_step(self, result: StepResult) -> None:
        with self._cond:
            self._step_open = False
            self.pending_selection = False
            self.results.append(result)

    def publish_candidate(self, candidate: Candidate) -> None:
        with self._cond:
            self.live_candidates = self.live_candidates + [candidate]

    def finish(self, status: JobStatus, error: Optional[str] = None) -> None:
        with self._cond:
            self._step_open = False
            self.pending_selection = False
            self.error = error
            self.status = status
            self._cond.notify_all()

    def snapshot(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "status": self.status.value,
            "progress": self.progress,
            "total_steps": self.total_steps,
            "current_step": self.current_step + 1,
            "current_attempt": self.current_attempt,
            "pending_selection": self.pending_selection,
            "selected_version": self.selected_label,
            "live_versions": [c.to_dict() for c in self.live_candidates],
            "results": [r.to_dict() for r in self.results],
            "logs": [entry.to_dict() for entry in list(self.logs)],
            "error": self.error,
            "output_dir": self.output_dir,
        }


class JobStore:
    """In-memory registry of jobs keyed by id."""

    def __init__(self) -> None:
        self._jobs: Dict[str, Job] = {}
        self._lock = threading.Lock()

    def create(self, edits: Sequence[EditSpec]) -> Job:
        job = Job(f"job-{uuid.uuid4().hex[:12]}", edits)
        with self._lock:
            self._jobs[job.id] = job
        return job

    def get(self, job_id: str) -> Optional[Job]:
        with self._lock:
            return self._jobs.get(job_id)

    def remove(self, job_id: str) -> Optional[Job]:
        with self._lock:
            return self._jobs.pop(job_id, None)

    def list(self) -> List[Job]:
        with self._lock:
            return list(self._jobs.values())

    def _require(self, job_id: str) -> Job:
        job = self.get(job_id)
        if job is None:
            raise KeyError(f"Job not found: {job_id}")
        return job

    def cancel(self, job_id: str) -> None:
        self._require(job_id).cancel()

    def select_candidate(self, job_id: str, step_index: int, label: str) -> bool:
        return self._require(job_id).select(step_index, label)
