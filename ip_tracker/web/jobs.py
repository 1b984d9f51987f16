"""Background job runner using threading."""

import threading
import time
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable


@dataclass
class JobInfo:
    """Information about a background job."""
    id: str
    name: str
    status: str = "pending"  # pending | running | completed | failed
    message: str = ""
    result: Any = None
    error: str | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None

    def to_dict(self) -> dict:
        data = {
            "job_id": self.id,
            "name": self.name,
            "status": self.status,
            "message": self.message,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }
        if self.status == "completed" and self.result is not None:
            data["result"] = self.result
        if self.error:
            data["error"] = self.error
        return data


class JobManager:
    """Runs monitoring checks and other slow work off the request thread."""

    def __init__(self, cleanup_after_seconds: int = 3600):
        self._jobs: dict[str, JobInfo] = {}
        self._lock = threading.Lock()
        self._cleanup_after = cleanup_after_seconds

    def start_job(
        self,
        name: str,
        func: Callable,
        *args,
        **kwargs,
    ) -> str:
        """Start a background job.

        Args:
            name: Job name, e.g. ``check:<item id>``.
            func: The function to execute. It receives a `progress_callback`
                  keyword argument that accepts a string message.
            *args: Positional arguments for func.
            **kwargs: Keyword arguments for func.

        Returns:
            Job ID string.
        """
        self._cleanup_old_jobs()

        job_id = uuid.uuid4().hex[:12]
        job = JobInfo(id=job_id, name=name, status="running", started_at=datetime.now())

        with self._lock:
            self._jobs[job_id] = job

        def progress_callback(message: str):
            with self._lock:
                if job_id in self._jobs:
                    self._jobs[job_id].message = message

        def wrapper():
            try:
                result = func(*args, progress_callback=progress_callback, **kwargs)
                with self._lock:
                    if job_id in self._jobs:
                        self._jobs[job_id].status = "completed"
                        self._jobs[job_id].result = result
                        self._jobs[job_id].completed_at = datetime.now()
            except Exception as e:
                with self._lock:
                    if job_id in self._jobs:
                        self._jobs[job_id].status = "failed"
                        self._jobs[job_id].error = str(e)
                        self._jobs[job_id].completed_at = datetime.now()

        thread = threading.Thread(target=wrapper, daemon=True)
        thread.start()

        return job_id

    def get_job(self, job_id: str) -> JobInfo | None:
        with self._lock:
            return self._jobs.get(job_id)

    def has_running_job(self, name: str | None = None) -> bool:
        """Check if there's a running job, optionally filtering by name."""
        with self._lock:
            for job in self._jobs.values():
                if job.status == "running":
                    if name is None or job.name == name:
                        return True
        return False

    def _cleanup_old_jobs(self):
        """Remove finished jobs older than cleanup_after_seconds."""
        cutoff = time.time() - self._cleanup_after
        with self._lock:
            expired = [
                job_id for job_id, job in self._jobs.items()
                if job.completed_at and job.completed_at.timestamp() < cutoff
            ]
            for job_id in expired:
                del self._jobs[job_id]
