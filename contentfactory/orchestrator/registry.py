"""Registry of the jobs currently driven by one orchestrator.

It is the only state shared across job tasks. Access is guarded by a lock so
the registry stays consistent when called from threads other than the event
loop (e.g. a sync API handler requesting a stop).
"""

import asyncio
import logging
import threading
import uuid
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger(__name__)


@dataclass
class RunningJob:
    """Bookkeeping for one live job task."""

    job_id: uuid.UUID
    kind: str
    task: Optional[asyncio.Task] = None
    cancel_requested: bool = False


class RunningJobRegistry:
    """Lock-guarded map of job id to its running task and cancel flag."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._jobs: dict[uuid.UUID, RunningJob] = {}

    def register(self, job_id: uuid.UUID, kind: str) -> RunningJob:
        """Add a job. Raises ValueError if it is already registered."""
        with self._lock:
            if job_id in self._jobs:
                raise ValueError(f"Job {job_id} is already running")
            entry = RunningJob(job_id=job_id, kind=kind)
            self._jobs[job_id] = entry
            return entry

    def attach_task(self, job_id: uuid.UUID, task: asyncio.Task) -> None:
        with self._lock:
            entry = self._jobs.get(job_id)
            if entry is not None:
                entry.task = task

    def request_cancel(self, job_id: uuid.UUID) -> bool:
        """Flag a job for cancellation; False if the job is not running here."""
        with self._lock:
            entry = self._jobs.get(job_id)
            if entry is None:
                return False
            entry.cancel_requested = True
        logger.info(f"Cancellation requested for job {job_id}")
        return True

    def is_cancel_requested(self, job_id: uuid.UUID) -> bool:
        with self._lock:
            entry = self._jobs.get(job_id)
            return entry is not None and entry.cancel_requested

    def get(self, job_id: uuid.UUID) -> Optional[RunningJob]:
        with self._lock:
            return self._jobs.get(job_id)

    def remove(self, job_id: uuid.UUID) -> Optional[RunningJob]:
        with self._lock:
            return self._jobs.pop(job_id, None)

    def tasks(self) -> list[asyncio.Task]:
        with self._lock:
            return [entry.task for entry in self._jobs.values() if entry.task is not None]

    def job_ids(self) -> list[uuid.UUID]:
        with self._lock:
            return list(self._jobs)

    def __contains__(self, job_id: object) -> bool:
        with self._lock:
            return job_id in self._jobs

    def __len__(self) -> int:
        with self._lock:
            return len(self._jobs)
