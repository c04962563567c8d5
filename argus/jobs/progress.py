"""ARGUS — Job Progress Store.

Long-running work (bulk ad duplication) is detached as an asyncio task; the
caller gets a job id back immediately and polls this store for progress.
Only the store mutates job records.
"""

import asyncio
import uuid
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Dict, List, Optional

from argus.config import settings
from argus.core.errors import Conflict, Forbidden, NotFound
from argus.core.logging import get_logger
from argus.models.failure_models import utcnow
from argus.models.job_models import JobProgressRecord, JobStatus

logger = get_logger("jobs.progress")


class ProgressCallback:
    """Handed to job work; forwards updates for a single job to the store."""

    def __init__(self, store: "JobProgressStore", job_id: str):
        self._store = store
        self.job_id = job_id

    def __call__(
        self,
        total_created: Optional[int] = None,
        current_operation: Optional[str] = None,
        result: Optional[Dict[str, Any]] = None,
        error: Optional[Dict[str, Any]] = None,
        total_requested: Optional[int] = None,
    ) -> None:
        self._store.update(
            self.job_id,
            total_created=total_created,
            current_operation=current_operation,
            result=result,
            error=error,
            total_requested=total_requested,
        )


JobWork = Callable[[ProgressCallback], Awaitable[Any]]


class JobProgressStore:
    """In-memory job registry, owned by the application lifespan."""

    def __init__(self, retention_minutes: int | None = None):
        self.retention = timedelta(
            minutes=retention_minutes or settings.job_retention_minutes
        )
        self._jobs: Dict[str, JobProgressRecord] = {}
        self._tasks: Dict[str, asyncio.Task] = {}

    def __len__(self) -> int:
        return len(self._jobs)

    # ── Submit / Run ──

    def submit(
        self,
        user_id: str,
        work: JobWork,
        kind: str,
        total_requested: int = 0,
        label: str = "",
    ) -> str:
        """Register a pending job and schedule its work. Must run inside an event loop."""
        job_id = f"{kind}_{uuid.uuid4().hex[:12]}"
        self._jobs[job_id] = JobProgressRecord(
            job_id=job_id,
            user_id=user_id,
            kind=kind,
            label=label,
            total_requested=total_requested,
            current_operation="Starting...",
            started_at=utcnow(),
        )
        task = asyncio.get_running_loop().create_task(self._run(job_id, work))
        self._tasks[job_id] = task
        task.add_done_callback(lambda _t: self._tasks.pop(job_id, None))
        logger.info(
            f"🚀 Job submitted: {kind} ({total_requested} item(s))",
            extra={"job_id": job_id, "user_id": user_id},
        )
        return job_id

    async def _run(self, job_id: str, work: JobWork) -> None:
        job = self._jobs.get(job_id)
        if job is None:
            return
        job.status = JobStatus.IN_PROGRESS

        try:
            await work(ProgressCallback(self, job_id))
        except asyncio.CancelledError:
            self._finish(job_id, JobStatus.ERROR, "Cancelled during shutdown")
            raise
        except Exception as e:
            logger.error(f"❌ Job failed: {e}", exc_info=True, extra={"job_id": job_id})
            self.update(job_id, error={"message": str(e)})
            self._finish(job_id, JobStatus.ERROR, f"Error: {e}")
            return

        job = self._jobs.get(job_id)
        if job is None:
            return
        if job.errors:
            message = f"Completed with {len(job.errors)} error(s)"
        else:
            message = f"🎉 All {job.total_created} item(s) created successfully!"
        self._finish(job_id, JobStatus.COMPLETED, message)
        logger.info(
            f"✅ Job completed: {job.total_created}/{job.total_requested}",
            extra={"job_id": job_id},
        )

    def update(
        self,
        job_id: str,
        total_created: Optional[int] = None,
        current_operation: Optional[str] = None,
        result: Optional[Dict[str, Any]] = None,
        error: Optional[Dict[str, Any]] = None,
        total_requested: Optional[int] = None,
    ) -> None:
        """Apply a progress update. Counters never decrease; terminal jobs are frozen."""
        job = self._jobs.get(job_id)
        if job is None or job.is_terminal:
            return
        if total_created is not None:
            job.total_created = max(job.total_created, total_created)
        if total_requested is not None:
            job.total_requested = max(job.total_requested, total_requested)
        if current_operation is not None:
            job.current_operation = current_operation
        if result is not None:
            job.results.append(result)
        if error is not None:
            job.errors.append(error)

    def _finish(self, job_id: str, status: JobStatus, message: str) -> None:
        job = self._jobs.get(job_id)
        if job is None or job.is_terminal:
            return
        job.status = status
        job.current_operation = message
        job.completed_at = utcnow()

    # ── Reads ──

    def get_progress(self, job_id: str, user_id: str) -> JobProgressRecord:
        job = self._jobs.get(job_id)
        if job is None:
            raise NotFound("Job not found. It may have expired or never existed.")
        if job.user_id != user_id:
            raise Forbidden("Access denied to this job")
        return job.model_copy(deep=True)

    def list_jobs(self, user_id: str) -> List[JobProgressRecord]:
        jobs = [j for j in self._jobs.values() if j.user_id == user_id]
        jobs.sort(key=lambda j: j.started_at, reverse=True)
        return [j.model_copy(deep=True) for j in jobs]

    # ── Removal ──

    def delete(self, job_id: str, user_id: str) -> None:
        job = self._jobs.get(job_id)
        if job is None:
            raise NotFound("Job not found")
        if job.user_id != user_id:
            raise Forbidden("Access denied to this job")
        if not job.is_terminal:
            raise Conflict("Job is still running", current_status=job.status.value)
        del self._jobs[job_id]

    def sweep(self, now: datetime | None = None) -> int:
        """Drop terminal jobs that finished before the retention window."""
        cutoff = (now or utcnow()) - self.retention
        expired = [
            job_id
            for job_id, job in self._jobs.items()
            if job.is_terminal and (job.completed_at or job.started_at) < cutoff
        ]
        for job_id in expired:
            del self._jobs[job_id]
        if expired:
            logger.info(f"🧹 Swept {len(expired)} expired job(s)")
        return len(expired)

    async def shutdown(self) -> None:
        """Cancel whatever is still running."""
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        logger.info(f"Job store shut down ({len(tasks)} task(s) cancelled)")
