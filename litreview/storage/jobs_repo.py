"""Storage interfaces for background jobs."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol

from litreview.jobs.models import JobRecord, JobStatus


class JobsRepository(Protocol):
  """Repository contract for job persistence.

  Every status write goes through one of the guarded methods below so the
  state machine in ``litreview.jobs.state`` is enforced at the storage seam.
  """

  async def create_job(self, record: JobRecord) -> None:
    """Persist an initial job record."""

  async def get_job(self, job_id: str) -> JobRecord | None:
    """Fetch a job by identifier."""

  async def list_jobs(self, user_id: str, *, statuses: Sequence[JobStatus] | None = None, limit: int = 20, offset: int = 0) -> tuple[list[JobRecord], int]:
    """Return one page of a user's jobs, newest first, and the total match count."""

  async def list_failed_jobs(self, user_id: str) -> list[JobRecord]:
    """Return every FAILED/FAILED_NO_CREDITS job owned by the user."""

  async def claim_job(self, job_id: str, task_ref: str) -> JobRecord | None:
    """Move a job to PROCESSING for ``task_ref``; None when it is not claimable."""

  async def transition(self, job_id: str, target: JobStatus, *, failure_reason: str | None = None, clear_reason: bool = False) -> JobRecord | None:
    """Apply a lifecycle status change."""

  async def record_dispatch_failure(self, job_id: str, reason: str) -> JobRecord | None:
    """Mark a PENDING job FAILED because its broker task was never accepted."""

  async def reclassify_failure(self, job_id: str, status: JobStatus, reason: str) -> JobRecord | None:
    """Rewrite the failure class and reason of an already failed job."""

  async def set_task_ref(self, job_id: str, task_ref: str) -> JobRecord | None:
    """Point the job at a new broker task, replacing any previous reference."""
