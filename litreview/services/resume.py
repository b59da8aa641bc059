"""User-triggered recovery of failed jobs.

Resuming re-runs the same work: a task the broker still holds is replayed with
its original payload, and a lost task is rebuilt from durable project state.
Every check that can reject a resume runs before the job leaves its failed state.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from litreview.jobs.dispatch import JobDispatcher
from litreview.jobs.errors import ORPHAN_REASON, InsufficientCredits, InvalidJobState, JobDataLost, JobError, NotFound, NotOwned, OrphanedParent
from litreview.jobs.models import JobRecord, JobStatus
from litreview.jobs.payloads import reconstruct_stage_data
from litreview.jobs.state import RESUMABLE_STATUSES
from litreview.services.credits import CreditGate
from litreview.storage.jobs_repo import JobsRepository
from litreview.storage.research_repo import ResearchRepository

logger = logging.getLogger(__name__)

RESUME_NO_CREDITS_REASON = "Insufficient credits to resume"


@dataclass(frozen=True)
class ResumeAllResult:
  resumed_count: int
  total_failed_found: int


class ResumeCoordinator:
  """Re-enter failed jobs into the pipeline on the owner's request."""

  def __init__(self, *, jobs_repo: JobsRepository, research: ResearchRepository, credits: CreditGate, dispatcher: JobDispatcher) -> None:
    self._jobs_repo = jobs_repo
    self._research = research
    self._credits = credits
    self._dispatcher = dispatcher

  async def resume_one(self, job_id: str, user_id: str) -> JobRecord:
    """Resume a single failed job owned by ``user_id``."""
    job = await self._jobs_repo.get_job(job_id)
    if job is None:
      raise NotFound("Job not found")
    if job.user_id != user_id:
      raise NotOwned("Not authorized to resume this job")
    if job.status not in RESUMABLE_STATUSES:
      raise InvalidJobState("Job is not in a failed state")

    await self._check_parent(job)
    await self._check_credits(job)

    task = await self._dispatcher.lookup(job)
    stage_data = None
    if task is None:
      # SEND_EMAIL and missing inputs raise JobDataLost here, before any write.
      stage_data = await reconstruct_stage_data(job, self._research)

    # PENDING before the task becomes deliverable, so a fast worker can claim it.
    resumed = await self._jobs_repo.transition(job.id, JobStatus.PENDING, clear_reason=True) or job

    if task is not None and await self._dispatcher.retry(resumed, task):
      logger.info("Resumed job_id=%s by retrying task_ref=%s", job.id, task.ref)
      return await self._jobs_repo.get_job(job.id) or resumed

    if stage_data is None:
      # The task vanished between lookup and retry.
      try:
        stage_data = await reconstruct_stage_data(job, self._research)
      except JobDataLost as exc:
        await self._jobs_repo.record_dispatch_failure(job.id, exc.message)
        raise
    dispatched = await self._dispatcher.dispatch(resumed, stage_data)
    logger.info("Resumed job_id=%s with reconstructed task_ref=%s (previous=%s)", job.id, dispatched.external_task_ref, job.external_task_ref)
    return dispatched

  async def resume_all(self, user_id: str) -> ResumeAllResult:
    """Resume every failed job of the user; each job succeeds or fails on its own."""
    if not await self._credits.has_credits(user_id):
      raise InsufficientCredits("Insufficient credits to resume jobs")

    failed_jobs = await self._jobs_repo.list_failed_jobs(user_id)
    resumed = 0
    for job in failed_jobs:
      try:
        await self.resume_one(job.id, user_id)
      except JobError as exc:
        logger.info("Skipped resuming job_id=%s code=%s reason=%s", job.id, exc.code, exc.message)
        continue
      resumed += 1

    logger.info("Resume-all user_id=%s resumed=%s failed_found=%s", user_id, resumed, len(failed_jobs))
    return ResumeAllResult(resumed_count=resumed, total_failed_found=len(failed_jobs))

  async def _check_parent(self, job: JobRecord) -> None:
    if not job.project_id:
      return
    if await self._research.get_project(job.project_id) is not None:
      return
    # One-way trap; an already trapped job is not rewritten.
    if not (job.status == JobStatus.FAILED and job.failure_reason == ORPHAN_REASON):
      await self._jobs_repo.reclassify_failure(job.id, JobStatus.FAILED, ORPHAN_REASON)
      logger.warning("Trapped orphaned job_id=%s project_id=%s", job.id, job.project_id)
    raise OrphanedParent("Project no longer exists")

  async def _check_credits(self, job: JobRecord) -> None:
    if await self._credits.has_credits(job.user_id):
      return
    await self._jobs_repo.reclassify_failure(job.id, JobStatus.FAILED_NO_CREDITS, RESUME_NO_CREDITS_REASON)
    raise InsufficientCredits(RESUME_NO_CREDITS_REASON)
