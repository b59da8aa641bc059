"""Job creation and broker dispatch.

Job types map to queues through a static registry; adding a job type means
adding a row here, not a branch elsewhere.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from litreview.broker.interface import EMAIL_QUEUE, PAPER_SCORING_QUEUE, PROJECT_INIT_QUEUE, BrokerTask, QueueBroker, QueuePolicy
from litreview.jobs.errors import DispatchFailure
from litreview.jobs.models import JobRecord, JobStatus, JobType
from litreview.jobs.payloads import build_task_payload
from litreview.storage.jobs_repo import JobsRepository
from litreview.utils.ids import generate_job_id, utc_timestamp

logger = logging.getLogger(__name__)

QUEUE_FOR_JOB_TYPE: dict[JobType, QueuePolicy] = {
  JobType.INIT_INTENT: PROJECT_INIT_QUEUE,
  JobType.INIT_QUERY: PROJECT_INIT_QUEUE,
  JobType.PAPER_SCORING: PAPER_SCORING_QUEUE,
  JobType.SEND_EMAIL: EMAIL_QUEUE,
}


def queue_for(job_type: JobType) -> QueuePolicy:
  """Resolve the queue a job type is delivered through."""
  policy = QUEUE_FOR_JOB_TYPE.get(JobType(job_type))
  if policy is None:
    raise ValueError(f"No queue registered for job type {job_type}")
  return policy


class JobDispatcher:
  """Create job records and hand their tasks to the broker under a deadline."""

  def __init__(self, jobs_repo: JobsRepository, broker: QueueBroker, *, timeout_seconds: float) -> None:
    self._jobs_repo = jobs_repo
    self._broker = broker
    self._timeout_seconds = timeout_seconds

  async def create_job(self, job_type: JobType, *, user_id: str, stage_data: dict[str, Any], project_id: str | None = None, paper_id: str | None = None) -> JobRecord:
    """Persist a PENDING job and enqueue its first task."""
    now = utc_timestamp()
    record = JobRecord(id=generate_job_id(), user_id=user_id, project_id=project_id, paper_id=paper_id, job_type=job_type, status=JobStatus.PENDING, created_at=now, updated_at=now)
    await self._jobs_repo.create_job(record)
    logger.info("Created job job_id=%s type=%s project_id=%s paper_id=%s", record.id, job_type.value, project_id, paper_id)
    return await self.dispatch(record, stage_data)

  async def dispatch(self, record: JobRecord, stage_data: dict[str, Any]) -> JobRecord:
    """Enqueue a new task for ``record`` and point the record at it.

    Raises ``DispatchFailure`` after marking the job FAILED when the broker
    errors or does not answer in time.
    """
    task_ref = await self.enqueue(record, stage_data)
    updated = await self._jobs_repo.set_task_ref(record.id, task_ref)
    return updated or record

  async def enqueue(self, record: JobRecord, stage_data: dict[str, Any]) -> str:
    """Enqueue without touching the stored task reference."""
    policy = queue_for(record.job_type)
    payload = build_task_payload(record, stage_data)
    try:
      return await asyncio.wait_for(self._broker.enqueue(policy.name, record.job_type.value, payload), timeout=self._timeout_seconds)
    except Exception as exc:  # noqa: BLE001
      reason = "Dispatch failed: broker timed out" if isinstance(exc, TimeoutError) else f"Dispatch failed: broker error ({type(exc).__name__})"
      logger.error("Dispatch failed job_id=%s queue=%s error=%s", record.id, policy.name, exc, exc_info=not isinstance(exc, TimeoutError))
      await self._record_failure(record, reason)
      raise DispatchFailure(reason) from exc

  async def lookup(self, record: JobRecord) -> BrokerTask | None:
    """Find the broker task the record points at."""
    policy = queue_for(record.job_type)
    try:
      return await asyncio.wait_for(self._broker.lookup(policy.name, record.external_task_ref), timeout=self._timeout_seconds)
    except Exception as exc:  # noqa: BLE001
      logger.error("Broker lookup failed job_id=%s error=%s", record.id, exc)
      raise DispatchFailure(f"Dispatch failed: broker lookup error ({type(exc).__name__})") from exc

  async def retry(self, record: JobRecord, task: BrokerTask) -> bool:
    """Ask the broker to replay a held task."""
    try:
      return await asyncio.wait_for(self._broker.retry(task), timeout=self._timeout_seconds)
    except Exception as exc:  # noqa: BLE001
      logger.error("Broker retry failed job_id=%s task_ref=%s error=%s", record.id, task.ref, exc)
      reason = f"Dispatch failed: broker retry error ({type(exc).__name__})"
      await self._record_failure(record, reason)
      raise DispatchFailure(reason) from exc

  async def _record_failure(self, record: JobRecord, reason: str) -> None:
    current = await self._jobs_repo.get_job(record.id)
    if current is None:
      return
    if current.status == JobStatus.PENDING:
      await self._jobs_repo.record_dispatch_failure(record.id, reason)
    elif current.is_failed:
      await self._jobs_repo.reclassify_failure(record.id, JobStatus.FAILED, reason)
