"""Queue consumers that execute stage handlers against broker tasks."""

from __future__ import annotations

import asyncio
import contextlib
import logging

from litreview.broker.interface import BrokerTask, QueueBroker, QueuePolicy
from litreview.jobs.errors import StageExecutionError
from litreview.jobs.models import JobRecord, JobStatus, TaskPayload
from litreview.jobs.stages import StageOutcome, StageRegistry
from litreview.storage.jobs_repo import JobsRepository

logger = logging.getLogger(__name__)


class JobWorker:
  """Process one broker task end to end.

  Order per task: claim the job record, run the stage handler, write the job
  status, then report the outcome to the broker. The status write happens for
  every stage run that returns; if the worker is cancelled mid-stage the job
  stays PROCESSING under the same task ref and the expired lease redelivers it.
  """

  def __init__(self, *, jobs_repo: JobsRepository, broker: QueueBroker, registry: StageRegistry) -> None:
    self._jobs_repo = jobs_repo
    self._broker = broker
    self._registry = registry

  async def process_task(self, task: BrokerTask) -> StageOutcome | None:
    """Run the task's stage; None when the task was not runnable."""
    payload = task.payload
    job = await self._jobs_repo.get_job(payload.background_job_id)
    if job is None:
      logger.error("Task ref=%s references unknown job_id=%s", task.ref, payload.background_job_id)
      await self._broker.fail(task, "Job record not found", retryable=False)
      return None

    claimed = await self._jobs_repo.claim_job(job.id, task.ref)
    if claimed is None:
      await self._release_unclaimable(task, job)
      return None

    logger.info("Processing job_id=%s type=%s task_ref=%s attempt=%s", claimed.id, claimed.job_type.value, task.ref, task.attempts_made + 1)
    outcome: StageOutcome | None = None
    try:
      outcome = await self._run_stage(claimed, payload)
    finally:
      if outcome is not None:
        await self._record_outcome(claimed, outcome)

    await self._report(task, claimed, outcome)
    return outcome

  async def _run_stage(self, job: JobRecord, payload: TaskPayload) -> StageOutcome:
    try:
      handler = self._registry.resolve(job.job_type)
      return await handler.run(job, payload)
    except Exception as exc:  # noqa: BLE001
      logger.error("Unexpected stage error job_id=%s type=%s", job.id, job.job_type.value, exc_info=True)
      return StageOutcome.from_error(StageExecutionError(f"Unexpected stage error: {type(exc).__name__}: {exc}"))

  async def _record_outcome(self, job: JobRecord, outcome: StageOutcome) -> None:
    if outcome.succeeded:
      await self._jobs_repo.transition(job.id, JobStatus.COMPLETED, clear_reason=True)
      logger.info("Job completed job_id=%s type=%s", job.id, job.job_type.value)
      return
    await self._jobs_repo.transition(job.id, outcome.status, failure_reason=outcome.reason)
    logger.warning("Job failed job_id=%s type=%s status=%s code=%s reason=%s", job.id, job.job_type.value, outcome.status.value, outcome.code, outcome.reason)

  async def _report(self, task: BrokerTask, job: JobRecord, outcome: StageOutcome) -> None:
    if outcome.succeeded:
      await self._broker.complete(task)
      return

    will_retry = outcome.retryable and task.attempts_made + 1 < task.max_attempts
    if will_retry:
      # Re-enter through FAILED -> PENDING so the next delivery can claim the job.
      await self._jobs_repo.transition(job.id, JobStatus.PENDING)
    scheduled = await self._broker.fail(task, outcome.reason or "stage failed", retryable=outcome.retryable)
    if will_retry and not scheduled:
      await self._jobs_repo.record_dispatch_failure(job.id, f"Dispatch failed: broker did not schedule a retry after: {outcome.reason}")
      return
    if scheduled:
      logger.info("Retry scheduled job_id=%s task_ref=%s attempts_made=%s", job.id, task.ref, task.attempts_made + 1)
    elif outcome.retryable:
      logger.warning("Attempts exhausted job_id=%s task_ref=%s; resume required", job.id, task.ref)

  async def _release_unclaimable(self, task: BrokerTask, job: JobRecord) -> None:
    if job.status == JobStatus.COMPLETED:
      # At-least-once delivery: a duplicate of finished work is acknowledged.
      logger.info("Dropping duplicate delivery for completed job_id=%s task_ref=%s", job.id, task.ref)
      await self._broker.complete(task)
      return
    logger.warning("Job job_id=%s not claimable in status=%s by task_ref=%s", job.id, job.status.value, task.ref)
    # Keep the task held in the failed set so a resume can still find it.
    await self._broker.fail(task, f"Job not claimable in status {job.status.value}", retryable=False)


class QueueConsumer:
  """Consumption loop for one queue with bounded concurrency."""

  def __init__(self, worker: JobWorker, broker: QueueBroker, policy: QueuePolicy, *, worker_id: str, concurrency: int = 1, poll_interval_seconds: float = 1.0, lease_seconds: float = 300.0) -> None:
    self._worker = worker
    self._broker = broker
    self._policy = policy
    self._worker_id = worker_id
    self._concurrency = max(concurrency, 1)
    self._poll_interval_seconds = poll_interval_seconds
    self._lease_seconds = lease_seconds

  @property
  def queue_name(self) -> str:
    return self._policy.name

  async def run_once(self) -> StageOutcome | None:
    """Claim and process a single task if one is deliverable."""
    task = await self._broker.claim(self._policy.name, self._worker_id, self._lease_seconds)
    if task is None:
      return None
    return await self._worker.process_task(task)

  async def drain(self, max_tasks: int = 100) -> int:
    """Process deliverable tasks sequentially until the queue is empty."""
    processed = 0
    while processed < max_tasks:
      task = await self._broker.claim(self._policy.name, self._worker_id, self._lease_seconds)
      if task is None:
        break
      await self._worker.process_task(task)
      processed += 1
    return processed

  async def run(self, stop_event: asyncio.Event) -> None:
    """Poll the queue until ``stop_event`` is set, then wait for in-flight tasks."""
    logger.info("Consumer started queue=%s worker_id=%s concurrency=%s", self._policy.name, self._worker_id, self._concurrency)
    slots = asyncio.Semaphore(self._concurrency)
    in_flight: set[asyncio.Task[None]] = set()

    while not stop_event.is_set():
      await slots.acquire()
      try:
        task = await self._broker.claim(self._policy.name, self._worker_id, self._lease_seconds)
      except Exception:  # noqa: BLE001
        logger.error("Claim failed queue=%s", self._policy.name, exc_info=True)
        task = None

      if task is None:
        slots.release()
        with contextlib.suppress(TimeoutError):
          await asyncio.wait_for(stop_event.wait(), timeout=self._poll_interval_seconds)
        continue

      running = asyncio.create_task(self._process(task, slots))
      in_flight.add(running)
      running.add_done_callback(in_flight.discard)

    if in_flight:
      logger.info("Consumer stopping queue=%s; waiting for %s in-flight tasks", self._policy.name, len(in_flight))
      await asyncio.gather(*in_flight, return_exceptions=True)
    logger.info("Consumer stopped queue=%s", self._policy.name)

  async def _process(self, task: BrokerTask, slots: asyncio.Semaphore) -> None:
    try:
      await self._worker.process_task(task)
    except Exception:  # noqa: BLE001
      # Lease expiry redelivers the task; the loop keeps serving others.
      logger.error("Task processing crashed queue=%s task_ref=%s", self._policy.name, task.ref, exc_info=True)
    finally:
      slots.release()
