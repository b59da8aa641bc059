"""In-process broker for local runs and tests.

Payloads are stored encoded so tasks behave like they crossed a wire.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass

from litreview.broker.interface import BrokerTask, QueueBroker, TaskState, get_queue_policy
from litreview.jobs.models import TaskPayload, decode_payload, encode_payload
from litreview.utils.ids import generate_task_ref

logger = logging.getLogger(__name__)


@dataclass
class _StoredTask:
  ref: str
  queue: str
  task_type: str
  payload: bytes
  state: TaskState
  attempts_made: int
  max_attempts: int
  available_at: float
  enqueued_seq: int
  locked_by: str | None = None
  locked_until: float | None = None
  last_error: str | None = None


class InMemoryBroker(QueueBroker):
  """asyncio broker with leases and exponential backoff."""

  def __init__(self, clock=time.monotonic) -> None:
    self._tasks: dict[str, _StoredTask] = {}
    self._lock = asyncio.Lock()
    self._clock = clock
    self._seq = 0

  async def enqueue(self, queue: str, task_type: str, payload: TaskPayload) -> str:
    policy = get_queue_policy(queue)
    async with self._lock:
      self._seq += 1
      ref = generate_task_ref()
      self._tasks[ref] = _StoredTask(
        ref=ref, queue=queue, task_type=task_type, payload=encode_payload(payload), state=TaskState.WAITING, attempts_made=0, max_attempts=policy.max_attempts, available_at=self._clock(), enqueued_seq=self._seq
      )
    logger.debug("Enqueued task ref=%s queue=%s type=%s", ref, queue, task_type)
    return ref

  async def lookup(self, queue: str, task_ref: str | None) -> BrokerTask | None:
    if not task_ref:
      return None
    async with self._lock:
      stored = self._tasks.get(task_ref)
      if stored is None or stored.queue != queue:
        return None
      return self._snapshot(stored)

  async def retry(self, task: BrokerTask) -> bool:
    async with self._lock:
      stored = self._tasks.get(task.ref)
      if stored is None:
        return False
      stored.state = TaskState.WAITING
      stored.attempts_made = 0
      stored.available_at = self._clock()
      stored.locked_by = None
      stored.locked_until = None
      stored.last_error = None
      return True

  async def claim(self, queue: str, worker_id: str, lease_seconds: float) -> BrokerTask | None:
    async with self._lock:
      now = self._clock()
      candidates = [stored for stored in self._tasks.values() if stored.queue == queue and self._deliverable(stored, now)]
      if not candidates:
        return None
      stored = min(candidates, key=lambda item: (item.available_at, item.enqueued_seq))
      if stored.state == TaskState.ACTIVE:
        logger.warning("Recovering stalled task ref=%s queue=%s previous_worker=%s", stored.ref, queue, stored.locked_by)
      stored.state = TaskState.ACTIVE
      stored.locked_by = worker_id
      stored.locked_until = now + lease_seconds
      return self._snapshot(stored)

  async def complete(self, task: BrokerTask) -> None:
    async with self._lock:
      self._tasks.pop(task.ref, None)

  async def fail(self, task: BrokerTask, error: str, *, retryable: bool) -> bool:
    policy = get_queue_policy(task.queue)
    async with self._lock:
      stored = self._tasks.get(task.ref)
      if stored is None:
        return False
      stored.attempts_made += 1
      stored.last_error = error
      stored.locked_by = None
      stored.locked_until = None
      if retryable and stored.attempts_made < stored.max_attempts:
        stored.state = TaskState.WAITING
        stored.available_at = self._clock() + policy.backoff_delay(stored.attempts_made)
        return True
      stored.state = TaskState.FAILED
      return False

  async def close(self) -> None:
    return None

  async def reset(self) -> None:
    """Drop every task, as if broker storage had been wiped."""
    async with self._lock:
      self._tasks.clear()

  async def drop(self, task_ref: str) -> None:
    """Forget a single task, as if it had expired."""
    async with self._lock:
      self._tasks.pop(task_ref, None)

  def _deliverable(self, stored: _StoredTask, now: float) -> bool:
    if stored.state == TaskState.WAITING:
      return stored.available_at <= now
    if stored.state == TaskState.ACTIVE:
      return stored.locked_until is not None and stored.locked_until <= now
    return False

  def _snapshot(self, stored: _StoredTask) -> BrokerTask:
    return BrokerTask(
      ref=stored.ref,
      queue=stored.queue,
      task_type=stored.task_type,
      payload=decode_payload(stored.payload),
      state=stored.state,
      attempts_made=stored.attempts_made,
      max_attempts=stored.max_attempts,
      last_error=stored.last_error,
    )
