"""Queue broker contract shared by the HTTP layer, workers and resume path."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Protocol

from litreview.jobs.models import TaskPayload


class TaskState(str, Enum):
  WAITING = "waiting"
  ACTIVE = "active"
  FAILED = "failed"


@dataclass(frozen=True)
class QueuePolicy:
  """Name, attempt budget and exponential backoff of one queue."""

  name: str
  max_attempts: int
  backoff_base_seconds: float

  def backoff_delay(self, attempts_made: int) -> float:
    """Delay before the next attempt after ``attempts_made`` failures."""
    return self.backoff_base_seconds * (2 ** max(attempts_made - 1, 0))


PROJECT_INIT_QUEUE = QueuePolicy(name="project-init", max_attempts=3, backoff_base_seconds=1.0)
PAPER_SCORING_QUEUE = QueuePolicy(name="paper-scoring", max_attempts=3, backoff_base_seconds=2.0)
EMAIL_QUEUE = QueuePolicy(name="email", max_attempts=5, backoff_base_seconds=5.0)

QUEUE_POLICIES: dict[str, QueuePolicy] = {policy.name: policy for policy in (PROJECT_INIT_QUEUE, PAPER_SCORING_QUEUE, EMAIL_QUEUE)}


def get_queue_policy(queue: str) -> QueuePolicy:
  policy = QUEUE_POLICIES.get(queue)
  if policy is None:
    raise ValueError(f"Unknown queue: {queue}")
  return policy


@dataclass(frozen=True)
class BrokerTask:
  """Snapshot of a broker-owned unit of work."""

  ref: str
  queue: str
  task_type: str
  payload: TaskPayload
  state: TaskState
  attempts_made: int
  max_attempts: int
  last_error: str | None = None


class QueueBroker(Protocol):
  """At-least-once task queues with lookup and manual retry."""

  async def enqueue(self, queue: str, task_type: str, payload: TaskPayload) -> str:
    """Add a task and return its reference."""

  async def lookup(self, queue: str, task_ref: str | None) -> BrokerTask | None:
    """Return the task if the broker still holds it."""

  async def retry(self, task: BrokerTask) -> bool:
    """Re-submit a held task with its original payload and a fresh attempt budget."""

  async def claim(self, queue: str, worker_id: str, lease_seconds: float) -> BrokerTask | None:
    """Lease the next deliverable task; expired leases make a task deliverable again."""

  async def complete(self, task: BrokerTask) -> None:
    """Acknowledge a finished task and drop it."""

  async def fail(self, task: BrokerTask, error: str, *, retryable: bool) -> bool:
    """Record a failed attempt; return True when another attempt was scheduled."""

  async def close(self) -> None:
    """Release broker resources."""
