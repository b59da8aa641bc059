"""Job status state machine.

Lifecycle edges:
  PENDING -> PROCESSING                                  worker claim
  PROCESSING -> COMPLETED | FAILED | FAILED_NO_CREDITS   stage outcome
  FAILED | FAILED_NO_CREDITS -> PENDING                  resume or broker retry

Two bookkeeping writes sit outside the lifecycle and have their own guards:
a job that never reached a worker is marked FAILED when its dispatch fails,
and the resume path may rewrite the failure class of an already failed job
(orphan trap, credit exhaustion) without moving it out of the failed states.
"""

from __future__ import annotations

from litreview.jobs.errors import InvalidTransition
from litreview.jobs.models import FAILED_STATUSES, JobStatus

TRANSITIONS: dict[JobStatus, frozenset[JobStatus]] = {
  JobStatus.PENDING: frozenset({JobStatus.PROCESSING}),
  JobStatus.PROCESSING: frozenset({JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.FAILED_NO_CREDITS}),
  JobStatus.COMPLETED: frozenset(),
  JobStatus.FAILED: frozenset({JobStatus.PENDING}),
  JobStatus.FAILED_NO_CREDITS: frozenset({JobStatus.PENDING}),
}

RESUMABLE_STATUSES = FAILED_STATUSES


def can_transition(current: JobStatus, target: JobStatus) -> bool:
  """Return True when ``current -> target`` is a lifecycle edge."""
  return target in TRANSITIONS.get(JobStatus(current), frozenset())


def assert_transition(current: JobStatus, target: JobStatus) -> None:
  """Raise when ``current -> target`` is not a lifecycle edge."""
  if not can_transition(current, target):
    raise InvalidTransition(f"Illegal job status transition {JobStatus(current).value} -> {JobStatus(target).value}.")


def assert_dispatch_failure(current: JobStatus) -> None:
  """Only a job that is still waiting for its broker task can fail dispatch."""
  if JobStatus(current) != JobStatus.PENDING:
    raise InvalidTransition(f"Dispatch failure cannot be recorded for a job in {JobStatus(current).value}.")


def assert_reclassification(current: JobStatus, target: JobStatus) -> None:
  """Rewriting a failure is allowed only between the failed states."""
  if JobStatus(current) not in FAILED_STATUSES or JobStatus(target) not in FAILED_STATUSES:
    raise InvalidTransition(f"Cannot reclassify job failure {JobStatus(current).value} -> {JobStatus(target).value}.")
