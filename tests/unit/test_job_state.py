from __future__ import annotations

import pytest

from litreview.jobs.errors import InvalidTransition
from litreview.jobs.models import JobStatus
from litreview.jobs.state import assert_dispatch_failure, assert_reclassification, assert_transition, can_transition

ALLOWED = {
  (JobStatus.PENDING, JobStatus.PROCESSING),
  (JobStatus.PROCESSING, JobStatus.COMPLETED),
  (JobStatus.PROCESSING, JobStatus.FAILED),
  (JobStatus.PROCESSING, JobStatus.FAILED_NO_CREDITS),
  (JobStatus.FAILED, JobStatus.PENDING),
  (JobStatus.FAILED_NO_CREDITS, JobStatus.PENDING),
}


@pytest.mark.parametrize("current", list(JobStatus))
@pytest.mark.parametrize("target", list(JobStatus))
def test_only_lifecycle_edges_are_allowed(current: JobStatus, target: JobStatus) -> None:
  assert can_transition(current, target) is ((current, target) in ALLOWED)


def test_completed_is_terminal() -> None:
  for target in JobStatus:
    with pytest.raises(InvalidTransition):
      assert_transition(JobStatus.COMPLETED, target)


def test_dispatch_failure_only_from_pending() -> None:
  assert_dispatch_failure(JobStatus.PENDING)
  for status in (JobStatus.PROCESSING, JobStatus.COMPLETED, JobStatus.FAILED):
    with pytest.raises(InvalidTransition):
      assert_dispatch_failure(status)


def test_reclassification_stays_within_failed_states() -> None:
  assert_reclassification(JobStatus.FAILED_NO_CREDITS, JobStatus.FAILED)
  assert_reclassification(JobStatus.FAILED, JobStatus.FAILED_NO_CREDITS)
  with pytest.raises(InvalidTransition):
    assert_reclassification(JobStatus.PROCESSING, JobStatus.FAILED)
  with pytest.raises(InvalidTransition):
    assert_reclassification(JobStatus.FAILED, JobStatus.PENDING)
