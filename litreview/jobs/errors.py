"""Error taxonomy shared by the HTTP layer, the workers and the resume path.

Each error carries a stable ``code`` returned to API callers, the HTTP status
it maps to, and whether the broker may re-run the work automatically.
"""

from __future__ import annotations

from fastapi import status

ORPHAN_REASON = "Project no longer exists (job orphaned)"


class JobError(Exception):
  """Base class for job orchestration failures."""

  code = "JOB_ERROR"
  status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
  retryable = False

  def __init__(self, message: str) -> None:
    super().__init__(message)
    self.message = message


class JobValidationError(JobError):
  code = "VALIDATION"
  status_code = status.HTTP_422_UNPROCESSABLE_ENTITY


class InvalidJobState(JobError):
  code = "INVALID_STATE"
  status_code = status.HTTP_400_BAD_REQUEST


class NotOwned(JobError):
  code = "NOT_OWNED"
  status_code = status.HTTP_403_FORBIDDEN


class NotFound(JobError):
  code = "NOT_FOUND"
  status_code = status.HTTP_404_NOT_FOUND


class OrphanedParent(JobError):
  """The project a job writes to has been deleted; permanent."""

  code = "ORPHANED_PARENT"
  status_code = status.HTTP_404_NOT_FOUND


class InsufficientCredits(JobError):
  """Balance is exhausted; recoverable after a recharge."""

  code = "INSUFFICIENT_CREDITS"
  status_code = status.HTTP_402_PAYMENT_REQUIRED


class JobDataLost(JobError):
  """The broker task is gone and cannot be rebuilt from durable state."""

  code = "JOB_DATA_LOST"
  status_code = status.HTTP_410_GONE


class DispatchFailure(JobError):
  """The broker could not accept the task in time."""

  code = "DISPATCH_FAILURE"
  status_code = status.HTTP_503_SERVICE_UNAVAILABLE
  retryable = True


class StageExecutionError(JobError):
  """LLM call or output validation failed while running a stage."""

  code = "STAGE_EXECUTION_ERROR"
  retryable = True


class InvalidTransition(JobError):
  """A status change outside the job state machine was attempted."""

  code = "INVALID_TRANSITION"
  status_code = status.HTTP_409_CONFLICT
