"""Domain models for background analysis jobs."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

import msgspec


class JobType(str, Enum):
  """Kinds of background work the pipeline runs."""

  INIT_INTENT = "INIT_INTENT"
  INIT_QUERY = "INIT_QUERY"
  PAPER_SCORING = "PAPER_SCORING"
  SEND_EMAIL = "SEND_EMAIL"


class JobStatus(str, Enum):
  """Lifecycle states of a job record."""

  PENDING = "PENDING"
  PROCESSING = "PROCESSING"
  COMPLETED = "COMPLETED"
  FAILED = "FAILED"
  FAILED_NO_CREDITS = "FAILED_NO_CREDITS"


class NotificationType(str, Enum):
  """Email notifications emitted when a pipeline finishes."""

  PROJECT_INIT_COMPLETE = "PROJECT_INIT_COMPLETE"
  PROJECT_SCORING_COMPLETE = "PROJECT_SCORING_COMPLETE"


FAILED_STATUSES = frozenset({JobStatus.FAILED, JobStatus.FAILED_NO_CREDITS})


@dataclass
class JobRecord:
  """Durable row describing one unit of background work."""

  id: str
  user_id: str
  job_type: JobType
  status: JobStatus
  created_at: str
  updated_at: str
  project_id: str | None = None
  paper_id: str | None = None
  failure_reason: str | None = None
  external_task_ref: str | None = None

  @property
  def is_failed(self) -> bool:
    return self.status in FAILED_STATUSES


class TaskPayload(msgspec.Struct, rename="camel", omit_defaults=True):
  """Wire payload carried by every broker task."""

  background_job_id: str
  user_id: str
  project_id: str | None = None
  paper_id: str | None = None
  stage_data: dict[str, Any] = msgspec.field(default_factory=dict)


def encode_payload(payload: TaskPayload) -> bytes:
  """Serialize a task payload to JSON bytes."""
  return msgspec.json.encode(payload)


def decode_payload(raw: bytes | str | dict[str, Any]) -> TaskPayload:
  """Decode a task payload from JSON bytes or an already-parsed mapping."""
  if isinstance(raw, dict):
    return msgspec.convert(raw, TaskPayload)
  return msgspec.json.decode(raw, type=TaskPayload)
