"""Identifier and timestamp utilities."""

from __future__ import annotations

import time
import uuid


def generate_job_id() -> str:
  """Return a new background job identifier."""
  return str(uuid.uuid4())


def generate_task_ref() -> str:
  """Return a new broker task reference."""
  return uuid.uuid4().hex


def utc_timestamp() -> str:
  """Return the current UTC time as an ISO-8601 string with second precision."""
  return time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime())
