"""Lenient JSON parsing helpers for LLM outputs."""

from __future__ import annotations

import json
import re
from typing import Any

_TRAILING_COMMA_RE = re.compile(r",\s*([}\]])")


def parse_json_with_fallback(raw: str) -> Any:
  """Parse JSON with minimal recovery to keep stage retries low."""
  try:
    return json.loads(raw)
  except json.JSONDecodeError as exc:
    last_error = exc

  # Extract the outermost object to ignore leading or trailing prose.
  candidate = _extract_json_object(raw)
  if candidate is None:
    raise last_error

  try:
    return json.loads(candidate)
  except json.JSONDecodeError:
    pass

  # Strip trailing commas that commonly appear in LLM output.
  return json.loads(_TRAILING_COMMA_RE.sub(r"\1", candidate))


def _extract_json_object(raw: str) -> str | None:
  start = raw.find("{")
  end = raw.rfind("}")
  if start == -1 or end <= start:
    return None
  return raw[start : end + 1]
