"""Shared runner for LLM-backed pipeline stages."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ValidationError

from litreview.ai.providers.base import AIModel
from litreview.jobs.errors import JobValidationError, StageExecutionError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StageResult:
  """Validated stage output plus the usage needed to charge for it.

  ``model_name`` is the model that was requested and is what gets priced;
  ``served_model`` is whatever the provider reported back.
  """

  output: dict[str, Any]
  model_name: str
  provider: str
  input_tokens: int
  output_tokens: int
  duration_ms: int | None = None
  request_id: str | None = None
  served_model: str | None = None


def require_fields(stage: str, stage_data: dict[str, Any], fields: tuple[str, ...]) -> None:
  """Reject malformed task input before spending on a model call."""
  missing = [field for field in fields if stage_data.get(field) in (None, "")]
  if missing:
    raise JobValidationError(f"{stage} stage input is missing {', '.join(missing)}.")


async def run_structured_stage(model: AIModel, *, stage: str, system_prompt: str, user_prompt: str, output_model: type[BaseModel], overrides: dict[str, Any] | None = None) -> StageResult:
  """Call the model and validate its JSON against ``output_model``.

  Any provider or validation failure becomes a ``StageExecutionError``; the
  output is never re-parsed, the broker may re-run the whole stage instead.
  """
  schema = output_model.model_json_schema(by_alias=True)
  try:
    response = await model.generate_structured(system_prompt, user_prompt, schema)
  except Exception as exc:  # noqa: BLE001
    logger.warning("Stage %s model call failed model=%s error=%s", stage, model.name, exc)
    raise StageExecutionError(f"{stage} stage model call failed: {exc}") from exc

  content = dict(response.content)
  if overrides:
    content.update(overrides)
  try:
    parsed = output_model.model_validate(content)
  except ValidationError as exc:
    logger.warning("Stage %s output failed validation errors=%s", stage, exc.error_count())
    raise StageExecutionError(f"{stage} stage output failed schema validation ({exc.error_count()} errors).") from exc

  usage = response.usage or {}
  return StageResult(
    output=parsed.model_dump(by_alias=True, mode="json"),
    # Pricing is keyed by the requested name; providers may answer with a dated snapshot.
    model_name=model.name,
    provider=model.provider_name,
    input_tokens=int(usage.get("prompt_tokens") or 0),
    output_tokens=int(usage.get("completion_tokens") or 0),
    duration_ms=response.duration_ms,
    request_id=response.request_id,
    served_model=response.model,
  )
