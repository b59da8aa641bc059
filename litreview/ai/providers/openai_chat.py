"""OpenAI provider implementation using the openai SDK."""

from __future__ import annotations

import json
import logging
import time
from typing import Any, Final, cast

from openai import AsyncOpenAI

from litreview.ai.json_parser import parse_json_with_fallback
from litreview.ai.providers.base import AIModel, Provider, StructuredModelResponse

logger = logging.getLogger(__name__)


class OpenAIModel(AIModel):
  """OpenAI chat model client running in JSON mode."""

  def __init__(self, name: str, client: AsyncOpenAI) -> None:
    self.name = name
    self.provider_name = "openai"
    self._client = client

  async def generate_structured(self, system_prompt: str, user_prompt: str, schema: dict[str, Any]) -> StructuredModelResponse:
    """Generate JSON output; the schema is embedded in the system message."""
    schema_str = json.dumps(schema, indent=2)
    system_msg = f"{system_prompt}\n\nYou MUST output a single JSON object adhering to this schema:\n```json\n{schema_str}\n```\nOutput valid JSON only, no markdown formatting."

    started = time.monotonic()
    response = await self._client.chat.completions.create(model=self.name, messages=[{"role": "system", "content": system_msg}, {"role": "user", "content": user_prompt}], response_format={"type": "json_object"})
    duration_ms = int((time.monotonic() - started) * 1000)

    content = response.choices[0].message.content or ""
    logger.debug("OpenAI structured response model=%s duration_ms=%s chars=%s", self.name, duration_ms, len(content))
    usage = None
    if response.usage:
      usage = {"prompt_tokens": response.usage.prompt_tokens, "completion_tokens": response.usage.completion_tokens, "total_tokens": response.usage.total_tokens}

    # Parse the model response with a lenient fallback to reduce retry churn.
    try:
      parsed = parse_json_with_fallback(self.strip_json_fences(content))
    except json.JSONDecodeError as exc:
      raise RuntimeError(f"OpenAI returned invalid JSON: {exc}") from exc
    if not isinstance(parsed, dict):
      raise RuntimeError("OpenAI returned JSON that is not an object.")

    return StructuredModelResponse(content=cast(dict[str, Any], parsed), model=response.model or self.name, usage=usage, request_id=response.id, duration_ms=duration_ms)


class OpenAIProvider(Provider):
  """OpenAI provider."""

  _DEFAULT_MODEL: Final[str] = "gpt-4o-mini"

  def __init__(self, api_key: str | None, base_url: str | None = None, timeout_seconds: float = 60.0) -> None:
    if not api_key:
      raise ValueError("LITREVIEW_OPENAI_API_KEY is required for the openai provider.")
    self.name = "openai"
    self._client = AsyncOpenAI(api_key=api_key, base_url=base_url, timeout=timeout_seconds, max_retries=0)

  def get_model(self, model: str | None = None) -> AIModel:
    """Return an OpenAI model client."""
    return OpenAIModel(model or self._DEFAULT_MODEL, self._client)
