"""Provider registry."""

from __future__ import annotations

from litreview.ai.providers.base import AIModel, Provider
from litreview.config import Settings


def get_model(settings: Settings) -> AIModel:
  """Build the configured stage model."""
  if settings.llm_provider == "openai":
    from litreview.ai.providers.openai_chat import OpenAIProvider

    provider: Provider = OpenAIProvider(settings.openai_api_key, settings.openai_base_url, settings.llm_timeout_seconds)
    return provider.get_model(settings.llm_model)
  raise ValueError(f"Unsupported LLM provider: {settings.llm_provider}")
